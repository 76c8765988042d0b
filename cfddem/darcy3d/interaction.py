'''
Fluid-particle interaction force.

A drag force density is found in every fluid cell from the slip velocity
between the fluid and the mean velocity of the particles in the cell. The
density enters the momentum equation of the fluid and is handed to the
particles of the cell together with the local pressure gradient.
'''

import numpy as np
import taichi as ti
import taichi.math as tm

from cfddem.darcy3d.darcyutils import EMPTY_CELL, VOID_POROSITY, Vector3
from cfddem.darcy3d.grid import DarcyGrid, gradient

# porosity separating the packed (Ergun) and the dilute (Wen-Yu) regime
ERGUN_POROSITY = 0.8


# =====================================
# Drag Correlations
# =====================================
@ti.func
def ergun_drag(phi: float, mu: float, rho: float, d: float, v_rel: Vector3) -> Vector3:
    """Ergun (1952) drag density for densely packed beds."""
    v_rel_mag = tm.length(v_rel)
    return (150.0 * mu * (1.0 - phi) ** 2 / (phi * d * d) +
            1.75 * (1.0 - phi) * rho * v_rel_mag / d) * v_rel


@ti.func
def drag_coefficient(re: float) -> float:
    """Single sphere drag coefficient of Schiller and Naumann, constant above Re = 1000."""
    cd = 0.44
    if re < 1000.0:
        cd = 24.0 / re * (1.0 + 0.15 * re ** 0.687)
    return cd


@ti.func
def wen_yu_drag(phi: float, mu: float, rho: float, d: float, v_rel: Vector3) -> Vector3:
    """Wen and Yu (1966) drag density for dilute suspensions."""
    v_rel_mag = tm.length(v_rel)
    re = phi * rho * v_rel_mag * d / mu
    cd = drag_coefficient(re)
    return 0.75 * cd * phi * (1.0 - phi) * rho * v_rel_mag / d * phi ** (-2.65) * v_rel


@ti.data_oriented
class InteractionForce:
    """
    Ergun / Wen-Yu interaction between the fluid and the particles.

    Args:
        grid (DarcyGrid): Fluid grid.
        blend_width (float): Porosity window around 0.8 in which the two
            correlations are blended linearly. 0 gives a hard switch, the
            default departs from pure Ergun for 0.795 < phi <= 0.8.
    """

    def __init__(self, grid: DarcyGrid, blend_width: float = 0.01):
        if not 0.0 <= blend_width < 2.0 * (VOID_POROSITY - ERGUN_POROSITY):
            raise ValueError(f"blend_width out of range: {blend_width}")
        self.grid = grid
        self.blend_width = blend_width

    @ti.func
    def drag_force(self, phi: float, v_rel: Vector3, d: float, mu: float, rho: float) -> Vector3:
        """
        Drag force density [N/m^3] acting on the particles of a cell.

        **Regimes:**
        - phi <= 0.8: Ergun,
          f_d = (150 mu (1-phi)^2/(phi d^2) + 1.75 (1-phi) rho |v_rel|/d) v_rel
        - 0.8 < phi < 0.999: Wen-Yu,
          f_d = 3/4 C_d phi (1-phi) rho |v_rel|/d phi^-2.65 v_rel
        - phi >= 0.999: no particles, no drag

        Where:
        - C_d = 24/Re (1 + 0.15 Re^0.687) for Re < 1000, else 0.44
        - Re = phi rho |v_rel| d / mu

        Args:
            phi (float): Porosity of the cell.
            v_rel (Vector3): Fluid velocity minus mean particle velocity [m/s].
            d (float): Mean particle diameter [m].
            mu (float): Dynamic viscosity [Pa s].
            rho (float): Fluid density [kg/m^3].
        """
        f_d = Vector3(0.0, 0.0, 0.0)
        half = 0.5 * self.blend_width
        if phi < VOID_POROSITY and d > 0.0 and tm.length(v_rel) > 0.0:
            if phi <= ERGUN_POROSITY - half:
                f_d = ergun_drag(phi, mu, rho, d, v_rel)
            elif phi >= ERGUN_POROSITY + half:
                f_d = wen_yu_drag(phi, mu, rho, d, v_rel)
            else:
                # linear blend across the regime switch
                t = (phi - (ERGUN_POROSITY - half)) / self.blend_width
                f_d = ((1.0 - t) * ergun_drag(phi, mu, rho, d, v_rel) +
                       t * wen_yu_drag(phi, mu, rho, d, v_rel))
        return f_d

    @ti.kernel
    def find_interaction_force(self, v: ti.template(), vp_avg: ti.template(), phi: ti.template(),
                               d_avg: ti.template(), f_i: ti.template(), mu: float, rho: float):
        """Drag force density of every interior cell."""
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            v_rel = v[x, y, z] - vp_avg[x, y, z]
            f_i[x, y, z] = self.drag_force(phi[x, y, z], v_rel, d_avg[x, y, z], mu, rho)

    @ti.kernel
    def apply_interaction_force(self, f_i: ti.template(), p: ti.template(), phi: ti.template(),
                                pf: ti.template(), x_sorted: ti.template(),
                                sorted_to_original: ti.template(),
                                cell_start: ti.template(), cell_end: ti.template()):
        """
        Add the fluid force to every particle,
            F = V_p (f_d/(1 - phi) - grad(p)),  V_p = 4/3 pi r^3.

        The ghost nodes of p must be current.

        Args:
            f_i (ti.template()): Drag force density of every cell.
            p (ti.template()): Fluid pressure.
            phi (ti.template()): Porosity.
            pf (ti.template()): Particle field with a `force_fluid` member.
            x_sorted (ti.template()): (x, y, z, r) of the cell-sorted particles.
            sorted_to_original (ti.template()): Sorted index to particle index.
            cell_start, cell_end (ti.template()): Per-cell range in the sorted arrays.
        """
        dx = self.grid.dx
        dy = self.grid.dy
        dz = self.grid.dz
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            start = cell_start[x, y, z]
            if start != EMPTY_CELL:
                phi_c = phi[x, y, z]
                grad_p = gradient(p, x, y, z, dx, dy, dz)
                # drag per unit solid volume
                f_solid = Vector3(0.0, 0.0, 0.0)
                if phi_c < VOID_POROSITY:
                    f_solid = f_i[x, y, z] / (1.0 - phi_c)

                for s in range(start, cell_end[x, y, z]):
                    r = x_sorted[s][3]
                    v_p = 4.0 / 3.0 * tm.pi * r * r * r
                    j = sorted_to_original[s]
                    pf[j].force_fluid += v_p * (f_solid - grad_p)

    @ti.kernel
    def _evaluate_drag(self, phi: float, v_rel: Vector3, d: float, mu: float, rho: float) -> Vector3:
        return self.drag_force(phi, v_rel, d, mu, rho)

    def evaluate_drag(self, phi: float, v_rel, d: float, mu: float, rho: float) -> np.ndarray:
        """Evaluate the drag force density on the host, mainly for inspection."""
        return np.array(self._evaluate_drag(phi, Vector3(*v_rel), d, mu, rho))
