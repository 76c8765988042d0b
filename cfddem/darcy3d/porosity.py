'''
Porosity estimators coupling the particle phase to the fluid grid.

Every interior cell gets a void fraction phi, its change dphi over the last
fluid step, and the mean velocity and diameter of the particles in its
support sphere. The support sphere is centred on the cell centroid and has the
radius R = support_factor * min(dx, dy, dz).

Two estimators exist and one of them is picked for the whole run:
    SphericalPorosity: exact particle/support sphere intersection volumes.
    KernelPorosity: smoothing kernel, porosity integrated from the particle flux.
'''

import logging
import math

import taichi as ti

from cfddem.darcy3d.darcyutils import EMPTY_CELL, Vector3, Vector3i
from cfddem.darcy3d.grid import DarcyGrid, center_of

logger = logging.getLogger(__name__)


# ==========================#
# ----- Sphere Geometry ----- #
# ==========================#
@ti.func
def sphere_volume(r: float) -> float:
    return 4.0 / 3.0 * ti.math.pi * r * r * r


@ti.func
def overlap_volume(R: float, r: float, d: float) -> float:
    """Volume shared by a support sphere of radius R and a particle of radius r.

    Args:
        R (float): Radius of the support sphere.
        r (float): Radius of the particle.
        d (float): Distance between the two centers.
    """
    v = 0.0
    if d <= R - r:
        # particle fully inside the support
        v = sphere_volume(r)
    elif d <= r - R:
        # support fully inside the particle
        v = sphere_volume(R)
    elif d < R + r:
        # spherical lens
        v = (ti.math.pi * (R + r - d) ** 2 *
             (d * d + 2.0 * d * r - 3.0 * r * r + 2.0 * d * R + 6.0 * r * R - 3.0 * R * R) /
             (12.0 * d))
    return v


# ================================#
# ----- Estimator Base Class ----- #
# ================================#
@ti.data_oriented
class PorosityEstimator:
    """Neighbourhood search shared by the porosity estimators.

    Args:
        grid (DarcyGrid): Fluid grid.
        support_factor (int): Support radius in multiples of min(dx, dy, dz), 1 or 2.
    """
    name = "base"

    def __init__(self, grid: DarcyGrid, support_factor: int = 1):
        if support_factor not in (1, 2):
            raise ValueError(f"support_factor must be 1 or 2, got {support_factor}")
        self.grid = grid
        self.support_factor = support_factor
        self.radius = support_factor * grid.dmin
        self.support_volume = 4.0 / 3.0 * math.pi * self.radius ** 3
        self.x0, self.y0, self.z0 = grid.origin

    @ti.func
    def wrap_cell(self, ix: int, iy: int, iz: int, z_periodic: int) -> Vector3i:
        """Map a possibly out-of-grid cell to the interior cell holding its particles.

        x and y wrap around. z wraps when periodic, otherwise cells outside
        the grid are marked with z = -1.
        """
        nz = self.grid.nz
        jz = iz
        if z_periodic:
            jz = iz % nz
        elif iz < 0 or iz >= nz:
            jz = -1
        return Vector3i(ix % self.grid.nx, iy % self.grid.ny, jz)

    @ti.func
    def image_shift(self, ix: int, iy: int, iz: int, c: Vector3i) -> Vector3:
        """Offset of the periodic image of a particle in the wrapped cell c."""
        return Vector3((ix - c[0]) // self.grid.nx * self.grid.lx,
                       (iy - c[1]) // self.grid.ny * self.grid.ly,
                       (iz - c[2]) // self.grid.nz * self.grid.lz)

    @ti.kernel
    def fill_void(self, phi: ti.template(), dphi: ti.template(), vp_avg: ti.template(),
                  d_avg: ti.template()):
        """Pure fluid in every interior cell, used when there are no particles."""
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            phi[x, y, z] = 1.0
            dphi[x, y, z] = 0.0
            vp_avg[x, y, z] = Vector3(0.0, 0.0, 0.0)
            d_avg[x, y, z] = 0.0


# =================================#
# ----- Exact Sphere Overlap ----- #
# =================================#
@ti.data_oriented
class SphericalPorosity(PorosityEstimator):
    """Porosity from the exact intersection volumes of particles and the support sphere."""
    name = "spherical"

    @ti.kernel
    def estimate(self, phi: ti.template(), dphi: ti.template(), vp_avg: ti.template(),
                 d_avg: ti.template(), x_sorted: ti.template(), vel_sorted: ti.template(),
                 cell_start: ti.template(), cell_end: ti.template(),
                 first_iteration: int, dt_eff: float, z_periodic: int):
        """
        Find the porosity of every interior cell.

        Args:
            phi, dphi, vp_avg, d_avg (ti.template()): Cell fields to write.
            x_sorted (ti.template()): (x, y, z, r) of the cell-sorted particles.
            vel_sorted (ti.template()): Velocities of the cell-sorted particles.
            cell_start, cell_end (ti.template()): Per-cell range in the sorted arrays.
            first_iteration (int): 1 if there is no previous porosity.
            dt_eff (float): Unused, shared signature with the kernel estimator.
            z_periodic (int): 1 if particles are searched across the z-faces.
        """
        s = ti.static(self.support_factor)
        R = self.radius
        origin = Vector3(self.x0, self.y0, self.z0)
        spacing = Vector3(self.grid.dx, self.grid.dy, self.grid.dz)

        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            center = center_of(x, y, z, origin, spacing)
            void_volume = self.support_volume
            v_sum = Vector3(0.0, 0.0, 0.0)
            d_sum = 0.0
            count = 0

            for i, j, k in ti.ndrange((-s, s + 1), (-s, s + 1), (-s, s + 1)):
                c = self.wrap_cell(x + i, y + j, z + k, z_periodic)
                if c[2] >= 0:
                    start = cell_start[c]
                    if start != EMPTY_CELL:
                        shift = self.image_shift(x + i, y + j, z + k, c)
                        for p in range(start, cell_end[c]):
                            xr = x_sorted[p]
                            r = xr[3]
                            d = (Vector3(xr[0], xr[1], xr[2]) + shift - center).norm()
                            if d < R + r:
                                void_volume -= overlap_volume(R, r, d)
                                v_sum += vel_sorted[p]
                                d_sum += 2.0 * r
                                count += 1

            phi_new = ti.min(ti.max(void_volume / self.support_volume, 0.0), 1.0)
            if first_iteration:
                dphi[x, y, z] = 0.0
            else:
                dphi[x, y, z] = phi_new - phi[x, y, z]
            phi[x, y, z] = phi_new

            if count > 0:
                vp_avg[x, y, z] = v_sum / count
                d_avg[x, y, z] = d_sum / count
            else:
                vp_avg[x, y, z] = Vector3(0.0, 0.0, 0.0)
                d_avg[x, y, z] = 0.0


# ============================#
# ----- Smoothing Kernel ----- #
# ============================#
@ti.data_oriented
class KernelPorosity(PorosityEstimator):
    """Porosity from a cubic B-spline kernel of compact support R.

    The solid fraction is sampled directly on the first iteration. Afterwards
    the porosity is advanced with the divergence of the particle flux,
        dphi = dt_eff * sum_j V_j v_j . grad W(x - x_j),
    so that the time step multiplier of the particle sub-steps is required.
    """
    name = "kernel"

    def __init__(self, grid: DarcyGrid, support_factor: int = 1):
        super().__init__(grid, support_factor)
        # the cubic spline reaches zero at q = 2
        self.h = 0.5 * self.radius
        self.sigma = 1.0 / (math.pi * self.h ** 3)

    @ti.func
    def weight(self, r: float) -> float:
        q = r / self.h
        w = 0.0
        if q < 1.0:
            w = self.sigma * (1.0 - 1.5 * q * q + 0.75 * q * q * q)
        elif q < 2.0:
            w = self.sigma * 0.25 * (2.0 - q) ** 3
        return w

    @ti.func
    def weight_derivative(self, r: float) -> float:
        """dW/dr."""
        q = r / self.h
        dw = 0.0
        if q < 1.0:
            dw = self.sigma / self.h * (-3.0 * q + 2.25 * q * q)
        elif q < 2.0:
            dw = -self.sigma / self.h * 0.75 * (2.0 - q) ** 2
        return dw

    @ti.kernel
    def estimate(self, phi: ti.template(), dphi: ti.template(), vp_avg: ti.template(),
                 d_avg: ti.template(), x_sorted: ti.template(), vel_sorted: ti.template(),
                 cell_start: ti.template(), cell_end: ti.template(),
                 first_iteration: int, dt_eff: float, z_periodic: int):
        s = ti.static(self.support_factor)
        R = self.radius
        origin = Vector3(self.x0, self.y0, self.z0)
        spacing = Vector3(self.grid.dx, self.grid.dy, self.grid.dz)

        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            center = center_of(x, y, z, origin, spacing)
            solid = 0.0
            rate = 0.0
            w_sum = 0.0
            v_sum = Vector3(0.0, 0.0, 0.0)
            d_sum = 0.0

            for i, j, k in ti.ndrange((-s, s + 1), (-s, s + 1), (-s, s + 1)):
                c = self.wrap_cell(x + i, y + j, z + k, z_periodic)
                if c[2] >= 0:
                    start = cell_start[c]
                    if start != EMPTY_CELL:
                        shift = self.image_shift(x + i, y + j, z + k, c)
                        for p in range(start, cell_end[c]):
                            xr = x_sorted[p]
                            r = xr[3]
                            dist = center - (Vector3(xr[0], xr[1], xr[2]) + shift)
                            d = dist.norm()
                            if d < R:
                                vol = 4.0 / 3.0 * ti.math.pi * r * r * r
                                w = self.weight(d)
                                solid += vol * w
                                if d > 0.0:
                                    grad_w = self.weight_derivative(d) / d * dist
                                    rate += vol * vel_sorted[p].dot(grad_w)
                                w_sum += w
                                v_sum += w * vel_sorted[p]
                                d_sum += w * 2.0 * r

            if first_iteration:
                phi[x, y, z] = ti.min(ti.max(1.0 - solid, 0.0), 1.0)
                dphi[x, y, z] = 0.0
            else:
                phi_new = ti.min(ti.max(phi[x, y, z] + dt_eff * rate, 0.0), 1.0)
                dphi[x, y, z] = phi_new - phi[x, y, z]
                phi[x, y, z] = phi_new

            if w_sum > 0.0:
                vp_avg[x, y, z] = v_sum / w_sum
                d_avg[x, y, z] = d_sum / w_sum
            else:
                vp_avg[x, y, z] = Vector3(0.0, 0.0, 0.0)
                d_avg[x, y, z] = 0.0


POROSITY_MODELS = {
    SphericalPorosity.name: SphericalPorosity,
    KernelPorosity.name: KernelPorosity,
}


def make_porosity_estimator(model: str, grid: DarcyGrid, support_factor: int = 1) -> PorosityEstimator:
    """Create the porosity estimator selected by name."""
    if model not in POROSITY_MODELS:
        raise ValueError(f"Unknown porosity model '{model}', expected one of {tuple(POROSITY_MODELS)}")
    estimator = POROSITY_MODELS[model](grid, support_factor)
    logger.info("Porosity estimator: %s, support radius %g", model, estimator.radius)
    return estimator
