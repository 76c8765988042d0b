'''
Pressure correction of the projection method.

The pressure correction epsilon solves the Poisson equation
    laplace(epsilon) = f,  f = f1 - f2 . grad(epsilon),
    f1 = rho (phi div(v_p)/dt + grad(phi) . v_p/dt + dphi/dt^2),
    f2 = grad(phi)/phi,
by under-relaxed Jacobi iteration. epsilon is double buffered and the two
buffers swap roles after every sweep.
'''

import logging
import warnings
from dataclasses import dataclass, field
from typing import List

import taichi as ti

from cfddem.darcy3d.darcyutils import BoundaryType
from cfddem.darcy3d.diagnostics import norm_stats
from cfddem.darcy3d.errors import ConvergenceWarning
from cfddem.darcy3d.grid import DarcyGrid, divergence, gradient, neighbour_sum

logger = logging.getLogger(__name__)


@dataclass
class JacobiResult:
    """Outcome of one pressure solve."""
    iterations: int
    avg_residual: float
    max_residual: float
    converged: bool
    residual_history: List[float] = field(default_factory=list)


@ti.data_oriented
class PoissonSolver:
    """
    Jacobi solver of the pressure correction.

    Args:
        grid (DarcyGrid): Fluid grid.
        epsilon, epsilon_new: The two buffers of the pressure correction.
        norm: Normalized residual of the last sweep.
        f1, f2, f: Forcing terms.
    """

    def __init__(self, grid: DarcyGrid, epsilon, epsilon_new, norm, f1, f2, f):
        self.grid = grid
        self.buffers = [epsilon, epsilon_new]
        self.current = 0
        self.norm = norm
        self.f1 = f1
        self.f2 = f2
        self.f = f

    @property
    def epsilon(self):
        """Buffer holding the latest pressure correction."""
        return self.buffers[self.current]

    # ==============================#
    # ----- Forcing Function ----- #
    # ==============================#
    @ti.kernel
    def assemble_forcing(self, v_p: ti.template(), phi: ti.template(), dphi: ti.template(),
                         rho: float, dt: float):
        """
        Find f1 and f2. The ghost nodes of v_p and phi must be current.

        div(v_p) is the flux divergence of v_p interpolated onto the cell
        faces, which reduces to the central difference over two cells.
        """
        dx = self.grid.dx
        dy = self.grid.dy
        dz = self.grid.dz
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            phi_c = phi[x, y, z]
            grad_phi = gradient(phi, x, y, z, dx, dy, dz)
            div_v_p = divergence(v_p, x, y, z, dx, dy, dz)

            self.f1[x, y, z] = rho * (phi_c * div_v_p / dt +
                                      grad_phi.dot(v_p[x, y, z]) / dt +
                                      dphi[x, y, z] / (dt * dt))
            self.f2[x, y, z] = grad_phi / phi_c

    @ti.kernel
    def _update_forcing(self, eps: ti.template()):
        dx = self.grid.dx
        dy = self.grid.dy
        dz = self.grid.dz
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            self.f[x, y, z] = self.f1[x, y, z] - self.f2[x, y, z].dot(gradient(eps, x, y, z, dx, dy, dz))

    # =================================#
    # ----- Boundary Values ----- #
    # =================================#
    @ti.kernel
    def _reset_buffer(self, eps: ti.template(), bc_bot: int, bc_top: int,
                      value_bot: float, value_top: float):
        nz = self.grid.nz
        for I in ti.grouped(eps):
            eps[I] = 0.0
        for x, y in ti.ndrange(self.grid.nx, self.grid.ny):
            if bc_bot == BoundaryType.DIRICHLET:
                eps[x, y, 0] = value_bot
            if bc_top == BoundaryType.DIRICHLET:
                eps[x, y, nz - 1] = value_top

    def reset(self, bc_bot: int, bc_top: int, value_bot: float, value_top: float):
        """
        Zero both buffers and write the Dirichlet values into the boundary layers.

        The Dirichlet layers keep these values for the whole solve.
        """
        for eps in self.buffers:
            self._reset_buffer(eps, bc_bot, bc_top, value_bot, value_top)
        self.current = 0

    # ==============================#
    # ----- Jacobi Iteration ----- #
    # ==============================#
    @ti.func
    def is_fixed(self, z: int, bc_bot: int, bc_top: int) -> int:
        """Dirichlet boundary layers are not relaxed."""
        fixed = 0
        if bc_bot == BoundaryType.DIRICHLET and z == 0:
            fixed = 1
        if bc_top == BoundaryType.DIRICHLET and z == self.grid.nz - 1:
            fixed = 1
        return fixed

    @ti.kernel
    def jacobi_step(self, src: ti.template(), dst: ti.template(), theta: float,
                    bc_bot: int, bc_top: int, residual_floor: float):
        """
        One under-relaxed Jacobi sweep from src into dst.

        Args:
            src (ti.template()): Pressure correction of the last sweep, ghosts current.
            dst (ti.template()): Buffer to write.
            theta (float): Under-relaxation factor in (0, 1].
            bc_bot, bc_top (int): Boundary conditions of the z-faces.
            residual_floor (float): Added to the denominator of the normalized residual.
        """
        dx2 = self.grid.dx * self.grid.dx
        dy2 = self.grid.dy * self.grid.dy
        dz2 = self.grid.dz * self.grid.dz
        denom = 2.0 * (dx2 * dy2 + dx2 * dz2 + dy2 * dz2)

        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            e = src[x, y, z]
            if self.is_fixed(z, bc_bot, bc_top):
                dst[x, y, z] = e
                self.norm[x, y, z] = 0.0
            else:
                e_raw = (-dx2 * dy2 * dz2 * self.f[x, y, z]
                         + dy2 * dz2 * (src[x - 1, y, z] + src[x + 1, y, z])
                         + dx2 * dz2 * (src[x, y - 1, z] + src[x, y + 1, z])
                         + dx2 * dy2 * (src[x, y, z - 1] + src[x, y, z + 1])) / denom

                dst[x, y, z] = (1.0 - theta) * e + theta * e_raw
                self.norm[x, y, z] = (e_raw - e) * (e_raw - e) / (e_raw * e_raw + residual_floor)

    @ti.kernel
    def smooth(self, src: ti.template(), dst: ti.template(), gamma: float,
               bc_bot: int, bc_top: int):
        """Blend every relaxed cell with the mean of its six neighbours."""
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            e = src[x, y, z]
            if self.is_fixed(z, bc_bot, bc_top):
                dst[x, y, z] = e
            else:
                dst[x, y, z] = (1.0 - gamma) * e + gamma * neighbour_sum(src, x, y, z) / 6.0

    def _swap(self):
        self.current = 1 - self.current

    def iterate(self, time: float, theta: float, tolerance: float, max_iterations: int,
                bc_bot: int, bc_top: int, gamma: float = 0.0,
                residual_floor: float = 1e-16) -> JacobiResult:
        """
        Relax the pressure correction until the normalized residual is small.

        f1 and f2 must have been assembled. The loop stops when the mean or
        the maximum normalized residual of the interior cells drops below the
        tolerance, or at max_iterations with a ConvergenceWarning.

        Raises:
            NumericalDivergenceError: if a residual is NaN or infinite.
        """
        history = []
        avg = max_res = float("inf")
        converged = False
        it = 0

        while it < max_iterations:
            src = self.buffers[self.current]
            dst = self.buffers[1 - self.current]
            self.grid.set_ghost_nodes(src, bc_bot, bc_top)
            self._update_forcing(src)
            self.jacobi_step(src, dst, theta, bc_bot, bc_top, residual_floor)
            self._swap()
            it += 1

            if gamma > 0.0:
                src = self.buffers[self.current]
                dst = self.buffers[1 - self.current]
                self.grid.set_ghost_nodes(src, bc_bot, bc_top)
                self.smooth(src, dst, gamma, bc_bot, bc_top)
                self._swap()

            avg, max_res = norm_stats(self.norm, time, it)
            history.append(avg)
            if avg < tolerance or max_res < tolerance:
                converged = True
                break

        self.grid.set_ghost_nodes(self.epsilon, bc_bot, bc_top)

        if not converged:
            message = (f"Pressure correction did not converge in {max_iterations} iterations "
                       f"at t = {time}: mean residual {avg:g}, max residual {max_res:g}, "
                       f"tolerance {tolerance:g}")
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning)
        else:
            logger.debug("Pressure correction converged in %d iterations, mean residual %g",
                         it, avg)

        return JacobiResult(it, avg, max_res, converged, history)
