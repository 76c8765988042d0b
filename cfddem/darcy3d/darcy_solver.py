'''
Porous-media (Darcy) Navier-Stokes solver coupled to discrete particles.

One fluid step runs the phases
    stability check -> ghost refresh -> porosity estimate -> stress and
    momentum flux assembly -> velocity prediction -> pressure correction ->
    velocity and pressure correction -> ghost refresh -> interaction force,
each as one or more kernel launches. The interaction force is added to the
`force_fluid` accumulator of the particles.
'''

import logging
import sys
from typing import Optional, TextIO

import numpy as np
import taichi as ti

from cfddem.cellsort import CellSorter
from cfddem.darcyconfig import DarcySolverConfig
from cfddem.darcy3d.corrector import Corrector
from cfddem.darcy3d.darcyutils import BoundaryType, Vector3
from cfddem.darcy3d.diagnostics import check_finite, check_stability, interior, print_array
from cfddem.darcy3d.errors import DeviceMemoryError
from cfddem.darcy3d.grid import DarcyGrid
from cfddem.darcy3d.interaction import InteractionForce
from cfddem.darcy3d.poisson import JacobiResult, PoissonSolver
from cfddem.darcy3d.porosity import make_porosity_estimator
from cfddem.darcy3d.predictor import VelocityPredictor
from cfddem.particles import ParticleSet

logger = logging.getLogger(__name__)


@ti.data_oriented
class DarcySolver:
    """
    Fluid solver on a regular grid with a one-cell ghost halo.

    Args:
        config (DarcySolverConfig): Solver configuration, not modified by the solver.
        particles (ParticleSet): Particles coupled to the fluid, or None for pure fluid.
    """

    # =========================#
    # ----- Constructor ----- #
    # =========================#
    def __init__(self, config: DarcySolverConfig, particles: Optional[ParticleSet] = None):
        self.config = config
        g = config.grid
        self.grid = DarcyGrid(g.nx, g.ny, g.nz, g.lx, g.ly, g.lz, g.origin)
        self.particles = particles

        self.time = 0.0
        self.iteration = 0
        self.last_result: Optional[JacobiResult] = None

        # cell-centred scalars
        self.p = ti.field(float)  # pressure
        self.phi = ti.field(float)  # porosity
        self.dphi = ti.field(float)  # porosity change over the last step
        self.epsilon = ti.field(float)  # pressure correction
        self.epsilon_new = ti.field(float)  # second buffer of the pressure correction
        self.norm = ti.field(float)  # normalized residual
        self.f1 = ti.field(float)  # forcing from v_p and phi
        self.f = ti.field(float)  # full forcing
        self.d_avg = ti.field(float)  # mean particle diameter

        # cell-centred vectors
        self.v = ti.Vector.field(3, float)  # velocity
        self.v_p = ti.Vector.field(3, float)  # predicted velocity
        self.f2 = ti.Vector.field(3, float)  # grad(phi)/phi
        self.vp_avg = ti.Vector.field(3, float)  # mean particle velocity
        self.f_i = ti.Vector.field(3, float)  # interaction force density
        self.div_phi_tau = ti.Vector.field(3, float)
        self.div_phi_vi_v = ti.Vector.field(3, float)

        # cell-centred symmetric tensors
        self.tau = ti.Vector.field(6, float)  # viscous stress
        self.v_v = ti.Vector.field(6, float)  # v (x) v

        # face velocities with congruent padding, the projected velocity after a step
        self.v_x_face = ti.field(float)
        self.v_y_face = ti.field(float)
        self.v_z_face = ti.field(float)
        self.div_face = ti.field(float)  # face divergence of the face velocities

        fb = ti.FieldsBuilder()
        self.grid.place(fb, self.p, self.phi, self.dphi, self.epsilon, self.epsilon_new,
                        self.norm, self.f1, self.f, self.d_avg, self.div_face)
        self.grid.place(fb, self.v, self.v_p, self.f2, self.vp_avg, self.f_i,
                        self.div_phi_tau, self.div_phi_vi_v)
        self.grid.place(fb, self.tau, self.v_v)
        self.grid.place(fb, self.v_x_face, self.v_y_face, self.v_z_face, staggered=True)
        try:
            self.tree = fb.finalize()
        except RuntimeError as e:
            message = (f"Could not allocate the fluid fields of a "
                       f"{g.nx} x {g.ny} x {g.nz} grid: {e}")
            logger.error(message)
            raise DeviceMemoryError(message, context={"cells": self.grid.num_cells()}) from e

        c = config.coupling
        self.estimator = make_porosity_estimator(c.porosity_model, self.grid, c.support_factor)
        self.predictor = VelocityPredictor(self.grid)
        self.poisson = PoissonSolver(self.grid, self.epsilon, self.epsilon_new, self.norm,
                                     self.f1, self.f2, self.f)
        self.corrector = Corrector(self.grid)
        self.interaction = InteractionForce(self.grid, c.drag_blend_width)
        self.sorter = CellSorter(self.grid, particles.n) if particles is not None else None

        self.initialize()
        if config.verbose:
            logger.info("Fluid grid allocated: %d cells (%d with ghost nodes)",
                        self.grid.num_interior_cells(), self.grid.num_cells())

    # ============================#
    # ----- Initialization ----- #
    # ============================#
    @ti.kernel
    def _set_boundary_pressure(self, p: ti.template(), bc_bot: int, bc_top: int,
                               p_bot: float, p_top: float):
        nz = self.grid.nz
        for x, y in ti.ndrange(self.grid.nx, self.grid.ny):
            if bc_bot == BoundaryType.DIRICHLET:
                p[x, y, 0] = p_bot
            if bc_top == BoundaryType.DIRICHLET:
                p[x, y, nz - 1] = p_top

    def initialize(self):
        """Fluid at rest, phi = 1, zero pressure except on Dirichlet boundaries."""
        for f in (self.p, self.dphi, self.epsilon, self.epsilon_new, self.norm, self.f1,
                  self.f, self.d_avg, self.div_face, self.v_x_face,
                  self.v_y_face, self.v_z_face):
            f.fill(0.0)
        for f in (self.v, self.v_p, self.f2, self.vp_avg, self.f_i,
                  self.div_phi_tau, self.div_phi_vi_v, self.tau, self.v_v):
            f.fill(0.0)
        self.phi.fill(1.0)

        bc = self.config.boundaries
        self._set_boundary_pressure(self.p, bc.bc_bot, bc.bc_top, bc.p_bot, bc.p_top)
        self.refresh_ghosts(self.p, self.v, self.phi)
        self.time = 0.0
        self.iteration = 0

    def refresh_ghosts(self, *fields):
        bc = self.config.boundaries
        for f in fields:
            self.grid.set_ghost_nodes(f, bc.bc_bot, bc.bc_top)

    def _set_interior(self, field, values: np.ndarray, ncomp: int):
        arr = field.to_numpy()
        shape = (self.grid.nx, self.grid.ny, self.grid.nz) + ((ncomp,) if ncomp > 1 else ())
        arr[1:-1, 1:-1, 1:-1] = np.broadcast_to(np.asarray(values, dtype=arr.dtype), shape)
        field.from_numpy(arr)
        self.refresh_ghosts(field)

    def set_velocity(self, velocity: np.ndarray):
        """Set the velocity of the interior cells, shape (nx, ny, nz, 3) or (3,)."""
        self._set_interior(self.v, velocity, 3)
        self._interpolate_face_velocities()

    def set_pressure(self, pressure: np.ndarray):
        """Set the pressure of the interior cells, shape (nx, ny, nz) or scalar."""
        self._set_interior(self.p, pressure, 1)

    # ==========================#
    # ----- Time Stepping ----- #
    # ==========================#
    def step(self, time: Optional[float] = None) -> JacobiResult:
        """
        Advance the fluid by one step of dt * ndem.

        Args:
            time (float): Current simulation time, defaults to the internal clock.

        Returns:
            JacobiResult: Outcome of the pressure correction.

        Raises:
            StabilityError: if the time step violates the diffusive or advective limit.
            NumericalDivergenceError: if a field becomes NaN or infinite.
        """
        if self.tree is None:
            raise RuntimeError("The fluid solver has been freed")

        cfg = self.config
        bc = cfg.boundaries
        relax = cfg.relaxation
        mu = cfg.fluid.mu
        rho = cfg.fluid.rho
        dt = cfg.dt_eff
        t = self.time if time is None else time
        first_iteration = 1 if self.iteration == 0 else 0
        z_periodic = 1 if bc.z_periodic else 0

        check_stability(self.grid, self.velocity(), cfg.fluid.nu, dt, t, self.iteration)
        self.refresh_ghosts(self.v, self.p)

        # ----- porosity ----- #
        if self.particles is not None:
            self.sorter.sort(self.particles)
            self.estimator.estimate(self.phi, self.dphi, self.vp_avg, self.d_avg,
                                   self.sorter.x_sorted, self.sorter.vel_sorted,
                                   self.sorter.cell_start, self.sorter.cell_end,
                                   first_iteration, dt, z_periodic)
        else:
            self.estimator.fill_void(self.phi, self.dphi, self.vp_avg, self.d_avg)
        self.refresh_ghosts(self.phi)
        if cfg.check_finite:
            check_finite(self.phi, "phi", t, self.iteration)
            check_finite(self.dphi, "dphi", t, self.iteration)

        # ----- prediction ----- #
        self.predictor.find_stress_tensor(self.v, self.tau, mu)
        self.predictor.find_velocity_outer_product(self.v, self.v_v)
        self.refresh_ghosts(self.tau, self.v_v)
        self.predictor.find_div_phi_tensor(self.phi, self.tau, self.div_phi_tau)
        self.predictor.find_div_phi_tensor(self.phi, self.v_v, self.div_phi_vi_v)
        self.predictor.find_predicted_velocity(self.v, self.v_p, self.p, self.phi, self.dphi,
                                               self.div_phi_tau, self.div_phi_vi_v, self.f_i,
                                               rho, dt, relax.beta, Vector3(*cfg.fluid.gravity),
                                               bc.bc_bot, bc.bc_top)
        self.refresh_ghosts(self.v_p)
        if cfg.check_finite:
            check_finite(self.v_p, "v_p", t, self.iteration)

        # ----- pressure correction ----- #
        self.poisson.reset(bc.bc_bot, bc.bc_top,
                           (1.0 - relax.beta) * bc.p_bot, (1.0 - relax.beta) * bc.p_top)
        self.poisson.assemble_forcing(self.v_p, self.phi, self.dphi, rho, dt)
        result = self.poisson.iterate(t, relax.theta, relax.tolerance, relax.max_iterations,
                                      bc.bc_bot, bc.bc_top, relax.gamma, relax.residual_floor)

        # ----- correction ----- #
        self.corrector.correct(self.v, self.v_p, self.p, self.poisson.epsilon, self.phi,
                               self.v_x_face, self.v_y_face, self.v_z_face, rho, dt, relax.beta)
        self.refresh_ghosts(self.v, self.p)
        if cfg.check_finite:
            check_finite(self.v, "v", t, self.iteration)
            check_finite(self.p, "p", t, self.iteration)

        # ----- fluid-particle interaction ----- #
        self.interaction.find_interaction_force(self.v, self.vp_avg, self.phi, self.d_avg,
                                                self.f_i, mu, rho)
        if self.particles is not None:
            self.interaction.apply_interaction_force(self.f_i, self.p, self.phi, self.particles.pf,
                                                     self.sorter.x_sorted,
                                                     self.sorter.sorted_to_original,
                                                     self.sorter.cell_start, self.sorter.cell_end)

        if cfg.verbose:
            logger.info("t = %g, step %d: pressure correction %s after %d iterations "
                        "(mean residual %.3e)", t, self.iteration,
                        "converged" if result.converged else "not converged",
                        result.iterations, result.avg_residual)

        self.iteration += 1
        self.time = t + dt
        self.last_result = result
        return result

    # =============================#
    # ----- Face Velocities ----- #
    # =============================#
    @ti.kernel
    def _interpolate_face_velocities(self):
        """Face velocities as the mean of the two adjacent cells, v ghosts current."""
        nx = self.grid.nx
        ny = self.grid.ny
        nz = self.grid.nz
        for x, y, z in ti.ndrange(nx + 1, ny, nz):
            self.v_x_face[x, y, z] = 0.5 * (self.v[x - 1, y, z][0] + self.v[x, y, z][0])
        for x, y, z in ti.ndrange(nx, ny + 1, nz):
            self.v_y_face[x, y, z] = 0.5 * (self.v[x, y - 1, z][1] + self.v[x, y, z][1])
        for x, y, z in ti.ndrange(nx, ny, nz + 1):
            self.v_z_face[x, y, z] = 0.5 * (self.v[x, y, z - 1][2] + self.v[x, y, z][2])

    @ti.kernel
    def _find_face_divergence(self):
        dx = self.grid.dx
        dy = self.grid.dy
        dz = self.grid.dz
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            self.div_face[x, y, z] = ((self.v_x_face[x + 1, y, z] - self.v_x_face[x, y, z]) / dx +
                                      (self.v_y_face[x, y + 1, z] - self.v_y_face[x, y, z]) / dy +
                                      (self.v_z_face[x, y, z + 1] - self.v_z_face[x, y, z]) / dz)

    def face_velocities(self):
        """
        Face velocities (v_x, v_y, v_z) with shapes (nx+1, ny, nz), (nx, ny+1, nz), (nx, ny, nz+1).

        After a step these are the projected velocities. After `set_velocity`
        they are interpolated from the cells.
        """
        nx, ny, nz = self.grid.nx, self.grid.ny, self.grid.nz
        return (self.v_x_face.to_numpy()[1:nx + 2, 1:ny + 1, 1:nz + 1],
                self.v_y_face.to_numpy()[1:nx + 1, 1:ny + 2, 1:nz + 1],
                self.v_z_face.to_numpy()[1:nx + 1, 1:ny + 1, 1:nz + 2])

    # =========================#
    # ----- Diagnostics ----- #
    # =========================#
    def divergence(self) -> np.ndarray:
        """Divergence of the face velocities of every interior cell."""
        self._find_face_divergence()
        return interior(self.div_face.to_numpy())

    def max_divergence(self) -> float:
        return float(np.abs(self.divergence()).max())

    def dump(self, name: str, stream: TextIO = sys.stdout, color: bool = False):
        """Print a field of the solver by attribute name, e.g. "p" or "v"."""
        field = self.poisson.epsilon if name == "epsilon" else getattr(self, name)
        print_array(stream, field, desc=name, color=color)

    # ==============================#
    # ----- Host Accessors ----- #
    # ==============================#
    def velocity(self) -> np.ndarray:
        return interior(self.v.to_numpy())

    def predicted_velocity(self) -> np.ndarray:
        return interior(self.v_p.to_numpy())

    def pressure(self) -> np.ndarray:
        return interior(self.p.to_numpy())

    def porosity(self) -> np.ndarray:
        return interior(self.phi.to_numpy())

    def porosity_change(self) -> np.ndarray:
        return interior(self.dphi.to_numpy())

    def pressure_correction(self) -> np.ndarray:
        return interior(self.poisson.epsilon.to_numpy())

    def interaction_force(self) -> np.ndarray:
        return interior(self.f_i.to_numpy())

    # ======================#
    # ----- Lifecycle ----- #
    # ======================#
    def free(self):
        """
        Release the memory of all fluid fields and particle tables. The solver
        is unusable afterwards. The particle set belongs to the caller.
        """
        if self.sorter is not None:
            self.sorter.free()
        if self.tree is not None:
            self.tree.destroy()
            self.tree = None
            logger.debug("Fluid fields released")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.free()
        return False
