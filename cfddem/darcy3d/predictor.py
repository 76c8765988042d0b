'''
Velocity prediction of the projection method.

The predicted velocity v_p is advanced from the current velocity by the
porosity-weighted viscous stress, the advective momentum flux, gravity, the
fluid-particle interaction force and, when beta > 0, a fraction of the old
pressure gradient. It is not yet divergence consistent; the pressure
correction of the Poisson solver fixes that.
'''

import taichi as ti

from cfddem.darcy3d.darcyutils import BoundaryType, TensorIndex, Vector3, Vector6
from cfddem.darcy3d.grid import DarcyGrid, gradient

XX = TensorIndex.XX
XY = TensorIndex.XY
XZ = TensorIndex.XZ
YY = TensorIndex.YY
YZ = TensorIndex.YZ
ZZ = TensorIndex.ZZ


@ti.data_oriented
class VelocityPredictor:
    def __init__(self, grid: DarcyGrid):
        self.grid = grid

    # =================================#
    # ----- Tensor Assembly ----- #
    # =================================#
    @ti.kernel
    def find_stress_tensor(self, v: ti.template(), tau: ti.template(), mu: float):
        """
        Viscous stress from central differences of the velocity.

        tau_ii = 2 mu dv_i/dx_i, tau_ij = mu (dv_i/dx_j + dv_j/dx_i)
        """
        dx = self.grid.dx
        dy = self.grid.dy
        dz = self.grid.dz
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            # velocity gradient, row i holds grad(v_i)
            dvdx = (v[x + 1, y, z] - v[x - 1, y, z]) / (2.0 * dx)
            dvdy = (v[x, y + 1, z] - v[x, y - 1, z]) / (2.0 * dy)
            dvdz = (v[x, y, z + 1] - v[x, y, z - 1]) / (2.0 * dz)

            tau[x, y, z] = Vector6(2.0 * mu * dvdx[0],
                                   mu * (dvdy[0] + dvdx[1]),
                                   mu * (dvdz[0] + dvdx[2]),
                                   2.0 * mu * dvdy[1],
                                   mu * (dvdz[1] + dvdy[2]),
                                   2.0 * mu * dvdz[2])

    @ti.kernel
    def find_velocity_outer_product(self, v: ti.template(), v_v: ti.template()):
        """Symmetric outer product v (x) v of every interior cell."""
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            u = v[x, y, z]
            v_v[x, y, z] = Vector6(u[0] * u[0], u[0] * u[1], u[0] * u[2],
                                   u[1] * u[1], u[1] * u[2],
                                   u[2] * u[2])

    @ti.kernel
    def find_div_phi_tensor(self, phi: ti.template(), T: ti.template(), out: ti.template()):
        """
        Divergence of a porosity-weighted symmetric tensor,
            out_i = sum_j d(phi T_ij)/dx_j,
        by central differences. The ghost nodes of phi and T must be current.
        """
        dx = self.grid.dx
        dy = self.grid.dy
        dz = self.grid.dz
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            xp = phi[x + 1, y, z] * T[x + 1, y, z]
            xn = phi[x - 1, y, z] * T[x - 1, y, z]
            yp = phi[x, y + 1, z] * T[x, y + 1, z]
            yn = phi[x, y - 1, z] * T[x, y - 1, z]
            zp = phi[x, y, z + 1] * T[x, y, z + 1]
            zn = phi[x, y, z - 1] * T[x, y, z - 1]

            out[x, y, z] = Vector3(
                (xp[XX] - xn[XX]) / (2.0 * dx) + (yp[XY] - yn[XY]) / (2.0 * dy) + (zp[XZ] - zn[XZ]) / (2.0 * dz),
                (xp[XY] - xn[XY]) / (2.0 * dx) + (yp[YY] - yn[YY]) / (2.0 * dy) + (zp[YZ] - zn[YZ]) / (2.0 * dz),
                (xp[XZ] - xn[XZ]) / (2.0 * dx) + (yp[YZ] - yn[YZ]) / (2.0 * dy) + (zp[ZZ] - zn[ZZ]) / (2.0 * dz))

    # ================================#
    # ----- Prediction Step ----- #
    # ================================#
    @ti.kernel
    def find_predicted_velocity(self, v: ti.template(), v_p: ti.template(), p: ti.template(),
                                phi: ti.template(), dphi: ti.template(),
                                div_phi_tau: ti.template(), div_phi_vi_v: ti.template(),
                                f_i: ti.template(), rho: float, dt: float, beta: float,
                                gravity: Vector3, bc_bot: int, bc_top: int):
        """
        Predict the velocity of every interior cell.

        Args:
            v (ti.template()): Current velocity.
            v_p (ti.template()): Predicted velocity to write.
            p (ti.template()): Current pressure, with current ghost nodes.
            phi, dphi (ti.template()): Porosity and its change over the step.
            div_phi_tau (ti.template()): Divergence of phi * tau.
            div_phi_vi_v (ti.template()): Divergence of phi * v_i v.
            f_i (ti.template()): Fluid-particle interaction force density.
            rho (float): Fluid density.
            dt (float): Fluid time step including the particle sub-steps.
            beta (float): Pressure projection weighting.
            gravity (Vector3): Gravitational acceleration.
            bc_bot, bc_top (int): Boundary conditions of the z-faces.
        """
        dx = self.grid.dx
        dy = self.grid.dy
        dz = self.grid.dz
        nz = self.grid.nz
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            phi_c = phi[x, y, z]
            v_c = v[x, y, z]

            pressure_term = Vector3(0.0, 0.0, 0.0)
            if beta > 0.0:
                pressure_term = -beta * gradient(p, x, y, z, dx, dy, dz) * dt / (rho * phi_c)
            diffusion_term = div_phi_tau[x, y, z] * dt / (rho * phi_c)
            gravity_term = gravity * dt
            drag_term = dt * f_i[x, y, z] / (rho * phi_c)
            porosity_rate_term = v_c * dphi[x, y, z] / phi_c
            advection_term = div_phi_vi_v[x, y, z] * dt / phi_c

            v_new = (v_c + pressure_term + diffusion_term + gravity_term
                     - drag_term - porosity_rate_term - advection_term)

            # zero-gradient boundaries keep the vertical velocity
            if bc_bot == BoundaryType.NEUMANN and z == 0:
                v_new[2] = v_c[2]
            if bc_top == BoundaryType.NEUMANN and z == nz - 1:
                v_new[2] = v_c[2]

            v_p[x, y, z] = v_new
