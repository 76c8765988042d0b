'''
Velocity and pressure correction of the projection method.

The predicted velocity is interpolated onto the cell faces and corrected
there with the compact face gradient of the pressure correction,
    v_face = v_p,face - dt (eps[x] - eps[x-1])/(dx rho phi_face).
The 7-point Laplacian of the Jacobi solve is the face divergence of exactly
this gradient, so the face divergence of the corrected velocity vanishes in
every relaxed cell once the pressure correction has converged. The cell
velocities receive the mean of the corrections of their two faces per axis.
'''

import taichi as ti

from cfddem.darcy3d.darcyutils import Vector3
from cfddem.darcy3d.grid import DarcyGrid


@ti.func
def face_correction(epsilon: ti.template(), phi: ti.template(), x: int, y: int, z: int,
                    axis: ti.template(), h: float, rho: float, dt: float) -> float:
    """dt grad(epsilon)/(rho phi) on the low face of cell (x, y, z) normal to axis."""
    lo = ti.Vector([x, y, z])
    lo[axis] -= 1
    phi_f = 0.5 * (phi[lo[0], lo[1], lo[2]] + phi[x, y, z])
    return dt * (epsilon[x, y, z] - epsilon[lo[0], lo[1], lo[2]]) / (h * rho * phi_f)


@ti.data_oriented
class Corrector:
    def __init__(self, grid: DarcyGrid):
        self.grid = grid

    @ti.kernel
    def correct_faces(self, v_p: ti.template(), epsilon: ti.template(), phi: ti.template(),
                      v_x_face: ti.template(), v_y_face: ti.template(), v_z_face: ti.template(),
                      rho: float, dt: float):
        """
        Corrected velocity on the low face of every cell and on the high faces
        of the last layer. The ghost nodes of v_p, epsilon and phi must be current.
        """
        nx = self.grid.nx
        ny = self.grid.ny
        nz = self.grid.nz

        for x, y, z in ti.ndrange(nx + 1, ny, nz):
            v_x_face[x, y, z] = (0.5 * (v_p[x - 1, y, z][0] + v_p[x, y, z][0]) -
                                 face_correction(epsilon, phi, x, y, z, 0, self.grid.dx, rho, dt))
        for x, y, z in ti.ndrange(nx, ny + 1, nz):
            v_y_face[x, y, z] = (0.5 * (v_p[x, y - 1, z][1] + v_p[x, y, z][1]) -
                                 face_correction(epsilon, phi, x, y, z, 1, self.grid.dy, rho, dt))
        for x, y, z in ti.ndrange(nx, ny, nz + 1):
            v_z_face[x, y, z] = (0.5 * (v_p[x, y, z - 1][2] + v_p[x, y, z][2]) -
                                 face_correction(epsilon, phi, x, y, z, 2, self.grid.dz, rho, dt))

    @ti.kernel
    def correct_cells(self, v: ti.template(), v_p: ti.template(), p: ti.template(),
                      epsilon: ti.template(), phi: ti.template(), rho: float, dt: float,
                      beta: float):
        """
        New pressure and velocity of every interior cell,
            p = beta p_old + epsilon,
            v = v_p - dt grad(epsilon)/(rho phi),
        with the last term averaged from the two faces of each axis.
        """
        dx = self.grid.dx
        dy = self.grid.dy
        dz = self.grid.dz
        for x, y, z in ti.ndrange(self.grid.nx, self.grid.ny, self.grid.nz):
            p[x, y, z] = beta * p[x, y, z] + epsilon[x, y, z]
            corr = 0.5 * Vector3(
                face_correction(epsilon, phi, x, y, z, 0, dx, rho, dt) +
                face_correction(epsilon, phi, x + 1, y, z, 0, dx, rho, dt),
                face_correction(epsilon, phi, x, y, z, 1, dy, rho, dt) +
                face_correction(epsilon, phi, x, y + 1, z, 1, dy, rho, dt),
                face_correction(epsilon, phi, x, y, z, 2, dz, rho, dt) +
                face_correction(epsilon, phi, x, y, z + 1, 2, dz, rho, dt))
            v[x, y, z] = v_p[x, y, z] - corr

    def correct(self, v, v_p, p, epsilon, phi, v_x_face, v_y_face, v_z_face,
                rho: float, dt: float, beta: float):
        """
        Project the predicted velocity. The face velocities hold the
        divergence-free velocity afterwards.
        """
        self.correct_faces(v_p, epsilon, phi, v_x_face, v_y_face, v_z_face, rho, dt)
        self.correct_cells(v, v_p, p, epsilon, phi, rho, dt, beta)
