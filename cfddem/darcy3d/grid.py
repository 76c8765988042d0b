'''
A module that contains the regular fluid grid with a one-cell ghost halo.

Cell-centred fields are addressed with ghost-inclusive coordinates in [-1, N]
on every axis. Cell-face velocities of the staggered variant use congruent
padding with one extra layer, i.e. coordinates in [-1, N+1].
'''

from typing import Sequence, Tuple

import taichi as ti

from cfddem.darcy3d.darcyutils import BoundaryType, Vector3

# offset of every padded field so that index -1 addresses the ghost layer
GHOST_OFFSET = (-1, -1, -1)


# ==========================#
# ----- Fluid Grid ----- #
# ==========================#
@ti.data_oriented
class DarcyGrid:
    """Regular, axis-aligned lattice of nx*ny*nz cells.

    Args:
        nx (int): Number of cells in x-direction.
        ny (int): Number of cells in y-direction.
        nz (int): Number of cells in z-direction.
        lx (float): Physical extent in x-direction [m].
        ly (float): Physical extent in y-direction [m].
        lz (float): Physical extent in z-direction [m].
        origin (Sequence[float]): Lower corner of the domain [m].
    """

    def __init__(self, nx: int, ny: int, nz: int, lx: float, ly: float, lz: float,
                 origin: Sequence[float] = (0.0, 0.0, 0.0)):
        for name, n in (("nx", nx), ("ny", ny), ("nz", nz)):
            if n < 1:
                raise ValueError(f"{name} must be at least 1, got {n}")
        for name, length in (("lx", lx), ("ly", ly), ("lz", lz)):
            if length <= 0.0:
                raise ValueError(f"{name} must be positive, got {length}")

        self.nx = int(nx)
        self.ny = int(ny)
        self.nz = int(nz)
        self.lx = float(lx)
        self.ly = float(ly)
        self.lz = float(lz)
        self.origin = tuple(float(o) for o in origin)

        # cell size
        self.dx = self.lx / self.nx
        self.dy = self.ly / self.ny
        self.dz = self.lz / self.nz
        self.dmin = min(self.dx, self.dy, self.dz)

    # ==================================#
    # ----- Storage Dimensions ----- #
    # ==================================#
    def num_cells(self) -> int:
        """Number of cell-centred values including the ghost nodes."""
        return (self.nx + 2) * (self.ny + 2) * (self.nz + 2)

    def num_cells_velocity(self) -> int:
        """Number of cell-face velocity nodes in a congruent padded grid.

        There are velocity nodes between the boundary points and the pressure
        ghost nodes, but not on the outer side of the ghost nodes.
        """
        return (self.nx + 3) * (self.ny + 3) * (self.nz + 3)

    def shape(self) -> Tuple[int, int, int]:
        return (self.nx + 2, self.ny + 2, self.nz + 2)

    def velocity_shape(self) -> Tuple[int, int, int]:
        return (self.nx + 3, self.ny + 3, self.nz + 3)

    def num_interior_cells(self) -> int:
        return self.nx * self.ny * self.nz

    def place(self, fb: ti.FieldsBuilder, *fields, staggered: bool = False):
        """Place fields into a fields builder with ghost-inclusive indexing.

        Args:
            fb (ti.FieldsBuilder): Builder that owns the memory of the fields.
            fields: Scalar, vector or tensor fields declared without a shape.
            staggered (bool): Use the congruent padding of face velocities.
        """
        shape = self.velocity_shape() if staggered else self.shape()
        fb.dense(ti.ijk, shape).place(*fields, offset=GHOST_OFFSET)

    # ================================#
    # ----- Index Arithmetic ----- #
    # ================================#
    def idx(self, x: int, y: int, z: int) -> int:
        """3D index to 1D index. The ghost nodes are placed at -1 and N."""
        self._check_range(x, y, z, 0)
        return (x + 1) + (self.nx + 2) * (y + 1) + (self.nx + 2) * (self.ny + 2) * (z + 1)

    def coords(self, i: int) -> Tuple[int, int, int]:
        """1D index to ghost-inclusive 3D index, the inverse of `idx`."""
        if not 0 <= i < self.num_cells():
            raise IndexError(f"Cell index {i} outside [0, {self.num_cells()})")
        sx = self.nx + 2
        sxy = sx * (self.ny + 2)
        z, rest = divmod(i, sxy)
        y, x = divmod(rest, sx)
        return x - 1, y - 1, z - 1

    def vidx(self, x: int, y: int, z: int) -> int:
        """3D index to 1D index of cell-face velocity nodes.

        The cell-face velocities are placed at x = [0;nx], y = [0;ny], z = [0;nz].
        The coordinate x,y,z corresponds to the lowest corner of cell(x,y,z).
        """
        self._check_range(x, y, z, 1)
        return (x + 1) + (self.nx + 3) * (y + 1) + (self.nx + 3) * (self.ny + 3) * (z + 1)

    def vcoords(self, i: int) -> Tuple[int, int, int]:
        """1D face-velocity index to 3D index, the inverse of `vidx`."""
        if not 0 <= i < self.num_cells_velocity():
            raise IndexError(f"Face index {i} outside [0, {self.num_cells_velocity()})")
        sx = self.nx + 3
        sxy = sx * (self.ny + 3)
        z, rest = divmod(i, sxy)
        y, x = divmod(rest, sx)
        return x - 1, y - 1, z - 1

    def _check_range(self, x: int, y: int, z: int, extra: int):
        for name, c, n in (("x", x, self.nx), ("y", y, self.ny), ("z", z, self.nz)):
            if not -1 <= c <= n + extra:
                raise IndexError(f"{name} = {c} outside the padded range [-1, {n + extra}]")

    def is_ghost(self, x: int, y: int, z: int) -> bool:
        return not (0 <= x < self.nx and 0 <= y < self.ny and 0 <= z < self.nz)

    def cell_center(self, x: int, y: int, z: int) -> Tuple[float, float, float]:
        """Physical coordinates of the centroid of cell (x, y, z)."""
        return (self.origin[0] + (x + 0.5) * self.dx,
                self.origin[1] + (y + 0.5) * self.dy,
                self.origin[2] + (z + 0.5) * self.dz)

    # ==============================#
    # ----- Ghost Node Update ----- #
    # ==============================#
    @ti.kernel
    def set_ghost_nodes(self, f: ti.template(), bc_bot: int, bc_top: int):
        """Refresh the ghost layer of a scalar, vector or tensor field.

        x and y are periodic. The z-faces copy the adjacent boundary layer for
        Dirichlet and Neumann conditions or wrap around when periodic. Edge and
        corner ghost nodes are not written since no stencil reads them.

        Args:
            f (ti.template()): Cell-centred field with ghost-inclusive indexing.
            bc_bot (int): Boundary condition code of the bottom face.
            bc_top (int): Boundary condition code of the top face.
        """
        nx = self.nx
        ny = self.ny
        nz = self.nz

        for y, z in ti.ndrange(self.ny, self.nz):
            f[-1, y, z] = f[nx - 1, y, z]
            f[nx, y, z] = f[0, y, z]

        for x, z in ti.ndrange(self.nx, self.nz):
            f[x, -1, z] = f[x, ny - 1, z]
            f[x, ny, z] = f[x, 0, z]

        for x, y in ti.ndrange(self.nx, self.ny):
            if bc_bot == BoundaryType.PERIODIC:
                f[x, y, -1] = f[x, y, nz - 1]
            else:
                f[x, y, -1] = f[x, y, 0]

            if bc_top == BoundaryType.PERIODIC:
                f[x, y, nz] = f[x, y, 0]
            else:
                f[x, y, nz] = f[x, y, nz - 1]


# ===============================#
# ----- Difference Stencils ----- #
# ===============================#
@ti.func
def center_of(x: int, y: int, z: int, origin: Vector3, spacing: Vector3) -> Vector3:
    """Centroid of cell (x, y, z)."""
    return Vector3(origin[0] + (x + 0.5) * spacing[0],
                   origin[1] + (y + 0.5) * spacing[1],
                   origin[2] + (z + 0.5) * spacing[2])


@ti.func
def gradient(f: ti.template(), x: int, y: int, z: int,
             dx: float, dy: float, dz: float) -> Vector3:
    """Central-difference gradient of a scalar field."""
    return Vector3((f[x + 1, y, z] - f[x - 1, y, z]) / (2.0 * dx),
                   (f[x, y + 1, z] - f[x, y - 1, z]) / (2.0 * dy),
                   (f[x, y, z + 1] - f[x, y, z - 1]) / (2.0 * dz))


@ti.func
def divergence(v: ti.template(), x: int, y: int, z: int,
               dx: float, dy: float, dz: float) -> float:
    """Central-difference divergence of a vector field."""
    return ((v[x + 1, y, z][0] - v[x - 1, y, z][0]) / (2.0 * dx) +
            (v[x, y + 1, z][1] - v[x, y - 1, z][1]) / (2.0 * dy) +
            (v[x, y, z + 1][2] - v[x, y, z - 1][2]) / (2.0 * dz))


@ti.func
def neighbour_sum(f: ti.template(), x: int, y: int, z: int):
    """Sum of the six face neighbours of a scalar field."""
    return (f[x - 1, y, z] + f[x + 1, y, z] +
            f[x, y - 1, z] + f[x, y + 1, z] +
            f[x, y, z - 1] + f[x, y, z + 1])
