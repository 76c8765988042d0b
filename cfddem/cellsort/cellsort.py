"""
Sorting of particles into the cells of the fluid grid.

The fluid solver reads its particle neighbourhoods from particle arrays that
are reordered by fluid cell, together with per-cell start/end offsets. The
tables are built in three data-parallel stages:
1. Count particles per fluid cell (atomic increment).
2. Compute cell offsets via parallel prefix sum.
3. Scatter particle data into the sorted arrays and fill the start/end tables.
"""

import taichi as ti

from .prefixsum import PrefixSumExecutor
from .utils import EMPTY_CELL, next_pow2

#=====================================
# Type Definitions
#=====================================

Vector3 = ti.types.vector(3, ti.f64)
Vector3i = ti.types.vector(3, int)
Vector4 = ti.types.vector(4, ti.f64)


@ti.data_oriented
class CellSorter:
    """
    Particle-in-cell tables for the interior cells of a fluid grid.

    Args:
        grid (DarcyGrid): Fluid grid, only the interior cells are sorted into.
        particle_count (int): Number of particles, at least one.

    Attributes:
        x_sorted: (x, y, z, r) of every particle, ordered by cell.
        vel_sorted: velocity of every particle, ordered by cell.
        sorted_to_original: index of the sorted particle in the particle set.
        cell_start, cell_end: half-open range of each cell in the sorted
            arrays, `EMPTY_CELL` where the cell holds no particle.
    """

    def __init__(self, grid, particle_count: int):
        if particle_count < 1:
            raise ValueError(f"CellSorter needs at least one particle, got {particle_count}")
        self.grid = grid
        self.particle_count = int(particle_count)
        self.ncells = grid.num_interior_cells()
        self.npad = next_pow2(self.ncells)

        self.cell_count = ti.field(dtype=int)
        self.cell_offset = ti.field(dtype=int)
        self.cell_current = ti.field(dtype=int)

        self.cell_start = ti.field(dtype=int)
        self.cell_end = ti.field(dtype=int)

        self.x_sorted = ti.Vector.field(4, dtype=float)
        self.vel_sorted = ti.Vector.field(3, dtype=float)
        self.sorted_to_original = ti.field(dtype=int)
        # fluid cell of every particle in the original order
        self.particle_cell = ti.field(dtype=int)

        fb = ti.FieldsBuilder()
        fb.dense(ti.i, self.npad).place(self.cell_count, self.cell_offset, self.cell_current)
        fb.dense(ti.ijk, (grid.nx, grid.ny, grid.nz)).place(self.cell_start, self.cell_end)
        fb.dense(ti.i, self.particle_count).place(self.x_sorted, self.vel_sorted,
                                                  self.sorted_to_original, self.particle_cell)
        self.tree = fb.finalize()

        self.pse = PrefixSumExecutor()

    def free(self):
        """Release the memory of the sorted tables."""
        if self.tree is not None:
            self.tree.destroy()
            self.tree = None

    def sort(self, particles):
        """Rebuild all tables from the current particle state.

        Args:
            particles (ParticleSet): Particles to sort, same count as at construction.
        """
        if self.tree is None:
            raise RuntimeError("The cell tables have been freed")
        if particles.n != self.particle_count:
            raise ValueError(f"CellSorter was built for {self.particle_count} particles, "
                             f"got {particles.n}")
        g = self.grid
        self._count_particles(particles.pf,
                              Vector3(*g.origin), Vector3(g.dx, g.dy, g.dz))
        self.pse.parallel_fast(self.cell_offset, self.cell_count)
        self._put_particles(particles.pf)
        self._fill_cell_tables()

    @ti.func
    def cell_of(self, pos: Vector3, origin: Vector3, spacing: Vector3) -> Vector3i:
        """Fluid cell containing a position, clamped into the interior."""
        ijk = ti.floor((pos - origin) / spacing, dtype=int)
        n = Vector3i(self.grid.nx, self.grid.ny, self.grid.nz)
        for k in ti.static(range(3)):
            ijk[k] = ti.max(0, ti.min(ijk[k], n[k] - 1))
        return ijk

    @ti.func
    def linear_index(self, ijk: Vector3i) -> int:
        return ijk[0] + self.grid.nx * (ijk[1] + self.grid.ny * ijk[2])

    @ti.kernel
    def _count_particles(self, pf: ti.template(), origin: Vector3, spacing: Vector3):
        """Clear all cells, then count particles per cell."""
        for c in self.cell_count:
            self.cell_count[c] = 0
            self.cell_current[c] = 0
        for i in pf:
            c = self.linear_index(self.cell_of(pf[i].position, origin, spacing))
            self.particle_cell[i] = c
            ti.atomic_add(self.cell_count[c], 1)

    @ti.kernel
    def _put_particles(self, pf: ti.template()):
        """Scatter particle data into the cell-sorted arrays."""
        for i in pf:
            c = self.particle_cell[i]
            loc = ti.atomic_add(self.cell_current[c], 1)
            j = self.cell_offset[c] + loc
            p = pf[i].position
            self.x_sorted[j] = Vector4(p[0], p[1], p[2], pf[i].radius)
            self.vel_sorted[j] = pf[i].velocity
            self.sorted_to_original[j] = i

    @ti.kernel
    def _fill_cell_tables(self):
        for x, y, z in self.cell_start:
            c = self.linear_index(Vector3i(x, y, z))
            if self.cell_count[c] > 0:
                self.cell_start[x, y, z] = self.cell_offset[c]
                self.cell_end[x, y, z] = self.cell_offset[c] + self.cell_count[c]
            else:
                self.cell_start[x, y, z] = EMPTY_CELL
                self.cell_end[x, y, z] = EMPTY_CELL
