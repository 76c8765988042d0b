"""
Index arithmetic and ghost-node refresh of the fluid grid.
"""

import numpy as np
import pytest
import taichi as ti

from cfddem.darcy3d.darcyutils import BoundaryType, Vector3
from cfddem.darcy3d.grid import GHOST_OFFSET, DarcyGrid, center_of


@pytest.fixture(scope="module", autouse=True)
def setup_taichi():
    ti.init(arch=ti.cpu, default_fp=ti.f64, random_seed=0)
    yield
    ti.reset()


def padded_field(grid, n=1):
    if n == 1:
        return ti.field(float, shape=grid.shape(), offset=GHOST_OFFSET)
    return ti.Vector.field(n, float, shape=grid.shape(), offset=GHOST_OFFSET)


def test_storage_sizes():
    grid = DarcyGrid(4, 3, 5, 4.0, 3.0, 5.0)
    assert grid.num_cells() == 6 * 5 * 7
    assert grid.num_cells_velocity() == 7 * 6 * 8
    assert grid.num_interior_cells() == 60
    assert (grid.dx, grid.dy, grid.dz) == (1.0, 1.0, 1.0)


@pytest.mark.parametrize("args", [
    (0, 2, 2, 1.0, 1.0, 1.0),
    (2, 2, 2, 0.0, 1.0, 1.0),
    (2, 2, 2, 1.0, -1.0, 1.0),
])
def test_invalid_grid(args):
    with pytest.raises(ValueError):
        DarcyGrid(*args)


def test_cell_index_is_a_bijection():
    grid = DarcyGrid(3, 4, 2, 1.0, 1.0, 1.0)
    seen = set()
    for z in range(-1, grid.nz + 1):
        for y in range(-1, grid.ny + 1):
            for x in range(-1, grid.nx + 1):
                i = grid.idx(x, y, z)
                assert grid.coords(i) == (x, y, z)
                seen.add(i)
    assert seen == set(range(grid.num_cells()))


def test_face_index_is_a_bijection():
    grid = DarcyGrid(2, 3, 2, 1.0, 1.0, 1.0)
    seen = set()
    for z in range(-1, grid.nz + 2):
        for y in range(-1, grid.ny + 2):
            for x in range(-1, grid.nx + 2):
                i = grid.vidx(x, y, z)
                assert grid.vcoords(i) == (x, y, z)
                seen.add(i)
    assert seen == set(range(grid.num_cells_velocity()))


def test_index_out_of_range():
    grid = DarcyGrid(3, 3, 3, 1.0, 1.0, 1.0)
    with pytest.raises(IndexError):
        grid.idx(-2, 0, 0)
    with pytest.raises(IndexError):
        grid.idx(0, 4, 0)
    with pytest.raises(IndexError):
        grid.vidx(0, 0, 5)
    with pytest.raises(IndexError):
        grid.coords(grid.num_cells())


def test_cell_center():
    grid = DarcyGrid(4, 4, 4, 2.0, 2.0, 4.0, origin=(1.0, 0.0, -1.0))
    assert grid.cell_center(0, 0, 0) == pytest.approx((1.25, 0.25, -0.5))
    assert grid.is_ghost(-1, 0, 0)
    assert grid.is_ghost(0, 0, 4)
    assert not grid.is_ghost(3, 3, 3)


def fill_interior(field, grid, values):
    arr = field.to_numpy()
    arr[1:-1, 1:-1, 1:-1] = values
    field.from_numpy(arr)


def test_ghost_nodes_dirichlet_bottom_neumann_top():
    grid = DarcyGrid(4, 3, 5, 1.0, 1.0, 1.0)
    f = padded_field(grid)
    f.fill(-7.0)
    rng = np.random.default_rng(1)
    values = rng.random((grid.nx, grid.ny, grid.nz))
    fill_interior(f, grid, values)

    grid.set_ghost_nodes(f, BoundaryType.DIRICHLET, BoundaryType.NEUMANN)
    arr = f.to_numpy()

    # periodic x and y
    np.testing.assert_array_equal(arr[0, 1:-1, 1:-1], values[-1])
    np.testing.assert_array_equal(arr[-1, 1:-1, 1:-1], values[0])
    np.testing.assert_array_equal(arr[1:-1, 0, 1:-1], values[:, -1])
    np.testing.assert_array_equal(arr[1:-1, -1, 1:-1], values[:, 0])
    # both z-faces copy the boundary layer
    np.testing.assert_array_equal(arr[1:-1, 1:-1, 0], values[:, :, 0])
    np.testing.assert_array_equal(arr[1:-1, 1:-1, -1], values[:, :, -1])
    # edges and corners are never written
    assert arr[0, 0, 2] == -7.0
    assert arr[0, 2, 0] == -7.0
    assert arr[-1, -1, -1] == -7.0


def test_ghost_nodes_periodic_z():
    grid = DarcyGrid(3, 3, 4, 1.0, 1.0, 1.0)
    f = padded_field(grid)
    values = np.arange(grid.num_interior_cells(), dtype=float).reshape(3, 3, 4)
    fill_interior(f, grid, values)

    grid.set_ghost_nodes(f, BoundaryType.PERIODIC, BoundaryType.PERIODIC)
    arr = f.to_numpy()
    np.testing.assert_array_equal(arr[1:-1, 1:-1, 0], values[:, :, -1])
    np.testing.assert_array_equal(arr[1:-1, 1:-1, -1], values[:, :, 0])


@pytest.mark.parametrize("n", [1, 3, 6])
def test_ghost_refresh_is_idempotent(n):
    grid = DarcyGrid(4, 4, 3, 1.0, 1.0, 1.0)
    f = padded_field(grid, n)
    rng = np.random.default_rng(n)
    shape = (grid.nx, grid.ny, grid.nz) + ((n,) if n > 1 else ())
    fill_interior(f, grid, rng.random(shape))

    grid.set_ghost_nodes(f, BoundaryType.NEUMANN, BoundaryType.DIRICHLET)
    once = f.to_numpy()
    grid.set_ghost_nodes(f, BoundaryType.NEUMANN, BoundaryType.DIRICHLET)
    twice = f.to_numpy()
    np.testing.assert_array_equal(once, twice)


def test_place_into_fields_builder():
    grid = DarcyGrid(2, 2, 2, 1.0, 1.0, 1.0)
    a = ti.field(float)
    v = ti.Vector.field(3, float)
    face = ti.field(float)
    fb = ti.FieldsBuilder()
    grid.place(fb, a, v)
    grid.place(fb, face, staggered=True)
    tree = fb.finalize()

    assert a.shape == grid.shape()
    assert v.shape == grid.shape()
    assert face.shape == grid.velocity_shape()
    a[-1, -1, -1] = 3.0
    face[grid.nx + 1, 0, 0] = 2.0
    assert a.to_numpy()[0, 0, 0] == 3.0
    assert face.to_numpy()[grid.nx + 2, 1, 1] == 2.0
    tree.destroy()


def test_stencil_vectors_are_double_precision():
    # a cell centre that single precision rounds to 1.0
    origin = Vector3(1.0, 0.0, 0.0)
    spacing = Vector3(1e-9, 1.0, 1.0)

    @ti.kernel
    def first_centre(origin: Vector3, spacing: Vector3) -> Vector3:
        return center_of(2, 0, 0, origin, spacing)

    c = first_centre(origin, spacing)
    assert c[0] - 1.0 == pytest.approx(2.5e-9, rel=1e-6)
    assert c[1] == 0.5
