"""
Porosity estimators on small grids with known particle arrangements.
"""

import math

import numpy as np
import pytest
import taichi as ti

from cfddem.cellsort import CellSorter
from cfddem.darcy3d.grid import GHOST_OFFSET, DarcyGrid
from cfddem.darcy3d.porosity import KernelPorosity, SphericalPorosity, make_porosity_estimator
from cfddem.particles import ParticleSet


@pytest.fixture(scope="module", autouse=True)
def setup_taichi():
    ti.init(arch=ti.cpu, default_fp=ti.f64, random_seed=0)
    yield
    ti.reset()


def lens_volume(R, r, d):
    return math.pi * (R + r - d) ** 2 * (d * d + 2 * d * r - 3 * r * r + 2 * d * R + 6 * r * R - 3 * R * R) / (12 * d)


class PorosityFields:
    """Porosity fields and particle tables of one grid."""

    def __init__(self, grid, positions, radii, velocities=None):
        self.grid = grid
        self.phi = ti.field(float, shape=grid.shape(), offset=GHOST_OFFSET)
        self.dphi = ti.field(float, shape=grid.shape(), offset=GHOST_OFFSET)
        self.d_avg = ti.field(float, shape=grid.shape(), offset=GHOST_OFFSET)
        self.vp_avg = ti.Vector.field(3, float, shape=grid.shape(), offset=GHOST_OFFSET)
        self.phi.fill(1.0)
        self.particles = ParticleSet.from_numpy(positions, radii, velocities)
        self.sorter = CellSorter(grid, self.particles.n)

    def estimate(self, estimator, first_iteration=1, dt_eff=0.0, z_periodic=0):
        self.sorter.sort(self.particles)
        estimator.estimate(self.phi, self.dphi, self.vp_avg, self.d_avg,
                           self.sorter.x_sorted, self.sorter.vel_sorted,
                           self.sorter.cell_start, self.sorter.cell_end,
                           first_iteration, dt_eff, z_periodic)
        return self.phi.to_numpy()[1:-1, 1:-1, 1:-1]


def unit_grid(n=5):
    return DarcyGrid(n, n, n, float(n), float(n), float(n))


def test_single_particle_on_cell_center():
    grid = unit_grid()
    r = 0.3
    fields = PorosityFields(grid, [[2.5, 2.5, 2.5]], [r], [[0.1, 0.2, -0.3]])
    phi = fields.estimate(SphericalPorosity(grid))

    # support radius R = 1: the particle is fully inside the support of its own cell
    assert phi[2, 2, 2] == pytest.approx(1.0 - r ** 3, abs=1e-12)
    # face neighbours at d = 1 intersect the particle in a lens
    lens = lens_volume(1.0, r, 1.0)
    assert phi[3, 2, 2] == pytest.approx(1.0 - lens / (4.0 / 3.0 * math.pi), abs=1e-12)
    assert phi[2, 1, 2] == pytest.approx(phi[3, 2, 2], abs=1e-14)
    # diagonal neighbours at d = sqrt(2) > R + r are untouched
    assert phi[3, 3, 2] == 1.0

    vp_avg = fields.vp_avg.to_numpy()[1:-1, 1:-1, 1:-1]
    d_avg = fields.d_avg.to_numpy()[1:-1, 1:-1, 1:-1]
    np.testing.assert_allclose(vp_avg[2, 2, 2], [0.1, 0.2, -0.3])
    assert d_avg[2, 2, 2] == pytest.approx(2 * r)
    assert d_avg[0, 0, 0] == 0.0
    np.testing.assert_array_equal(vp_avg[0, 0, 0], [0.0, 0.0, 0.0])


def test_double_support_radius():
    grid = unit_grid()
    r = 0.5
    fields = PorosityFields(grid, [[2.5, 2.5, 2.5]], [r])
    phi = fields.estimate(SphericalPorosity(grid, support_factor=2))
    assert phi[2, 2, 2] == pytest.approx(1.0 - (r / 2.0) ** 3, abs=1e-12)
    # two cells away the particle still intersects the support of radius 2
    assert phi[4, 2, 2] < 1.0


def test_support_inside_a_large_particle():
    grid = unit_grid()
    fields = PorosityFields(grid, [[2.5, 2.5, 2.5]], [1.5])
    phi = fields.estimate(SphericalPorosity(grid))
    assert phi[2, 2, 2] == 0.0


def test_porosity_is_bounded_for_dense_packings():
    grid = unit_grid(4)
    rng = np.random.default_rng(11)
    n = 300
    positions = rng.random((n, 3)) * 4.0
    radii = rng.uniform(0.2, 0.6, n)
    fields = PorosityFields(grid, positions, radii)

    phi = fields.estimate(SphericalPorosity(grid))
    assert np.all(phi >= 0.0)
    assert np.all(phi <= 1.0)
    # overlapping particles remove more than the support volume
    assert phi.min() == 0.0

    phi = fields.estimate(KernelPorosity(grid))
    assert np.all(phi >= 0.0)
    assert np.all(phi <= 1.0)


def test_periodic_images_in_x():
    grid = unit_grid()
    # particle on the x = 0 face, equally close to cell 0 and to cell nx-1
    fields = PorosityFields(grid, [[0.0, 2.5, 2.5]], [0.4])
    phi = fields.estimate(SphericalPorosity(grid))
    assert phi[0, 2, 2] < 1.0
    assert phi[0, 2, 2] == pytest.approx(phi[4, 2, 2], abs=1e-14)


def test_z_faces_are_periodic_only_on_request():
    grid = unit_grid()
    fields = PorosityFields(grid, [[2.5, 2.5, 0.0]], [0.4])
    estimator = SphericalPorosity(grid)
    phi = fields.estimate(estimator, z_periodic=0)
    assert phi[2, 2, 4] == 1.0
    phi = fields.estimate(estimator, z_periodic=1)
    assert phi[2, 2, 4] == pytest.approx(phi[2, 2, 0], abs=1e-14)


def test_porosity_change():
    grid = unit_grid()
    fields = PorosityFields(grid, [[2.5, 2.5, 2.5]], [0.3])
    estimator = SphericalPorosity(grid)
    phi_first = fields.estimate(estimator, first_iteration=1)
    np.testing.assert_array_equal(fields.dphi.to_numpy(), 0.0)

    fields.particles.load([[2.8, 2.5, 2.5]], [0.3])
    phi_second = fields.estimate(estimator, first_iteration=0)
    dphi = fields.dphi.to_numpy()[1:-1, 1:-1, 1:-1]
    np.testing.assert_allclose(dphi, phi_second - phi_first, atol=1e-14)
    assert dphi[3, 2, 2] < 0.0
    assert dphi[1, 2, 2] > 0.0


def test_kernel_porosity():
    grid = unit_grid()
    r = 0.1
    volume = 4.0 / 3.0 * math.pi * r ** 3
    estimator = KernelPorosity(grid)
    h = estimator.h
    sigma = 1.0 / (math.pi * h ** 3)

    fields = PorosityFields(grid, [[2.8, 2.5, 2.5]], [r], [[1.0, 0.0, 0.0]])
    phi = fields.estimate(estimator, first_iteration=1)
    # q = 0.3 / h = 0.6
    w = sigma * (1.0 - 1.5 * 0.36 + 0.75 * 0.216)
    assert phi[2, 2, 2] == pytest.approx(1.0 - volume * w, abs=1e-12)

    dt_eff = 0.01
    fields.estimate(estimator, first_iteration=0, dt_eff=dt_eff)
    dphi = fields.dphi.to_numpy()[1:-1, 1:-1, 1:-1]
    # the particle moves away from cell 2 and towards cell 3
    rate_center = volume * 0.99 * sigma / h
    rate_next = -volume * 0.27 * sigma / h
    assert dphi[2, 2, 2] == pytest.approx(dt_eff * rate_center, rel=1e-10)
    assert dphi[3, 2, 2] == pytest.approx(dt_eff * rate_next, rel=1e-10)
    assert dphi[0, 0, 0] == 0.0


def test_void_without_particles():
    grid = unit_grid(3)
    fields = PorosityFields(grid, [[1.5, 1.5, 1.5]], [0.4])
    estimator = make_porosity_estimator("spherical", grid)
    fields.estimate(estimator)
    estimator.fill_void(fields.phi, fields.dphi, fields.vp_avg, fields.d_avg)
    np.testing.assert_array_equal(fields.phi.to_numpy()[1:-1, 1:-1, 1:-1], 1.0)
    np.testing.assert_array_equal(fields.d_avg.to_numpy()[1:-1, 1:-1, 1:-1], 0.0)


def test_estimator_factory():
    grid = unit_grid(3)
    assert isinstance(make_porosity_estimator("kernel", grid), KernelPorosity)
    with pytest.raises(ValueError):
        make_porosity_estimator("voronoi", grid)
    with pytest.raises(ValueError):
        SphericalPorosity(grid, support_factor=3)
