"""
Ergun / Wen-Yu drag and the force handed to the particles.
"""

import math

import numpy as np
import pytest
import taichi as ti

from cfddem.cellsort import CellSorter
from cfddem.darcy3d.grid import GHOST_OFFSET, DarcyGrid
from cfddem.darcy3d.interaction import InteractionForce
from cfddem.particles import ParticleSet

MU = 1e-3
RHO = 1000.0
D = 1e-3


@pytest.fixture(scope="module", autouse=True)
def setup_taichi():
    ti.init(arch=ti.cpu, default_fp=ti.f64, random_seed=0)
    yield
    ti.reset()


@pytest.fixture(scope="module")
def engine():
    return InteractionForce(DarcyGrid(2, 2, 2, 1.0, 1.0, 1.0))


def ergun(phi, v_rel):
    v = np.linalg.norm(v_rel)
    return (150.0 * MU * (1 - phi) ** 2 / (phi * D * D) + 1.75 * (1 - phi) * RHO * v / D) * np.asarray(v_rel)


def wen_yu(phi, v_rel):
    v = np.linalg.norm(v_rel)
    re = phi * RHO * v * D / MU
    cd = 0.44 if re >= 1000.0 else 24.0 / re * (1.0 + 0.15 * re ** 0.687)
    return 0.75 * cd * phi * (1 - phi) * RHO * v / D * phi ** -2.65 * np.asarray(v_rel)


def test_ergun_regime(engine):
    v_rel = [0.01, -0.02, 0.005]
    f = engine.evaluate_drag(0.5, v_rel, D, MU, RHO)
    np.testing.assert_allclose(f, ergun(0.5, v_rel), rtol=1e-12)


@pytest.mark.parametrize("v_rel", [[0.01, 0.0, 0.0], [0.0, 3.0, 4.0]])
def test_wen_yu_regime(engine, v_rel):
    # the second velocity gives Re > 1000 and a constant drag coefficient
    f = engine.evaluate_drag(0.9, v_rel, D, MU, RHO)
    np.testing.assert_allclose(f, wen_yu(0.9, v_rel), rtol=1e-12)


def test_drag_is_zero_without_slip_or_particles(engine):
    np.testing.assert_array_equal(engine.evaluate_drag(0.5, [0.0, 0.0, 0.0], D, MU, RHO), 0.0)
    np.testing.assert_array_equal(engine.evaluate_drag(0.999, [0.1, 0.0, 0.0], D, MU, RHO), 0.0)
    np.testing.assert_array_equal(engine.evaluate_drag(1.0, [0.1, 0.0, 0.0], D, MU, RHO), 0.0)
    np.testing.assert_array_equal(engine.evaluate_drag(0.5, [0.1, 0.0, 0.0], 0.0, MU, RHO), 0.0)


def test_drag_is_continuous_at_regime_switch(engine):
    v_rel = [0.02, 0.01, 0.0]
    below = engine.evaluate_drag(0.8 - 1e-10, v_rel, D, MU, RHO)
    above = engine.evaluate_drag(0.8 + 1e-10, v_rel, D, MU, RHO)
    np.testing.assert_allclose(below, above, rtol=1e-6)

    # outside the blend window the pure correlations apply
    np.testing.assert_allclose(engine.evaluate_drag(0.79, v_rel, D, MU, RHO), ergun(0.79, v_rel), rtol=1e-12)
    np.testing.assert_allclose(engine.evaluate_drag(0.81, v_rel, D, MU, RHO), wen_yu(0.81, v_rel), rtol=1e-12)


def test_default_blend_window(engine):
    v_rel = [0.02, 0.0, 0.0]
    blended = engine.evaluate_drag(0.798, v_rel, D, MU, RHO)
    pure = ergun(0.798, v_rel)
    # inside the window the default drag is below pure Ergun
    assert blended[0] < 0.99 * pure[0]
    assert blended[0] > wen_yu(0.798, v_rel)[0]


def test_hard_regime_switch():
    engine = InteractionForce(DarcyGrid(2, 2, 2, 1.0, 1.0, 1.0), blend_width=0.0)
    v_rel = [0.02, 0.0, 0.0]
    np.testing.assert_allclose(engine.evaluate_drag(0.8, v_rel, D, MU, RHO), ergun(0.8, v_rel), rtol=1e-12)
    np.testing.assert_allclose(engine.evaluate_drag(0.8 + 1e-9, v_rel, D, MU, RHO),
                               wen_yu(0.8 + 1e-9, v_rel), rtol=1e-9)
    with pytest.raises(ValueError):
        InteractionForce(DarcyGrid(2, 2, 2, 1.0, 1.0, 1.0), blend_width=0.5)


def test_force_on_particles():
    grid = DarcyGrid(4, 4, 4, 4.0, 4.0, 4.0)
    engine = InteractionForce(grid)

    f_i = ti.Vector.field(3, float, shape=grid.shape(), offset=GHOST_OFFSET)
    p = ti.field(float, shape=grid.shape(), offset=GHOST_OFFSET)
    phi = ti.field(float, shape=grid.shape(), offset=GHOST_OFFSET)
    phi.fill(0.6)
    f_i.fill(0.0)
    f_i[1, 1, 1] = [2.0, 0.0, -1.0]

    # pressure falls linearly in x, grad(p) = (-3, 0, 0)
    arr = np.zeros(grid.shape())
    for x in range(-1, grid.nx + 1):
        arr[x + 1] = -3.0 * (x + 0.5)
    p.from_numpy(arr)

    radii = [0.2, 0.3, 0.1]
    particles = ParticleSet.from_numpy([[1.5, 1.5, 1.5], [1.2, 1.7, 1.4], [3.5, 0.5, 2.5]], radii)
    sorter = CellSorter(grid, 3)
    sorter.sort(particles)

    engine.apply_interaction_force(f_i, p, phi, particles.pf, sorter.x_sorted,
                                   sorter.sorted_to_original, sorter.cell_start, sorter.cell_end)
    force = particles.fluid_force()

    for i, r in enumerate(radii):
        volume = 4.0 / 3.0 * math.pi * r ** 3
        drag = np.array([2.0, 0.0, -1.0]) / 0.4 if i < 2 else np.zeros(3)
        np.testing.assert_allclose(force[i], volume * (drag - np.array([-3.0, 0.0, 0.0])), rtol=1e-12)

    # the accumulator only ever grows until the particle side clears it
    engine.apply_interaction_force(f_i, p, phi, particles.pf, sorter.x_sorted,
                                   sorter.sorted_to_original, sorter.cell_start, sorter.cell_end)
    np.testing.assert_allclose(particles.fluid_force(), 2.0 * force, rtol=1e-12)
    particles.clear_fluid_force()
    np.testing.assert_array_equal(particles.fluid_force(), 0.0)


def test_interaction_force_field():
    grid = DarcyGrid(2, 2, 2, 2.0, 2.0, 2.0)
    engine = InteractionForce(grid)
    v = ti.Vector.field(3, float, shape=grid.shape(), offset=GHOST_OFFSET)
    vp_avg = ti.Vector.field(3, float, shape=grid.shape(), offset=GHOST_OFFSET)
    phi = ti.field(float, shape=grid.shape(), offset=GHOST_OFFSET)
    d_avg = ti.field(float, shape=grid.shape(), offset=GHOST_OFFSET)
    f_i = ti.Vector.field(3, float, shape=grid.shape(), offset=GHOST_OFFSET)

    v.fill(0.0)
    vp_avg.fill(0.0)
    phi.fill(1.0)
    d_avg.fill(0.0)
    v[0, 0, 0] = [0.01, 0.0, 0.0]
    vp_avg[0, 0, 0] = [0.0, 0.0, -0.01]
    phi[0, 0, 0] = 0.5
    d_avg[0, 0, 0] = D

    engine.find_interaction_force(v, vp_avg, phi, d_avg, f_i, MU, RHO)
    out = f_i.to_numpy()[1:-1, 1:-1, 1:-1]
    np.testing.assert_allclose(out[0, 0, 0], ergun(0.5, [0.01, 0.0, 0.01]), rtol=1e-12)
    np.testing.assert_array_equal(out[1, 1, 1], 0.0)
