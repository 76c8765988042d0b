"""
Configuration types of the fluid solver.
"""

import pytest

from cfddem.darcyconfig import (BoundaryConditions, BoundaryType, CouplingParams, DarcySolverConfig,
                                FluidProperties, GridSpec, RelaxationParams)


def make_config(**kwargs):
    return DarcySolverConfig(GridSpec(8, 8, 16, 0.08, 0.08, 0.16), FluidProperties(), 1e-4, **kwargs)


def test_defaults():
    config = make_config()
    assert config.boundaries.bc_bot == BoundaryType.NEUMANN
    assert config.boundaries.bc_top == BoundaryType.DIRICHLET
    assert config.relaxation.theta == 1.0
    assert config.coupling.porosity_model == "spherical"
    assert config.grid.spacing == pytest.approx((0.01, 0.01, 0.01))
    assert config.fluid.nu == pytest.approx(1e-6)
    assert config.dt_eff == 1e-4


def test_effective_time_step():
    config = make_config(coupling=CouplingParams(ndem=10))
    assert config.dt_eff == pytest.approx(1e-3)


def test_fluent_setters():
    config = make_config()
    same = config.set_relaxation(theta=0.8, tolerance=1e-6).set_coupling(porosity_model="kernel")
    assert same is config
    assert config.relaxation.theta == 0.8
    assert config.relaxation.tolerance == 1e-6
    assert config.coupling.porosity_model == "kernel"

    config.set_boundaries(bc_bot=BoundaryType.DIRICHLET, p_bot=100.0)
    assert config.boundaries.p_bot == 100.0

    with pytest.raises(ValueError, match="Unknown relaxation parameter"):
        config.set_relaxation(omega=1.0)
    with pytest.raises(ValueError):
        config.set_relaxation(theta=0.0)
    with pytest.raises(ValueError):
        config.set_coupling(support_factor=3)


@pytest.mark.parametrize("kwargs", [
    {"relaxation": RelaxationParams(theta=1.5)},
    {"relaxation": RelaxationParams(beta=-0.1)},
    {"relaxation": RelaxationParams(max_iterations=0)},
    {"coupling": CouplingParams(ndem=0)},
    {"coupling": CouplingParams(porosity_model="voronoi")},
    {"coupling": CouplingParams(drag_blend_width=0.3)},
    {"boundaries": BoundaryConditions(bc_bot=BoundaryType.PERIODIC)},
    {"boundaries": BoundaryConditions(bc_top=3)},
])
def test_invalid_parameters(kwargs):
    with pytest.raises(ValueError):
        make_config(**kwargs)


def test_invalid_definitions():
    with pytest.raises(ValueError):
        GridSpec(0, 8, 8, 1.0, 1.0, 1.0)
    with pytest.raises(ValueError):
        GridSpec(8, 8, 8, 1.0, 0.0, 1.0)
    with pytest.raises(ValueError):
        FluidProperties(mu=-1.0)
    with pytest.raises(ValueError):
        FluidProperties(gravity=(0.0, -9.81))
    with pytest.raises(ValueError):
        DarcySolverConfig(GridSpec(2, 2, 2, 1.0, 1.0, 1.0), FluidProperties(), 0.0)


def test_periodic_boundaries():
    bc = BoundaryConditions(bc_bot=BoundaryType.PERIODIC, bc_top=BoundaryType.PERIODIC)
    assert bc.z_periodic
    assert not BoundaryConditions().z_periodic
    assert BoundaryType.name(BoundaryType.NEUMANN) == "Neumann"
    with pytest.raises(ValueError):
        BoundaryType.name(7)


def test_summary():
    config = make_config(boundaries=BoundaryConditions(p_top=250.0))
    text = config.summary()
    assert "Fluid Solver Configuration:" in text
    assert "Bottom: Neumann" in text
    assert "Top: Dirichlet (p = 250.0 Pa)" in text
    assert "8 × 8 × 16 cells" in text
    assert "Porosity model: spherical" in text
