from typing import Optional

from .types import BoundaryType, GridSpec, FluidProperties, BoundaryConditions, RelaxationParams, CouplingParams


class DarcySolverConfig:
    """Configuration for the porous-media fluid solver."""

    def __init__(self,
                 grid: GridSpec,
                 fluid: FluidProperties,
                 dt: float,
                 boundaries: Optional[BoundaryConditions] = None,
                 relaxation: Optional[RelaxationParams] = None,
                 coupling: Optional[CouplingParams] = None,
                 check_finite: bool = False,
                 verbose: bool = True):
        if dt <= 0:
            raise ValueError(f"Time step dt must be positive, got {dt}")

        self.grid = grid
        self.fluid = fluid
        self.dt = dt
        self.boundaries = boundaries if boundaries is not None else BoundaryConditions()
        self.relaxation = relaxation if relaxation is not None else RelaxationParams()
        self.coupling = coupling if coupling is not None else CouplingParams()
        # check every field for non-finite values after each phase (slow)
        self.check_finite = check_finite
        # log progress of every step at INFO level
        self.verbose = verbose

        self.boundaries.validate()
        self.relaxation.validate()
        self.coupling.validate()

    @property
    def dt_eff(self) -> float:
        """Fluid time step including the particle sub-step multiplier."""
        return self.dt * self.coupling.ndem

    def set_relaxation(self, **kwargs) -> 'DarcySolverConfig':
        return self._update(self.relaxation, "relaxation", kwargs)

    def set_coupling(self, **kwargs) -> 'DarcySolverConfig':
        return self._update(self.coupling, "coupling", kwargs)

    def set_boundaries(self, **kwargs) -> 'DarcySolverConfig':
        return self._update(self.boundaries, "boundary", kwargs)

    def _update(self, params, kind: str, kwargs) -> 'DarcySolverConfig':
        for key, value in kwargs.items():
            if hasattr(params, key):
                setattr(params, key, value)
            else:
                raise ValueError(f"Unknown {kind} parameter: {key}")
        params.validate()
        return self

    def summary(self) -> str:
        """Return a human-readable summary of the configuration."""
        g = self.grid
        dx, dy, dz = g.spacing
        bc = self.boundaries
        r = self.relaxation
        c = self.coupling

        summary = f"""
Fluid Solver Configuration:
===========================
Grid: {g.nx} × {g.ny} × {g.nz} cells, {g.lx} × {g.ly} × {g.lz} m
Cell size: {dx} × {dy} × {dz} m
Time step: {self.dt} s ({c.ndem} particle sub-steps, effective {self.dt_eff} s)

Fluid Properties:
- Dynamic viscosity: {self.fluid.mu} Pa s
- Density: {self.fluid.rho} kg/m³
- Gravity: ({self.fluid.gravity[0]}, {self.fluid.gravity[1]}, {self.fluid.gravity[2]}) m/s²

Boundaries:
- Bottom: {BoundaryType.name(bc.bc_bot)}"""
        if bc.bc_bot == BoundaryType.DIRICHLET:
            summary += f" (p = {bc.p_bot} Pa)"
        summary += f"\n- Top: {BoundaryType.name(bc.bc_top)}"
        if bc.bc_top == BoundaryType.DIRICHLET:
            summary += f" (p = {bc.p_top} Pa)"

        summary += f"""

Pressure Solver:
- Relaxation factor theta: {r.theta}
- Tolerance: {r.tolerance}
- Max. iterations: {r.max_iterations}
- Smoothing gamma: {r.gamma}
- Projection beta: {r.beta}

Coupling:
- Porosity model: {c.porosity_model} (support factor {c.support_factor})
- Drag blend width: {c.drag_blend_width}
"""
        return summary
