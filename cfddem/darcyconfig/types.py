"""
Grid, fluid and numerical parameter definitions.
"""

from dataclasses import dataclass
from typing import Tuple


# ===============================#
# ----- Boundary Conditions ----- #
# ===============================#
class BoundaryType:
    """Boundary condition codes for the top and bottom z-faces.

    The x and y faces are always periodic.
    """
    DIRICHLET = 0  # fixed value held by the boundary layer
    NEUMANN = 1  # zero gradient
    PERIODIC = 2  # wrap around to the opposite face

    NAMES = {DIRICHLET: "Dirichlet", NEUMANN: "Neumann", PERIODIC: "Periodic"}

    @staticmethod
    def name(code: int) -> str:
        if code not in BoundaryType.NAMES:
            raise ValueError(f"Unknown boundary condition code: {code}")
        return BoundaryType.NAMES[code]


@dataclass
class GridSpec:
    """Regular fluid grid: number of cells and physical extents."""
    nx: int
    ny: int
    nz: int
    lx: float
    ly: float
    lz: float
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self):
        for name in ("nx", "ny", "nz"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1, got {getattr(self, name)}")
        for name in ("lx", "ly", "lz"):
            if getattr(self, name) <= 0.0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if len(self.origin) != 3:
            raise ValueError(f"origin must have three components, got {self.origin}")
        self.origin = tuple(float(o) for o in self.origin)

    @property
    def spacing(self) -> Tuple[float, float, float]:
        return (self.lx / self.nx, self.ly / self.ny, self.lz / self.nz)


@dataclass
class FluidProperties:
    """Material properties of the fluid."""
    mu: float = 1e-3                # dynamic viscosity [Pa s]
    rho: float = 1000.0             # density [kg/m^3]
    gravity: Tuple[float, float, float] = (0.0, 0.0, 0.0)  # [m/s^2]

    def __post_init__(self):
        if self.mu <= 0.0:
            raise ValueError(f"Viscosity mu must be positive, got {self.mu}")
        if self.rho <= 0.0:
            raise ValueError(f"Density rho must be positive, got {self.rho}")
        if len(self.gravity) != 3:
            raise ValueError(f"gravity must have three components, got {self.gravity}")
        self.gravity = tuple(float(g) for g in self.gravity)

    @property
    def nu(self) -> float:
        return self.mu / self.rho


@dataclass
class BoundaryConditions:
    """Boundary conditions of the bottom and top z-faces (x, y are periodic)."""
    bc_bot: int = BoundaryType.NEUMANN
    bc_top: int = BoundaryType.DIRICHLET
    p_bot: float = 0.0              # Dirichlet pressure at the bottom [Pa]
    p_top: float = 0.0              # Dirichlet pressure at the top [Pa]

    def validate(self):
        BoundaryType.name(self.bc_bot)
        BoundaryType.name(self.bc_top)
        if (self.bc_bot == BoundaryType.PERIODIC) != (self.bc_top == BoundaryType.PERIODIC):
            raise ValueError("Periodic z-boundaries must be set on both the top and the bottom face")

    @property
    def z_periodic(self) -> bool:
        return self.bc_bot == BoundaryType.PERIODIC


@dataclass
class RelaxationParams:
    """Parameters of the projection and of the Jacobi pressure solver."""
    theta: float = 1.0              # under-relaxation factor, (0, 1]
    tolerance: float = 1e-8         # normalized residual tolerance
    max_iterations: int = 10000     # iteration cap of the Jacobi loop
    gamma: float = 0.0              # smoothing factor of epsilon, [0, 1]
    beta: float = 0.0               # pressure projection weighting, [0, 1]
    residual_floor: float = 1e-16   # avoids division by zero in the normalized residual

    def validate(self):
        if not 0.0 < self.theta <= 1.0:
            raise ValueError(f"theta must be in (0, 1], got {self.theta}")
        if self.tolerance <= 0.0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {self.max_iterations}")
        if not 0.0 <= self.gamma <= 1.0:
            raise ValueError(f"gamma must be in [0, 1], got {self.gamma}")
        if not 0.0 <= self.beta <= 1.0:
            raise ValueError(f"beta must be in [0, 1], got {self.beta}")
        if self.residual_floor <= 0.0:
            raise ValueError(f"residual_floor must be positive, got {self.residual_floor}")


@dataclass
class CouplingParams:
    """
    Fluid-particle coupling parameters.

    drag_blend_width is the porosity window around 0.8 in which the Ergun and
    the Wen-Yu drag are blended linearly so the force is continuous. The
    default of 0.01 is not the hard switch: for 0.795 < phi < 0.805 the drag
    differs from both pure correlations, e.g. by 3% from Ergun at phi = 0.798.
    Set it to 0 for pure Ergun at phi <= 0.8 and pure Wen-Yu above.
    """
    ndem: int = 1                       # particle sub-steps per fluid step
    porosity_model: str = "spherical"   # "spherical" or "kernel"
    support_factor: int = 1             # support radius in multiples of min(dx, dy, dz)
    drag_blend_width: float = 0.01      # porosity window blending Ergun into Wen-Yu

    POROSITY_MODELS = ("spherical", "kernel")

    def validate(self):
        if self.ndem < 1:
            raise ValueError(f"ndem must be at least 1, got {self.ndem}")
        if self.porosity_model not in self.POROSITY_MODELS:
            raise ValueError(f"Unknown porosity model '{self.porosity_model}', "
                             f"expected one of {self.POROSITY_MODELS}")
        if self.support_factor not in (1, 2):
            raise ValueError(f"support_factor must be 1 or 2, got {self.support_factor}")
        if not 0.0 <= self.drag_blend_width < 0.2:
            raise ValueError(f"drag_blend_width must be in [0, 0.2), got {self.drag_blend_width}")
