"""
Porous-media Navier-Stokes solver for CFD-DEM coupling.

The fluid is solved on a regular grid with a one-cell ghost halo by a
projection method. Particles enter through the porosity field and exchange
momentum with the fluid through an Ergun / Wen-Yu drag force.

The solver computes in double precision. Initialize Taichi with
`ti.init(default_fp=ti.f64)` before any field or solver is created.
"""

from .darcyutils import BoundaryType, TensorIndex, EMPTY_CELL, VOID_POROSITY
from .errors import (CFDError, ConvergenceWarning, DeviceMemoryError, ErrorCategory,
                     NumericalDivergenceError, StabilityError)
from .grid import DarcyGrid
from .porosity import KernelPorosity, SphericalPorosity, make_porosity_estimator
from .predictor import VelocityPredictor
from .poisson import JacobiResult, PoissonSolver
from .corrector import Corrector
from .interaction import InteractionForce
from .diagnostics import (avg_norm_res, check_finite, check_stability, max_norm_res,
                          norm_stats, print_array, write_array)
from .darcy_solver import DarcySolver

__all__ = [
    "BoundaryType",
    "TensorIndex",
    "EMPTY_CELL",
    "VOID_POROSITY",
    "CFDError",
    "ConvergenceWarning",
    "DeviceMemoryError",
    "ErrorCategory",
    "NumericalDivergenceError",
    "StabilityError",
    "DarcyGrid",
    "SphericalPorosity",
    "KernelPorosity",
    "make_porosity_estimator",
    "VelocityPredictor",
    "JacobiResult",
    "PoissonSolver",
    "Corrector",
    "InteractionForce",
    "avg_norm_res",
    "max_norm_res",
    "norm_stats",
    "check_finite",
    "check_stability",
    "print_array",
    "write_array",
    "DarcySolver",
]
