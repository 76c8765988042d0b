"""
Configuration and parameter types for the porous-media fluid solver.
"""

from .types import BoundaryType, GridSpec, FluidProperties, BoundaryConditions, RelaxationParams, CouplingParams
from .darcyconfig import DarcySolverConfig

__all__ = [
    "BoundaryType",
    "GridSpec",
    "FluidProperties",
    "BoundaryConditions",
    "RelaxationParams",
    "CouplingParams",
    "DarcySolverConfig",
]
