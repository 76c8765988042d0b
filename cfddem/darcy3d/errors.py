'''
Error types raised by the porous-media fluid solver.

All fatal conditions raise a subclass of `CFDError`. Slow convergence of the
pressure solver is not fatal and is reported with `ConvergenceWarning`.
'''

from enum import Enum
from typing import Dict, Optional, Tuple


class ErrorCategory(Enum):
    """Error categories."""
    STABILITY = "stability"
    NUMERICAL = "numerical"
    MEMORY = "memory"


class CFDError(Exception):
    """Base class of the fatal solver errors."""

    def __init__(self, message: str, category: ErrorCategory, context: Optional[Dict] = None):
        super().__init__(message)
        self.category = category
        self.context = context or {}


class StabilityError(CFDError):
    """The time step violates the diffusive (von Neumann) or advective (CFL) criterion."""

    def __init__(self, message: str, cell: Optional[Tuple[int, int, int]] = None,
                 context: Optional[Dict] = None):
        super().__init__(message, ErrorCategory.STABILITY, context)
        self.cell = cell


class NumericalDivergenceError(CFDError):
    """A non-finite value appeared in a field."""

    def __init__(self, field_name: str, cell: Tuple[int, int, int], value: float,
                 time: float, iteration: Optional[int] = None):
        message = (f"{field_name} is not finite ({value}) in cell "
                   f"{cell[0]},{cell[1]},{cell[2]} at t = {time}")
        if iteration is not None:
            message += f", iter = {iteration}"
        message += ". This often happens if the system has become unstable."
        super().__init__(message, ErrorCategory.NUMERICAL,
                         {"field": field_name, "cell": cell, "value": value,
                          "time": time, "iteration": iteration})
        self.field_name = field_name
        self.cell = cell
        self.time = time


class DeviceMemoryError(CFDError):
    """The working set of the solver could not be allocated."""

    def __init__(self, message: str, context: Optional[Dict] = None):
        super().__init__(message, ErrorCategory.MEMORY, context)


class ConvergenceWarning(UserWarning):
    """The pressure solver reached its iteration cap without meeting the tolerance."""
