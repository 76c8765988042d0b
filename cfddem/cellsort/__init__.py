"""
Sorting of particles into fluid cells.

Provides the particle-in-cell tables consumed by the fluid solver and the
parallel prefix sum used to build them.
"""

from .cellsort import CellSorter
from .prefixsum import PrefixSumExecutor
from .utils import EMPTY_CELL, next_pow2


__all__ = [
    "CellSorter",
    "PrefixSumExecutor",
    "next_pow2",
    "EMPTY_CELL",
]
