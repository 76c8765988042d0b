'''
A module that contains the utilities for the porous-media Navier-Stokes calculations.
'''

import taichi as ti

from cfddem.cellsort.utils import EMPTY_CELL
from cfddem.darcyconfig.types import BoundaryType

# =====================================
# Type Definitions
# =====================================
Vector3 = ti.types.vector(3, ti.f64)
Vector4 = ti.types.vector(4, ti.f64)
Vector6 = ti.types.vector(6, ti.f64)  # symmetric tensor (xx, xy, xz, yy, yz, zz)
Vector3i = ti.types.vector(3, int)

# porosity above which a cell is treated as void of particles
VOID_POROSITY = 0.999


# ===============================#
# ----- Symmetric Tensors ----- #
# ===============================#
class TensorIndex:
    """Component positions of a symmetric 3x3 tensor stored as a 6-vector."""
    XX = 0
    XY = 1
    XZ = 2
    YY = 3
    YZ = 4
    ZZ = 5
