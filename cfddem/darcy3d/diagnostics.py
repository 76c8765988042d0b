'''
Stability checks, finiteness checks and text dumps of the fluid fields.

The residual reductions of the pressure solve run on the device. Everything
else runs on the host between time steps and reads the fields through
`to_numpy()`. Padded fields come back with the ghost layer at array index 0
and N+1, so the interior is `arr[1:-1, 1:-1, 1:-1]`.
'''

import logging
import math
from typing import Optional, TextIO, Tuple

import numpy as np
import taichi as ti

from cfddem.darcy3d.errors import NumericalDivergenceError, StabilityError
from cfddem.darcy3d.grid import DarcyGrid

logger = logging.getLogger(__name__)

# (sum, max) of the normalized residual
ResidualStats = ti.types.vector(2, ti.f64)

# ANSI escape sequences used to dim the ghost nodes in colored dumps
GHOST_COLOR = "\x1b[2m"
RESET_COLOR = "\x1b[0m"


def interior(arr: np.ndarray) -> np.ndarray:
    """Interior cells of a ghost-padded host array."""
    return arr[1:-1, 1:-1, 1:-1]


def _first_non_finite(arr: np.ndarray):
    """Cell coordinates and value of the first non-finite entry of an interior array."""
    bad = np.argwhere(~np.isfinite(arr))[0]
    cell = tuple(int(c) for c in bad[:3])
    return cell, float(arr[tuple(bad)])


# =================================#
# ----- Time Step Stability ----- #
# =================================#
def check_stability(grid: DarcyGrid, velocity: np.ndarray, nu: float, dt: float,
                    time: float = 0.0, iteration: Optional[int] = None):
    """
    Check the time step against the diffusive and the advective limits.

    Args:
        grid (DarcyGrid): Fluid grid.
        velocity (np.ndarray): Interior cell velocities, shape (nx, ny, nz, 3).
        nu (float): Kinematic viscosity [m^2/s].
        dt (float): Fluid time step including the particle sub-steps [s].
        time (float): Current simulation time, reported with a non-finite velocity.
        iteration (int): Current fluid step, reported with a non-finite velocity.

    Raises:
        StabilityError: if nu*dt/dmin^2 > 0.5 (von Neumann criterion) or if
            sum_i |v_i| dt/dx_i > 1 in any cell (CFL criterion).
        NumericalDivergenceError: if a velocity is NaN or infinite.
    """
    diffusion = nu * dt / (grid.dmin * grid.dmin)
    if diffusion > 0.5:
        message = (f"Error: The time step is too large to ensure stability in the diffusive term "
                   f"of the fluid momentum equation: nu*dt/dmin^2 = {diffusion} > 0.5 "
                   f"(nu = {nu}, dt = {dt}, dmin = {grid.dmin}). Decrease the viscosity, "
                   f"decrease the time step, and/or increase the fluid grid cell size.")
        logger.error(message)
        raise StabilityError(message, context={"nu": nu, "dt": dt, "dmin": grid.dmin,
                                               "diffusion_number": diffusion})

    v = np.abs(np.asarray(velocity, dtype=np.float64))
    cfl = dt * (v[..., 0] / grid.dx + v[..., 1] / grid.dy + v[..., 2] / grid.dz)
    if cfl.size > 0 and not np.all(np.isfinite(cfl)):
        cell, value = _first_non_finite(velocity)
        logger.error("v is not finite in cell %d,%d,%d at t = %g", *cell, time)
        raise NumericalDivergenceError("v", cell, value, time, iteration)
    if cfl.size > 0 and cfl.max() > 1.0:
        cell = tuple(int(c) for c in np.unravel_index(np.argmax(cfl), cfl.shape))
        vel = tuple(float(c) for c in velocity[cell])
        message = (f"Error: The time step is too large to ensure stability in the advective term "
                   f"of the fluid momentum equation: CFL = {cfl[cell]} > 1 in cell "
                   f"{cell[0]},{cell[1]},{cell[2]} with v = {vel}. Decrease the time step "
                   f"and/or increase the fluid grid cell size.")
        logger.error(message)
        raise StabilityError(message, cell=cell, context={"velocity": vel, "cfl": float(cfl[cell]),
                                                          "dt": dt})


# ===============================#
# ----- Finite Value Checks ----- #
# ===============================#
def check_finite(field, name: str, time: float, iteration: Optional[int] = None):
    """Raise NumericalDivergenceError if an interior value of the field is NaN or Inf."""
    arr = interior(field.to_numpy())
    if not np.all(np.isfinite(arr)):
        cell, value = _first_non_finite(arr)
        logger.error("%s is not finite in cell %d,%d,%d at t = %g", name, *cell, time)
        raise NumericalDivergenceError(name, cell, value, time, iteration)


@ti.kernel
def _reduce_norm(norm: ti.template(), nx: int, ny: int, nz: int) -> ResidualStats:
    total = 0.0
    largest = 0.0
    for x, y, z in ti.ndrange(nx, ny, nz):
        n = norm[x, y, z]
        total += n
        ti.atomic_max(largest, n)
    return ResidualStats(total, largest)


def norm_stats(norm, time: float = 0.0, iteration: Optional[int] = None) -> Tuple[float, float]:
    """
    Mean and maximum normalized residual of the interior cells.

    Both are reduced on the device. The residual is non-negative, so a NaN or
    Inf in any cell makes the sum non-finite; only then is the field copied
    to the host to find the offending cell.

    Raises:
        NumericalDivergenceError: if a residual is NaN or infinite.
    """
    nx, ny, nz = (s - 2 for s in norm.shape[:3])
    total, largest = _reduce_norm(norm, nx, ny, nz)
    if not (math.isfinite(total) and math.isfinite(largest)):
        arr = interior(norm.to_numpy())
        cell, value = _first_non_finite(arr)
        logger.error("Normalized residual is not finite in cell %d,%d,%d at t = %g, iter = %s",
                     *cell, time, iteration)
        raise NumericalDivergenceError("norm", cell, value, time, iteration)
    return total / (nx * ny * nz), largest


def avg_norm_res(norm, time: float = 0.0, iteration: Optional[int] = None) -> float:
    """Mean normalized residual of the interior cells."""
    return norm_stats(norm, time, iteration)[0]


def max_norm_res(norm, time: float = 0.0, iteration: Optional[int] = None) -> float:
    """Largest normalized residual of the interior cells."""
    return norm_stats(norm, time, iteration)[1]


# ==========================#
# ----- Text Export ----- #
# ==========================#
def _format_value(value) -> str:
    if np.ndim(value) == 0:
        return "%f" % value
    return ",".join("%f" % c for c in value)


def print_array(stream: TextIO, field, desc: Optional[str] = None, color: bool = False):
    """
    Print a ghost-padded scalar, vector or tensor field as z-slices.

    Slices are printed from the top ghost layer (z = nz) down to the bottom one
    (z = -1). Every slice has one row per y and one column per x, ghost nodes
    included. Ghost values are wrapped in brackets, or dimmed with ANSI escape
    codes when color is set.
    """
    arr = field.to_numpy()
    sx, sy, sz = arr.shape[:3]
    nx, ny, nz = sx - 2, sy - 2, sz - 2

    if desc is not None:
        stream.write(f"{desc}:\n")

    for z in range(nz, -2, -1):
        stream.write(f"z = {z}\n")
        for y in range(-1, ny + 1):
            for x in range(-1, nx + 1):
                text = _format_value(arr[x + 1, y + 1, z + 1])
                ghost = not (0 <= x < nx and 0 <= y < ny and 0 <= z < nz)
                if ghost and color:
                    text = f"{GHOST_COLOR}{text}{RESET_COLOR}"
                elif ghost:
                    text = f"[{text}]"
                stream.write(text + "\t")
            stream.write("\n")
        stream.write("\n")


def write_array(field, filename: str, desc: Optional[str] = None):
    """Dump a field to a text file with `print_array`."""
    with open(filename, "w", encoding="UTF-8") as f:
        print_array(f, field, desc)
    logger.info("Wrote %s to %s", desc if desc is not None else "field", filename)
