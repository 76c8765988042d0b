"""
Particle data structure shared between the particle dynamics and the fluid solver.

Only the state the fluid coupling reads (position, radius, velocity) and the
fluid force accumulator it writes are kept here. Contact mechanics and time
integration of the particles are handled by the particle solver.
"""

import numpy as np
import taichi as ti

Vector3 = ti.types.vector(3, ti.f64)


@ti.dataclass
class Particle:
    """A spherical particle as seen by the fluid solver."""
    ID: int                 # Unique particle identifier
    radius: ti.f64          # Particle radius

    # Translational state (global coordinates)
    position: Vector3       # Center position
    velocity: Vector3       # Linear velocity

    # Fluid force, only ever added to by the fluid solver
    force_fluid: Vector3


@ti.data_oriented
class ParticleSet:
    """Owns a field of `Particle` and the host loaders.

    Args:
        n (int): Number of particles, at least one.
    """

    def __init__(self, n: int):
        if n < 1:
            raise ValueError(f"A particle set needs at least one particle, got {n}")
        self.n = int(n)
        self.pf = Particle.field(shape=self.n)

    @staticmethod
    def from_numpy(positions, radii, velocities=None) -> 'ParticleSet':
        """Build a particle set from host arrays.

        Args:
            positions: (n, 3) array of particle centers.
            radii: (n,) array of particle radii.
            velocities: (n, 3) array of particle velocities, zero if omitted.
        """
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        radii = np.asarray(radii, dtype=np.float64).reshape(-1)
        if radii.shape[0] != positions.shape[0]:
            raise ValueError(f"Got {positions.shape[0]} positions but {radii.shape[0]} radii")
        if np.any(radii <= 0.0):
            raise ValueError("Particle radii must be positive")

        ps = ParticleSet(positions.shape[0])
        ps.load(positions, radii, velocities)
        return ps

    def load(self, positions, radii, velocities=None):
        """Overwrite position, radius and velocity of every particle."""
        if velocities is None:
            velocities = np.zeros((self.n, 3))
        self.pf.ID.from_numpy(np.arange(self.n, dtype=np.int32))
        self.pf.radius.from_numpy(np.asarray(radii, dtype=np.float64).reshape(self.n))
        self.pf.position.from_numpy(np.asarray(positions, dtype=np.float64).reshape(self.n, 3))
        self.pf.velocity.from_numpy(np.asarray(velocities, dtype=np.float64).reshape(self.n, 3))
        self.clear_fluid_force()

    def set_velocities(self, velocities):
        self.pf.velocity.from_numpy(np.asarray(velocities, dtype=np.float64).reshape(self.n, 3))

    @ti.kernel
    def clear_fluid_force(self):
        """Reset the fluid force accumulator, called by the particle solver before each fluid step."""
        for i in self.pf:
            self.pf[i].force_fluid = Vector3(0.0, 0.0, 0.0)

    def fluid_force(self) -> np.ndarray:
        return self.pf.force_fluid.to_numpy()

    def positions(self) -> np.ndarray:
        return self.pf.position.to_numpy()

    def radii(self) -> np.ndarray:
        return self.pf.radius.to_numpy()
