"""
Particle entities exchanged with the fluid solver.
"""

from .particle import Particle, ParticleSet

__all__ = [
    "Particle",
    "ParticleSet",
]
