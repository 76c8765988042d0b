"""
CFD-DEM coupling of a porous-media fluid solver and spherical particles, built on Taichi.
"""

__version__ = "0.1.0"
