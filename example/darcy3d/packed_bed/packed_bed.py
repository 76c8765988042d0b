'''
Pressure-driven flow through a fixed bed of spheres.

The lower half of a vertical column is filled with a regular packing of
equal spheres held in place. A pressure difference between the bottom and the
top face drives water through the bed; the drag of the Ergun / Wen-Yu
correlations is handed to the particles at every step.
'''

import os
import time

import numpy as np
import matplotlib.pyplot as plt

# taichi packages (set backend, default precision and device memory)
import taichi as ti

ti.init(arch=ti.gpu,
        default_fp=ti.f64,
        device_memory_fraction=0.5,
        debug=False)
SAVE_RESULTS = True

# source package
from cfddem.darcyconfig import (BoundaryConditions, BoundaryType, CouplingParams, DarcySolverConfig,
                                FluidProperties, GridSpec, RelaxationParams)
from cfddem.darcy3d import DarcySolver
from cfddem.particles import ParticleSet


# ===================================#
# ----- User-defined Functions -----#
# ===================================#
def packBed(lx, ly, hbed, dia, gap):
    """Simple cubic packing of spheres of diameter dia below the height hbed."""
    s = dia * (1.0 + gap)
    xs = np.arange(0.5 * s, lx - 0.5 * dia, s)
    ys = np.arange(0.5 * s, ly - 0.5 * dia, s)
    zs = np.arange(0.5 * s, hbed - 0.5 * dia, s)
    pos = np.stack(np.meshgrid(xs, ys, zs, indexing='ij'), axis=-1).reshape(-1, 3)
    return pos, np.full(pos.shape[0], 0.5 * dia)


# ==================================#
# ----- Parameter Declaration -----#
# ==================================#
# domain geometry and discretizations
dia = 1e-3  # particle diameter [m]
dx = 2 * dia  # cell size [m]
Nx = 8  # number of cells in x-direction
Ny = 8  # number of cells in y-direction
Nz = 32  # number of cells in z-direction
lx, ly, lz = Nx * dx, Ny * dx, Nz * dx
hbed = 0.5 * lz  # bed height [m]

# fluid properties
rho = 1000.0  # fluid density [kg/m^3]
mu = 1e-3  # fluid dynamic viscosity [Pa s]

# driving pressure
p_in = 5.0  # pressure at the bottom [Pa]
p_out = 0.0  # pressure at the top [Pa]

dt = 1e-3  # fluid time step [s]
totalSteps = 2000
logSteps = 100

config = DarcySolverConfig(grid=GridSpec(Nx, Ny, Nz, lx, ly, lz),
                           fluid=FluidProperties(mu=mu, rho=rho),
                           dt=dt,
                           boundaries=BoundaryConditions(bc_bot=BoundaryType.DIRICHLET,
                                                         bc_top=BoundaryType.DIRICHLET,
                                                         p_bot=p_in, p_top=p_out),
                           relaxation=RelaxationParams(theta=1.0, tolerance=1e-8,
                                                       max_iterations=20000),
                           coupling=CouplingParams(porosity_model="spherical", support_factor=1),
                           verbose=False)
print(config.summary())

# data saving
outDir = '../packed_bed/results/'
os.makedirs(outDir, exist_ok=True)

# ============================#
# ----- Initialization ----- #
# ============================#
pos, rad = packBed(lx, ly, hbed, dia, gap=0.05)
particles = ParticleSet.from_numpy(pos, rad)
print('Number of particles: {}'.format(particles.n))

solver = DarcySolver(config, particles)

# ====================================#
# ----- Fluid Calculations ----- #
# ====================================#
tStart = time.perf_counter()
step = 0
while step < totalSteps:
    for _ in range(logSteps):
        # the particles are fixed, the force accumulator is reset every step
        particles.clear_fluid_force()
        result = solver.step()
        step += 1

    v = solver.velocity()
    force = particles.fluid_force()
    print("Step: {} | Jacobi iter: {} | mean v_z = {:.3e} m/s | total F_z = {:.3e} N | div = {:.2e}".format(
        step, result.iterations, v[..., 2].mean(), force[:, 2].sum(), solver.max_divergence()))

print("Total time: {:.1f} seconds".format(time.perf_counter() - tStart))

# =========================#
# ----- Finalization -----#
# =========================#
z = (np.arange(Nz) + 0.5) * dx
phi = solver.porosity().mean(axis=(0, 1))
p = solver.pressure().mean(axis=(0, 1))
vz = solver.velocity()[..., 2].mean(axis=(0, 1))

if SAVE_RESULTS:
    np.savez(outDir + 'packed_bed.npz', z=z, phi=phi, p=p, vz=vz,
             force=particles.fluid_force(), pos=particles.positions())

fig, axes = plt.subplots(1, 3, figsize=(12, 4), sharey=True)
for ax, arr, label in zip(axes, (phi, p, vz), (r'$\phi$', 'p [Pa]', r'$v_z$ [m/s]')):
    ax.plot(arr, z, '-o', markersize=3)
    ax.axhline(hbed, color='gray', linestyle='--')
    ax.set_xlabel(label)
axes[0].set_ylabel('z [m]')
plt.tight_layout()
plt.savefig(outDir + 'profiles.png', dpi=300)
plt.show()

solver.free()
