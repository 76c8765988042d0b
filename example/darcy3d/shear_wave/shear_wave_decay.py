'''
Decay of a sinusoidal shear wave in a particle-free fluid.

With phi = 1 everywhere the porous-media equations reduce to the
incompressible Navier-Stokes equations, and the amplitude of the wave
v_x = A sin(2 pi y / ly) decays as exp(-nu k^2 t).
'''

import os
import time

import numpy as np
import matplotlib.pyplot as plt

# taichi packages (set backend and default precision)
import taichi as ti

ti.init(arch=ti.gpu,
        default_fp=ti.f64,
        debug=False)
SAVE_RESULTS = True

# source package
from cfddem.darcyconfig import DarcySolverConfig, GridSpec, FluidProperties
from cfddem.darcy3d import DarcySolver


# ==================================#
# ----- Parameter Declaration -----#
# ==================================#
# domain geometry and discretizations
level = 5
ly = 1e-2  # wave length [m]
Ny = 2 ** level  # number of cells in y-direction
dx = ly / Ny  # cell size [m]
Nx = 4  # number of cells in x-direction
Nz = 4  # number of cells in z-direction
y = (np.arange(Ny) + 0.5) * dx  # y-coordinates of the cell centres [m]

# fluid properties
rho = 1000.0  # fluid density [kg/m^3]
mu = 1e-3  # fluid dynamic viscosity [Pa s]
nu = mu / rho  # fluid kinematic viscosity [m^2/s]

# initial wave
amp = 1e-3  # amplitude [m/s]
k = 2.0 * np.pi / ly  # wave number [1/m]

# time step from the diffusive limit
dt = 0.2 * dx ** 2 / nu  # time step [s]
tEnd = 1.0 / (nu * k * k)  # one e-folding time [s]
totalSteps = int(tEnd / dt)
logSteps = max(totalSteps // 20, 1)

config = DarcySolverConfig(grid=GridSpec(Nx, Ny, Nz, Nx * dx, ly, Nz * dx),
                           fluid=FluidProperties(mu=mu, rho=rho),
                           dt=dt,
                           verbose=False)
print(config.summary())
print('total step: {}'.format(totalSteps))
print('print step: {}'.format(logSteps))

# data saving
outDir = '../shear_wave/level{}/'.format(level)
os.makedirs(outDir, exist_ok=True)

# ============================#
# ----- Initialization ----- #
# ============================#
solver = DarcySolver(config)
vel = np.zeros((Nx, Ny, Nz, 3))
vel[..., 0] = amp * np.sin(k * y)[None, :, None]
solver.set_velocity(vel)

# ====================================#
# ----- Fluid Calculations ----- #
# ====================================#
times = [0.0]
amplitudes = [amp]

tStart = time.perf_counter()
step = 0
while step < totalSteps:
    for _ in range(logSteps):
        solver.step()
        step += 1

    v = solver.velocity()[..., 0]
    # project on the initial profile to get the amplitude
    a = np.sum(v * np.sin(k * y)[None, :, None]) / np.sum(np.sin(k * y) ** 2) / (Nx * Nz)
    times.append(solver.time)
    amplitudes.append(a)
    print("Step: {} | t = {:.3e} s | A/A0 = {:.5f} | exact = {:.5f} | div = {:.2e}".format(
        step, solver.time, a / amp, np.exp(-nu * k * k * solver.time), solver.max_divergence()))

print("Total time: {:.1f} seconds".format(time.perf_counter() - tStart))

# =========================#
# ----- Finalization -----#
# =========================#
times = np.asarray(times)
amplitudes = np.asarray(amplitudes)
if SAVE_RESULTS:
    np.savez(outDir + 'decay.npz', t=times, amp=amplitudes, vel=solver.velocity())

fig, ax = plt.subplots(figsize=(5, 4))
ax.plot(times, amplitudes / amp, 'o', label='DarcySolver')
ax.plot(times, np.exp(-nu * k * k * times), '-', label=r'$\exp(-\nu k^2 t)$')
ax.set_xlabel('t [s]')
ax.set_ylabel(r'$A/A_0$')
ax.legend()
plt.tight_layout()
plt.savefig(outDir + 'decay.png', dpi=300)
plt.show()

solver.free()
