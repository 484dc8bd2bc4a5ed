#!/usr/bin/env python

import numpy as np
from scipy import sparse
import matplotlib.pyplot as plt

from piecewise_jerk.piecewise_jerk_speed_problem import PiecewiseJerkSpeedProblem
from piecewise_jerk.plotting import render_speed_profile
from solvers.osqp_solver_for_piecewise_jerk_problem import OSQPSolverForPiecewiseJerkProblem



## ---------------------------
#  SPECIFY THE PROBLEM DETAILS
#  ---------------------------
num_of_knots = 40
delta_t = 0.2
x_init = (0.0, 10.0, 0.0)

# Cruise at 15 m/s, with the position reference at the cruise speed
dx_cruise = 15.0
x_ref = x_init[0] + dx_cruise * delta_t * np.arange(num_of_knots)

objective_function_parameters = {
    "weight_ddx"      :  1.0,
    "weight_dddx"     :  10.0,
    "weight_x_ref"    :  0.1,
    "x_ref"           :  x_ref,
    "weight_dx_ref"   :  1.0,
    "dx_ref"          :  dx_cruise,
    # Penalize speed more towards the end of the horizon
    "penalty_dx"      :  np.linspace(0.0, 1.0, num_of_knots),
    "weight_end_state":  (0.0, 10.0, 10.0),
    "end_state_ref"   :  (0.0, dx_cruise, 0.0),
}

problem = PiecewiseJerkSpeedProblem.from_parameters(num_of_knots, delta_t, x_init, objective_function_parameters)
problem.print_parameters()



## --------------------------
#  CONSTRUCT THE CONSTRAINTS
#  --------------------------
# The constraints are:
# > Initial state equality, on x_0, dx_0, ddx_0
# > Kinematic consistency between consecutive knots, assuming constant jerk:
#     dx_{i+1} - dx_i - 0.5 dt (ddx_i + ddx_{i+1}) = 0
#     x_{i+1} - x_i - dt dx_i - (1/3) dt^2 ddx_i - (1/6) dt^2 ddx_{i+1} = 0
# > Box constraints on the velocity and acceleration
n = num_of_knots
sx, sdx, sddx = problem.var_slice("x"), problem.var_slice("dx"), problem.var_slice("ddx")

A_rows = []
l_rows = []
u_rows = []

# Initial state
A_init = sparse.lil_matrix((3, 3 * n))
A_init[0, sx.start]   = 1.0
A_init[1, sdx.start]  = 1.0
A_init[2, sddx.start] = 1.0
A_rows.append(A_init)
l_rows.append(np.array(x_init))
u_rows.append(np.array(x_init))

# Kinematic consistency
A_kin = sparse.lil_matrix((2 * (n - 1), 3 * n))
for i in range(n - 1):
    A_kin[i, sdx.start + i + 1]  =  1.0
    A_kin[i, sdx.start + i]      = -1.0
    A_kin[i, sddx.start + i]     = -0.5 * delta_t
    A_kin[i, sddx.start + i + 1] = -0.5 * delta_t
    A_kin[n - 1 + i, sx.start + i + 1]   =  1.0
    A_kin[n - 1 + i, sx.start + i]       = -1.0
    A_kin[n - 1 + i, sdx.start + i]      = -delta_t
    A_kin[n - 1 + i, sddx.start + i]     = -delta_t**2 / 3.0
    A_kin[n - 1 + i, sddx.start + i + 1] = -delta_t**2 / 6.0
A_rows.append(A_kin)
l_rows.append(np.zeros(2 * (n - 1)))
u_rows.append(np.zeros(2 * (n - 1)))

# Velocity and acceleration bounds
A_box = sparse.hstack([sparse.csc_matrix((2 * n, n)), sparse.identity(2 * n)])
A_rows.append(A_box)
l_rows.append(np.concatenate([np.zeros(n), np.full(n, -4.0)]))
u_rows.append(np.concatenate([np.full(n, 20.0), np.full(n, 2.0)]))

A = sparse.vstack(A_rows, format="csc")
l = np.concatenate(l_rows)
u = np.concatenate(u_rows)



## ---------
#  SOLVE IT
#  ---------
solver = OSQPSolverForPiecewiseJerkProblem(problem)
solver.set_osqp_settings({"verbose": False, "eps_abs": 1e-6, "eps_rel": 1e-6})
solver.set_constraints(A, l, u)
x, dx, ddx, status = solver.solve()

print(f"OSQP status: {status}")
if (x is None):
    raise SystemExit(1)
print(f"Final velocity: {dx[-1]:.3f} m/s, final acceleration: {ddx[-1]:.3f} m/s^2")



## ----------
#  PLOT IT
#  ----------
fig, axs = plt.subplots(3, 1, sharex=True, figsize=(6, 8))
render_speed_profile(axs, delta_t, x, dx, ddx, x_ref=x_ref, dx_ref=dx_cruise)
fig.suptitle("Piecewise jerk speed profile")
plt.show()
