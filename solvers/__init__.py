from solvers.osqp_solver_for_piecewise_jerk_problem import OSQPSolverForPiecewiseJerkProblem
