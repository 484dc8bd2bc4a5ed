from piecewise_jerk.piecewise_jerk_speed_problem import PiecewiseJerkSpeedProblem
from piecewise_jerk.plotting import render_speed_profile
