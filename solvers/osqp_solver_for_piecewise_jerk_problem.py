import numpy as np
from scipy import sparse
import osqp

class OSQPSolverForPiecewiseJerkProblem:
    """
    This class solves a piecewise-jerk problem with OSQP, i.e.:
        minimize    (1/2) x^T P x + q^T x
        subject to  l <= A x <= u

    The objective "P" and "q" are requested from the problem object, which
    only needs to provide:
        - num_of_knots
        - calculate_upper_triangular_kernel()  ->  (3n, 3n) csc_matrix
        - calculate_offset()                   ->  (3n,) ndarray
        - split_solution(x)                    ->  (x, dx, ddx)

    The linear constraints "A", "l", "u" are built by the caller and supplied
    through `set_constraints`.

    Class variables
    ---------------
        - problem : the kernel and offset provider
        - osqp_solver_object, osqp_settings : the OSQP instance and its settings
        - A, l, u : the constraints
    """

    def __init__(self, problem):
        self.problem = problem

        # Verbosity control
        self.silent_mode = False

        # OSQP Solver object and setting
        self.osqp_solver_object = None
        self.osqp_settings = {}

        # Constraints: l <= A x <= u
        self.A = None
        self.l = None
        self.u = None

        # Last solve
        self._last_solution = None
        self._last_status = None



    def set_osqp_settings(self, osqp_settings: dict = {}):
        self.osqp_settings = osqp_settings



    def _log(self, level: str, message: str):
        """
        Internal logger with simple level handling:
        - "error": always prints
        - "warn"/"warning" and "info": print only if `silent_mode` is False
        - anything else: print (conservative default)
        """
        lvl = (level or "").lower()
        if lvl == "error":
            print(message)
            return
        if lvl in ("warn", "warning", "info", "information"):
            if not getattr(self, "silent_mode", False):
                print(message)
            return
        print(f"Log with level = {level}, and message = {message}")



    def set_constraints(self, A, l: np.ndarray, u: np.ndarray, should_check_inputs: bool = True):
        """
        Set the linear constraints l <= A x <= u.

        Parameters
        ----------
            A : (m, 3n) array or sparse matrix
                Constraint matrix, converted to csc_matrix
            l : (m,) ndarray
                Lower bounds, -np.inf for no bound
            u : (m,) ndarray
                Upper bounds, np.inf for no bound
        """
        A = sparse.csc_matrix(A, dtype=np.float64)
        l = np.asarray(l, dtype=np.float64).ravel()
        u = np.asarray(u, dtype=np.float64).ravel()

        if (should_check_inputs):
            num_of_params = 3 * self.problem.num_of_knots
            assert A.shape[1] == num_of_params, f"[PJ OSQP SOLVER] ASSERTION: A must have 3n = {num_of_params} columns, got {A.shape[1]}"
            assert l.size == A.shape[0], f"[PJ OSQP SOLVER] ASSERTION: l must have {A.shape[0]} elements, got {l.size}"
            assert u.size == A.shape[0], f"[PJ OSQP SOLVER] ASSERTION: u must have {A.shape[0]} elements, got {u.size}"
            assert np.all(l <= u), "[PJ OSQP SOLVER] ASSERTION: l must be element-wise less than or equal to u"

        self.A = A
        self.l = l
        self.u = u



    def solve(self):
        """
        Solve the QP with OSQP and return the predicted position, velocity,
        and acceleration profiles.

        Pipeline
        --------
        1) Builds P and q from the problem.
        2) Sets up the OSQP instance with (P, q, A, l, u).
        3) Solves with OSQP.
        4) Returns:
            - x           : 1D ndarray of length n (position)
            - dx          : 1D ndarray of length n (velocity)
            - ddx         : 1D ndarray of length n (acceleration)
            - osqp_status : OSQP status string

        The objective is assembled on every call, because the references of
        the problem are typically changed between solves.

        Raises
        ------
        ValueError
            If the constraints have not been set prior to solving.
        """
        if self.A is None or self.l is None or self.u is None:
            raise ValueError("[PJ OSQP SOLVER] ERROR: Constraints A, l, u must be set before solving.")

        # Build the objective
        P = self.problem.calculate_upper_triangular_kernel()
        q = np.asarray(self.problem.calculate_offset(), dtype=np.float64).ravel()

        if self.A.shape[1] != P.shape[1]:
            raise ValueError(f"[PJ OSQP SOLVER] ERROR: A has {self.A.shape[1]} columns but P has {P.shape[1]}, the number of knots changed since the constraints were set.")

        # Setup OSQP
        # > The sparsity of P follows the weights that are non-zero, hence
        #   OSQP is set up again rather than updated in place
        self.osqp_solver_object = osqp.OSQP()
        self.osqp_solver_object.setup(P=P, q=q, A=self.A, l=self.l, u=self.u, **self.osqp_settings)

        # Solve
        osqp_result = self.osqp_solver_object.solve()
        osqp_status = osqp_result.info.status
        self._last_status = osqp_status

        if osqp_status != "solved":
            self._log("warn", f"[PJ OSQP SOLVER] WARNING: OSQP returned status = {osqp_status}")
            return None, None, None, osqp_status

        self._last_solution = osqp_result.x
        x, dx, ddx = self.problem.split_solution(osqp_result.x)
        return x, dx, ddx, osqp_status
