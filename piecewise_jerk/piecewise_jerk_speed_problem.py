import numpy as np
from scipy import sparse

class PiecewiseJerkSpeedProblem:
    """
    This class formulates the quadratic objective of a piecewise-jerk speed
    optimization, to match the OSQP formulation of:
        (1/2) x^T P x + q^T x

    The optimization variable is stacked in three contiguous blocks:
        [ x_0, ..., x_{n-1}, dx_0, ..., dx_{n-1}, ddx_0, ..., ddx_{n-1} ]
    where "x" is position along the path, "dx" is velocity, and "ddx" is
    acceleration, at each of the n knots spaced by delta_s.

    The objective function takes the form:
        sum_{i=0}^{n-1}(
              w_x_ref (x_i - x_ref_i)^2
            + (w_dx_ref + penalty_dx_i) (dx_i - dx_ref)^2
            + w_ddx ddx_i^2
        )
        + sum_{i=0}^{n-2}( w_dddx ((ddx_{i+1} - ddx_i) / delta_s)^2 )
        + w_end_x   (x_{n-1}   - x_end_ref)^2
        + w_end_dx  (dx_{n-1}  - dx_end_ref)^2
        + w_end_ddx (ddx_{n-1} - ddx_end_ref)^2

    Class variables
    ---------------
        - num_of_knots, delta_s, x_init : the discretization and initial state
        - weight_* : the objective function weights (all >= 0, not checked)
        - x_ref, dx_ref, penalty_dx, end_state_ref : the soft references
        - has_x_ref, has_dx_ref, has_end_state_ref : reference flags
    """

    def __init__(self, num_of_knots, delta_s, x_init=(0.0, 0.0, 0.0), dtype=np.float64):
        """
        Initialization function for the class.
        All weights initialize to zero and all references are unset.

        Parameters
        ----------
            num_of_knots : integer
                Number of discretization points (must be >= 1)
            delta_s : float
                Spacing between consecutive knots (must be > 0)
            x_init : 3-element sequence
                Initial (position, velocity, acceleration), stored for the
                driver that builds the constraints
            dtype : np.dtype-like
                Floating dtype to use for the kernel values and the offset
                (np.float32 or np.float64)

        Returns
        -------
            Nothing
        """
        assert isinstance(num_of_knots, (int, np.integer)), f"[PJ SPEED PROBLEM] ASSERTION: num_of_knots must be an integer, got {type(num_of_knots)}"
        assert num_of_knots >= 1, f"[PJ SPEED PROBLEM] ASSERTION: num_of_knots must be >= 1, got {num_of_knots}"
        assert delta_s > 0.0, f"[PJ SPEED PROBLEM] ASSERTION: delta_s must be positive, got {delta_s}"
        assert len(x_init) == 3, f"[PJ SPEED PROBLEM] ASSERTION: x_init must have 3 elements, got {len(x_init)}"

        self.num_of_knots = int(num_of_knots)
        self.delta_s = float(delta_s)
        self.x_init = np.array(x_init, dtype=np.float64)

        # Set the data type to be applied to the kernel values and offset
        self.allowed_dtypes = (np.dtype(np.float32), np.dtype(np.float64))
        dtype_norm = np.dtype(dtype)
        assert dtype_norm in self.allowed_dtypes, f"[PJ SPEED PROBLEM] ASSERTION: dtype must be np.float32 or np.float64, got {dtype_norm}"
        self.dtype = dtype_norm

        # Verbosity control
        self.silent_mode = False

        # Generic weights of the piecewise-jerk problem.
        # > The speed problem only penalizes position and velocity
        #   through their references, hence "weight_x" and "weight_dx"
        #   are stored but do not enter the kernel.
        self.weight_x = 0.0
        self.weight_dx = 0.0
        self.weight_ddx = 0.0
        self.weight_dddx = 0.0

        # Position reference, one per knot
        self.weight_x_ref = 0.0
        self.x_ref = np.zeros(self.num_of_knots, dtype=np.float64)
        self.has_x_ref = False

        # Velocity reference, the same scalar at every knot
        self.weight_dx_ref = 0.0
        self.dx_ref = 0.0
        self.has_dx_ref = False

        # Additional velocity penalty per knot, always applied
        self.penalty_dx = np.zeros(self.num_of_knots, dtype=np.float64)

        # End state reference, applied to the last knot only
        self.weight_end_state = np.zeros(3, dtype=np.float64)
        self.end_state_ref = np.zeros(3, dtype=np.float64)
        self.has_end_state_ref = False



    @classmethod
    def from_parameters(cls, num_of_knots, delta_s, x_init=(0.0, 0.0, 0.0), objective_function_parameters: dict = {}, dtype=np.float64):
        """
        Construct a fully configured problem in one call.

        Parameters
        ----------
            num_of_knots, delta_s, x_init, dtype :
                As for the class constructor
            objective_function_parameters : dict
                Any of the following keys, missing keys keep their default:
                * "weight_x", "weight_dx", "weight_ddx", "weight_dddx" : float
                * "weight_x_ref" : float,  "x_ref" : sequence of length num_of_knots
                * "weight_dx_ref" : float, "dx_ref" : float
                * "penalty_dx" : sequence of length num_of_knots
                * "weight_end_state" : 3-element sequence, "end_state_ref" : 3-element sequence

        Returns
        -------
            PiecewiseJerkSpeedProblem
        """
        problem = cls(num_of_knots, delta_s, x_init, dtype=dtype)

        problem.set_weight_x(   objective_function_parameters.get("weight_x",    0.0))
        problem.set_weight_dx(  objective_function_parameters.get("weight_dx",   0.0))
        problem.set_weight_ddx( objective_function_parameters.get("weight_ddx",  0.0))
        problem.set_weight_dddx(objective_function_parameters.get("weight_dddx", 0.0))

        # References are only set when they are provided
        if objective_function_parameters.get("x_ref", None) is not None:
            problem.set_x_ref(objective_function_parameters.get("weight_x_ref", 0.0), objective_function_parameters["x_ref"])
        if objective_function_parameters.get("dx_ref", None) is not None:
            problem.set_dx_ref(objective_function_parameters.get("weight_dx_ref", 0.0), objective_function_parameters["dx_ref"])
        if objective_function_parameters.get("penalty_dx", None) is not None:
            problem.set_penalty_dx(objective_function_parameters["penalty_dx"])
        if objective_function_parameters.get("end_state_ref", None) is not None:
            problem.set_end_state_ref(
                objective_function_parameters.get("weight_end_state", (0.0, 0.0, 0.0)),
                objective_function_parameters["end_state_ref"],
            )

        return problem



    def _log(self, level: str, message: str):
        """
        Internal logger with simple level handling:
        - "error": always prints
        - "warn"/"warning" and "info": print only if `silent_mode` is False
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



    def set_weight_x(self, weight_x: float):
        self.weight_x = float(weight_x)

    def set_weight_dx(self, weight_dx: float):
        self.weight_dx = float(weight_dx)

    def set_weight_ddx(self, weight_ddx: float):
        self.weight_ddx = float(weight_ddx)

    def set_weight_dddx(self, weight_dddx: float):
        self.weight_dddx = float(weight_dddx)



    def set_x_ref(self, weight_x_ref: float, x_ref):
        """
        Set the per-knot position reference and its weight.

        Parameters
        ----------
            weight_x_ref : float
                Weight on (x_i - x_ref_i)^2
            x_ref : sequence of length num_of_knots
                Position reference at each knot
        """
        x_ref = np.asarray(x_ref, dtype=np.float64).ravel()
        assert x_ref.size == self.num_of_knots, f"[PJ SPEED PROBLEM] ASSERTION: x_ref must have num_of_knots = {self.num_of_knots} elements, got {x_ref.size}"
        self.x_ref = x_ref.copy()
        self.weight_x_ref = float(weight_x_ref)
        self.has_x_ref = True



    def set_dx_ref(self, weight_dx_ref: float, dx_ref: float):
        """
        Set the velocity reference, applied uniformly to every knot, and its weight.
        """
        self.weight_dx_ref = float(weight_dx_ref)
        self.dx_ref = float(dx_ref)
        self.has_dx_ref = True



    def set_penalty_dx(self, penalty_dx):
        """
        Set the additional per-knot velocity weight.
        This is added to weight_dx_ref in the kernel only, and applies
        whether or not a velocity reference is set.
        """
        penalty_dx = np.asarray(penalty_dx, dtype=np.float64).ravel()
        assert penalty_dx.size == self.num_of_knots, f"[PJ SPEED PROBLEM] ASSERTION: penalty_dx must have num_of_knots = {self.num_of_knots} elements, got {penalty_dx.size}"
        self.penalty_dx = penalty_dx.copy()



    def set_end_state_ref(self, weight_end_state, end_state_ref):
        """
        Set the reference and weights for the (position, velocity, acceleration)
        of the last knot.

        Parameters
        ----------
            weight_end_state : 3-element sequence
                Weights (w_end_x, w_end_dx, w_end_ddx)
            end_state_ref : 3-element sequence
                References (x_end_ref, dx_end_ref, ddx_end_ref)
        """
        weight_end_state = np.asarray(weight_end_state, dtype=np.float64).ravel()
        end_state_ref = np.asarray(end_state_ref, dtype=np.float64).ravel()
        assert weight_end_state.size == 3, f"[PJ SPEED PROBLEM] ASSERTION: weight_end_state must have 3 elements, got {weight_end_state.size}"
        assert end_state_ref.size == 3, f"[PJ SPEED PROBLEM] ASSERTION: end_state_ref must have 3 elements, got {end_state_ref.size}"
        self.weight_end_state = weight_end_state.copy()
        self.end_state_ref = end_state_ref.copy()
        self.has_end_state_ref = True



    def calculate_kernel(self):
        """
        Construct the quadratic term "P" of the objective in compressed sparse
        column (CSC) format, storing each symmetric pair of entries once.

        Expanding the objective and keeping only the terms that are
        quadratic in the optimization variables gives, per variable:
            x_i^2       : w_x_ref                              (i < n-1)
            x_{n-1}^2   : w_x_ref + w_end_x
            dx_i^2      : w_dx_ref + penalty_dx_i              (i < n-1)
            dx_{n-1}^2  : w_dx_ref + penalty_dx_{n-1} + w_end_dx
            ddx_0^2     : w_ddx + w_dddx / delta_s^2
            ddx_i^2     : w_ddx + 2 w_dddx / delta_s^2         (0 < i < n-1)
            ddx_{n-1}^2 : w_ddx + w_dddx / delta_s^2 + w_end_ddx
        and the cross terms of the jerk differences:
            ddx_i ddx_{i+1} : -2 w_dddx / delta_s^2            (i < n-1)

        Every coefficient is multiplied by 2 when emitted, for the (1/2) of
        the OSQP convention. Each cross term is stored once, in column
        2n+i directly below the diagonal entry, i.e., at row 2n+i+1.
        Use `calculate_symmetric_kernel` or `calculate_upper_triangular_kernel`
        to mirror it into a full or an upper triangular matrix.

        Returns
        -------
            P_data : ndarray (4n-1,)
                The values, column by column
            P_indices : ndarray (4n-1,)
                The row index of each value, ascending within a column
            P_indptr : ndarray (3n+1,)
                The offset of the first value of each column, with the
                total number of values as the final element
        """
        n = self.num_of_knots
        num_of_params = 3 * n
        num_of_values = 4 * n - 1
        delta_s_square = self.delta_s * self.delta_s

        # A list of (row, value) pairs for each column
        columns = [[] for _ in range(num_of_params)]
        value_index = 0

        # ---- Position block
        # x_i^2 * w_x_ref
        for i in range(n - 1):
            columns[i].append((i, self.weight_x_ref))
            value_index += 1
        # x_{n-1}^2 * (w_x_ref + w_end_x)
        columns[n - 1].append((n - 1, self.weight_x_ref + self.weight_end_state[0]))
        value_index += 1

        # ---- Velocity block
        # dx_i^2 * (w_dx_ref + penalty_dx_i)
        for i in range(n - 1):
            columns[n + i].append((n + i, self.weight_dx_ref + self.penalty_dx[i]))
            value_index += 1
        # dx_{n-1}^2 * (w_dx_ref + penalty_dx_{n-1} + w_end_dx)
        columns[2 * n - 1].append((2 * n - 1, self.weight_dx_ref + self.penalty_dx[n - 1] + self.weight_end_state[1]))
        value_index += 1

        # ---- Acceleration block
        # ddx_0^2 * (w_ddx + w_dddx / delta_s^2)
        columns[2 * n].append((2 * n, self.weight_ddx + self.weight_dddx / delta_s_square))
        value_index += 1
        # ddx_i^2 * (w_ddx + 2 w_dddx / delta_s^2)
        # > Interior knots appear in two jerk differences
        for i in range(1, n - 1):
            columns[2 * n + i].append((2 * n + i, self.weight_ddx + 2.0 * self.weight_dddx / delta_s_square))
            value_index += 1
        # ddx_{n-1}^2 * (w_ddx + w_dddx / delta_s^2 + w_end_ddx)
        columns[3 * n - 1].append((3 * n - 1, self.weight_ddx + self.weight_dddx / delta_s_square + self.weight_end_state[2]))
        value_index += 1

        # ---- Jerk cross terms
        # -2 w_dddx / delta_s^2 * ddx_i * ddx_{i+1}
        # > Appended after the diagonal of column 2n+i, so rows stay ascending
        for i in range(n - 1):
            columns[2 * n + i].append((2 * n + i + 1, -2.0 * self.weight_dddx / delta_s_square))
            value_index += 1

        assert value_index == num_of_values, f"[PJ SPEED PROBLEM] ASSERTION: Kernel must have 4n-1 = {num_of_values} values, got {value_index}"

        # Flatten the columns into the CSC arrays
        P_data = np.empty(num_of_values, dtype=self.dtype)
        P_indices = np.empty(num_of_values, dtype=np.int64)
        P_indptr = np.empty(num_of_params + 1, dtype=np.int64)
        ind_p = 0
        for col in range(num_of_params):
            P_indptr[col] = ind_p
            for row, value in columns[col]:
                P_data[ind_p] = value * 2.0
                P_indices[ind_p] = row
                ind_p += 1
        P_indptr[num_of_params] = ind_p

        return P_data, P_indices, P_indptr



    def calculate_kernel_csc(self):
        """
        Return the kernel exactly as emitted by `calculate_kernel`, wrapped
        as a (3n, 3n) scipy CSC matrix.
        """
        P_data, P_indices, P_indptr = self.calculate_kernel()
        num_of_params = 3 * self.num_of_knots
        return sparse.csc_matrix((P_data, P_indices, P_indptr), shape=(num_of_params, num_of_params), dtype=self.dtype)



    def calculate_symmetric_kernel(self):
        """
        Return the full symmetric (3n, 3n) kernel, i.e., the Hessian of the
        objective.

        Each off-diagonal entry emitted by `calculate_kernel` carries the
        doubled coefficient of its cross term, which is the sum of the two
        symmetric positions. It is split evenly between them here.
        """
        P_stored = self.calculate_kernel_csc()
        P_diag = sparse.diags(P_stored.diagonal(), format="csc", dtype=self.dtype)
        P_off = P_stored - P_diag
        return (P_diag + 0.5 * (P_off + P_off.T)).tocsc()



    def calculate_upper_triangular_kernel(self):
        """
        Return the upper triangle of the symmetric kernel as a CSC matrix,
        which is the form OSQP expects for "P".
        """
        return sparse.triu(self.calculate_symmetric_kernel(), format="csc")



    def add_offset_to(self, q):
        """
        Add the linear term "q" of the objective into the vector provided.

        Expanding the reference tracking terms, for example:
            w (v - v_ref)^2 = w v^2 - 2 w v_ref v + w v_ref^2
        the linear part is "-2 w v_ref". The terms added are:
            q[i]     += -2 w_x_ref  x_ref_i      (if has_x_ref)
            q[n+i]   += -2 w_dx_ref dx_ref       (if has_dx_ref)
            q[n-1]   += -2 w_end_x   x_end_ref   (if has_end_state_ref)
            q[2n-1]  += -2 w_end_dx  dx_end_ref  (if has_end_state_ref)
            q[3n-1]  += -2 w_end_ddx ddx_end_ref (if has_end_state_ref)
        Note that penalty_dx does not enter the linear term.

        Parameters
        ----------
            q : ndarray (3n,)
                The vector to add into, modified in place

        Returns
        -------
            q : ndarray (3n,)
                The same vector that was provided
        """
        assert q is not None, "[PJ SPEED PROBLEM] ASSERTION: The offset vector q must be provided, got None"
        n = self.num_of_knots
        assert q.shape == (3 * n,), f"[PJ SPEED PROBLEM] ASSERTION: The offset vector q must have shape ({3 * n},), got {q.shape}"

        if self.has_x_ref:
            q[0:n] += -2.0 * self.weight_x_ref * self.x_ref
        if self.has_dx_ref:
            q[n:2 * n] += -2.0 * self.weight_dx_ref * self.dx_ref

        if self.has_end_state_ref:
            q[n - 1]     += -2.0 * self.weight_end_state[0] * self.end_state_ref[0]
            q[2 * n - 1] += -2.0 * self.weight_end_state[1] * self.end_state_ref[1]
            q[3 * n - 1] += -2.0 * self.weight_end_state[2] * self.end_state_ref[2]

        return q



    def calculate_offset(self):
        """
        Construct the linear term "q" of the objective as a new zero-initialized
        vector of length 3n, see `add_offset_to` for the terms.
        """
        if not (self.has_x_ref or self.has_dx_ref or self.has_end_state_ref):
            self._log("info", "[PJ SPEED PROBLEM] INFO: No reference is set, the offset is all zeros.")
        q = np.zeros(3 * self.num_of_knots, dtype=self.dtype)
        return self.add_offset_to(q)



    def calculate_objective_constant(self):
        """
        The part of the expanded objective that does not depend on the
        optimization variable, consistent with the linear terms of
        `add_offset_to`.
        """
        n = self.num_of_knots
        objective_const = 0.0
        if self.has_x_ref:
            objective_const += float(self.weight_x_ref * np.sum(self.x_ref ** 2))
        if self.has_dx_ref:
            objective_const += float(n * self.weight_dx_ref * self.dx_ref ** 2)
        if self.has_end_state_ref:
            objective_const += float(np.sum(self.weight_end_state * self.end_state_ref ** 2))
        return objective_const



    def evaluate_objective(self, x):
        """
        Evaluate (1/2) x^T P x + q^T x + constant for a stacked variable vector.

        The kernel stores each cross term once, hence the symmetric kernel
        is used.
        """
        x = np.asarray(x, dtype=np.float64).ravel()
        assert x.size == 3 * self.num_of_knots, f"[PJ SPEED PROBLEM] ASSERTION: x must have 3n = {3 * self.num_of_knots} elements, got {x.size}"
        P_full = self.calculate_symmetric_kernel()
        q = self.calculate_offset()
        return float(0.5 * x @ (P_full @ x) + q @ x + self.calculate_objective_constant())



    def var_slice(self, kind: str) -> slice:
        """
        Return the slice of a block in the stacked variable vector.

        Parameters
        ----------
            kind : str
                One of {"x", "dx", "ddx"}
        """
        n = self.num_of_knots
        layout = {
            "x":   slice(0, n),
            "dx":  slice(n, 2 * n),
            "ddx": slice(2 * n, 3 * n),
        }
        assert kind in layout, f"[PJ SPEED PROBLEM] ASSERTION: kind must be one of {tuple(layout.keys())}, got {kind}"
        return layout[kind]



    def split_solution(self, x):
        """
        Split a stacked solution vector into its position, velocity, and
        acceleration blocks.
        """
        x = np.asarray(x).ravel()
        assert x.size == 3 * self.num_of_knots, f"[PJ SPEED PROBLEM] ASSERTION: x must have 3n = {3 * self.num_of_knots} elements, got {x.size}"
        return x[self.var_slice("x")], x[self.var_slice("dx")], x[self.var_slice("ddx")]



    def print_parameters(self, max_k_preview: int = 2):
        """
        Print a summary of the configuration.
        """
        def _fmt_arr(a):
            a = np.asarray(a)
            n = a.size
            if n <= 2 * max_k_preview:
                return np.array2string(a, precision=4)
            head = np.array2string(a[:max_k_preview], precision=4)
            tail = np.array2string(a[-max_k_preview:], precision=4)
            return f"{head} ... {tail} ({n - 2 * max_k_preview} omitted)"

        print("=== Piecewise Jerk Speed Problem Summary ===")
        print(f"Knots: n={self.num_of_knots}, delta_s={self.delta_s}, x_init={_fmt_arr(self.x_init)}")
        print(f"dtype: {self.dtype}")
        print("\n[Weights]")
        print(f"  weight_x={self.weight_x}, weight_dx={self.weight_dx}, weight_ddx={self.weight_ddx}, weight_dddx={self.weight_dddx}")
        print("\n[References]")
        print(f"  has_x_ref={self.has_x_ref}, weight_x_ref={self.weight_x_ref}, x_ref: {_fmt_arr(self.x_ref)}")
        print(f"  has_dx_ref={self.has_dx_ref}, weight_dx_ref={self.weight_dx_ref}, dx_ref={self.dx_ref}")
        print(f"  penalty_dx: {_fmt_arr(self.penalty_dx)}")
        print(f"  has_end_state_ref={self.has_end_state_ref}, weight_end_state={_fmt_arr(self.weight_end_state)}, end_state_ref={_fmt_arr(self.end_state_ref)}")
