import unittest

import numpy as np
from numpy import testing

from piecewise_jerk.piecewise_jerk_speed_problem import PiecewiseJerkSpeedProblem


def make_problem(num_of_knots, delta_s=1.0):
    problem = PiecewiseJerkSpeedProblem(num_of_knots, delta_s, (0.0, 0.0, 0.0))
    problem.silent_mode = True
    return problem


def make_random_problem(num_of_knots, seed=0):
    rng = np.random.default_rng(seed)
    problem = make_problem(num_of_knots, delta_s=rng.uniform(0.1, 2.0))
    problem.set_weight_ddx(rng.uniform(0.0, 3.0))
    problem.set_weight_dddx(rng.uniform(0.0, 3.0))
    problem.set_x_ref(rng.uniform(0.0, 3.0), rng.uniform(-5.0, 5.0, num_of_knots))
    problem.set_dx_ref(rng.uniform(0.0, 3.0), rng.uniform(0.0, 10.0))
    problem.set_penalty_dx(rng.uniform(0.0, 3.0, num_of_knots))
    problem.set_end_state_ref(rng.uniform(0.0, 3.0, 3), rng.uniform(-5.0, 5.0, 3))
    return problem


class TestPiecewiseJerkSpeedProblemSetters(unittest.TestCase):

    def test_defaults(self):
        problem = make_problem(4)
        self.assertFalse(problem.has_x_ref)
        self.assertFalse(problem.has_dx_ref)
        self.assertFalse(problem.has_end_state_ref)
        testing.assert_array_equal(problem.penalty_dx, np.zeros(4))
        testing.assert_array_equal(problem.weight_end_state, np.zeros(3))

    def test_setters_flip_flags(self):
        problem = make_problem(3)
        problem.set_x_ref(2.0, [1.0, 2.0, 3.0])
        self.assertTrue(problem.has_x_ref)
        self.assertEqual(problem.weight_x_ref, 2.0)
        testing.assert_array_equal(problem.x_ref, [1.0, 2.0, 3.0])

        problem.set_dx_ref(0.5, 7.0)
        self.assertTrue(problem.has_dx_ref)
        self.assertEqual(problem.dx_ref, 7.0)

        problem.set_end_state_ref([1.0, 2.0, 3.0], [4.0, 5.0, 6.0])
        self.assertTrue(problem.has_end_state_ref)
        testing.assert_array_equal(problem.weight_end_state, [1.0, 2.0, 3.0])
        testing.assert_array_equal(problem.end_state_ref, [4.0, 5.0, 6.0])

    def test_set_x_ref_length_mismatch(self):
        problem = make_problem(3)
        with self.assertRaises(AssertionError):
            problem.set_x_ref(1.0, [1.0, 2.0])
        self.assertFalse(problem.has_x_ref)

    def test_set_penalty_dx_length_mismatch(self):
        problem = make_problem(3)
        with self.assertRaises(AssertionError):
            problem.set_penalty_dx([1.0, 2.0, 3.0, 4.0])

    def test_invalid_construction(self):
        with self.assertRaises(AssertionError):
            PiecewiseJerkSpeedProblem(0, 1.0)
        with self.assertRaises(AssertionError):
            PiecewiseJerkSpeedProblem(3, 0.0)
        with self.assertRaises(AssertionError):
            PiecewiseJerkSpeedProblem(3, 1.0, (0.0, 0.0))
        with self.assertRaises(AssertionError):
            PiecewiseJerkSpeedProblem(3, 1.0, dtype=np.int32)

    def test_from_parameters_matches_setters(self):
        params = {
            "weight_ddx": 1.5,
            "weight_dddx": 2.5,
            "weight_x_ref": 0.3,
            "x_ref": [0.0, 1.0, 2.0, 3.0],
            "weight_dx_ref": 0.7,
            "dx_ref": 4.0,
            "penalty_dx": [0.0, 0.1, 0.2, 0.3],
            "weight_end_state": (1.0, 2.0, 3.0),
            "end_state_ref": (3.0, 4.0, 0.0),
        }
        built = PiecewiseJerkSpeedProblem.from_parameters(4, 0.5, (0.0, 4.0, 0.0), params)

        manual = PiecewiseJerkSpeedProblem(4, 0.5, (0.0, 4.0, 0.0))
        manual.set_weight_ddx(1.5)
        manual.set_weight_dddx(2.5)
        manual.set_x_ref(0.3, [0.0, 1.0, 2.0, 3.0])
        manual.set_dx_ref(0.7, 4.0)
        manual.set_penalty_dx([0.0, 0.1, 0.2, 0.3])
        manual.set_end_state_ref((1.0, 2.0, 3.0), (3.0, 4.0, 0.0))

        for built_arr, manual_arr in zip(built.calculate_kernel(), manual.calculate_kernel()):
            testing.assert_array_equal(built_arr, manual_arr)
        testing.assert_array_equal(built.calculate_offset(), manual.calculate_offset())

    def test_from_parameters_leaves_missing_references_unset(self):
        problem = PiecewiseJerkSpeedProblem.from_parameters(3, 1.0, objective_function_parameters={"weight_ddx": 1.0})
        self.assertFalse(problem.has_x_ref)
        self.assertFalse(problem.has_dx_ref)
        self.assertFalse(problem.has_end_state_ref)
        self.assertEqual(problem.weight_ddx, 1.0)


class TestPiecewiseJerkSpeedProblemKernel(unittest.TestCase):

    def test_worked_example(self):
        problem = make_problem(2, delta_s=1.0)
        problem.set_weight_ddx(1.0)
        problem.set_weight_dddx(1.0)
        problem.set_x_ref(1.0, [1.0, 2.0])
        problem.set_dx_ref(1.0, 0.0)
        problem.set_penalty_dx([0.0, 0.0])

        P_data, P_indices, P_indptr = problem.calculate_kernel()
        testing.assert_array_almost_equal(P_data, [2.0, 2.0, 2.0, 2.0, 4.0, -4.0, 4.0])
        testing.assert_array_equal(P_indices, [0, 1, 2, 3, 4, 5, 5])
        testing.assert_array_equal(P_indptr, [0, 1, 2, 3, 4, 6, 7])

        testing.assert_array_almost_equal(problem.calculate_offset(), [-2.0, -4.0, 0.0, 0.0, 0.0, 0.0])

    def test_sparsity_count(self):
        for n in range(2, 12):
            problem = make_random_problem(n, seed=n)
            P_data, P_indices, P_indptr = problem.calculate_kernel()
            self.assertEqual(P_data.size, 4 * n - 1)
            self.assertEqual(P_indices.size, 4 * n - 1)
            self.assertEqual(P_indptr.size, 3 * n + 1)
            self.assertEqual(P_indptr[0], 0)
            self.assertEqual(P_indptr[-1], P_data.size)
            self.assertTrue(np.all(np.diff(P_indptr) >= 0))
            for col in range(3 * n):
                rows = P_indices[P_indptr[col]:P_indptr[col + 1]]
                self.assertTrue(np.all(np.diff(rows) > 0))
                self.assertGreaterEqual(rows.size, 1)
                self.assertEqual(rows[0], col)

    def test_sparsity_is_independent_of_references(self):
        problem = make_problem(5)
        _, indices_bare, indptr_bare = problem.calculate_kernel()
        P_data, _, _ = problem.calculate_kernel()
        testing.assert_array_equal(P_data, np.zeros(4 * 5 - 1))

        problem = make_random_problem(5)
        _, indices_full, indptr_full = problem.calculate_kernel()
        testing.assert_array_equal(indices_bare, indices_full)
        testing.assert_array_equal(indptr_bare, indptr_full)

    def test_acceleration_block_coefficients(self):
        n = 4
        problem = make_problem(n, delta_s=0.5)
        problem.set_weight_ddx(0.5)
        problem.set_weight_dddx(2.0)
        problem.set_end_state_ref([0.0, 0.0, 1.0], [0.0, 0.0, 0.0])

        P = problem.calculate_kernel_csc().toarray()
        # w_dddx / delta_s^2 = 8
        self.assertAlmostEqual(P[2 * n, 2 * n], 2.0 * (0.5 + 8.0))
        self.assertAlmostEqual(P[2 * n + 1, 2 * n + 1], 2.0 * (0.5 + 16.0))
        self.assertAlmostEqual(P[2 * n + 2, 2 * n + 2], 2.0 * (0.5 + 16.0))
        self.assertAlmostEqual(P[3 * n - 1, 3 * n - 1], 2.0 * (0.5 + 8.0 + 1.0))
        for i in range(n - 1):
            self.assertAlmostEqual(P[2 * n + i + 1, 2 * n + i], -32.0)

    def test_velocity_block_coefficients(self):
        n = 3
        problem = make_problem(n)
        problem.set_dx_ref(1.0, 3.0)
        problem.set_penalty_dx([0.5, 1.0, 1.5])
        problem.set_end_state_ref([0.0, 2.0, 0.0], [0.0, 1.0, 0.0])

        P = problem.calculate_kernel_csc().toarray()
        testing.assert_array_almost_equal(np.diag(P)[n:2 * n], [3.0, 4.0, 9.0])

    def test_symmetric_and_positive_semi_definite(self):
        for seed in range(5):
            problem = make_random_problem(6, seed=seed)
            P_full = problem.calculate_symmetric_kernel().toarray()
            testing.assert_array_almost_equal(P_full, P_full.T)
            eigvals = np.linalg.eigvalsh(P_full)
            self.assertGreaterEqual(eigvals.min(), -1e-9)

    def test_upper_triangular_kernel(self):
        problem = make_random_problem(5)
        P_upper = problem.calculate_upper_triangular_kernel().toarray()
        testing.assert_array_equal(P_upper, np.triu(P_upper))
        P_full = problem.calculate_symmetric_kernel().toarray()
        testing.assert_array_almost_equal(P_upper + np.triu(P_upper, k=1).T, P_full)

    def test_single_knot_kernel_is_rejected(self):
        problem = make_problem(1)
        with self.assertRaises(AssertionError):
            problem.calculate_kernel()

    def test_float32_kernel(self):
        problem = PiecewiseJerkSpeedProblem(3, 1.0, dtype=np.float32)
        problem.silent_mode = True
        problem.set_weight_ddx(1.0)
        P_data, P_indices, P_indptr = problem.calculate_kernel()
        self.assertEqual(P_data.dtype, np.float32)
        self.assertEqual(problem.calculate_offset().dtype, np.float32)


class TestPiecewiseJerkSpeedProblemOffset(unittest.TestCase):

    def test_zero_reference_idempotence(self):
        problem = make_problem(5)
        problem.set_weight_ddx(3.0)
        problem.set_weight_dddx(4.0)
        problem.set_penalty_dx(np.arange(5.0))
        testing.assert_array_equal(problem.calculate_offset(), np.zeros(15))

    def test_offset_ignores_penalty_dx(self):
        problem = make_random_problem(6)
        q_before = problem.calculate_offset()
        P_before, _, _ = problem.calculate_kernel()

        penalty_dx = problem.penalty_dx.copy()
        penalty_dx[2] += 10.0
        problem.set_penalty_dx(penalty_dx)

        testing.assert_array_equal(problem.calculate_offset(), q_before)
        P_after, _, _ = problem.calculate_kernel()
        self.assertFalse(np.array_equal(P_before, P_after))

    def test_offset_terms(self):
        n = 3
        problem = make_problem(n)
        problem.set_x_ref(2.0, [1.0, -1.0, 0.5])
        problem.set_dx_ref(0.5, 4.0)
        q = problem.calculate_offset()
        testing.assert_array_almost_equal(q[0:n], [-4.0, 4.0, -2.0])
        testing.assert_array_almost_equal(q[n:2 * n], [-4.0, -4.0, -4.0])
        testing.assert_array_almost_equal(q[2 * n:], [0.0, 0.0, 0.0])

    def test_end_state_isolation(self):
        n = 5
        base = make_random_problem(n, seed=3)
        base.has_end_state_ref = False
        base.weight_end_state = np.zeros(3)
        base.end_state_ref = np.zeros(3)

        with_end = make_random_problem(n, seed=3)
        with_end.set_end_state_ref([1.0, 2.0, 3.0], [4.0, 5.0, 6.0])

        end_indices = [n - 1, 2 * n - 1, 3 * n - 1]
        other_indices = [i for i in range(3 * n) if i not in end_indices]

        q_diff = with_end.calculate_offset() - base.calculate_offset()
        testing.assert_array_almost_equal(q_diff[other_indices], np.zeros(len(other_indices)))
        testing.assert_array_almost_equal(q_diff[end_indices], [-8.0, -20.0, -36.0])

        P_diff = with_end.calculate_kernel_csc().toarray() - base.calculate_kernel_csc().toarray()
        expected = np.zeros((3 * n, 3 * n))
        expected[end_indices, end_indices] = [2.0, 4.0, 6.0]
        testing.assert_array_almost_equal(P_diff, expected)

    def test_add_offset_to_is_additive(self):
        problem = make_random_problem(4)
        q = np.ones(12)
        result = problem.add_offset_to(q)
        self.assertIs(result, q)
        testing.assert_array_almost_equal(q, 1.0 + problem.calculate_offset())

    def test_add_offset_to_requires_vector(self):
        problem = make_problem(4)
        with self.assertRaises(AssertionError):
            problem.add_offset_to(None)
        with self.assertRaises(AssertionError):
            problem.add_offset_to(np.zeros(11))

    def test_single_knot_offset(self):
        problem = make_problem(1)
        problem.set_x_ref(1.0, [2.0])
        problem.set_dx_ref(1.0, 3.0)
        problem.set_end_state_ref([1.0, 1.0, 1.0], [1.0, 1.0, 1.0])
        testing.assert_array_almost_equal(problem.calculate_offset(), [-6.0, -8.0, -2.0])


class TestPiecewiseJerkSpeedProblemObjective(unittest.TestCase):

    def test_evaluate_objective_matches_direct_cost(self):
        n = 7
        problem = make_random_problem(n, seed=11)
        rng = np.random.default_rng(42)
        z = rng.normal(size=3 * n)
        x, dx, ddx = problem.split_solution(z)

        expected = (
            problem.weight_x_ref * np.sum((x - problem.x_ref) ** 2)
            + problem.weight_dx_ref * np.sum((dx - problem.dx_ref) ** 2)
            + np.sum(problem.penalty_dx * dx ** 2)
            + problem.weight_ddx * np.sum(ddx ** 2)
            + problem.weight_dddx * np.sum(((ddx[1:] - ddx[:-1]) / problem.delta_s) ** 2)
            + np.sum(problem.weight_end_state * (np.array([x[-1], dx[-1], ddx[-1]]) - problem.end_state_ref) ** 2)
        )
        self.assertAlmostEqual(problem.evaluate_objective(z), expected, places=8)

    def test_objective_constant(self):
        problem = make_problem(2)
        self.assertEqual(problem.calculate_objective_constant(), 0.0)
        problem.set_x_ref(2.0, [1.0, 2.0])
        problem.set_dx_ref(1.0, 3.0)
        problem.set_end_state_ref([1.0, 0.0, 0.0], [2.0, 0.0, 0.0])
        self.assertAlmostEqual(problem.calculate_objective_constant(), 2.0 * 5.0 + 2 * 9.0 + 4.0)


class TestPiecewiseJerkSpeedProblemLayout(unittest.TestCase):

    def test_var_slice(self):
        problem = make_problem(4)
        self.assertEqual(problem.var_slice("x"), slice(0, 4))
        self.assertEqual(problem.var_slice("dx"), slice(4, 8))
        self.assertEqual(problem.var_slice("ddx"), slice(8, 12))
        with self.assertRaises(AssertionError):
            problem.var_slice("dddx")

    def test_split_solution(self):
        problem = make_problem(2)
        x, dx, ddx = problem.split_solution(np.arange(6.0))
        testing.assert_array_equal(x, [0.0, 1.0])
        testing.assert_array_equal(dx, [2.0, 3.0])
        testing.assert_array_equal(ddx, [4.0, 5.0])
        with self.assertRaises(AssertionError):
            problem.split_solution(np.arange(5.0))

    def test_print_parameters(self):
        problem = make_random_problem(10)
        problem.print_parameters()
