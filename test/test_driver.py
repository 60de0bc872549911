"""Test the interior point method."""

from dataclasses import dataclass

import numpy as np
import pytest

from quadipm import (
    Configuration,
    DimensionMismatch,
    InteriorPointMethod,
    K1CholeskyParams,
    K2LDLParams,
    K2LUParams,
    K2MINRESParams,
    PreallocatedData,
    QuadraticModel,
    SolverParams,
    Status,
    Strategy,
    solve,
)
from quadipm.exceptions import FactorizationError
from quadipm.iterate import Point
from quadipm.kkt import Regularization
from quadipm.model import QPData
from quadipm.strategies import Direction, take_step


def toy_model() -> QuadraticModel:
    """Small QP whose solution is x = (0, 1.5, 0) with objective 1.125."""
    return QuadraticModel(
        c=np.array([-8.0, -3.0, -3.0]),
        Q=np.array([[6.0, 2.0, 1.0], [2.0, 5.0, 2.0], [1.0, 2.0, 4.0]]),
        A=np.array([[1.0, 0.0, 1.0], [0.0, 2.0, 1.0]]),
        lcon=np.array([0.0, 3.0]),
        ucon=np.array([0.0, 3.0]),
        lvar=np.zeros(3),
        name="toy",
    )


def lp_model() -> QuadraticModel:
    """LP with inequality rows whose solution is x = (1.6, 1.2)."""
    return QuadraticModel(
        c=np.array([-1.0, -1.0]),
        A=np.array([[1.0, 2.0], [3.0, 1.0]]),
        lcon=np.full(2, -np.inf),
        ucon=np.array([4.0, 6.0]),
        lvar=np.zeros(2),
    )


def box_model() -> QuadraticModel:
    """Box constrained QP without rows; the solution clips (2, -1, 0.5) to [0, 1]."""
    return QuadraticModel(
        c=np.array([-2.0, 1.0, -0.5]),
        Q=np.eye(3),
        lvar=np.zeros(3),
        uvar=np.ones(3),
        c0=2.625,
    )


@dataclass
class FailingParams(SolverParams):
    """Solver that cannot factorize, either immediately or after the first time."""

    fail_on_init: bool = False

    def initialize(self, data: QPData, pt: Point) -> "FailingData":
        pad = FailingData(Regularization.for_dtype(data.dtype), max_attempts=2)
        pad.fail = self.fail_on_init
        pad.factorize_with_retries(data, pt)
        pad.fail = True
        return pad


class FailingData(PreallocatedData):
    fail = False

    def factorize(self) -> bool:
        return not self.fail

    def solve_in_place(self, rhs: np.ndarray, step: str) -> np.ndarray:
        rhs[:] = 0.0
        return rhs


class DoubleOnlyParams(K2LDLParams):
    """Default solver that cannot factorize in single precision."""

    def initialize(self, data: QPData, pt: Point) -> PreallocatedData:
        if data.dtype == np.float32:
            raise FactorizationError("No single precision factorization")
        return super().initialize(data, pt)


class TestToyProblem:
    """Test the small QP."""

    @pytest.mark.parametrize("scaling", [True, False])
    def test_predictor_corrector(self, scaling: bool) -> None:
        """Test convergence of the default method."""
        stats = solve(toy_model(), scaling=scaling)

        assert stats.status == Status.CONVERGED
        assert stats.converged
        np.testing.assert_allclose(stats.solution, [0.0, 1.5, 0.0], atol=1e-5)
        assert stats.objective == pytest.approx(1.125, rel=1e-6)
        assert stats.dual_objective == pytest.approx(1.125, rel=1e-5)
        assert stats.primal_feas <= 1e-5
        assert stats.precision == "float64"
        assert 0 < stats.iter < 200

    @staticmethod
    def test_one_factorization_two_solves_per_iteration() -> None:
        """Predictor-corrector reuses one factorization for both systems."""
        stats = solve(toy_model())
        assert stats.counters.factorizations == stats.iter + 1
        assert stats.counters.solves == 2 * stats.iter + 2
        assert stats.counters.promotions == 0

    @staticmethod
    def test_infeasible_path_following() -> None:
        """Test convergence of the single-solve strategy."""
        stats = solve(toy_model(), strategy="ipf")

        assert stats.status == Status.CONVERGED
        np.testing.assert_allclose(stats.solution, [0.0, 1.5, 0.0], atol=1e-5)
        assert stats.objective == pytest.approx(1.125, rel=1e-6)
        assert stats.counters.solves == stats.iter + 2

    @pytest.mark.parametrize("params", [K2LDLParams(), K2LUParams()])
    def test_plugins_agree(self, params: SolverParams) -> None:
        """Direct solvers reach the same solution."""
        stats = solve(toy_model(), plugin=params)
        assert stats.status == Status.CONVERGED
        np.testing.assert_allclose(stats.solution, [0.0, 1.5, 0.0], atol=1e-5)

    @staticmethod
    def test_plugin_by_name() -> None:
        """Solvers can be chosen by their registered name."""
        stats = solve(toy_model(), plugin="k2_lu")
        assert stats.status == Status.CONVERGED

    @staticmethod
    def test_multipliers() -> None:
        """Multipliers satisfy the KKT conditions of the user's problem."""
        qm = toy_model()
        stats = solve(qm)
        x, y = stats.solution, stats.multipliers
        Q, A, c = qm.Q, qm.A, qm.c

        np.testing.assert_allclose(
            c + Q @ x - A.T @ y - stats.multipliers_L + stats.multipliers_U,
            0.0,
            atol=1e-4,
        )
        assert np.all(stats.multipliers_L >= 0.0)
        np.testing.assert_allclose(stats.multipliers_U, 0.0)
        np.testing.assert_allclose(x * stats.multipliers_L, 0.0, atol=1e-6)

    @staticmethod
    def test_positivity_history() -> None:
        """Slacks and duals stay strictly positive; steps obey the safety fraction."""
        stats = solve(toy_model(), history=True)
        history = stats.solver_specific

        for key in ("pddH", "alpha_pri", "alpha_dual", "min_slack", "min_dual"):
            assert len(history[key]) == stats.iter
        assert np.all(np.array(history["min_slack"]) > 0.0)
        assert np.all(np.array(history["min_dual"]) > 0.0)
        assert np.all(np.array(history["alpha_pri"]) > 0.0)
        assert np.all(np.array(history["alpha_pri"]) <= 1.0)
        # Steps are coupled for QPs
        np.testing.assert_array_equal(history["alpha_pri"], history["alpha_dual"])
        assert history["pddH"][-1] <= 1e-8

    @staticmethod
    def test_no_history_by_default() -> None:
        """History is only recorded on request."""
        assert solve(toy_model()).solver_specific == {}

    @staticmethod
    def test_plot_convergence() -> None:
        """Plot the gap history."""
        stats = solve(toy_model(), history=True)
        ax = stats.plot_convergence()
        assert ax.get_ylabel() == "Relative Duality Gap"

        with pytest.raises(ValueError):
            solve(toy_model()).plot_convergence()

    @staticmethod
    def test_verbose(capsys: pytest.CaptureFixture) -> None:
        """Verbose mode prints one line per iteration."""
        stats = solve(toy_model(), verbose=True)
        out = capsys.readouterr().out
        assert "Starting IPM on toy" in out
        assert f"  {stats.iter:02d} pri_obj=" in out
        assert "IPM converged" in out

    @staticmethod
    def test_solver_object() -> None:
        """The driver can be used directly and reused."""
        ipm = InteriorPointMethod(Configuration(max_iter=100))
        first = ipm.solve(toy_model())
        second = ipm.solve(toy_model())
        assert first.numeric_signature() == second.numeric_signature()


class TestTermination:
    """Test the termination states."""

    @staticmethod
    def test_zero_iterations() -> None:
        """max_iter=0 returns right after the starting point."""
        stats = solve(toy_model(), max_iter=0)
        assert stats.status == Status.MAX_ITER_REACHED
        assert stats.iter == 0
        assert stats.precision_history == []
        assert stats.solution.shape == (3,)

    @staticmethod
    def test_zero_iterations_at_optimal_start() -> None:
        """max_iter=0 stops even when the starting point is already optimal."""
        stats = solve(QuadraticModel(c=np.zeros(3), Q=np.eye(3)), max_iter=0)
        assert stats.status == Status.MAX_ITER_REACHED
        assert stats.iter == 0
        assert "Maximum number of iterations" in stats.message

    @staticmethod
    def test_single_precision_initialization_failure() -> None:
        """A solver failing in single precision starts over in double."""
        stats = solve(toy_model(), mode="multi", plugin=DoubleOnlyParams())
        assert stats.status == Status.CONVERGED
        assert stats.precision == "float64"
        assert stats.counters.promotions == 1
        assert set(stats.precision_history) == {"float64"}
        np.testing.assert_allclose(stats.solution, [0.0, 1.5, 0.0], atol=1e-5)

        stats = solve(toy_model(), mode="single", plugin=DoubleOnlyParams())
        assert stats.status == Status.FAILED
        assert "single precision" in stats.message

    @staticmethod
    def test_iteration_budget() -> None:
        """Stop after max_iter iterations."""
        stats = solve(toy_model(), max_iter=2)
        assert stats.status == Status.MAX_ITER_REACHED
        assert stats.iter == 2
        assert "Maximum number of iterations" in stats.message

    @staticmethod
    def test_time_budget() -> None:
        """Stop when out of time."""
        stats = solve(toy_model(), max_time=1e-12)
        assert stats.status == Status.MAX_ITER_REACHED
        assert stats.iter == 0
        assert "Time limit" in stats.message

    @staticmethod
    def test_factorization_failure() -> None:
        """A solver that cannot factorize ends the solve."""
        stats = solve(toy_model(), plugin=FailingParams())
        assert stats.status == Status.FAILED
        assert stats.iter == 0
        assert stats.solution.shape == (3,)

    @staticmethod
    def test_initialization_failure() -> None:
        """A solver that cannot be initialized ends the solve."""
        stats = solve(toy_model(), plugin=FailingParams(fail_on_init=True))
        assert stats.status == Status.FAILED
        assert "initialize" in stats.message
        assert np.all(stats.solution >= 0.0)

    @staticmethod
    def test_dimension_mismatch() -> None:
        """Inconsistent dimensions are raised, not reported."""
        qm = toy_model()
        qm.A = np.ones((2, 4))
        with pytest.raises(DimensionMismatch):
            solve(qm)


class TestProblemClasses:
    """Test problems exercising bounds and constraint types."""

    @staticmethod
    def test_lp_with_inequalities() -> None:
        """Inequality rows are handled through slack variables."""
        stats = solve(lp_model())
        assert stats.status == Status.CONVERGED
        np.testing.assert_allclose(stats.solution, [1.6, 1.2], atol=1e-5)
        assert stats.objective == pytest.approx(-2.8, rel=1e-6)
        assert stats.multipliers.shape == (2,)
        # Both rows are active upper bounds, so their multipliers are non-positive
        assert np.all(stats.multipliers <= 1e-6)

    @staticmethod
    def test_lp_normal_equations() -> None:
        """The normal equations solver handles LPs."""
        stats = solve(lp_model(), plugin=K1CholeskyParams())
        assert stats.status == Status.CONVERGED
        np.testing.assert_allclose(stats.solution, [1.6, 1.2], atol=1e-5)

    @staticmethod
    def test_lp_uncoupled_steps() -> None:
        """Primal and dual steps may differ for LPs."""
        stats = solve(lp_model(), history=True)
        assert stats.status == Status.CONVERGED
        assert np.all(np.array(stats.solver_specific["alpha_dual"]) > 0.0)

    @pytest.mark.parametrize(
        "params", [K2LDLParams(), K2MINRESParams(), K1CholeskyParams()]
    )
    def test_box_constraints(self, params: SolverParams) -> None:
        """Problems with bounds but no constraint rows."""
        stats = solve(box_model(), plugin=params)
        assert stats.status == Status.CONVERGED
        np.testing.assert_allclose(stats.solution, [1.0, 0.0, 0.5], atol=1e-5)
        assert stats.objective == pytest.approx(1.0, rel=1e-6)
        np.testing.assert_allclose(stats.multipliers_L, [0.0, 1.0, 0.0], atol=1e-5)
        np.testing.assert_allclose(stats.multipliers_U, [1.0, 0.0, 0.0], atol=1e-5)
        assert stats.multipliers.shape == (0,)

    @staticmethod
    def test_fixed_variable() -> None:
        """Fixed variables are held at their value."""
        qm = QuadraticModel(
            c=np.array([-2.0, -4.0]),
            Q=2.0 * np.eye(2),
            lvar=np.array([-np.inf, 1.0]),
            uvar=np.array([np.inf, 1.0]),
        )
        stats = solve(qm)
        assert stats.status == Status.CONVERGED
        np.testing.assert_allclose(stats.solution, [1.0, 1.0], atol=1e-6)
        assert stats.objective == pytest.approx(-4.0, rel=1e-6)
        np.testing.assert_allclose(stats.multipliers_U, [0.0, 2.0], atol=1e-5)
        np.testing.assert_allclose(stats.multipliers_L, [0.0, 0.0], atol=1e-5)

    @staticmethod
    def test_unconstrained() -> None:
        """Without bounds the first Newton step is exact."""
        qm = QuadraticModel(c=np.array([-1.0, 2.0]), Q=np.diag([1.0, 4.0]))
        stats = solve(qm)
        assert stats.status == Status.CONVERGED
        np.testing.assert_allclose(stats.solution, [1.0, -0.5], atol=1e-6)
        assert stats.iter <= 3

    @pytest.mark.parametrize(
        "seed,n,m",
        [
            (1301, 10, 4),
            (2301, 25, 10),
            (3301, 40, 5),
        ],
    )
    def test_random_feasible_qp(self, seed: int, n: int, m: int) -> None:
        """Random QPs with a known feasible point converge to a KKT point."""
        np.random.seed(seed)
        M = np.random.randn(n, n)
        Q = M @ M.T / n
        A = np.random.randn(m, n)
        x_feas = np.random.rand(n) + 0.1
        b = A @ x_feas
        c = np.random.randn(n)
        qm = QuadraticModel(c=c, Q=Q, A=A, lcon=b, ucon=b, lvar=np.zeros(n))

        stats = solve(qm, strategy=Strategy.PREDICTOR_CORRECTOR)
        assert stats.status == Status.CONVERGED
        x, y = stats.solution, stats.multipliers
        np.testing.assert_allclose(A @ x, b, atol=1e-4)
        np.testing.assert_allclose(
            c + Q @ x - A.T @ y - stats.multipliers_L, 0.0, atol=1e-4
        )
        assert np.all(x >= 0.0)
        assert stats.objective == pytest.approx(stats.dual_objective, abs=1e-6)


def test_take_step_in_place() -> None:
    """Steps update the iterate's arrays rather than allocating a new point."""
    pt = Point(x=np.ones(2), y=np.zeros(1), s_l=np.ones(2), s_u=np.full(1, 2.0))
    x, s_l = pt.x, pt.s_l
    d = Direction(
        dx=np.array([1.0, -1.0]),
        dy=np.array([2.0]),
        ds_l=np.array([-0.5, 0.5]),
        ds_u=np.array([-4.0]),
    )

    take_step(pt, d, 0.5, 0.25)
    assert pt.x is x
    assert pt.s_l is s_l
    np.testing.assert_allclose(pt.x, [1.5, 0.5])
    np.testing.assert_allclose(pt.y, [0.5])
    np.testing.assert_allclose(pt.s_l, [0.875, 1.125])
    np.testing.assert_allclose(pt.s_u, [1.0])
