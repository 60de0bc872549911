"""Test linear solvers."""

from dataclasses import dataclass

import numpy as np
import pytest
from scipy import sparse

from quadipm.exceptions import FactorizationError
from quadipm.iterate import Point
from quadipm.kkt import Regularization, assemble_k2, symmetric_full
from quadipm.linear_solvers import (
    K1CholeskyParams,
    K2LDLParams,
    K2LUParams,
    K2MINRESParams,
    PreallocatedData,
    SolverParams,
    available_solvers,
    check_finite,
    get_solver,
    register_solver,
)
from quadipm.model import QPData, QuadraticModel, to_standard_form


def random_problem(n: int, m: int, diagonal: bool = True) -> QPData:
    """Random problem with a mix of bounded and free variables."""
    if diagonal:
        q = np.random.rand(n)
        q[::3] = 0.0
        Q = np.diag(q)
    else:
        M = np.random.randn(n, n)
        Q = M @ M.T
    A = np.random.randn(m, n)
    b = np.random.randn(m)

    lvar = np.full(n, -np.inf)
    uvar = np.full(n, np.inf)
    lvar[::2] = 0.0
    uvar[1::3] = 5.0
    return to_standard_form(
        QuadraticModel(
            c=np.random.randn(n), Q=Q, A=A, lcon=b, ucon=b, lvar=lvar, uvar=uvar
        )
    )


def interior_point(data: QPData) -> Point:
    x = np.zeros(data.nvar)
    x[data.ilow] = data.lvar[data.ilow] + np.random.rand(data.nlow) + 0.5
    x[data.iupp] = np.minimum(x[data.iupp], data.uvar[data.iupp] - 0.5)
    return Point(
        x=x,
        y=np.random.randn(data.ncon),
        s_l=np.random.rand(data.nlow) + 0.1,
        s_u=np.random.rand(data.nupp) + 0.1,
    )


@dataclass
class DenseParams(SolverParams):
    """Solver supplied by a caller: dense LU of the full K2 matrix."""

    uplo: str = "U"

    def initialize(self, data: QPData, pt: Point) -> "DenseData":
        pad = DenseData(Regularization.for_dtype(data.dtype))
        pad.factorize_with_retries(data, pt)
        return pad


class DenseData(PreallocatedData):
    def update(self, data: QPData, pt: Point) -> None:
        self.K = symmetric_full(assemble_k2(data, pt, self.regu)).toarray()

    def solve_in_place(self, rhs: np.ndarray, step: str) -> np.ndarray:
        rhs[:] = np.linalg.solve(self.K, rhs)
        return rhs


@dataclass
class FlakyParams(SolverParams):
    """Solver whose factorization fails until rho is large enough."""

    rho_needed: float = 1e-1
    max_attempts: int = 5

    def initialize(self, data: QPData, pt: Point) -> "FlakyData":
        regu = Regularization(rho=1e-5, delta=1e-5, rho_min=1e-6, delta_min=1e-6)
        pad = FlakyData(regu, self.max_attempts)
        pad.rho_needed = self.rho_needed
        pad.factorize_with_retries(data, pt)
        return pad


class FlakyData(PreallocatedData):
    rho_needed = 0.0

    def factorize(self) -> bool:
        return self.regu.rho >= self.rho_needed

    def solve_in_place(self, rhs: np.ndarray, step: str) -> np.ndarray:
        return rhs


class TestPlugins:
    """Test that every solver solves the K2 system."""

    @pytest.mark.parametrize(
        "seed,n,m",
        [
            (1101, 6, 3),
            (2101, 12, 5),
            (3101, 4, 0),
            (4101, 30, 10),
            (5101, 3, 3),
        ],
    )
    @pytest.mark.parametrize(
        "params",
        [
            K2LDLParams(),
            K2LUParams(),
            K2MINRESParams(rho=1e-2, delta=1e-2),
            K1CholeskyParams(),
            DenseParams(),
        ],
    )
    def test_solve(self, params: SolverParams, seed: int, n: int, m: int) -> None:
        """Compare with a dense solve."""
        np.random.seed(seed)
        data = random_problem(n, m)
        pt = interior_point(data)
        pad = params.initialize(data, pt)

        K = symmetric_full(assemble_k2(data, pt, pad.regu)).toarray()
        rhs = np.random.randn(data.nvar + data.ncon)
        x_expected = np.linalg.solve(K, rhs)

        x = pad.solve_in_place(rhs.copy(), "aff")
        np.testing.assert_allclose(K @ x, rhs, rtol=1e-5, atol=1e-5)
        np.testing.assert_allclose(x, x_expected, rtol=1e-4, atol=1e-4)

    @pytest.mark.parametrize(
        "params", [K2LDLParams(), K2LUParams(), K1CholeskyParams()]
    )
    def test_refresh(self, params: SolverParams) -> None:
        """Refresh refactorizes at the new point with decayed regularization."""
        np.random.seed(1102)
        data = random_problem(8, 4)
        pt = interior_point(data)
        pad = params.initialize(data, pt)
        rho = pad.regu.rho

        pt = interior_point(data)
        assert pad.refresh(data, pt) == 1
        assert pad.regu.rho == pytest.approx(rho / 10)

        K = symmetric_full(assemble_k2(data, pt, pad.regu)).toarray()
        rhs = np.random.randn(data.nvar + data.ncon)
        x = pad.solve_in_place(rhs.copy(), "cc")
        np.testing.assert_allclose(K @ x, rhs, rtol=1e-6, atol=1e-6)

    @pytest.mark.parametrize("params", [K2LDLParams(), K1CholeskyParams()])
    def test_large_sparse_system(self, params: SolverParams) -> None:
        """Factorizations stay sparse and reuse their analysis across refreshes."""
        np.random.seed(1107)
        n = 20000
        data = to_standard_form(
            QuadraticModel(
                c=np.random.randn(n),
                Q=sparse.diags(np.random.rand(n)),
                A=sparse.csr_matrix(np.ones((1, n))),
                lcon=np.ones(1),
                ucon=np.ones(1),
                lvar=np.zeros(n),
            )
        )
        pt = interior_point(data)
        pad = params.initialize(data, pt)
        solver = pad._solver

        pt = interior_point(data)
        assert pad.refresh(data, pt) == 1
        assert pad._solver is solver

        K = symmetric_full(assemble_k2(data, pt, pad.regu))
        rhs = np.random.randn(n + 1)
        x = pad.solve_in_place(rhs.copy(), "aff")
        np.testing.assert_allclose(K @ x, rhs, rtol=1e-6, atol=1e-6)

    @staticmethod
    def test_solve_in_place_overwrites() -> None:
        """The right hand side is overwritten by the solution."""
        np.random.seed(1103)
        data = random_problem(5, 2)
        pad = K2LDLParams().initialize(data, interior_point(data))
        rhs = np.random.randn(data.nvar + data.ncon)
        out = pad.solve_in_place(rhs, "aff")
        assert out is rhs

    @staticmethod
    def test_single_precision() -> None:
        """Solvers work in the precision of the data."""
        np.random.seed(1104)
        data = random_problem(6, 3).astype(np.float32)
        pt = interior_point(data).astype(np.float32)
        pad = K2LDLParams().initialize(data, pt)
        rhs = np.random.randn(data.nvar + data.ncon).astype(np.float32)
        x = pad.solve_in_place(rhs, "aff")
        assert x.dtype == np.float32
        assert pad.regu.rho > Regularization.for_dtype(np.float64).rho

    @staticmethod
    def test_k1_requires_diagonal_hessian() -> None:
        """The normal equations solver rejects non-diagonal Hessians."""
        np.random.seed(1105)
        data = random_problem(5, 2, diagonal=False)
        with pytest.raises(ValueError):
            K1CholeskyParams().initialize(data, interior_point(data))

    @staticmethod
    def test_lower_triangle_not_supported() -> None:
        """Only the upper triangle of K2 is stored."""
        np.random.seed(1106)
        data = random_problem(5, 2)
        with pytest.raises(ValueError):
            K2LDLParams(uplo="L").initialize(data, interior_point(data))


class TestRetries:
    """Test regularization retries."""

    @staticmethod
    def test_bump_until_factorizable() -> None:
        """Regularization is bumped after each failed factorization."""
        np.random.seed(1201)
        data = random_problem(4, 2)
        pad = FlakyParams(rho_needed=5e-2).initialize(data, interior_point(data))
        # 1e-5 -> 1e-3 -> 1e-1
        assert pad.attempts == 3
        assert pad.regu.rho == pytest.approx(1e-1)

    @staticmethod
    def test_bounded_retries() -> None:
        """Give up after max_attempts factorizations."""
        np.random.seed(1202)
        data = random_problem(4, 2)
        with pytest.raises(FactorizationError) as e:
            FlakyParams(rho_needed=1e10, max_attempts=3).initialize(
                data, interior_point(data)
            )
        assert e.value.attempts == 3
        assert e.value.rho == pytest.approx(1e1)
        assert "3 attempt(s)" in str(e.value)

    @staticmethod
    def test_check_finite() -> None:
        """Non-finite solutions are factorization failures."""
        check_finite(np.ones(3), "aff")
        with pytest.raises(FactorizationError):
            check_finite(np.array([1.0, np.nan]), "cc")


class TestRegistry:
    """Test the solver registry."""

    @staticmethod
    def test_builtin_solvers() -> None:
        """Built-in solvers are registered by name."""
        assert {"k2_ldl", "k2_lu", "k2_minres", "k1_cholesky"} <= set(
            available_solvers()
        )
        assert isinstance(get_solver("k2_ldl"), K2LDLParams)
        assert isinstance(get_solver("k2_lu", permc_spec="COLAMD"), K2LUParams)

    @staticmethod
    def test_unknown_solver() -> None:
        """Unknown names are rejected."""
        with pytest.raises(ValueError):
            get_solver("does_not_exist")

    @staticmethod
    def test_register_custom_solver() -> None:
        """Callers can add their own solvers."""
        register_solver("dense", DenseParams)
        assert "dense" in available_solvers()
        assert isinstance(get_solver("dense"), DenseParams)

        with pytest.raises(TypeError):
            register_solver("not_a_solver", dict)
