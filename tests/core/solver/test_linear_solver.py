"""Tests for search-direction computation."""

import numpy as np
import pytest
from scipy.sparse import csr_matrix, diags, identity, issparse

from graphoptim.core.errors import SingularSystemError
from graphoptim.core.solver import linear_solver as linear_solver_module
from graphoptim.core.solver.linear_solver import damping_diagonal, solve_linear_system


@pytest.fixture
def overdetermined_system():
    """Random well-conditioned sparse least-squares system."""
    rng = np.random.default_rng(7)
    J = rng.normal(size=(30, 8)) * (rng.random((30, 8)) < 0.4)
    J[:8] += np.eye(8)
    r = rng.normal(size=30)
    return r, csr_matrix(J)


def _lstsq_direction(r, J):
    return -np.linalg.lstsq(J.toarray(), r, rcond=None)[0]


class TestGaussNewton:
    """Test undamped directions."""

    @pytest.mark.parametrize("linear_solver", ["qr", "cholesky"])
    @pytest.mark.parametrize("use_reordering", [True, False])
    def test_matches_least_squares(self, overdetermined_system, linear_solver, use_reordering):
        """Test every solver/reordering combination gives the least-squares step."""
        r, J = overdetermined_system

        d = solve_linear_system(r, J, linear_solver=linear_solver, use_reordering=use_reordering)

        np.testing.assert_allclose(d, _lstsq_direction(r, J), atol=1e-8)

    def test_normal_equations_hold(self, overdetermined_system):
        """Test J^T J d = -J^T r."""
        r, J = overdetermined_system
        d = solve_linear_system(r, J)
        Jd = J.toarray()

        np.testing.assert_allclose(Jd.T @ Jd @ d, -Jd.T @ r, atol=1e-8)

    def test_identity_jacobian(self):
        """Test a trivial system."""
        d = solve_linear_system(np.array([1.0, -2.0]), csr_matrix(np.eye(2)))

        np.testing.assert_allclose(d, [-1.0, 2.0])

    def test_rank_deficient_qr(self):
        """Test a rank-deficient Jacobian is reported as singular."""
        J = csr_matrix(np.array([[1.0, -1.0], [2.0, -2.0]]))

        with pytest.raises(SingularSystemError):
            solve_linear_system(np.ones(2), J, linear_solver="qr")

    def test_rank_deficient_cholesky(self):
        """Test a singular normal matrix is reported as singular."""
        J = csr_matrix(np.array([[1.0, -1.0], [2.0, -2.0]]))

        with pytest.raises(SingularSystemError):
            solve_linear_system(np.ones(2), J, linear_solver="cholesky")

    def test_underdetermined(self):
        """Test fewer residuals than unknowns cannot be solved undamped."""
        J = csr_matrix(np.array([[1.0, 2.0, 3.0]]))

        with pytest.raises(SingularSystemError):
            solve_linear_system(np.ones(1), J)

    def test_residual_length_mismatch(self):
        """Test residual and Jacobian must agree."""
        with pytest.raises(ValueError):
            solve_linear_system(np.ones(3), csr_matrix(np.eye(2)))

    def test_unknown_solver(self):
        """Test unknown solver names are rejected."""
        with pytest.raises(ValueError):
            solve_linear_system(np.ones(2), csr_matrix(np.eye(2)), linear_solver="lu")

    def test_empty_system(self):
        """Test a system without unknowns returns an empty direction."""
        d = solve_linear_system(np.ones(2), csr_matrix((2, 0)))

        assert d.shape == (0,)


class TestLevenbergMarquardt:
    """Test damped directions."""

    def _damped_reference(self, r, J, damping):
        Jd = J.toarray()
        D = damping_diagonal(J)
        return np.linalg.solve(Jd.T @ Jd + damping * np.diag(D), -Jd.T @ r)

    @pytest.mark.parametrize("linear_solver", ["qr", "cholesky"])
    def test_matches_damped_normal_equations(self, overdetermined_system, linear_solver):
        """Test QR and Cholesky solve the same damped system."""
        r, J = overdetermined_system

        d = solve_linear_system(
            r, J, optimization_scheme="levenberg_marquardt", linear_solver=linear_solver, damping=0.1
        )

        np.testing.assert_allclose(d, self._damped_reference(r, J, 0.1), atol=1e-8)

    def test_damping_shortens_step(self, overdetermined_system):
        """Test larger damping gives shorter steps."""
        r, J = overdetermined_system

        d_small = solve_linear_system(r, J, optimization_scheme="levenberg_marquardt", damping=1e-3)
        d_large = solve_linear_system(r, J, optimization_scheme="levenberg_marquardt", damping=1e3)

        assert np.linalg.norm(d_large) < np.linalg.norm(d_small)

    def test_damping_regularizes_underdetermined(self):
        """Test damping makes an underdetermined system solvable."""
        J = csr_matrix(np.array([[1.0, 2.0, 3.0]]))

        d = solve_linear_system(np.ones(1), J, optimization_scheme="levenberg_marquardt", damping=1.0)

        assert np.all(np.isfinite(d))

    def test_damping_required(self):
        """Test the damped scheme needs a damping value."""
        with pytest.raises(ValueError):
            solve_linear_system(np.ones(2), csr_matrix(np.eye(2)), optimization_scheme="levenberg_marquardt")

    def test_damping_diagonal_clamped(self):
        """Test the damping diagonal is clamped."""
        J = csr_matrix(np.array([[0.0, 1e20], [0.0, 0.0]]))

        np.testing.assert_allclose(damping_diagonal(J, 1e-6, 1e32), [1e-6, 1e32])


class TestReordering:
    """Test fill-reducing orderings inside the sparse factorizations."""

    def test_reordering_does_not_change_direction(self, overdetermined_system):
        """Test the direction is returned in the original column order."""
        r, J = overdetermined_system

        for linear_solver in ("qr", "cholesky"):
            with_reordering = solve_linear_system(r, J, linear_solver=linear_solver, use_reordering=True)
            without_reordering = solve_linear_system(r, J, linear_solver=linear_solver, use_reordering=False)

            np.testing.assert_allclose(with_reordering, without_reordering, atol=1e-10)

    @pytest.mark.parametrize("use_reordering, permc_spec", [(True, "COLAMD"), (False, "NATURAL")])
    def test_qr_column_ordering(self, monkeypatch, overdetermined_system, use_reordering, permc_spec):
        """Test the augmented system is factored sparse under the requested column ordering."""
        r, J = overdetermined_system
        calls = []
        real_splu = linear_solver_module.splu

        def recording_splu(K, permc_spec=None):
            calls.append((issparse(K), K.shape, permc_spec))
            return real_splu(K, permc_spec=permc_spec)

        monkeypatch.setattr(linear_solver_module, "splu", recording_splu)

        solve_linear_system(r, J, linear_solver="qr", use_reordering=use_reordering)

        assert calls == [(True, (38, 38), permc_spec)]

    @pytest.mark.parametrize("use_reordering, ordering_method", [(True, "amd"), (False, "natural")])
    def test_cholesky_ordering_method(self, monkeypatch, overdetermined_system, use_reordering, ordering_method):
        """Test the normal matrix is factored sparse under the requested ordering."""
        r, J = overdetermined_system
        calls = []
        real_cholesky = linear_solver_module.cholmod.cholesky

        def recording_cholesky(A, ordering_method=None):
            calls.append((issparse(A), A.shape, ordering_method))
            return real_cholesky(A, ordering_method=ordering_method)

        monkeypatch.setattr(linear_solver_module.cholmod, "cholesky", recording_cholesky)

        solve_linear_system(r, J, linear_solver="cholesky", use_reordering=use_reordering)

        assert calls == [(True, (8, 8), ordering_method)]

    @pytest.mark.parametrize("linear_solver", ["qr", "cholesky"])
    def test_long_chain(self, linear_solver):
        """Test a long anchored chain is solved exactly without densifying."""
        n = 3000
        # Row 0 anchors x_0; row i constrains x_i - x_{i-1}
        J = (identity(n) - diags(np.ones(n - 1), -1)).tocsr()
        b = np.ones(n)
        b[0] = 0.0

        d = solve_linear_system(-b, J, linear_solver=linear_solver)

        np.testing.assert_allclose(d, np.arange(n, dtype=float), rtol=1e-6, atol=1e-6)
