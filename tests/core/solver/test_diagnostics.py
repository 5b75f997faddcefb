"""Tests for solver diagnostics."""

import numpy as np
import pytest
from scipy.sparse import csr_matrix

from graphoptim.core.factors import EuclideanBetweenFactor, PriorFactor
from graphoptim.core.nodes import NodeR2
from graphoptim.core.optimization.builder import VariableOrdering, build_weighted_system
from graphoptim.core.optimization.factor_graph import FactorGraph
from graphoptim.core.solver.diagnostics import (
    SolveDiagnostics,
    analyze_jacobian_rank,
    find_unconstrained_variables,
)


@pytest.fixture
def free_pair():
    """Two free points with only a relative factor (gauge freedom)."""
    graph = FactorGraph()
    a = NodeR2("a", np.array([0.0, 0.0]))
    b = NodeR2("b", np.array([2.0, 2.0]))
    graph.add_variables(a, b)
    graph.add_factor(EuclideanBetweenFactor("ab", a, b, np.array([1.0, 1.0]), np.eye(2)))
    return graph


class TestSolveDiagnostics:
    """Test per-factor residual diagnostics."""

    def test_per_factor_residuals(self, free_pair):
        """Test RMS residuals and ranking."""
        a = free_pair.get_variable("a")
        free_pair.add_factor(PriorFactor("prior_a", a, np.array([0.0, 3.0]), np.eye(2)))

        diagnostics = SolveDiagnostics(top_k=1).compute_diagnostics(build_weighted_system(free_pair))

        assert diagnostics["residuals"]["ab"] == pytest.approx(1.0)
        assert diagnostics["residuals"]["prior_a"] == pytest.approx(np.sqrt(4.5))
        assert diagnostics["largest_residuals"] == [("prior_a", pytest.approx(np.sqrt(4.5)))]
        assert diagnostics["statistics"]["total_residuals"] == 4

    def test_empty_system(self):
        """Test statistics of an empty system."""
        diagnostics = SolveDiagnostics().compute_diagnostics(build_weighted_system(FactorGraph()))

        assert diagnostics["residuals"] == {}
        assert diagnostics["statistics"]["total_residuals"] == 0


class TestRankAnalysis:
    """Test Jacobian rank analysis."""

    def test_full_rank(self):
        """Test an identity Jacobian is full rank."""
        analysis = analyze_jacobian_rank(csr_matrix(np.eye(3)))

        assert analysis["rank"] == 3
        assert analysis["full_rank"]
        assert analysis["condition_number"] == pytest.approx(1.0)

    def test_gauge_freedom(self, free_pair):
        """Test a relative-only graph has a nullspace."""
        system = build_weighted_system(free_pair)
        analysis = analyze_jacobian_rank(system.jacobian)

        assert analysis["rank"] == 2
        assert analysis["nullspace_dimension"] == 2
        assert not analysis["full_rank"]

    def test_unconstrained_variables(self, free_pair):
        """Test both points of a free pair are reported."""
        system = build_weighted_system(free_pair)
        unconstrained = find_unconstrained_variables(system.jacobian, system.ordering)

        assert [name for name, _ in unconstrained] == ["a", "b"]

    def test_anchored_pair_is_constrained(self, free_pair):
        """Test anchoring one point removes the nullspace."""
        free_pair.get_variable("a").is_constant = True
        system = build_weighted_system(free_pair, VariableOrdering.from_graph(free_pair))

        assert find_unconstrained_variables(system.jacobian, system.ordering) == []
