"""Tests for the graph optimizer driver."""

import logging

import numpy as np
import pytest
from graphoptim.core.errors import ConfigurationError, ReadinessError, SingularSystemError
from graphoptim.core.factors import EuclideanBetweenFactor, PriorFactor
from graphoptim.core.models import OptimizerSettings, OptimizerStatus
from graphoptim.core.nodes import NodeR2
from graphoptim.core.optimization.factor_graph import FactorGraph
from graphoptim.core.solver.graph_optimizer import GraphOptimizer
from graphoptim.core.solver.linear_solver import solve_linear_system


def _anchored_pair(b_value=(2.0, 2.0)):
    graph = FactorGraph()
    a = NodeR2("A", np.array([0.0, 0.0]), is_constant=True)
    b = NodeR2("B", np.array(b_value))
    graph.add_variables(a, b)
    graph.add_factor(EuclideanBetweenFactor("AB", a, b, np.array([1.0, 1.0]), np.eye(2)))
    return graph


class TestConfiguration:
    """Test optimizer configuration."""

    def test_default_settings(self):
        """Test the optimizer starts ready with default settings."""
        optimizer = GraphOptimizer(_anchored_pair())

        assert optimizer.status == OptimizerStatus.READY
        assert optimizer.settings == OptimizerSettings()
        assert optimizer.damping is None

    def test_option_overrides(self):
        """Test keyword overrides on construction."""
        optimizer = GraphOptimizer(_anchored_pair(), linear_solver="cholesky", optimization_scheme="LM")

        assert optimizer.settings.linear_solver == "cholesky"
        assert optimizer.settings.optimization_scheme == "levenberg_marquardt"
        assert optimizer.damping == pytest.approx(1e-3)

    def test_setters(self):
        """Test individual setters."""
        optimizer = GraphOptimizer(_anchored_pair())
        optimizer.set_linear_solver("cholesky")
        optimizer.set_optimization_scheme("LM")

        assert optimizer.settings.linear_solver == "cholesky"
        assert optimizer.settings.is_damped

    def test_invalid_configuration(self):
        """Test invalid options raise a configuration error."""
        optimizer = GraphOptimizer(_anchored_pair())

        with pytest.raises(ConfigurationError):
            optimizer.set_linear_solver("lu")
        with pytest.raises(ConfigurationError):
            optimizer.configure(max_iterations=-1)
        with pytest.raises(ConfigurationError):
            GraphOptimizer(_anchored_pair(), optimization_scheme="newton")

    def test_requires_factor_graph(self):
        """Test the optimizer only accepts factor graphs."""
        with pytest.raises(TypeError):
            GraphOptimizer({"A": None})

    def test_factor_graph_is_fixed(self):
        """Test the graph reference cannot be replaced."""
        optimizer = GraphOptimizer(_anchored_pair())

        with pytest.raises(AttributeError):
            optimizer.factor_graph = FactorGraph()


def _singular_once(calls):
    """Linear solve that reports a singular system on its first call only."""

    def solve(*args, **kwargs):
        calls.append(kwargs["damping"])
        if len(calls) == 1:
            raise SingularSystemError("Normal matrix is numerically singular")
        return solve_linear_system(*args, **kwargs)

    return solve


class TestDescend:
    """Test single descent iterations."""

    def test_single_gauss_newton_step(self):
        """Test one iteration solves a linear problem exactly."""
        graph = _anchored_pair()
        optimizer = GraphOptimizer(graph)

        summary = optimizer.descend()

        assert summary.accepted
        assert summary.step_length == 1.0
        assert summary.cost_before == pytest.approx(1.0)
        assert summary.cost_after == pytest.approx(0.0)
        assert summary.directional_derivative < 0
        np.testing.assert_allclose(graph.get_variable("B").value, [1.0, 1.0])
        np.testing.assert_allclose(optimizer.search_direction, [-1.0, -1.0])
        np.testing.assert_allclose(optimizer.weighted_residual, [-1.0, -1.0])
        assert optimizer.weighted_jacobian.shape == (2, 2)
        assert optimizer.variable_ordering.names == ["B"]

    def test_stationary_point(self):
        """Test a zero gradient gives a zero direction without solving."""
        graph = _anchored_pair(b_value=(1.0, 1.0))
        optimizer = GraphOptimizer(graph)

        summary = optimizer.descend()

        assert summary.stationary
        assert optimizer.step_length == 0.0
        np.testing.assert_array_equal(optimizer.search_direction, np.zeros(2))

    def test_singular_gauss_newton(self):
        """Test a singular undamped system raises."""
        graph = FactorGraph()
        a = NodeR2("A", np.array([0.0, 0.0]))
        b = NodeR2("B", np.array([2.0, 2.0]))
        graph.add_variables(a, b)
        graph.add_factor(EuclideanBetweenFactor("AB", a, b, np.array([1.0, 1.0]), np.eye(2)))

        with pytest.raises(SingularSystemError):
            GraphOptimizer(graph).descend()

    def test_non_descent_direction_warning(self, caplog, monkeypatch):
        """Test an ascent direction is reported but the iteration continues."""
        graph = _anchored_pair()
        monkeypatch.setattr(
            "graphoptim.core.solver.graph_optimizer.solve_linear_system",
            lambda *args, **kwargs: np.array([1.0, 1.0]),
        )

        with caplog.at_level(logging.WARNING):
            summary = GraphOptimizer(graph).descend()

        assert summary.directional_derivative > 0
        assert summary.accepted
        assert "descent direction" in caplog.text
        np.testing.assert_allclose(graph.get_variable("B").value, [3.0, 3.0])

    def test_singular_damped_system_grows_damping(self, caplog, monkeypatch):
        """Test a singular damped solve rejects the iteration and grows the damping."""
        graph = _anchored_pair()
        optimizer = GraphOptimizer(graph, optimization_scheme="LM")
        calls = []
        monkeypatch.setattr("graphoptim.core.solver.graph_optimizer.solve_linear_system", _singular_once(calls))

        with caplog.at_level(logging.WARNING):
            summary = optimizer.descend()

        assert not summary.accepted
        assert summary.step_length == 0.0
        assert summary.cost_after == summary.cost_before
        assert summary.damping == pytest.approx(1e-3)
        assert optimizer.damping == pytest.approx(2e-3)
        assert "increasing damping" in caplog.text
        np.testing.assert_array_equal(graph.get_variable("B").value, [2.0, 2.0])
        np.testing.assert_array_equal(optimizer.search_direction, np.zeros(2))

        # The retry uses the larger damping and succeeds
        summary = optimizer.descend()

        assert summary.accepted
        assert calls == [pytest.approx(1e-3), pytest.approx(2e-3)]
        np.testing.assert_allclose(graph.get_variable("B").value, [1.0, 1.0], atol=1e-2)


class TestOptimize:
    """Test the optimize loop."""

    def test_not_ready(self):
        """Test an unready graph raises before iterating."""
        graph = _anchored_pair()
        graph.get_variable("B").clear()
        optimizer = GraphOptimizer(graph)

        with pytest.raises(ReadinessError) as exc_info:
            optimizer.optimize()

        assert exc_info.value.report.uninitialized_variables == ["B"]
        assert optimizer.status == OptimizerStatus.READY

    def test_converges(self):
        """Test the anchored pair converges to the measurement."""
        graph = _anchored_pair()
        result = GraphOptimizer(graph).optimize()

        assert result.success
        assert result.status == OptimizerStatus.CONVERGED
        assert result.initial_cost == pytest.approx(1.0)
        assert result.final_cost == pytest.approx(0.0, abs=1e-20)
        assert result.cost_history[0] == pytest.approx(1.0)
        np.testing.assert_allclose(graph.get_variable("B").value, [1.0, 1.0])

    def test_max_iterations(self):
        """Test the iteration cap."""
        graph = FactorGraph()
        p = NodeR2("p", np.array([10.0, 10.0]))
        graph.add_variable(p)
        graph.add_factor(PriorFactor("prior", p, np.zeros(2), np.eye(2)))

        # Tiny steps keep the cost decreasing without converging
        optimizer = GraphOptimizer(graph, optimization_scheme="LM", initial_damping=1e6, max_iterations=2)
        result = optimizer.optimize()

        assert result.status == OptimizerStatus.MAX_ITERATIONS
        assert not result.success
        assert result.iterations == 2

    def test_callback_cancels(self):
        """Test a callback returning False cancels the run."""
        graph = FactorGraph()
        p = NodeR2("p", np.array([10.0, 10.0]))
        graph.add_variable(p)
        graph.add_factor(PriorFactor("prior", p, np.zeros(2), np.eye(2)))

        seen = []

        def callback(iteration, summary):
            seen.append(iteration)
            return False

        optimizer = GraphOptimizer(graph, optimization_scheme="LM", initial_damping=1e6)
        result = optimizer.optimize(callback)

        assert seen == [1]
        assert result.status == OptimizerStatus.CANCELLED
        assert result.iterations == 1

    def test_stop_request(self):
        """Test stop() ends the run at the next iteration boundary."""
        graph = FactorGraph()
        p = NodeR2("p", np.array([10.0, 10.0]))
        graph.add_variable(p)
        graph.add_factor(PriorFactor("prior", p, np.zeros(2), np.eye(2)))

        optimizer = GraphOptimizer(graph, optimization_scheme="LM", initial_damping=1e6)
        result = optimizer.optimize(lambda iteration, summary: optimizer.stop())

        assert result.status == OptimizerStatus.CANCELLED
        assert result.iterations == 1

    def test_failed_on_bad_covariance(self):
        """Test a covariance that cannot be whitened fails the run."""
        graph = _anchored_pair()
        graph.get_factor("AB").err_cov = np.zeros((2, 2))

        result = GraphOptimizer(graph).optimize()

        assert result.status == OptimizerStatus.FAILED
        assert not result.success
        assert "Numerical error" in result.convergence_reason

    def test_singular_fails_gauss_newton(self):
        """Test a singular undamped system fails the run."""
        graph = FactorGraph()
        a = NodeR2("A", np.array([0.0, 0.0]))
        b = NodeR2("B", np.array([2.0, 2.0]))
        graph.add_variables(a, b)
        graph.add_factor(EuclideanBetweenFactor("AB", a, b, np.array([1.0, 1.0]), np.eye(2)))

        result = GraphOptimizer(graph).optimize()

        assert result.status == OptimizerStatus.FAILED
        np.testing.assert_array_equal(b.value, [2.0, 2.0])

    def test_iteration_logging(self, caplog):
        """Test each iteration is logged at INFO."""
        with caplog.at_level(logging.INFO, logger="graphoptim"):
            GraphOptimizer(_anchored_pair()).optimize()

        assert "Iteration 1" in caplog.text
        assert "Optimization finished" in caplog.text

    def test_convergence_analysis(self):
        """Test cost history analysis after a run."""
        optimizer = GraphOptimizer(_anchored_pair())
        optimizer.optimize()
        analysis = optimizer.analyze_convergence()

        assert analysis["monotonic"]
        assert analysis["cost_reduction"] == pytest.approx(1.0)
        assert optimizer.get_cost_history()[0] == pytest.approx(1.0)

    def test_configure_between_runs(self):
        """Test reconfiguring after a run is allowed."""
        optimizer = GraphOptimizer(_anchored_pair())
        optimizer.optimize()
        optimizer.configure(linear_solver="cholesky")

        assert optimizer.settings.linear_solver == "cholesky"

    def test_singular_damped_system_recovers(self, monkeypatch):
        """Test a run continues after a singular damped solve."""
        graph = _anchored_pair()
        calls = []
        monkeypatch.setattr("graphoptim.core.solver.graph_optimizer.solve_linear_system", _singular_once(calls))

        result = GraphOptimizer(graph, optimization_scheme="LM").optimize()

        assert result.success
        assert result.iterations >= 2
        assert result.cost_history[1] == pytest.approx(result.cost_history[0])
        assert calls[1] == pytest.approx(2e-3)
        np.testing.assert_allclose(graph.get_variable("B").value, [1.0, 1.0], atol=1e-4)

    def test_configure_during_run(self):
        """Test settings cannot change while the optimizer is iterating."""
        graph = FactorGraph()
        p = NodeR2("p", np.array([10.0, 10.0]))
        graph.add_variable(p)
        graph.add_factor(PriorFactor("prior", p, np.zeros(2), np.eye(2)))
        optimizer = GraphOptimizer(graph, optimization_scheme="LM", initial_damping=1e6)
        statuses = []

        def callback(iteration, summary):
            statuses.append(optimizer.status)
            with pytest.raises(ConfigurationError):
                optimizer.configure(linear_solver="cholesky")
            return False

        result = optimizer.optimize(callback)

        assert statuses == [OptimizerStatus.ITERATING]
        assert result.status == OptimizerStatus.CANCELLED
        assert optimizer.settings.linear_solver == "qr"

    def test_result_statistics(self):
        """Test the result carries overall residual statistics."""
        result = GraphOptimizer(_anchored_pair()).optimize()

        assert result.statistics["total_residuals"] == 2
        assert result.statistics["rms_residual"] == pytest.approx(0.0, abs=1e-10)
        assert result.statistics["max_residual"] == pytest.approx(0.0, abs=1e-10)
