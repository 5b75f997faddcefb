"""Iterative Gauss-Newton / Levenberg-Marquardt optimizer over a factor graph."""

import logging
import time
import numpy as np
from typing import Any, Callable, Dict, List, Optional, Tuple
from scipy.sparse import csr_matrix

from .diagnostics import SolveDiagnostics
from .linear_solver import solve_linear_system
from .step_length import StepLengthController
from ..errors import (
    ConfigurationError,
    InvalidIncrementError,
    NumericalError,
    ReadinessError,
    SingularSystemError,
)
from ..models.results import (
    IterationSummary,
    OptimizationResult,
    OptimizerStatus,
    ReadinessReport,
)
from ..models.settings import OptimizerSettings
from ..optimization.builder import VariableOrdering, build_weighted_system, evaluate_cost
from ..optimization.factor_graph import FactorGraph
from ..optimization.readiness import check_factor_graph
from ..optimization.updater import update_graph

logger = logging.getLogger(__name__)

IterationCallback = Callable[[int, IterationSummary], bool]


class GraphOptimizer:
    """Optimizes the variables of a factor graph in place.

    The optimizer keeps a fixed reference to one factor graph; the graph's
    lifetime is owned by the caller. Each call to ``descend`` rebuilds the
    weighted system from the current variable values, computes a search
    direction and a step length, and applies the update.
    """

    def __init__(self, factor_graph: FactorGraph, settings: Optional[OptimizerSettings] = None, **options):
        """Initialize optimizer.

        Args:
            factor_graph: Graph to optimize over
            settings: Optimizer settings
            **options: Individual setting overrides (e.g. linear_solver="cholesky")
        """
        if not isinstance(factor_graph, FactorGraph):
            raise TypeError(f"Expected a FactorGraph, got {type(factor_graph).__name__}")

        self._factor_graph = factor_graph
        self._settings = _make_settings(settings or OptimizerSettings(), options)
        self._status = OptimizerStatus.READY
        self._stop_requested = False

        self._step_controller = StepLengthController(self._settings)
        self.diagnostics = SolveDiagnostics()

        # Per-iteration state
        self._variable_ordering: Optional[VariableOrdering] = None
        self._search_direction = np.zeros(0)
        self._weighted_residual = np.zeros(0)
        self._weighted_jacobian = csr_matrix((0, 0))
        self._step_length = 0.0

        self.cost_history: List[float] = []

    @property
    def factor_graph(self) -> FactorGraph:
        return self._factor_graph

    @property
    def settings(self) -> OptimizerSettings:
        return self._settings

    @property
    def status(self) -> OptimizerStatus:
        return self._status

    @property
    def search_direction(self) -> np.ndarray:
        return self._search_direction

    @property
    def weighted_residual(self) -> np.ndarray:
        return self._weighted_residual

    @property
    def weighted_jacobian(self) -> csr_matrix:
        return self._weighted_jacobian

    @property
    def step_length(self) -> float:
        return self._step_length

    @property
    def variable_ordering(self) -> Optional[VariableOrdering]:
        return self._variable_ordering

    @property
    def damping(self) -> Optional[float]:
        """Current Levenberg-Marquardt damping (None for Gauss-Newton)."""
        return self._step_controller.damping

    def configure(self, **options) -> None:
        """Change settings before a run.

        Raises:
            ConfigurationError: If a value is invalid or a run is in progress
        """
        if self._status == OptimizerStatus.ITERATING:
            raise ConfigurationError("Cannot reconfigure the optimizer while it is iterating")

        self._settings = _make_settings(self._settings, options)
        self._step_controller = StepLengthController(self._settings)

    def set_linear_solver(self, linear_solver: str) -> None:
        """Set the linear solver ("qr" or "cholesky")."""
        self.configure(linear_solver=linear_solver)

    def set_optimization_scheme(self, optimization_scheme: str) -> None:
        """Set the optimization scheme ("gauss_newton"/"GN" or "levenberg_marquardt"/"LM")."""
        self.configure(optimization_scheme=optimization_scheme)

    @staticmethod
    def check_factor_graph(factor_graph: FactorGraph, verbose: bool = True) -> Tuple[bool, ReadinessReport]:
        """Check whether a factor graph is ready for optimization."""
        return check_factor_graph(factor_graph, verbose=verbose)

    def stop(self) -> None:
        """Request the optimize loop to stop at the next iteration boundary."""
        self._stop_requested = True

    def descend(self) -> IterationSummary:
        """Run one descent iteration.

        Returns:
            Summary of the iteration

        Raises:
            NumericalError: On a weighting failure, or a singular system under Gauss-Newton
            InvalidIncrementError: If the update would produce an invalid value
        """
        settings = self._settings

        self._variable_ordering = VariableOrdering.from_graph(self._factor_graph)
        system = build_weighted_system(self._factor_graph, self._variable_ordering)
        self._weighted_residual = system.residual
        self._weighted_jacobian = system.jacobian

        cost = system.cost
        gradient = system.gradient
        gradient_norm = float(np.max(np.abs(gradient))) if gradient.size else 0.0

        if gradient_norm <= settings.gradient_tolerance:
            self._search_direction = np.zeros(self._variable_ordering.total_dof)
            self._step_length = 0.0
            return IterationSummary(
                cost_before=cost,
                cost_after=cost,
                step_length=0.0,
                accepted=False,
                gradient_norm=gradient_norm,
                damping=self.damping,
                stationary=True,
            )

        damping = self.damping
        try:
            self._search_direction = solve_linear_system(
                system.residual,
                system.jacobian,
                optimization_scheme=settings.optimization_scheme,
                linear_solver=settings.linear_solver,
                use_reordering=settings.use_reordering,
                damping=damping,
                min_diagonal=settings.min_diagonal,
                max_diagonal=settings.max_diagonal,
            )
        except SingularSystemError as e:
            if not settings.is_damped:
                raise
            self._step_controller.reject()
            logger.warning("Singular damped system (%s); increasing damping to %.3e", e, self.damping)
            self._search_direction = np.zeros(self._variable_ordering.total_dof)
            self._step_length = 0.0
            return IterationSummary(
                cost_before=cost,
                cost_after=cost,
                step_length=0.0,
                accepted=False,
                gradient_norm=gradient_norm,
                damping=damping,
            )

        directional_derivative = float(system.residual @ (system.jacobian @ self._search_direction))
        if directional_derivative >= 0:
            logger.warning(
                "Search direction might not be a descent direction (directional derivative %.3e)",
                directional_derivative,
            )

        step = self._step_controller.compute_step_length(self._factor_graph, system, self._search_direction)
        self._step_length = step.step_length

        if step.accepted:
            update_graph(self._factor_graph, self._search_direction, step.step_length, self._variable_ordering)

        return IterationSummary(
            cost_before=cost,
            cost_after=step.new_cost,
            step_length=step.step_length,
            accepted=step.accepted,
            gradient_norm=gradient_norm,
            directional_derivative=directional_derivative,
            gain_ratio=step.gain_ratio,
            damping=step.damping,
        )

    def optimize(self, callback: Optional[IterationCallback] = None) -> OptimizationResult:
        """Optimize the factor graph until convergence.

        Args:
            callback: Called after each iteration with (iteration, summary);
                      returning False stops the run

        Returns:
            Optimization result

        Raises:
            ReadinessError: If the graph is not ready; no iteration is run
        """
        ready, report = self.check_factor_graph(self._factor_graph, verbose=self._settings.verbose)
        if not ready:
            raise ReadinessError(report)

        settings = self._settings
        start_time = time.time()

        self._step_controller.reset()
        self._stop_requested = False
        self.cost_history = []

        try:
            initial_cost = evaluate_cost(self._factor_graph)
        except NumericalError as e:
            logger.error("Cannot evaluate the initial cost: %s", e)
            self._status = OptimizerStatus.FAILED
            return self._make_result(0, np.inf, f"Numerical error: {e}", start_time)

        self.cost_history.append(initial_cost)
        self._status = OptimizerStatus.ITERATING

        logger.info(
            "Optimizing %d variables / %d factors with %s (%s, reordering=%s); initial cost %.6e",
            len(self._factor_graph.variables), len(self._factor_graph.factors),
            settings.optimization_scheme, settings.linear_solver, settings.use_reordering, initial_cost,
        )

        iteration = 0
        reason = f"Reached maximum of {settings.max_iterations} iterations"

        while iteration < settings.max_iterations:
            if self._stop_requested:
                self._status = OptimizerStatus.CANCELLED
                reason = "Stopped by request"
                break

            iteration += 1

            try:
                summary = self.descend()
            except (NumericalError, InvalidIncrementError) as e:
                logger.error("Iteration %d failed: %s", iteration, e)
                self._status = OptimizerStatus.FAILED
                reason = f"Numerical error: {e}" if isinstance(e, NumericalError) else f"Invalid update: {e}"
                break

            self.cost_history.append(summary.cost_after)
            logger.info(
                "Iteration %d: cost %.6e -> %.6e, step %.3g%s",
                iteration, summary.cost_before, summary.cost_after, summary.step_length,
                "" if summary.damping is None else f", damping {summary.damping:.3e}",
            )

            status, reason = self._check_termination(summary, reason)
            if status is not None:
                self._status = status
                break

            if callback is not None and callback(iteration, summary) is False:
                self._status = OptimizerStatus.CANCELLED
                reason = "Stopped by callback"
                break

        if self._status == OptimizerStatus.ITERATING:
            self._status = OptimizerStatus.MAX_ITERATIONS

        logger.info("Optimization finished after %d iterations: %s", iteration, reason)
        return self._make_result(iteration, initial_cost, reason, start_time)

    def _check_termination(self, summary: IterationSummary, reason: str) -> Tuple[Optional[OptimizerStatus], str]:
        settings = self._settings

        if summary.stationary:
            return OptimizerStatus.CONVERGED, "Converged: gradient tolerance satisfied"

        if summary.accepted:
            threshold = max(settings.cost_tolerance, settings.relative_cost_tolerance * summary.cost_before)
            if abs(summary.cost_decrease) <= threshold:
                return OptimizerStatus.CONVERGED, "Converged: cost tolerance satisfied"
            return None, reason

        if settings.is_damped:
            if self._step_controller.damping_exhausted:
                return OptimizerStatus.CONVERGED, "Converged: damping limit reached without further cost reduction"
            return None, reason

        return OptimizerStatus.CONVERGED, "Converged: line search could not decrease the cost"

    def _make_result(self, iterations: int, initial_cost: float, reason: str, start_time: float) -> OptimizationResult:
        residuals: Dict[str, float] = {}
        largest: List[Tuple[str, float]] = []
        statistics: Dict[str, float] = {}
        final_cost = self.cost_history[-1] if self.cost_history else np.inf

        if self._status != OptimizerStatus.FAILED:
            system = build_weighted_system(self._factor_graph)
            diagnostics = self.diagnostics.compute_diagnostics(system)
            residuals = diagnostics["residuals"]
            largest = diagnostics["largest_residuals"]
            statistics = diagnostics["statistics"]
            final_cost = system.cost

        return OptimizationResult(
            status=self._status,
            success=self._status == OptimizerStatus.CONVERGED,
            iterations=iterations,
            initial_cost=initial_cost,
            final_cost=final_cost,
            cost_history=self.cost_history,
            convergence_reason=reason,
            residuals=residuals,
            largest_residuals=largest,
            statistics=statistics,
            computation_time=time.time() - start_time,
        )

    def get_cost_history(self) -> List[float]:
        """Get optimization cost history of the last run."""
        return self.cost_history.copy()

    def analyze_convergence(self) -> Dict[str, Any]:
        """Analyze convergence properties of the last run.

        Returns:
            Dictionary with convergence analysis
        """
        if not self.cost_history:
            return {"error": "No solve history available"}

        costs = np.array(self.cost_history)

        analysis = {
            "initial_cost": float(costs[0]),
            "final_cost": float(costs[-1]),
            "cost_reduction": float(costs[0] - costs[-1]),
            "relative_cost_reduction": float((costs[0] - costs[-1]) / (costs[0] + 1e-12)),
            "iterations": len(costs) - 1,
            "monotonic": bool(np.all(np.diff(costs) <= 0)),
        }

        if len(costs) > 2:
            cost_reductions = -np.diff(costs)
            analysis["mean_cost_reduction_per_iter"] = float(np.mean(cost_reductions))
            analysis["cost_reduction_std"] = float(np.std(cost_reductions))

        return analysis


def _make_settings(base: OptimizerSettings, overrides: Dict[str, Any]) -> OptimizerSettings:
    """Validate settings overrides on top of a base configuration."""
    if not overrides:
        return base
    return OptimizerSettings(**{**base.model_dump(), **overrides})
