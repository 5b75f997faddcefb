"""Step-length and trust-region damping control.

Gauss-Newton takes full steps, optionally shortened by a backtracking line
search. Levenberg-Marquardt accepts or rejects the full damped step from the
gain ratio between the actual and the model-predicted cost reduction, and
adapts the damping with Nielsen's rule.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Optional

from ..errors import NumericalError
from ..models.settings import OptimizerSettings
from ..optimization.builder import WeightedSystem, evaluate_cost
from ..optimization.factor_graph import FactorGraph
from ..optimization.updater import retract_values

logger = logging.getLogger(__name__)

_MIN_DAMPING = 1e-16


@dataclass
class StepResult:
    """Outcome of a step-length computation."""

    step_length: float
    accepted: bool
    new_cost: float
    gain_ratio: Optional[float] = None
    damping: Optional[float] = None


def predicted_cost_reduction(system: WeightedSystem, search_direction: np.ndarray) -> float:
    """Cost reduction predicted by the local linear model.

    ``L(0) - L(d)`` with ``L(d) = 1/2 ||r + J d||^2``.
    """
    jd = system.jacobian @ search_direction
    return float(-(system.residual @ jd) - 0.5 * (jd @ jd))


class StepLengthController:
    """Computes step lengths and carries damping state across iterations."""

    def __init__(self, settings: OptimizerSettings):
        self.settings = settings
        self.reset()

    def reset(self) -> None:
        """Restore the initial damping."""
        self._damping = self.settings.initial_damping if self.settings.is_damped else None
        self._growth = 2.0

    @property
    def damping(self) -> Optional[float]:
        """Current Levenberg-Marquardt damping (None for Gauss-Newton)."""
        return self._damping

    @property
    def damping_exhausted(self) -> bool:
        """Whether the damping has grown past its limit."""
        return self._damping is not None and self._damping > self.settings.max_damping

    def reject(self) -> None:
        """Grow the damping after a rejected or failed step."""
        if self._damping is None:
            return
        self._damping *= self._growth
        self._growth *= 2.0

    def accept(self, gain_ratio: float) -> None:
        """Shrink the damping after an accepted step."""
        if self._damping is None:
            return
        self._damping *= max(1.0 / 3.0, 1.0 - (2.0 * gain_ratio - 1.0) ** 3)
        self._damping = max(self._damping, _MIN_DAMPING)
        self._growth = 2.0

    def compute_step_length(
        self,
        factor_graph: FactorGraph,
        system: WeightedSystem,
        search_direction: np.ndarray
    ) -> StepResult:
        """Compute the step length for a search direction.

        Args:
            factor_graph: Factor graph at the linearization point (not modified)
            system: Weighted system the direction was computed from
            search_direction: Search direction

        Returns:
            Step result; rejected steps have step_length 0
        """
        if self.settings.is_damped:
            return self._trust_region_step(factor_graph, system, search_direction)
        if self.settings.line_search:
            return self._backtracking_step(factor_graph, system, search_direction)

        candidate = retract_values(factor_graph, search_direction, 1.0, system.ordering)
        return StepResult(step_length=1.0, accepted=True, new_cost=evaluate_cost(factor_graph, candidate))

    def _backtracking_step(
        self,
        factor_graph: FactorGraph,
        system: WeightedSystem,
        search_direction: np.ndarray
    ) -> StepResult:
        cost = system.cost
        step_length = 1.0

        while step_length >= self.settings.min_step_length:
            candidate = retract_values(factor_graph, search_direction, step_length, system.ordering)
            new_cost = evaluate_cost(factor_graph, candidate)
            if new_cost < cost:
                return StepResult(step_length=step_length, accepted=True, new_cost=new_cost)
            step_length *= self.settings.line_search_shrink

        logger.debug("Line search reached the minimum step without decreasing the cost")
        return StepResult(step_length=0.0, accepted=False, new_cost=cost)

    def _trust_region_step(
        self,
        factor_graph: FactorGraph,
        system: WeightedSystem,
        search_direction: np.ndarray
    ) -> StepResult:
        cost = system.cost
        damping = self._damping

        candidate = retract_values(factor_graph, search_direction, 1.0, system.ordering)
        try:
            new_cost = evaluate_cost(factor_graph, candidate)
        except NumericalError as e:
            logger.debug("Candidate step produced a non-finite cost: %s", e)
            new_cost = np.inf

        predicted = predicted_cost_reduction(system, search_direction)
        actual = cost - new_cost
        gain_ratio = actual / predicted if predicted > 0 and np.isfinite(new_cost) else -np.inf

        if gain_ratio > self.settings.step_acceptance_threshold:
            self.accept(gain_ratio)
            return StepResult(
                step_length=1.0, accepted=True, new_cost=new_cost,
                gain_ratio=gain_ratio, damping=damping,
            )

        self.reject()
        logger.debug("Rejected step (gain ratio %.3g); damping %.3e -> %.3e", gain_ratio, damping, self._damping)
        return StepResult(
            step_length=0.0, accepted=False, new_cost=cost,
            gain_ratio=gain_ratio, damping=damping,
        )
