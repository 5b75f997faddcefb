"""Readiness reports, iteration summaries and optimization results."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class OptimizerStatus(str, Enum):
    """States of the optimize loop."""
    READY = "ready"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS = "max_iterations"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (OptimizerStatus.READY, OptimizerStatus.ITERATING)


class ReadinessReport(BaseModel):
    """Nodes that prevent a factor graph from being optimized."""

    uninitialized_variables: List[str] = Field(
        default_factory=list,
        description="Variable nodes whose value contains NaN"
    )
    missing_measurements: List[str] = Field(
        default_factory=list,
        description="Factor nodes whose measurement contains NaN"
    )
    missing_covariances: List[str] = Field(
        default_factory=list,
        description="Factor nodes whose error covariance contains NaN"
    )

    @property
    def is_ready(self) -> bool:
        return not (
            self.uninitialized_variables
            or self.missing_measurements
            or self.missing_covariances
        )

    def describe(self) -> str:
        """One-line description of the findings."""
        if self.is_ready:
            return "ready"

        parts = []
        if self.uninitialized_variables:
            parts.append(f"uninitialized variables {self.uninitialized_variables}")
        if self.missing_measurements:
            parts.append(f"factors without measurements {self.missing_measurements}")
        if self.missing_covariances:
            parts.append(f"factors without error covariances {self.missing_covariances}")
        return "; ".join(parts)


@dataclass
class IterationSummary:
    """Outcome of a single descent iteration."""

    cost_before: float
    cost_after: float
    step_length: float
    accepted: bool
    gradient_norm: float
    directional_derivative: Optional[float] = None
    gain_ratio: Optional[float] = None
    damping: Optional[float] = None
    stationary: bool = False

    @property
    def cost_decrease(self) -> float:
        return self.cost_before - self.cost_after


class OptimizationResult(BaseModel):
    """Results from an optimize run."""

    status: OptimizerStatus = Field(description="Terminal state of the optimize loop")
    success: bool = Field(description="Whether the run converged")
    iterations: int = Field(description="Number of iterations performed")
    initial_cost: float = Field(description="Cost before the first iteration")
    final_cost: float = Field(description="Cost after the last iteration")
    cost_history: List[float] = Field(
        default_factory=list,
        description="Cost before the first iteration followed by the cost after each iteration"
    )
    convergence_reason: str = Field(description="Reason for convergence/termination")
    residuals: Dict[str, float] = Field(
        default_factory=dict,
        description="Per-factor RMS weighted residual"
    )
    largest_residuals: List[tuple[str, float]] = Field(
        default_factory=list,
        description="Largest residuals by factor name"
    )
    statistics: Dict[str, float] = Field(
        default_factory=dict,
        description="Overall weighted residual statistics"
    )
    computation_time: Optional[float] = Field(
        default=None,
        description="Solve time in seconds"
    )

    @field_validator("initial_cost", "final_cost")
    @classmethod
    def validate_cost(cls, v):
        """Ensure costs are JSON serializable."""
        if math.isinf(v) or math.isnan(v):
            return 1e10
        return v

    @field_validator("cost_history")
    @classmethod
    def validate_cost_history(cls, v):
        return [1e10 if (math.isinf(c) or math.isnan(c)) else c for c in v]
