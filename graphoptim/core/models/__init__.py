"""Configuration and result models."""

from .settings import OptimizerSettings, OptimizationScheme, LinearSolverKind
from .results import (
    OptimizerStatus,
    ReadinessReport,
    IterationSummary,
    OptimizationResult,
)

__all__ = [
    "OptimizerSettings",
    "OptimizationScheme",
    "LinearSolverKind",
    "OptimizerStatus",
    "ReadinessReport",
    "IterationSummary",
    "OptimizationResult",
]
