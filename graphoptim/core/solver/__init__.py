"""Nonlinear least-squares solvers for factor graphs."""

from .graph_optimizer import GraphOptimizer
from .linear_solver import solve_linear_system, damping_diagonal
from .step_length import StepLengthController, StepResult, predicted_cost_reduction
from .diagnostics import SolveDiagnostics, analyze_jacobian_rank, find_unconstrained_variables

__all__ = [
    "GraphOptimizer",
    "solve_linear_system",
    "damping_diagonal",
    "StepLengthController",
    "StepResult",
    "predicted_cost_reduction",
    "SolveDiagnostics",
    "analyze_jacobian_rank",
    "find_unconstrained_variables",
]
