"""Factor graph container and linearization."""

from .factor_graph import FactorGraph
from .readiness import check_factor_graph
from .builder import (
    VariableOrdering,
    WeightedSystem,
    whitening_matrix,
    compute_weighted_errors,
    evaluate_cost,
    build_weighted_system,
)
from .updater import retract_values, update_graph

__all__ = [
    "FactorGraph",
    "check_factor_graph",
    "VariableOrdering",
    "WeightedSystem",
    "whitening_matrix",
    "compute_weighted_errors",
    "evaluate_cost",
    "build_weighted_system",
    "retract_values",
    "update_graph",
]
