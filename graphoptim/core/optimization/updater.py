"""Application of search directions to manifold-valued variables."""

import numpy as np
from typing import Dict

from .builder import VariableOrdering
from .factor_graph import FactorGraph
from ..errors import InvalidIncrementError


def retract_values(
    factor_graph: FactorGraph,
    search_direction: np.ndarray,
    step_length: float,
    ordering: VariableOrdering
) -> Dict[str, np.ndarray]:
    """Compute the values the variables would take after a step.

    The graph is not modified.

    Args:
        factor_graph: Factor graph
        search_direction: Stacked increment, laid out by ``ordering``
        step_length: Scale applied to the increment
        ordering: Variable-to-column mapping used to compute the direction

    Returns:
        Dictionary mapping free variable names to their new values

    Raises:
        InvalidIncrementError: If a scaled increment or resulting value is invalid
    """
    if search_direction.shape != (ordering.total_dof,):
        raise ValueError(
            f"Search direction length {search_direction.shape} != ordering size {ordering.total_dof}"
        )

    new_values = {}

    for var_name in ordering.names:
        variable = factor_graph.variables[var_name]
        increment = step_length * search_direction[ordering.slice(var_name)]

        if not variable.is_valid_increment(increment):
            raise InvalidIncrementError(var_name, f"invalid increment {increment}")

        new_value = variable.oplus(variable.value, increment)
        if not variable.is_valid_value(new_value):
            raise InvalidIncrementError(var_name, "increment produced an invalid value")

        new_values[var_name] = new_value

    return new_values


def update_graph(
    factor_graph: FactorGraph,
    search_direction: np.ndarray,
    step_length: float,
    ordering: VariableOrdering
) -> None:
    """Apply ``step_length * search_direction`` to every free variable.

    All new values are computed and validated before any variable is
    written, so a failing update leaves the graph untouched.
    """
    new_values = retract_values(factor_graph, search_direction, step_length, ordering)
    factor_graph.set_values(new_values)
