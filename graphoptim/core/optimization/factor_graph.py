"""Factor graph container."""

import numpy as np
from typing import Any, Dict, List, Union

from ..factors.base import FactorNode
from ..nodes.base import VariableNode


class FactorGraph:
    """Bipartite graph of variable nodes and factor nodes.

    Names are unique across both node sets and every factor may only
    reference variables already in the graph.
    """

    def __init__(self):
        """Initialize empty factor graph."""
        self.variables: Dict[str, VariableNode] = {}
        self.factors: Dict[str, FactorNode] = {}
        self._variable_ordering: List[str] = []
        self._factor_ordering: List[str] = []

    def add_variable(self, variable: VariableNode) -> None:
        """Add a variable to the graph.

        Args:
            variable: Variable to add
        """
        if variable.name in self.variables or variable.name in self.factors:
            raise ValueError(f"Node {variable.name} already exists")

        self.variables[variable.name] = variable
        self._variable_ordering.append(variable.name)

    def add_factor(self, factor: FactorNode) -> None:
        """Add a factor to the graph.

        Args:
            factor: Factor to add
        """
        if factor.name in self.factors or factor.name in self.variables:
            raise ValueError(f"Node {factor.name} already exists")

        # Check that all referenced variables exist
        for var_name in factor.variable_names:
            if var_name not in self.variables:
                raise ValueError(f"Factor {factor.name} references unknown variable {var_name}")

        self.factors[factor.name] = factor
        self._factor_ordering.append(factor.name)

    def add_variables(self, *variables: VariableNode) -> None:
        for variable in variables:
            self.add_variable(variable)

    def add_factors(self, *factors: FactorNode) -> None:
        for factor in factors:
            self.add_factor(factor)

    def node(self, name: str) -> Union[VariableNode, FactorNode]:
        """Get a variable or factor node by name."""
        if name in self.variables:
            return self.variables[name]
        if name in self.factors:
            return self.factors[name]
        raise ValueError(f"Node {name} not found")

    def get_variable(self, name: str) -> VariableNode:
        """Get variable by name."""
        if name not in self.variables:
            raise ValueError(f"Variable {name} not found")
        return self.variables[name]

    def get_factor(self, name: str) -> FactorNode:
        """Get factor by name."""
        if name not in self.factors:
            raise ValueError(f"Factor {name} not found")
        return self.factors[name]

    def get_variable_names(self) -> List[str]:
        """Get list of all variable names in declaration order."""
        return self._variable_ordering.copy()

    def get_factor_names(self) -> List[str]:
        """Get list of all factor names in declaration order."""
        return self._factor_ordering.copy()

    def get_connected_factors(self, variable_name: str) -> List[str]:
        """Get names of the factors that reference a variable."""
        self.get_variable(variable_name)
        return [
            factor_name for factor_name in self._factor_ordering
            if variable_name in self.factors[factor_name].variable_names
        ]

    def values(self) -> Dict[str, np.ndarray]:
        """Snapshot of every variable's current value."""
        return {
            name: self.variables[name].get_value()
            for name in self._variable_ordering
        }

    def set_values(self, values: Dict[str, np.ndarray]) -> None:
        """Assign values to variables by name."""
        for name, value in values.items():
            self.get_variable(name).set_value(value)

    def summary(self) -> Dict[str, Any]:
        """Get summary information about the factor graph.

        Returns:
            Dictionary with graph statistics
        """
        var_type_counts: Dict[str, int] = {}
        total_dof = 0
        constant_vars = 0

        for variable in self.variables.values():
            var_type_counts[variable.type] = var_type_counts.get(variable.type, 0) + 1
            if variable.is_constant:
                constant_vars += 1
            else:
                total_dof += variable.dof

        factor_type_counts: Dict[str, int] = {}
        total_error_dim = 0

        for factor in self.factors.values():
            factor_type_counts[factor.type] = factor_type_counts.get(factor.type, 0) + 1
            total_error_dim += factor.error_dim

        return {
            "variables": {
                "total": len(self.variables),
                "constant": constant_vars,
                "free": len(self.variables) - constant_vars,
                "total_dof": total_dof,
                "by_type": var_type_counts
            },
            "factors": {
                "total": len(self.factors),
                "total_error_dim": total_error_dim,
                "by_type": factor_type_counts
            }
        }
