"""Concrete factor types."""

import numpy as np
from typing import Dict, Mapping, Optional, Tuple

from .base import FactorNode
from ..nodes.base import VariableNode
from ..nodes.euclidean import NodeRn


class PriorFactor(FactorNode):
    """Absolute measurement of a single variable.

    The measurement is an element of the variable's manifold and the error
    is the local increment from the current value to the measurement.
    """

    def __init__(
        self,
        name: str,
        variable: VariableNode,
        measurement: Optional[np.ndarray] = None,
        err_cov: Optional[np.ndarray] = None
    ):
        """Initialize prior factor.

        Args:
            name: Unique factor name
            variable: Constrained variable node
            measurement: Measured value on the variable's manifold
            err_cov: Error covariance (dof x dof)
        """
        self.variable = variable
        super().__init__(name, [variable.name], variable.dof, measurement, err_cov)

    @property
    def measurement_shape(self) -> Tuple[int, ...]:
        return self.variable.value_shape

    def compute_error(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        return self.variable.ominus(values[self.variable.name], self.measurement)

    def compute_jacobians(self, values, nodes) -> Dict[str, np.ndarray]:
        if isinstance(self.variable, NodeRn):
            return {self.variable.name: -np.eye(self.variable.dof)}
        return super().compute_jacobians(values, nodes)


class EuclideanBetweenFactor(FactorNode):
    """Relative measurement b - a between two Euclidean variables."""

    def __init__(
        self,
        name: str,
        variable_a: NodeRn,
        variable_b: NodeRn,
        measurement: Optional[np.ndarray] = None,
        err_cov: Optional[np.ndarray] = None
    ):
        if variable_a.dim != variable_b.dim:
            raise ValueError(
                f"Factor {name}: variable dimensions differ ({variable_a.dim} vs {variable_b.dim})"
            )
        self.variable_a = variable_a.name
        self.variable_b = variable_b.name
        super().__init__(name, [variable_a.name, variable_b.name], variable_a.dim, measurement, err_cov)

    def compute_error(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        predicted = values[self.variable_b] - values[self.variable_a]
        return self.measurement - predicted

    def compute_jacobians(self, values, nodes) -> Dict[str, np.ndarray]:
        identity = np.eye(self.error_dim)
        return {
            self.variable_a: identity,
            self.variable_b: -identity,
        }


class BetweenFactor(FactorNode):
    """Relative measurement between two variables on the same manifold.

    The measurement is a local increment (tangent vector) from a to b.
    Jacobians are computed numerically.
    """

    def __init__(
        self,
        name: str,
        variable_a: VariableNode,
        variable_b: VariableNode,
        measurement: Optional[np.ndarray] = None,
        err_cov: Optional[np.ndarray] = None
    ):
        if variable_a.type != variable_b.type or variable_a.dof != variable_b.dof:
            raise ValueError(
                f"Factor {name}: variables must share a manifold "
                f"({variable_a.type} vs {variable_b.type})"
            )
        self.manifold = variable_a
        self.variable_a = variable_a.name
        self.variable_b = variable_b.name
        super().__init__(name, [variable_a.name, variable_b.name], variable_a.dof, measurement, err_cov)

    def compute_error(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        predicted = self.manifold.ominus(values[self.variable_a], values[self.variable_b])
        return self.measurement - predicted


class RangeFactor(FactorNode):
    """Scalar distance measurement between two Euclidean variables."""

    def __init__(
        self,
        name: str,
        variable_a: NodeRn,
        variable_b: NodeRn,
        measurement: Optional[np.ndarray] = None,
        err_cov: Optional[np.ndarray] = None
    ):
        if variable_a.dim != variable_b.dim:
            raise ValueError(
                f"Factor {name}: variable dimensions differ ({variable_a.dim} vs {variable_b.dim})"
            )
        self.variable_a = variable_a.name
        self.variable_b = variable_b.name
        if measurement is not None:
            measurement = np.atleast_1d(measurement)
        super().__init__(name, [variable_a.name, variable_b.name], 1, measurement, err_cov)

    def compute_error(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        distance = np.linalg.norm(values[self.variable_b] - values[self.variable_a])
        return self.measurement - np.array([distance])

    def compute_jacobians(self, values, nodes) -> Dict[str, np.ndarray]:
        diff = values[self.variable_b] - values[self.variable_a]
        # Direction is undefined for coincident points
        direction = diff / max(np.linalg.norm(diff), 1e-12)
        return {
            self.variable_a: direction.reshape(1, -1),
            self.variable_b: -direction.reshape(1, -1),
        }
