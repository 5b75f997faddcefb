"""Factor node interface."""

import numpy as np
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..math.jacobians import manifold_jacobian
from ..nodes.base import VariableNode


class FactorNode(ABC):
    """Measurement constraining one or more variable nodes.

    A factor owns a measurement, an error covariance and an error function
    ``measurement ⊖ predicted`` of the connected variables' values. Missing
    measurements and covariances are filled with NaN.
    """

    def __init__(
        self,
        name: str,
        variable_names: Sequence[str],
        error_dim: int,
        measurement: Optional[np.ndarray] = None,
        err_cov: Optional[np.ndarray] = None
    ):
        """Initialize factor.

        Args:
            name: Unique factor name within a factor graph
            variable_names: Ordered names of the connected variables
            error_dim: Dimension of the error vector
            measurement: Measurement (None leaves it missing)
            err_cov: Error covariance, error_dim x error_dim (None leaves it missing)
        """
        variable_names = list(variable_names)
        if not variable_names:
            raise ValueError(f"Factor {name} must connect at least one variable")
        if len(set(variable_names)) != len(variable_names):
            raise ValueError(f"Factor {name} connects the same variable more than once")

        self.name = name
        self.variable_names: List[str] = variable_names
        self._error_dim = error_dim

        self._measurement = np.full(self.measurement_shape, np.nan)
        self._err_cov = np.full((error_dim, error_dim), np.nan)

        if measurement is not None:
            self.measurement = measurement
        if err_cov is not None:
            self.err_cov = err_cov

    @property
    def type(self) -> str:
        """Factor type identifier."""
        return type(self).__name__

    @property
    def error_dim(self) -> int:
        """Dimension of the error vector."""
        return self._error_dim

    @property
    def measurement_shape(self) -> Tuple[int, ...]:
        """Array shape of the measurement."""
        return (self._error_dim,)

    @property
    def measurement(self) -> np.ndarray:
        return self._measurement

    @measurement.setter
    def measurement(self, measurement: np.ndarray) -> None:
        measurement = np.array(measurement, dtype=float)
        if measurement.shape != self.measurement_shape:
            raise ValueError(
                f"Factor {self.name}: measurement shape {measurement.shape} "
                f"!= expected shape {self.measurement_shape}"
            )
        self._measurement = measurement

    @property
    def err_cov(self) -> np.ndarray:
        return self._err_cov

    @err_cov.setter
    def err_cov(self, err_cov: np.ndarray) -> None:
        err_cov = np.array(err_cov, dtype=float)
        if err_cov.ndim == 0:
            err_cov = err_cov * np.eye(self._error_dim)
        if err_cov.shape != (self._error_dim, self._error_dim):
            raise ValueError(
                f"Factor {self.name}: err_cov shape {err_cov.shape} "
                f"!= expected shape {(self._error_dim, self._error_dim)}"
            )
        self._err_cov = err_cov

    @abstractmethod
    def compute_error(self, values: Mapping[str, np.ndarray]) -> np.ndarray:
        """Compute the error given variable values.

        Args:
            values: Mapping from variable names to their values

        Returns:
            Error vector of length error_dim
        """
        pass

    def compute_jacobians(
        self,
        values: Mapping[str, np.ndarray],
        nodes: Mapping[str, VariableNode]
    ) -> Dict[str, np.ndarray]:
        """Compute error Jacobians with respect to each variable's local increment.

        The default uses central differences through each variable's
        ``oplus``. Factors with closed-form derivatives override this.

        Args:
            values: Mapping from variable names to their values
            nodes: Mapping from variable names to the variable nodes

        Returns:
            Dictionary mapping variable names to (error_dim x dof) blocks
        """
        jacobians = {}

        for var_name in self.variable_names:
            node = nodes[var_name]

            def error_at(value, var_name=var_name):
                perturbed = dict(values)
                perturbed[var_name] = value
                return self.compute_error(perturbed)

            jacobians[var_name] = manifold_jacobian(
                error_at, node.oplus, values[var_name], node.dof
            )

        return jacobians

    def __repr__(self) -> str:
        return f"{self.type}(name={self.name!r}, variables={self.variable_names!r})"
