"""Manifold node interface and variable nodes."""

import numpy as np
from abc import ABC, abstractmethod
from typing import Optional, Tuple


class ManifoldNode(ABC):
    """Capability contract every node type on a manifold implements.

    A manifold node knows the size of its ambient representation (``dim``),
    the size of its local tangent space (``dof``), how to apply a local
    increment (``oplus``) and how to recover one (``ominus``). It carries no
    optimizer logic.
    """

    def __init__(self, dim: int, dof: int):
        """Initialize node dimensions.

        Args:
            dim: Ambient representation size
            dof: Local tangent-space size
        """
        if dof > dim:
            raise ValueError(f"dof ({dof}) cannot exceed dim ({dim})")
        self._dim = dim
        self._dof = dof

    @property
    def type(self) -> str:
        """Node type identifier."""
        return type(self).__name__

    @property
    def dim(self) -> int:
        """Ambient representation size."""
        return self._dim

    @property
    def dof(self) -> int:
        """Degrees of freedom of the local increment."""
        return self._dof

    @property
    @abstractmethod
    def value_shape(self) -> Tuple[int, ...]:
        """Array shape of a value of this manifold."""
        pass

    @abstractmethod
    def oplus(self, value: np.ndarray, increment: np.ndarray) -> np.ndarray:
        """Apply a dof-sized local increment and return the new value."""
        pass

    @abstractmethod
    def ominus(self, value: np.ndarray, other: np.ndarray) -> np.ndarray:
        """Local increment taking value to other.

        Inverse of ``oplus``: ``oplus(value, ominus(value, other)) == other``.
        """
        pass

    @abstractmethod
    def identity(self) -> np.ndarray:
        """A valid default element of the manifold."""
        pass

    def is_valid_value(self, value) -> bool:
        """Check that value has the right shape and only finite entries."""
        return _is_finite_array(value, self.value_shape)

    def is_valid_increment(self, increment) -> bool:
        """Check that increment is a finite dof-sized vector."""
        return _is_finite_array(increment, (self.dof,))


class VariableNode(ManifoldNode):
    """Unknown quantity on a manifold holding its current estimate.

    An uninitialized value is filled with NaN in every entry.
    """

    def __init__(
        self,
        name: str,
        dim: int,
        dof: int,
        value: Optional[np.ndarray] = None,
        is_constant: bool = False
    ):
        """Initialize variable node.

        Args:
            name: Unique node name within a factor graph
            dim: Ambient representation size
            dof: Local tangent-space size
            value: Initial value (None leaves the node uninitialized)
            is_constant: Keep the value fixed during optimization
        """
        super().__init__(dim, dof)
        self.name = name
        self.is_constant = is_constant
        self._value = np.full(self.value_shape, np.nan)

        if value is not None:
            self.set_value(value)

    @property
    def value(self) -> np.ndarray:
        """Current estimate."""
        return self._value

    @value.setter
    def value(self, value: np.ndarray) -> None:
        self.set_value(value)

    def set_value(self, value: np.ndarray) -> None:
        """Set value with shape validation.

        NaN entries are allowed so that a node can be reset to the
        uninitialized sentinel.
        """
        value = np.array(value, dtype=float)
        if value.shape != self.value_shape:
            raise ValueError(
                f"Variable {self.name}: value shape {value.shape} != expected shape {self.value_shape}"
            )
        self._value = value

    def get_value(self) -> np.ndarray:
        """Get a copy of the current value."""
        return self._value.copy()

    def is_initialized(self) -> bool:
        """Check if the value holds no NaN entry."""
        return not np.any(np.isnan(self._value))

    def clear(self) -> None:
        """Reset the value to the uninitialized sentinel."""
        self._value = np.full(self.value_shape, np.nan)

    def __repr__(self) -> str:
        return f"{self.type}(name={self.name!r}, value={self._value.tolist()!r})"


def _is_finite_array(array, shape: Tuple[int, ...]) -> bool:
    try:
        array = np.asarray(array, dtype=float)
    except (TypeError, ValueError):
        return False
    return array.shape == shape and bool(np.all(np.isfinite(array)))
