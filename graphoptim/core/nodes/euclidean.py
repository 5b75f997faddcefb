"""Euclidean variable nodes."""

import numpy as np
from typing import Optional, Tuple

from .base import VariableNode


class NodeRn(VariableNode):
    """Variable on R^n. Increments are applied additively."""

    def __init__(
        self,
        name: str,
        value: Optional[np.ndarray] = None,
        dim: int = 2,
        is_constant: bool = False
    ):
        super().__init__(name, dim, dim, value=value, is_constant=is_constant)

    @property
    def value_shape(self) -> Tuple[int, ...]:
        return (self.dim,)

    def oplus(self, value: np.ndarray, increment: np.ndarray) -> np.ndarray:
        return np.asarray(value, dtype=float) + np.asarray(increment, dtype=float)

    def ominus(self, value: np.ndarray, other: np.ndarray) -> np.ndarray:
        return np.asarray(other, dtype=float) - np.asarray(value, dtype=float)

    def identity(self) -> np.ndarray:
        return np.zeros(self.dim)


class NodeR2(NodeRn):
    """Variable on R^2."""

    def __init__(self, name: str, value: Optional[np.ndarray] = None, is_constant: bool = False):
        super().__init__(name, value=value, dim=2, is_constant=is_constant)


class NodeR3(NodeRn):
    """Variable on R^3."""

    def __init__(self, name: str, value: Optional[np.ndarray] = None, is_constant: bool = False):
        super().__init__(name, value=value, dim=3, is_constant=is_constant)
