"""Rotation and pose variable nodes on SO(3) and SE(3).

Increments are right-multiplied: ``oplus(X, xi) = X * Exp(xi)`` and
``ominus(X, Y) = Log(X^-1 * Y)``.
"""

import numpy as np
from typing import Optional, Tuple

from .base import VariableNode
from ..math.so3 import (
    so3_exp,
    so3_log,
    se3_exp,
    se3_log,
    compose,
    invert,
    to_homogeneous,
    from_homogeneous,
)

_ORTHONORMAL_TOL = 1e-6


def _is_rotation(R: np.ndarray) -> bool:
    return (
        np.allclose(R.T @ R, np.eye(3), atol=_ORTHONORMAL_TOL)
        and abs(np.linalg.det(R) - 1.0) < _ORTHONORMAL_TOL
    )


class NodeSO3(VariableNode):
    """3D rotation stored as a 3x3 rotation matrix."""

    def __init__(self, name: str, value: Optional[np.ndarray] = None, is_constant: bool = False):
        super().__init__(name, 9, 3, value=value, is_constant=is_constant)

    @property
    def value_shape(self) -> Tuple[int, ...]:
        return (3, 3)

    def oplus(self, value: np.ndarray, increment: np.ndarray) -> np.ndarray:
        return np.asarray(value, dtype=float) @ so3_exp(np.asarray(increment, dtype=float))

    def ominus(self, value: np.ndarray, other: np.ndarray) -> np.ndarray:
        return so3_log(np.asarray(value, dtype=float).T @ np.asarray(other, dtype=float))

    def identity(self) -> np.ndarray:
        return np.eye(3)

    def is_valid_value(self, value) -> bool:
        if not super().is_valid_value(value):
            return False
        return _is_rotation(np.asarray(value, dtype=float))


class NodeSE3(VariableNode):
    """3D pose stored as a 4x4 homogeneous transform.

    Increments are ordered [rho, phi] (translation first).
    """

    def __init__(self, name: str, value: Optional[np.ndarray] = None, is_constant: bool = False):
        super().__init__(name, 16, 6, value=value, is_constant=is_constant)

    @property
    def value_shape(self) -> Tuple[int, ...]:
        return (4, 4)

    def oplus(self, value: np.ndarray, increment: np.ndarray) -> np.ndarray:
        R, t = from_homogeneous(np.asarray(value, dtype=float))
        dR, dt = se3_exp(np.asarray(increment, dtype=float))
        return to_homogeneous(*compose(R, t, dR, dt))

    def ominus(self, value: np.ndarray, other: np.ndarray) -> np.ndarray:
        R1, t1 = from_homogeneous(np.asarray(value, dtype=float))
        R2, t2 = from_homogeneous(np.asarray(other, dtype=float))
        R_inv, t_inv = invert(R1, t1)
        return se3_log(*compose(R_inv, t_inv, R2, t2))

    def identity(self) -> np.ndarray:
        return np.eye(4)

    def is_valid_value(self, value) -> bool:
        if not super().is_valid_value(value):
            return False
        T = np.asarray(value, dtype=float)
        return _is_rotation(T[:3, :3]) and np.allclose(T[3], [0.0, 0.0, 0.0, 1.0])
