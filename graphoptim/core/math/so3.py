"""SO(3) and SE(3) Lie group operations for rotation and pose variables."""

import numpy as np
from typing import Tuple

_SMALL_ANGLE = 1e-8
_NEAR_PI = 1e-6


def skew_symmetric(v: np.ndarray) -> np.ndarray:
    """Create skew-symmetric matrix from 3D vector."""
    if v.shape != (3,):
        raise ValueError(f"v must be 3-element vector, got shape {v.shape}")

    return np.array([
        [0.0, -v[2], v[1]],
        [v[2], 0.0, -v[0]],
        [-v[1], v[0], 0.0]
    ])


def vee(M: np.ndarray) -> np.ndarray:
    """Extract the 3-vector from a skew-symmetric matrix."""
    return np.array([M[2, 1], M[0, 2], M[1, 0]])


def so3_exp(phi: np.ndarray) -> np.ndarray:
    """Convert so(3) axis-angle vector to a rotation matrix (Rodrigues).

    Args:
        phi: 3-element rotation vector

    Returns:
        3x3 rotation matrix
    """
    if phi.shape != (3,):
        raise ValueError(f"phi must be 3-element vector, got shape {phi.shape}")

    theta = np.linalg.norm(phi)
    K = skew_symmetric(phi)

    if theta < _SMALL_ANGLE:
        # Second-order Taylor expansion
        return np.eye(3) + K + 0.5 * K @ K

    return (
        np.eye(3)
        + (np.sin(theta) / theta) * K
        + ((1.0 - np.cos(theta)) / theta**2) * K @ K
    )


def so3_log(R: np.ndarray) -> np.ndarray:
    """Convert a rotation matrix to its so(3) rotation vector.

    Args:
        R: 3x3 rotation matrix

    Returns:
        3-element rotation vector with norm in [0, pi]
    """
    if R.shape != (3, 3):
        raise ValueError(f"R must be 3x3 matrix, got shape {R.shape}")

    cos_theta = np.clip((np.trace(R) - 1.0) / 2.0, -1.0, 1.0)
    theta = np.arccos(cos_theta)

    if theta < _SMALL_ANGLE:
        return 0.5 * vee(R - R.T)

    if np.pi - theta < _NEAR_PI:
        # sin(theta) vanishes; recover the axis from the symmetric part
        B = 0.5 * (R + np.eye(3))
        i = int(np.argmax(np.diag(B)))
        axis = B[:, i] / np.sqrt(max(B[i, i], 1e-300))
        axis = axis / np.linalg.norm(axis)
        return theta * axis

    return (theta / (2.0 * np.sin(theta))) * vee(R - R.T)


def so3_left_jacobian(phi: np.ndarray) -> np.ndarray:
    """Left Jacobian of SO(3), the V matrix of the SE(3) exponential."""
    theta = np.linalg.norm(phi)
    K = skew_symmetric(phi)

    if theta < _SMALL_ANGLE:
        return np.eye(3) + 0.5 * K + (1.0 / 6.0) * K @ K

    return (
        np.eye(3)
        + ((1.0 - np.cos(theta)) / theta**2) * K
        + ((theta - np.sin(theta)) / theta**3) * K @ K
    )


def so3_left_jacobian_inverse(phi: np.ndarray) -> np.ndarray:
    """Inverse of the SO(3) left Jacobian."""
    theta = np.linalg.norm(phi)
    K = skew_symmetric(phi)

    if theta < _SMALL_ANGLE:
        return np.eye(3) - 0.5 * K + (1.0 / 12.0) * K @ K

    coeff = 1.0 / theta**2 - (1.0 + np.cos(theta)) / (2.0 * theta * np.sin(theta))
    return np.eye(3) - 0.5 * K + coeff * K @ K


def se3_exp(xi: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Convert se(3) algebra element to SE(3) group (R, t).

    Args:
        xi: 6-element vector [rho, phi] where rho is translation, phi is rotation

    Returns:
        Tuple of (R, t) where R is 3x3 rotation matrix, t is 3-element translation
    """
    if xi.shape != (6,):
        raise ValueError(f"xi must be 6-element vector, got shape {xi.shape}")

    rho = xi[:3]
    phi = xi[3:]

    R = so3_exp(phi)
    t = so3_left_jacobian(phi) @ rho
    return R, t


def se3_log(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Convert SE(3) group element (R, t) to se(3) algebra.

    Args:
        R: 3x3 rotation matrix
        t: 3-element translation vector

    Returns:
        6-element se(3) vector [rho, phi]
    """
    if t.shape != (3,):
        raise ValueError(f"t must be 3-element vector, got shape {t.shape}")

    phi = so3_log(R)
    rho = so3_left_jacobian_inverse(phi) @ t
    return np.concatenate([rho, phi])


def compose(R1: np.ndarray, t1: np.ndarray, R2: np.ndarray, t2: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Compose two SE(3) transformations: T1 * T2."""
    R = R1 @ R2
    t = R1 @ t2 + t1
    return R, t


def invert(R: np.ndarray, t: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Invert SE(3) transformation."""
    R_inv = R.T
    t_inv = -R_inv @ t
    return R_inv, t_inv


def to_homogeneous(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """Stack (R, t) into a 4x4 homogeneous transform."""
    T = np.eye(4)
    T[:3, :3] = R
    T[:3, 3] = t
    return T


def from_homogeneous(T: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Split a 4x4 homogeneous transform into (R, t)."""
    if T.shape != (4, 4):
        raise ValueError(f"T must be 4x4 matrix, got shape {T.shape}")
    return T[:3, :3].copy(), T[:3, 3].copy()
