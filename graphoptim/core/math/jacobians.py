"""Jacobian computation utilities."""

import numpy as np
from typing import Callable


def finite_difference_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    h: float = 1e-7,
    method: str = "central"
) -> np.ndarray:
    """Compute Jacobian of a function of a flat vector using finite differences.

    Args:
        func: Function that takes x and returns residual vector
        x: Input parameters
        h: Step size for finite differences
        method: Finite difference method ("forward", "backward", "central")

    Returns:
        Jacobian matrix J where J[i,j] = df_i/dx_j
    """
    x = np.atleast_1d(np.asarray(x, dtype=float))
    return manifold_jacobian(func, lambda value, xi: value + xi, x, len(x), h=h, method=method)


def manifold_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    oplus: Callable[[np.ndarray, np.ndarray], np.ndarray],
    value: np.ndarray,
    dof: int,
    h: float = 1e-7,
    method: str = "central"
) -> np.ndarray:
    """Compute Jacobian of func with respect to a local increment of value.

    The perturbation is applied through the manifold increment operator, so
    column j is d func(oplus(value, xi)) / d xi_j evaluated at xi = 0.

    Args:
        func: Function of a manifold value returning a vector
        oplus: Increment operator (value, increment) -> value
        value: Linearization point on the manifold
        dof: Size of the local increment
        h: Step size for finite differences
        method: Finite difference method ("forward", "backward", "central")

    Returns:
        Jacobian matrix of shape (len(func(value)), dof)
    """
    f0 = np.atleast_1d(func(value))

    m = len(f0)
    J = np.zeros((m, dof))

    for j in range(dof):
        xi = np.zeros(dof)
        xi[j] = h

        if method == "forward":
            f_plus = np.atleast_1d(func(oplus(value, xi)))
            J[:, j] = (f_plus - f0) / h
        elif method == "backward":
            f_minus = np.atleast_1d(func(oplus(value, -xi)))
            J[:, j] = (f0 - f_minus) / h
        elif method == "central":
            f_plus = np.atleast_1d(func(oplus(value, xi)))
            f_minus = np.atleast_1d(func(oplus(value, -xi)))
            J[:, j] = (f_plus - f_minus) / (2 * h)
        else:
            raise ValueError(f"Unknown finite difference method: {method}")

    return J


def check_jacobian(
    func: Callable[[np.ndarray], np.ndarray],
    jacobian_func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    h: float = 1e-7,
    atol: float = 1e-6,
    rtol: float = 1e-6
) -> tuple[bool, float, np.ndarray]:
    """Check analytic Jacobian against finite differences.

    Args:
        func: Function that computes residuals
        jacobian_func: Function that computes analytic Jacobian
        x: Input parameters
        h: Step size for finite differences
        atol: Absolute tolerance
        rtol: Relative tolerance

    Returns:
        Tuple of (is_correct, max_error, error_matrix)
    """
    J_analytic = jacobian_func(x)
    J_numeric = finite_difference_jacobian(func, x, h)

    error = np.abs(J_analytic - J_numeric)
    max_error = float(np.max(error)) if error.size else 0.0

    is_correct = np.allclose(J_analytic, J_numeric, atol=atol, rtol=rtol)

    return is_correct, max_error, error
