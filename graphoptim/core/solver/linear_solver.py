"""Search-direction computation from the weighted least-squares system.

Gauss-Newton solves ``min ||J d + r||^2``; Levenberg-Marquardt solves the
damped normal equations ``(J^T J + lambda D) d = -J^T r`` with
``D = diag(J^T J)`` clamped to ``[min_diagonal, max_diagonal]``.

Both solvers stay sparse. ``"cholesky"`` factors the normal matrix with
CHOLMOD (AMD ordering when reordering is on). ``"qr"`` never forms
``J^T J``: it factors the augmented system

    [ I    J           ] [s]   [-r]
    [ J^T  -lambda D   ] [d] = [ 0]

with SuperLU under a COLAMD column ordering.
"""

import logging
import numpy as np
import sksparse.cholmod as cholmod
from typing import Optional
from scipy.sparse import bmat, csr_matrix, diags, identity
from scipy.sparse.linalg import splu

from ..errors import SingularSystemError
from ..models.settings import LinearSolverKind, OptimizationScheme

logger = logging.getLogger(__name__)

_EPS = np.finfo(float).eps


def damping_diagonal(
    jacobian: csr_matrix,
    min_diagonal: float = 1e-6,
    max_diagonal: float = 1e32
) -> np.ndarray:
    """Clamped diagonal of J^T J used to scale the damping term."""
    diagonal = np.asarray(jacobian.multiply(jacobian).sum(axis=0)).ravel()
    return np.clip(diagonal, min_diagonal, max_diagonal)


def solve_linear_system(
    residual: np.ndarray,
    jacobian: csr_matrix,
    optimization_scheme: OptimizationScheme = "gauss_newton",
    linear_solver: LinearSolverKind = "qr",
    use_reordering: bool = True,
    damping: Optional[float] = None,
    min_diagonal: float = 1e-6,
    max_diagonal: float = 1e32
) -> np.ndarray:
    """Compute the search direction.

    Args:
        residual: Weighted residual vector
        jacobian: Sparse weighted Jacobian
        optimization_scheme: "gauss_newton" or "levenberg_marquardt"
        linear_solver: "qr" or "cholesky"
        use_reordering: Use a fill-reducing ordering inside the sparse factorization
        damping: Levenberg-Marquardt damping (required for that scheme)
        min_diagonal: Lower clamp on the damping diagonal
        max_diagonal: Upper clamp on the damping diagonal

    Returns:
        Search direction in the Jacobian's column order

    Raises:
        SingularSystemError: If the system is singular, indefinite or underdetermined
    """
    n_columns = jacobian.shape[1]
    if residual.shape != (jacobian.shape[0],):
        raise ValueError(
            f"Residual length {residual.shape} does not match Jacobian rows {jacobian.shape[0]}"
        )
    if n_columns == 0:
        return np.zeros(0)

    if optimization_scheme == "levenberg_marquardt":
        if damping is None:
            raise ValueError("Levenberg-Marquardt requires a damping value")
    elif optimization_scheme == "gauss_newton":
        damping = None
    else:
        raise ValueError(f"Unknown optimization scheme: {optimization_scheme}")

    J = csr_matrix(jacobian)

    damping_terms = None
    if damping is not None:
        damping_terms = damping * damping_diagonal(J, min_diagonal, max_diagonal)

    if linear_solver == "qr":
        search_direction = _solve_augmented(residual, J, damping_terms, use_reordering)
    elif linear_solver == "cholesky":
        search_direction = _solve_cholesky(residual, J, damping_terms, use_reordering)
    else:
        raise ValueError(f"Unknown linear solver: {linear_solver}")

    if not np.all(np.isfinite(search_direction)):
        raise SingularSystemError("Search direction has non-finite entries")

    return search_direction


def _solve_augmented(
    residual: np.ndarray,
    J: csr_matrix,
    damping_terms: Optional[np.ndarray],
    use_reordering: bool
) -> np.ndarray:
    """Least squares through a sparse LU factorization of the augmented system."""
    m, n = J.shape
    if damping_terms is None and m < n:
        raise SingularSystemError(f"Underdetermined system: {m} residuals for {n} unknowns")

    lower_right = None if damping_terms is None else diags(-damping_terms)
    K = bmat([[identity(m), J], [J.T, lower_right]], format="csc")
    rhs = np.concatenate([-residual, np.zeros(n)])

    try:
        lu = splu(K, permc_spec="COLAMD" if use_reordering else "NATURAL")
    except RuntimeError as e:
        raise SingularSystemError(f"Weighted Jacobian is rank deficient ({e})") from e

    u_diag = np.abs(lu.U.diagonal())
    if u_diag.min() <= (m + n) * _EPS * u_diag.max():
        raise SingularSystemError(
            f"Weighted Jacobian is rank deficient (smallest |U_ii| = {u_diag.min():.3e})"
        )

    logger.debug(
        "LU factor of %dx%d augmented system has %d non-zeros",
        m + n, m + n, lu.L.nnz + lu.U.nnz,
    )

    return lu.solve(rhs)[m:]


def _solve_cholesky(
    residual: np.ndarray,
    J: csr_matrix,
    damping_terms: Optional[np.ndarray],
    use_reordering: bool
) -> np.ndarray:
    """Solve the (damped) normal equations through a sparse Cholesky factorization."""
    A = (J.T @ J).tocsc()
    b = J.T @ residual
    n = A.shape[0]

    if damping_terms is not None:
        A = (A + diags(damping_terms)).tocsc()
    A.sort_indices()

    try:
        factor = cholmod.cholesky(A, ordering_method="amd" if use_reordering else "natural")
    except cholmod.CholmodError as e:
        raise SingularSystemError(f"Normal matrix is not positive-definite ({e})") from e

    pivots = factor.D()
    if not np.all(np.isfinite(pivots)) or pivots.min() <= n * _EPS * pivots.max():
        raise SingularSystemError(
            f"Normal matrix is numerically singular (smallest pivot = {pivots.min():.3e})"
        )

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("Cholesky factor of %dx%d normal matrix has %d non-zeros", n, n, factor.L().nnz)

    return -factor.solve_A(b)
