"""Solver diagnostics and analysis tools."""

import numpy as np
from typing import Any, Dict, List, Tuple, Union
from scipy.linalg import svd
from scipy.sparse import issparse, spmatrix

from ..optimization.builder import VariableOrdering, WeightedSystem


class SolveDiagnostics:
    """Diagnostics for a linearized factor graph."""

    def __init__(self, top_k: int = 10):
        """Initialize diagnostics.

        Args:
            top_k: Number of largest residuals to report
        """
        self.top_k = top_k

    def compute_diagnostics(self, system: WeightedSystem) -> Dict[str, Any]:
        """Compute per-factor residuals and overall statistics.

        Args:
            system: Weighted system of the final graph state

        Returns:
            Dictionary with diagnostic information
        """
        per_factor = self._compute_per_factor_residuals(system)

        largest = sorted(per_factor.items(), key=lambda item: item[1], reverse=True)

        return {
            "residuals": per_factor,
            "largest_residuals": largest[:self.top_k],
            "statistics": self._compute_statistics(system.residual),
        }

    def _compute_per_factor_residuals(self, system: WeightedSystem) -> Dict[str, float]:
        """RMS weighted residual for each factor."""
        per_factor_residuals = {}

        for factor_name, rows in system.row_offsets.items():
            factor_residuals = system.residual[rows]
            if factor_residuals.size:
                per_factor_residuals[factor_name] = float(np.sqrt(np.mean(factor_residuals**2)))

        return per_factor_residuals

    def _compute_statistics(self, residuals: np.ndarray) -> Dict[str, float]:
        """Compute overall residual statistics.

        Args:
            residuals: Residual vector

        Returns:
            Dictionary with statistics
        """
        if len(residuals) == 0:
            return {
                "total_residuals": 0,
                "rms_residual": 0.0,
                "max_residual": 0.0,
                "mean_residual": 0.0,
                "std_residual": 0.0
            }

        return {
            "total_residuals": len(residuals),
            "rms_residual": float(np.sqrt(np.mean(residuals**2))),
            "max_residual": float(np.max(np.abs(residuals))),
            "mean_residual": float(np.mean(residuals)),
            "std_residual": float(np.std(residuals))
        }


def analyze_jacobian_rank(jacobian: Union[np.ndarray, spmatrix], tolerance: float = 1e-9) -> Dict[str, Any]:
    """Analyze Jacobian matrix rank and condition.

    Args:
        jacobian: Dense or sparse Jacobian matrix
        tolerance: Relative singular-value threshold for rank determination

    Returns:
        Dictionary with rank analysis
    """
    if issparse(jacobian):
        jacobian = jacobian.toarray()

    if jacobian.size == 0:
        return {
            "rank": 0,
            "full_rank": True,
            "condition_number": 1.0,
            "singular_values": [],
            "nullspace_dimension": 0
        }

    s = svd(jacobian, compute_uv=False)

    rank = int(np.sum(s > tolerance * s[0])) if s[0] > 0 else 0
    nullspace_dim = jacobian.shape[1] - rank
    condition_number = s[0] / s[-1] if s[-1] > 0 else np.inf

    return {
        "rank": rank,
        "full_rank": rank == jacobian.shape[1],
        "condition_number": float(condition_number),
        "singular_values": s.tolist(),
        "nullspace_dimension": int(nullspace_dim),
        "matrix_shape": jacobian.shape,
    }


def find_unconstrained_variables(
    jacobian: Union[np.ndarray, spmatrix],
    ordering: VariableOrdering,
    tolerance: float = 1e-9,
    threshold: float = 0.1
) -> List[Tuple[str, float]]:
    """Find variables that take part in the Jacobian's nullspace.

    Args:
        jacobian: Dense or sparse Jacobian matrix
        ordering: Variable-to-column mapping of the Jacobian
        tolerance: Relative singular-value threshold for rank determination
        threshold: Minimum nullspace magnitude for a variable to be reported

    Returns:
        List of (variable_name, nullspace_magnitude) tuples
    """
    if issparse(jacobian):
        jacobian = jacobian.toarray()

    if jacobian.shape[1] == 0:
        return []

    _, s, Vt = svd(jacobian, full_matrices=True)
    rank = int(np.sum(s > tolerance * s[0])) if s.size and s[0] > 0 else 0

    if rank == jacobian.shape[1]:
        return []

    null_vectors = Vt[rank:].T

    unconstrained = []
    for var_name in ordering.names:
        magnitude = float(np.linalg.norm(null_vectors[ordering.slice(var_name), :]))
        if magnitude > threshold:
            unconstrained.append((var_name, magnitude))

    return unconstrained
