"""Weighted residual and sparse Jacobian assembly."""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional
from scipy.linalg import cholesky, solve_triangular
from scipy.sparse import coo_matrix, csr_matrix

from .factor_graph import FactorGraph
from ..errors import CovarianceError, NumericalError
from ..factors.base import FactorNode


@dataclass
class VariableOrdering:
    """Fixed mapping between free variables and columns of the Jacobian.

    Constant variables get no columns.
    """

    names: List[str]
    offsets: Dict[str, int]
    dofs: Dict[str, int]
    total_dof: int

    @classmethod
    def from_graph(cls, factor_graph: FactorGraph) -> "VariableOrdering":
        """Build the ordering from the graph's declaration order."""
        names = []
        offsets = {}
        dofs = {}
        offset = 0

        for var_name in factor_graph.get_variable_names():
            variable = factor_graph.variables[var_name]
            if variable.is_constant:
                continue
            names.append(var_name)
            offsets[var_name] = offset
            dofs[var_name] = variable.dof
            offset += variable.dof

        return cls(names=names, offsets=offsets, dofs=dofs, total_dof=offset)

    def slice(self, var_name: str) -> slice:
        """Columns (or increment entries) belonging to a variable."""
        offset = self.offsets[var_name]
        return slice(offset, offset + self.dofs[var_name])

    def __contains__(self, var_name: str) -> bool:
        return var_name in self.offsets

    def __len__(self) -> int:
        return len(self.names)


@dataclass
class WeightedSystem:
    """Stacked weighted residual and sparse weighted Jacobian of one build."""

    residual: np.ndarray
    jacobian: csr_matrix
    ordering: VariableOrdering
    row_offsets: Dict[str, slice] = field(default_factory=dict)

    @property
    def cost(self) -> float:
        """Half the total weighted squared residual."""
        return 0.5 * float(self.residual @ self.residual)

    @property
    def gradient(self) -> np.ndarray:
        """Gradient of the cost with respect to the stacked increment."""
        return self.jacobian.T @ self.residual

    def factor_residual(self, factor_name: str) -> np.ndarray:
        """Weighted residual block of a single factor."""
        return self.residual[self.row_offsets[factor_name]]


def whitening_matrix(factor: FactorNode) -> np.ndarray:
    """Inverse square root of a factor's error covariance.

    With ``err_cov = L L^T`` the returned ``W = L^-1`` satisfies
    ``W^T W = err_cov^-1``.

    Raises:
        CovarianceError: If the covariance is not symmetric positive-definite
    """
    cov = factor.err_cov

    if not np.all(np.isfinite(cov)):
        raise CovarianceError(factor.name, "error covariance has non-finite entries")
    if not np.allclose(cov, cov.T, rtol=1e-9, atol=1e-12):
        raise CovarianceError(factor.name, "error covariance is not symmetric")

    try:
        L = cholesky(cov, lower=True)
    except np.linalg.LinAlgError as e:
        raise CovarianceError(factor.name, f"error covariance is not positive-definite ({e})") from e

    return solve_triangular(L, np.eye(factor.error_dim), lower=True)


def _factor_values(factor_graph: FactorGraph, factor: FactorNode,
                   values: Optional[Mapping[str, np.ndarray]]) -> Dict[str, np.ndarray]:
    source = values if values is not None else {}
    return {
        var_name: source[var_name] if var_name in source else factor_graph.variables[var_name].value
        for var_name in factor.variable_names
    }


def _checked_error(factor: FactorNode, var_values: Mapping[str, np.ndarray]) -> np.ndarray:
    error = np.atleast_1d(np.asarray(factor.compute_error(var_values), dtype=float))
    if error.shape != (factor.error_dim,):
        raise ValueError(
            f"Factor {factor.name}: error shape {error.shape} != expected shape {(factor.error_dim,)}"
        )
    if not np.all(np.isfinite(error)):
        raise NumericalError(f"Factor {factor.name}: error has non-finite entries")
    return error


def compute_weighted_errors(
    factor_graph: FactorGraph,
    values: Optional[Mapping[str, np.ndarray]] = None
) -> Dict[str, np.ndarray]:
    """Weighted error of every factor.

    Args:
        factor_graph: Factor graph
        values: Optional candidate values overriding the graph's current ones

    Returns:
        Dictionary mapping factor names to weighted error vectors
    """
    weighted_errors = {}

    for factor_name in factor_graph.get_factor_names():
        factor = factor_graph.factors[factor_name]
        error = _checked_error(factor, _factor_values(factor_graph, factor, values))
        weighted_errors[factor_name] = whitening_matrix(factor) @ error

    return weighted_errors


def evaluate_cost(
    factor_graph: FactorGraph,
    values: Optional[Mapping[str, np.ndarray]] = None
) -> float:
    """Half the total weighted squared residual, without building Jacobians.

    Args:
        factor_graph: Factor graph
        values: Optional candidate values overriding the graph's current ones
    """
    weighted_errors = compute_weighted_errors(factor_graph, values)
    return 0.5 * float(sum(e @ e for e in weighted_errors.values()))


def build_weighted_system(
    factor_graph: FactorGraph,
    ordering: Optional[VariableOrdering] = None
) -> WeightedSystem:
    """Evaluate every factor and assemble the weighted least-squares system.

    Factors are stacked in the graph's factor order; Jacobian blocks are
    placed at (factor rows, variable columns) following ``ordering``.

    Args:
        factor_graph: Factor graph to linearize
        ordering: Column ordering (built from the graph if omitted)

    Returns:
        Weighted residual vector and sparse weighted Jacobian
    """
    if ordering is None:
        ordering = VariableOrdering.from_graph(factor_graph)

    residual_blocks = []
    row_offsets = {}
    rows: List[np.ndarray] = []
    cols: List[np.ndarray] = []
    data: List[np.ndarray] = []

    residual_offset = 0

    for factor_name in factor_graph.get_factor_names():
        factor = factor_graph.factors[factor_name]
        error_dim = factor.error_dim

        var_values = _factor_values(factor_graph, factor, None)
        W = whitening_matrix(factor)

        residual_blocks.append(W @ _checked_error(factor, var_values))
        row_offsets[factor_name] = slice(residual_offset, residual_offset + error_dim)

        nodes = {
            var_name: factor_graph.variables[var_name]
            for var_name in factor.variable_names
        }
        jacobians = factor.compute_jacobians(var_values, nodes)

        for var_name in factor.variable_names:
            if var_name not in ordering:
                continue

            dof = ordering.dofs[var_name]
            block = np.asarray(jacobians[var_name], dtype=float)
            if block.shape != (error_dim, dof):
                raise ValueError(
                    f"Factor {factor_name}: Jacobian block for {var_name} has shape "
                    f"{block.shape}, expected {(error_dim, dof)}"
                )
            if not np.all(np.isfinite(block)):
                raise NumericalError(f"Factor {factor_name}: Jacobian block for {var_name} is not finite")

            block_rows, block_cols = np.meshgrid(
                np.arange(residual_offset, residual_offset + error_dim),
                np.arange(ordering.offsets[var_name], ordering.offsets[var_name] + dof),
                indexing="ij",
            )
            rows.append(block_rows.ravel())
            cols.append(block_cols.ravel())
            data.append((W @ block).ravel())

        residual_offset += error_dim

    residual = np.concatenate(residual_blocks) if residual_blocks else np.zeros(0)

    if data:
        jacobian = coo_matrix(
            (np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
            shape=(residual_offset, ordering.total_dof),
        ).tocsr()
    else:
        jacobian = csr_matrix((residual_offset, ordering.total_dof))

    return WeightedSystem(
        residual=residual,
        jacobian=jacobian,
        ordering=ordering,
        row_offsets=row_offsets,
    )
