"""Pre-optimization readiness check of a factor graph."""

import logging
import numpy as np
from typing import Tuple

from .factor_graph import FactorGraph
from ..models.results import ReadinessReport

logger = logging.getLogger(__name__)


def check_factor_graph(factor_graph: FactorGraph, verbose: bool = True) -> Tuple[bool, ReadinessReport]:
    """Check whether a factor graph is ready for optimization.

    Each variable node must have an initial value, and each factor node must
    have a measurement and an error covariance. Whether a factor returns a
    valid error function is not checked. The graph is never modified.

    Args:
        factor_graph: Graph to check
        verbose: Log the offending nodes

    Returns:
        Tuple of (is_ready, report)
    """
    report = ReadinessReport(
        uninitialized_variables=[
            name for name in factor_graph.get_variable_names()
            if _has_nan(factor_graph.variables[name].value)
        ],
        missing_measurements=[
            name for name in factor_graph.get_factor_names()
            if _has_nan(factor_graph.factors[name].measurement)
        ],
        missing_covariances=[
            name for name in factor_graph.get_factor_names()
            if _has_nan(factor_graph.factors[name].err_cov)
        ],
    )

    if verbose:
        if report.uninitialized_variables:
            logger.warning("Variable nodes are not initialized: %s", ", ".join(report.uninitialized_variables))
        if report.missing_measurements:
            logger.warning("Factor nodes do not include measurements: %s", ", ".join(report.missing_measurements))
        if report.missing_covariances:
            logger.warning(
                "Factor nodes do not include error covariances: %s", ", ".join(report.missing_covariances)
            )

    return report.is_ready, report


def _has_nan(array) -> bool:
    """Missing or non-numeric content counts as NaN."""
    if array is None:
        return True
    try:
        array = np.asarray(array, dtype=float)
    except (TypeError, ValueError):
        return True
    return bool(np.any(np.isnan(array)))
