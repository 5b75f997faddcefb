"""graphoptim - Nonlinear least squares over factor graphs

Gauss-Newton and Levenberg-Marquardt optimization of manifold-valued
variables connected by weighted residual factors.
"""

__version__ = "0.1.0"

# Graph building blocks
from .core.nodes import VariableNode, NodeRn, NodeR2, NodeR3, NodeSO3, NodeSE3
from .core.factors import FactorNode, PriorFactor, EuclideanBetweenFactor, BetweenFactor, RangeFactor
from .core.optimization import FactorGraph, check_factor_graph

# Optimization
from .core.models import OptimizerSettings, OptimizerStatus, OptimizationResult, ReadinessReport
from .core.solver import GraphOptimizer

# Errors
from .core.errors import (
    GraphOptimizerError,
    ConfigurationError,
    ReadinessError,
    NumericalError,
    CovarianceError,
    SingularSystemError,
    InvalidIncrementError,
)

__all__ = [
    # Version
    "__version__",
    # Nodes
    "VariableNode",
    "NodeRn",
    "NodeR2",
    "NodeR3",
    "NodeSO3",
    "NodeSE3",
    # Factors
    "FactorNode",
    "PriorFactor",
    "EuclideanBetweenFactor",
    "BetweenFactor",
    "RangeFactor",
    # Graph
    "FactorGraph",
    "check_factor_graph",
    # Optimization
    "OptimizerSettings",
    "OptimizerStatus",
    "OptimizationResult",
    "ReadinessReport",
    "GraphOptimizer",
    # Errors
    "GraphOptimizerError",
    "ConfigurationError",
    "ReadinessError",
    "NumericalError",
    "CovarianceError",
    "SingularSystemError",
    "InvalidIncrementError",
]
