"""Factor node types."""

from .base import FactorNode
from .residuals import PriorFactor, EuclideanBetweenFactor, BetweenFactor, RangeFactor

__all__ = [
    "FactorNode",
    "PriorFactor",
    "EuclideanBetweenFactor",
    "BetweenFactor",
    "RangeFactor",
]
