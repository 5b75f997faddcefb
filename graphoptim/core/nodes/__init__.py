"""Variable node types."""

from .base import ManifoldNode, VariableNode
from .euclidean import NodeRn, NodeR2, NodeR3
from .lie import NodeSO3, NodeSE3

__all__ = [
    "ManifoldNode",
    "VariableNode",
    "NodeRn",
    "NodeR2",
    "NodeR3",
    "NodeSO3",
    "NodeSE3",
]
