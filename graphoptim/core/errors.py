"""Exceptions raised by the graph optimizer."""


class GraphOptimizerError(Exception):
    """Base class for optimizer errors."""


class ConfigurationError(GraphOptimizerError, ValueError):
    """Unknown or invalid optimizer configuration."""


class ReadinessError(GraphOptimizerError):
    """The factor graph is not ready to be optimized.

    The readiness report listing the offending nodes is available as
    ``report``.
    """

    def __init__(self, report):
        self.report = report
        super().__init__(f"Factor graph is not ready for optimization: {report.describe()}")


class NumericalError(GraphOptimizerError, ArithmeticError):
    """Fatal numerical failure for the current iteration."""


class CovarianceError(NumericalError):
    """A factor's error covariance cannot be turned into a weighting."""

    def __init__(self, factor_name: str, reason: str):
        self.factor_name = factor_name
        super().__init__(f"Factor {factor_name}: {reason}")


class SingularSystemError(NumericalError):
    """The linear system is singular, indefinite or rank deficient."""


class InvalidIncrementError(GraphOptimizerError, ValueError):
    """A manifold update produced an invalid increment or value."""

    def __init__(self, variable_name: str, reason: str):
        self.variable_name = variable_name
        super().__init__(f"Variable {variable_name}: {reason}")
