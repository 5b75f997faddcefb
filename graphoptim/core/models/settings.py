"""Optimizer configuration."""

from typing import Literal
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..errors import ConfigurationError

OptimizationScheme = Literal["gauss_newton", "levenberg_marquardt"]
LinearSolverKind = Literal["qr", "cholesky"]

_SCHEME_ALIASES = {
    "gn": "gauss_newton",
    "gauss_newton": "gauss_newton",
    "gaussnewton": "gauss_newton",
    "lm": "levenberg_marquardt",
    "levenberg_marquardt": "levenberg_marquardt",
    "levenbergmarquardt": "levenberg_marquardt",
}


class OptimizerSettings(BaseModel):
    """Optimizer configuration, fixed for the duration of a run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    optimization_scheme: OptimizationScheme = Field(
        default="gauss_newton",
        description="Descent scheme (Gauss-Newton or Levenberg-Marquardt)"
    )
    linear_solver: LinearSolverKind = Field(
        default="qr",
        description="Factorization used to compute the search direction"
    )
    use_reordering: bool = Field(
        default=True,
        description="Use a fill-reducing ordering inside the sparse factorization"
    )
    max_iterations: int = Field(default=100, gt=0, description="Maximum descent iterations")
    cost_tolerance: float = Field(
        default=1e-12, ge=0, description="Absolute cost-decrease convergence threshold"
    )
    relative_cost_tolerance: float = Field(
        default=1e-10, ge=0, description="Relative cost-decrease convergence threshold"
    )
    gradient_tolerance: float = Field(
        default=1e-10, ge=0, description="Infinity-norm gradient threshold for a stationary point"
    )
    line_search: bool = Field(default=False, description="Backtracking line search for Gauss-Newton")
    line_search_shrink: float = Field(
        default=0.5, gt=0, lt=1, description="Backtracking shrink factor"
    )
    min_step_length: float = Field(default=1e-6, gt=0, le=1, description="Smallest line-search step")
    initial_damping: float = Field(default=1e-3, gt=0, description="Initial Levenberg-Marquardt damping")
    min_diagonal: float = Field(default=1e-6, gt=0, description="Lower clamp on the damping diagonal")
    max_diagonal: float = Field(default=1e32, gt=0, description="Upper clamp on the damping diagonal")
    max_damping: float = Field(default=1e16, gt=0, description="Damping at which LM gives up")
    step_acceptance_threshold: float = Field(
        default=1e-3, ge=0, lt=1, description="Minimum gain ratio for accepting an LM step"
    )
    verbose: bool = Field(default=True, description="Log readiness-check findings")

    def __init__(self, **data):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid optimizer configuration: {e}") from e

    @field_validator("optimization_scheme", mode="before")
    @classmethod
    def normalize_scheme(cls, v):
        if isinstance(v, str):
            key = v.strip().lower().replace("-", "_").replace(" ", "_")
            return _SCHEME_ALIASES.get(key, key)
        return v

    @field_validator("linear_solver", mode="before")
    @classmethod
    def normalize_linear_solver(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def validate_damping_bounds(self):
        if self.min_diagonal > self.max_diagonal:
            raise ValueError("min_diagonal must not exceed max_diagonal")
        if self.initial_damping > self.max_damping:
            raise ValueError("initial_damping must not exceed max_damping")
        return self

    @property
    def is_damped(self) -> bool:
        """Whether the scheme uses trust-region damping."""
        return self.optimization_scheme == "levenberg_marquardt"
