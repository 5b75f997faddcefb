"""Math primitives for graphoptim."""

from .so3 import (
    skew_symmetric,
    so3_exp,
    so3_log,
    se3_exp,
    se3_log,
    compose,
    invert,
    to_homogeneous,
    from_homogeneous,
)
from .jacobians import finite_difference_jacobian, manifold_jacobian, check_jacobian

__all__ = [
    "skew_symmetric",
    "so3_exp",
    "so3_log",
    "se3_exp",
    "se3_log",
    "compose",
    "invert",
    "to_homogeneous",
    "from_homogeneous",
    "finite_difference_jacobian",
    "manifold_jacobian",
    "check_jacobian",
]
