"""Automatic differentiation backed by JAX.

Forward-mode (JVP) derivatives for one-input functions, reverse-mode
(VJP) pullbacks for many-input functions, and finite-difference checks
for hand-written gradients.
"""

from backprop_mono.autodiff.derivatives import (
    as_float,
    check_gradient,
    derivative,
    derivative_prime,
    expected_gradient,
    gradient,
    gradient_check,
    gradients_close,
    linearize_prime,
    numerical_gradient,
    vjp_prime,
)

__all__ = [
    "as_float",
    "gradient",
    "derivative",
    "derivative_prime",
    "linearize_prime",
    "vjp_prime",
    "numerical_gradient",
    "expected_gradient",
    "gradients_close",
    "check_gradient",
    "gradient_check",
]
