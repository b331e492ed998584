"""Automatic differentiation adapter over JAX.

Every numerically meaningful derivative in this package comes from here:
forward mode (``jax.jvp``) for single-input ops, reverse mode
(``jax.vjp``) for multi-input ops, and central finite differences for
checking hand-written gradients.

References:
    - JAX autodiff cookbook: https://jax.readthedocs.io/en/latest/advanced-autodiff.html
    - JAX source: jax/_src/api.py (grad, jvp, vjp)

"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import jax
import jax.numpy as jnp
from jax import Array

from backprop_mono.config import x64


def as_float(x: Any) -> Array:
    """Coerce a numeric value to a floating-point JAX array.

    JAX only differentiates with respect to inexact dtypes, so integer
    inputs are promoted to the default float dtype.

    Examples:
        >>> as_float(3).dtype.kind
        'f'

    """
    arr = jnp.asarray(x)
    if not jnp.issubdtype(arr.dtype, jnp.inexact):
        arr = arr.astype(jnp.result_type(float))
    return arr


def _cotangent(y: Any, d: Any | None) -> Array:
    dtype = jnp.result_type(y)
    if d is None:
        return jnp.ones(jnp.shape(y), dtype=dtype)
    return jnp.broadcast_to(jnp.asarray(d, dtype=dtype), jnp.shape(y))


def gradient(
    fn: Callable[..., Array],
    argnums: int | tuple[int, ...] = 0,
) -> Callable[..., Array]:
    """Compute gradients via reverse-mode AD.

    Args:
        fn: Scalar-valued differentiable function.
        argnums: Which arguments to differentiate.

    Returns:
        Gradient function.

    Examples:
        >>> import jax.numpy as jnp
        >>> grad_f = gradient(lambda x, y: x * y, argnums=(0, 1))
        >>> [float(g) for g in grad_f(3.0, 5.0)]
        [5.0, 3.0]

    """
    return jax.grad(fn, argnums=argnums)


def linearize_prime(
    fn: Callable[[Array], Array], x: Any
) -> tuple[Array, Callable[[], Array]]:
    """Value of a one-input function and a thunk for its derivative.

    ``jax.linearize`` runs the forward pass now; the unit-tangent JVP is
    only evaluated when the thunk is called.

    Examples:
        >>> y, dy = linearize_prime(lambda x: x * x, 3.0)
        >>> float(y), float(dy())
        (9.0, 6.0)

    """
    x = as_float(x)
    y, f_jvp = jax.linearize(fn, x)
    return y, lambda: f_jvp(jnp.ones_like(x))


def derivative_prime(fn: Callable[[Array], Array], x: Any) -> tuple[Array, Array]:
    """Value and derivative of a one-input function, by forward mode.

    The dual-number evaluation of ``fn`` at ``x``: a JVP with unit
    tangent.

    Args:
        fn: Function of a single scalar.
        x: Point of evaluation.

    Returns:
        ``(fn(x), fn'(x))``.

    Examples:
        >>> y, dy = derivative_prime(lambda x: 1 / -x, 5.0)
        >>> round(float(y), 4), round(float(dy), 4)
        (-0.2, 0.04)

    """
    y, dy = linearize_prime(fn, x)
    return y, dy()


def derivative(fn: Callable[[Array], Array]) -> Callable[[Any], Array]:
    """Forward-mode derivative of a one-input function."""

    def df(x: Any) -> Array:
        return derivative_prime(fn, x)[1]

    return df


def vjp_prime(
    fn: Callable[..., Array],
    xs: Sequence[Any],
) -> tuple[Array, Callable[[Any | None], tuple[Array, ...]]]:
    """Run ``fn(*xs)`` and return its value with a reverse-mode pullback.

    The pullback takes the total derivative of some final result with
    respect to the output. ``None`` means the output is the final result
    itself, i.e. a total derivative of one (broadcast to the output
    shape).

    Args:
        fn: Differentiable function of ``len(xs)`` arguments.
        xs: Inputs; integers are promoted to floats.

    Returns:
        ``(value, pull)`` where ``pull(d)`` is the tuple of input gradients.

    Examples:
        >>> y, pull = vjp_prime(lambda x, y: x * y, (3, 5))
        >>> float(y), [float(g) for g in pull(None)]
        (15.0, [5.0, 3.0])
        >>> [float(g) for g in pull(2.0)]
        [10.0, 6.0]

    """
    primals = tuple(as_float(x) for x in xs)
    y, pullback = jax.vjp(fn, *primals)

    def pull(d: Any | None = None) -> tuple[Array, ...]:
        return tuple(pullback(_cotangent(y, d)))

    return y, pull


def numerical_gradient(
    fn: Callable[..., Any],
    xs: Sequence[Any],
    *,
    eps: float = 6e-6,
) -> tuple[Array, ...]:
    """Central finite-difference gradient of a scalar-valued function.

    Every element of every input is perturbed in turn, so inputs may be
    scalars or arrays of any shape. Differences are taken in float64
    whatever the default dtype, and the step for an element ``x_j`` is
    ``eps * max(1, |x_j|)``. The default ``eps`` is about the cube root of
    float64 machine epsilon, where the ``h**2`` truncation error of central
    differences stays small even for curved functions at large inputs.

    Args:
        fn: Scalar-valued function of ``len(xs)`` arguments.
        xs: Point of evaluation.
        eps: Relative step size.

    Returns:
        One gradient per input, shaped like that input and of its dtype.

    Examples:
        >>> import jax.numpy as jnp
        >>> (g,) = numerical_gradient(jnp.sin, (500.0,))
        >>> abs(float(g) - float(jnp.cos(500.0))) < 1e-4
        True

    """
    xs = tuple(as_float(x) for x in xs)

    def f(args: tuple[Array, ...]) -> Array:
        y = jnp.asarray(fn(*args))
        return y.astype(jnp.promote_types(y.dtype, jnp.float64)).reshape(())

    grads = []
    with x64():
        wide = tuple(x.astype(jnp.promote_types(x.dtype, jnp.float64)) for x in xs)
        for i, x in enumerate(wide):
            flat = x.ravel()
            g = jnp.zeros_like(flat)
            for j in range(flat.size):
                h = eps * jnp.maximum(1.0, jnp.abs(flat[j]))
                up, down = flat.at[j].add(h), flat.at[j].add(-h)
                plus = wide[:i] + (up.reshape(x.shape),) + wide[i + 1 :]
                minus = wide[:i] + (down.reshape(x.shape),) + wide[i + 1 :]
                # divide by the step actually taken after rounding
                g = g.at[j].set((f(plus) - f(minus)) / (up[j] - down[j]))
            grads.append(g.reshape(x.shape).astype(xs[i].dtype))
    return tuple(grads)


def expected_gradient(
    fn: Callable[..., Any],
    xs: Sequence[Any],
    d: Any | None = None,
    *,
    eps: float = 6e-6,
) -> tuple[Array, ...]:
    """Finite-difference gradient scaled by a total derivative ``d``.

    This is what a correct gradient continuation must return for ``d``
    (``None`` meaning one).
    """
    grads = numerical_gradient(fn, xs, eps=eps)
    if d is None:
        return grads
    return tuple(g * d for g in grads)


def gradients_close(
    actual: Sequence[Any],
    expected: Sequence[Any],
    *,
    atol: float = 1e-3,
    rtol: float = 1e-3,
) -> bool:
    """Whether two gradient tuples agree elementwise within tolerance."""
    if len(actual) != len(expected):
        return False
    return all(
        bool(jnp.allclose(jnp.asarray(a), jnp.asarray(e), atol=atol, rtol=rtol))
        for a, e in zip(actual, expected)
    )


def check_gradient(
    fn: Callable[..., Any],
    xs: Sequence[Any],
    grads: Sequence[Any],
    d: Any | None = None,
    *,
    eps: float = 6e-6,
    atol: float = 1e-3,
    rtol: float = 1e-3,
) -> bool:
    """Verify a hand-supplied gradient against finite differences.

    Args:
        fn: Scalar-valued function the gradient claims to belong to.
        xs: Point of evaluation.
        grads: Claimed gradient, one entry per input.
        d: Total derivative the gradient was computed for (None = 1).
        eps: Finite difference step size.
        atol: Absolute tolerance for comparison.
        rtol: Relative tolerance for comparison.

    Returns:
        True if ``grads`` matches within tolerance.

    Examples:
        >>> check_gradient(lambda x, y: x * y, (3.0, 5.0), (5.0, 3.0))
        True
        >>> check_gradient(lambda x, y: x * y, (3.0, 5.0), (3.0, 5.0))
        False

    """
    expected = expected_gradient(fn, xs, d, eps=eps)
    return gradients_close(grads, expected, atol=atol, rtol=rtol)


def gradient_check(
    fn: Callable[..., Array],
    args: tuple[Any, ...],
    *,
    eps: float = 6e-6,
    atol: float = 1e-3,
    rtol: float = 1e-3,
) -> bool:
    """Verify JAX gradients using finite differences.

    Compares analytical gradients (from jax.grad, with respect to every
    argument) against numerical gradients (central differences).

    Examples:
        >>> import jax.numpy as jnp
        >>> def f(x):
        ...     return jnp.sum(jnp.sin(x))
        >>> gradient_check(f, (jnp.array([1.0, 2.0]),))
        True

    """
    args = tuple(as_float(a) for a in args)
    analytical = gradient(fn, argnums=tuple(range(len(args))))(*args)
    return check_gradient(fn, args, analytical, eps=eps, atol=atol, rtol=rtol)
