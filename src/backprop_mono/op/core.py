"""Differentiable operations over heterogeneous inputs.

An ``Op`` is a function from a tuple of inputs (of any, possibly
different, types) to one output, paired with a gradient continuation.
Running an op gives ``(value, grad)`` where ``grad(d)`` maps the total
derivative ``d`` of some final result with respect to the output onto
the total derivatives with respect to each input (the chain rule).
``grad(None)`` treats the output as the final result itself, so the
total derivative is one.

For example, an op for multiplication returns, for ``(x, y)``::

    (x * y, lambda d=None: (y, x) if d is None else (d * y, x * d))

``OpM`` is the effectful counterpart: both the forward run and the
gradient continuation are coroutine functions, and their effects happen
exactly when the caller awaits them. Every ``Op`` is usable wherever an
``OpM`` is expected (see ``lift_op``).

References:
    - Reverse-mode AD as continuation passing:
      https://jax.readthedocs.io/en/latest/notebooks/autodiff_cookbook.html

"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, NamedTuple

from jax import Array

from backprop_mono.autodiff import (
    expected_gradient,
    gradients_close,
    linearize_prime,
    vjp_prime,
)
from backprop_mono.config import get_settings
from backprop_mono.errors import ArityError, GradientCheckError
from backprop_mono.vector import Vec

logger = logging.getLogger(__name__)

GradFn = Callable[[Any], tuple[Any, ...]]
AsyncGradFn = Callable[[Any], Awaitable[tuple[Any, ...]]]
Summer = Callable[[Sequence[Any]], Any]


class Op(NamedTuple):
    """Pure differentiable operation."""

    run: Callable[[tuple[Any, ...]], tuple[Any, GradFn]]


class OpM(NamedTuple):
    """Effectful differentiable operation (coroutine-based)."""

    run: Callable[[tuple[Any, ...]], Awaitable[tuple[Any, AsyncGradFn]]]


def _expect(xs: Sequence[Any], n: int, what: str = "inputs") -> tuple[Any, ...]:
    if len(xs) != n:
        raise ArityError(n, len(xs), what)
    return tuple(xs)


def sum_values(xs: Sequence[Any]) -> Any:
    """Add gradient contributions; zero when there are none."""
    return sum(xs, 0)


def n_summers(n: int) -> tuple[Summer, ...]:
    """Numeric summers for ``n`` inputs."""
    return (sum_values,) * n


def run_op_prime(op: Op, xs: Sequence[Any]) -> tuple[Any, GradFn]:
    """Run ``op`` on ``xs``; return the value and its gradient continuation."""
    return op.run(tuple(xs))


def run_op(op: Op, xs: Sequence[Any]) -> Any:
    """Value of ``op`` at ``xs``."""
    return run_op_prime(op, xs)[0]


def grad_op_with_prime(op: Op, xs: Sequence[Any], d: Any | None) -> tuple[Any, ...]:
    """Gradient of ``op`` at ``xs`` for an optional total derivative ``d``."""
    _, grad = run_op_prime(op, xs)
    return grad(d)


def grad_op_with(op: Op, xs: Sequence[Any], d: Any) -> tuple[Any, ...]:
    """Gradient of ``op`` at ``xs`` given the total derivative ``d`` of its output."""
    return grad_op_with_prime(op, xs, d)


def grad_op(op: Op, xs: Sequence[Any]) -> tuple[Any, ...]:
    """Gradient of ``op`` at ``xs``, treating the output as the final result."""
    return grad_op_with_prime(op, xs, None)


def value_and_grad_op(op: Op, xs: Sequence[Any]) -> tuple[Any, tuple[Any, ...]]:
    """Value and gradient of ``op`` at ``xs`` from a single forward run."""
    y, grad = run_op_prime(op, xs)
    return y, grad(None)


def lift_op(op: Op | OpM) -> OpM:
    """View a pure ``Op`` as an ``OpM`` with no effects."""
    if isinstance(op, OpM):
        return op

    async def run(xs: tuple[Any, ...]) -> tuple[Any, AsyncGradFn]:
        y, grad = op.run(xs)

        async def grad_m(d: Any | None = None) -> tuple[Any, ...]:
            return grad(d)

        return y, grad_m

    return OpM(run)


async def run_op_m_prime(op: Op | OpM, xs: Sequence[Any]) -> tuple[Any, AsyncGradFn]:
    """Async counterpart of ``run_op_prime``."""
    return await lift_op(op).run(tuple(xs))


async def run_op_m(op: Op | OpM, xs: Sequence[Any]) -> Any:
    """Async counterpart of ``run_op``; effects of the backward pass never run."""
    y, _ = await run_op_m_prime(op, xs)
    return y


async def grad_op_with_m_prime(
    op: Op | OpM, xs: Sequence[Any], d: Any | None
) -> tuple[Any, ...]:
    """Async counterpart of ``grad_op_with_prime``."""
    _, grad = await run_op_m_prime(op, xs)
    return await grad(d)


async def grad_op_with_m(op: Op | OpM, xs: Sequence[Any], d: Any) -> tuple[Any, ...]:
    """Async counterpart of ``grad_op_with``."""
    return await grad_op_with_m_prime(op, xs, d)


async def grad_op_m(op: Op | OpM, xs: Sequence[Any]) -> tuple[Any, ...]:
    """Async counterpart of ``grad_op``."""
    return await grad_op_with_m_prime(op, xs, None)


async def value_and_grad_op_m(
    op: Op | OpM, xs: Sequence[Any]
) -> tuple[Any, tuple[Any, ...]]:
    """Async counterpart of ``value_and_grad_op``; each effect runs once."""
    y, grad = await run_op_m_prime(op, xs)
    return y, await grad(None)


def op0(x: Any) -> Op:
    """Op with no inputs that always returns ``x``; its gradient is ``()``."""

    def run(xs: tuple[Any, ...]) -> tuple[Any, GradFn]:
        _expect(xs, 0)
        return x, lambda d=None: ()

    return Op(run)


def op_const(x: Any, summers: Sequence[Summer]) -> Op:
    """Op that ignores its inputs and returns ``x``.

    Takes one input per summer. The gradient is the summer of no
    contributions for each input, i.e. zero.
    """
    summers = tuple(summers)

    def run(xs: tuple[Any, ...]) -> tuple[Any, GradFn]:
        _expect(xs, len(summers))
        return x, lambda d=None: tuple(s(()) for s in summers)

    return Op(run)


def op1(fn: Callable[[Array], Array]) -> Op:
    """Op of a one-input numeric function, differentiated in forward mode.

    The forward pass runs with the op; the derivative is evaluated only
    when the gradient continuation is called.

    Examples:
        >>> y, (dx,) = value_and_grad_op(op1(lambda x: 1 / -x), (5.0,))
        >>> round(float(y), 4), round(float(dx), 4)
        (-0.2, 0.04)

    """

    def run(xs: tuple[Any, ...]) -> tuple[Any, GradFn]:
        (x,) = _expect(xs, 1)
        y, dy = linearize_prime(fn, x)
        return y, lambda d=None: (dy() if d is None else dy() * d,)

    return Op(run)


def _op_reverse(fn: Callable[..., Array], n: int) -> Op:
    def run(xs: tuple[Any, ...]) -> tuple[Any, GradFn]:
        return vjp_prime(fn, _expect(xs, n))

    return Op(run)


def op2(fn: Callable[[Array, Array], Array]) -> Op:
    """Op of a two-input numeric function, differentiated in reverse mode.

    Examples:
        >>> import jax.numpy as jnp
        >>> y, g = value_and_grad_op(op2(lambda x, y: x * jnp.sqrt(y)), (3.0, 4.0))
        >>> float(y), [float(v) for v in g]
        (6.0, [2.0, 0.75])

    """
    return _op_reverse(fn, 2)


def op3(fn: Callable[[Array, Array, Array], Array]) -> Op:
    """Op of a three-input numeric function, differentiated in reverse mode."""
    return _op_reverse(fn, 3)


def op_n(n: int, fn: Callable[[Vec], Array]) -> Op:
    """Op of an ``n``-input numeric function taking its inputs as a ``Vec``."""
    return _op_reverse(lambda *xs: fn(Vec(xs)), n)


def _checked(
    name: str, fn: Callable[..., Any], xs: tuple[Any, ...], y: Any, grad: GradFn
) -> GradFn:
    """Wrap ``grad`` with a finite-difference cross-check, if enabled."""
    settings = get_settings()
    mode = settings.check_grads
    if mode == "off":
        return grad
    if not all(_is_numeric(v) for v in (*xs, y)) or getattr(y, "size", 1) != 1:
        logger.debug("skipping gradient check of %s: non-scalar or non-numeric", name)
        return grad

    def checked(d: Any | None = None) -> tuple[Any, ...]:
        gs = grad(d)
        expected = expected_gradient(
            lambda *args: fn(*args)[0], xs, d, eps=settings.check_eps
        )
        if not gradients_close(gs, expected, atol=settings.check_atol, rtol=settings.check_rtol):
            if mode == "raise":
                raise GradientCheckError(name, tuple(gs), expected)
            logger.warning(
                "gradient of %s disagrees with finite differences: %s vs %s",
                name,
                gs,
                expected,
            )
        return gs

    return checked


def _is_numeric(v: Any) -> bool:
    return isinstance(v, (int, float, complex)) or hasattr(v, "dtype")


def custom_op1(fn: Callable[[Any], tuple[Any, Callable[[Any], Any]]]) -> Op:
    """Op of a one-input function with a hand-written derivative.

    ``fn(x)`` returns ``(y, grad)`` where ``grad(dz_dy)`` returns
    ``dz_dx = dz_dy * dy_dx``. ``grad(None)`` must behave as
    ``grad(1)``: the op is the final result.

    Examples:
        >>> square = custom_op1(
        ...     lambda x: (x * x, lambda d=None: 2 * x if d is None else 2 * d * x)
        ... )
        >>> value_and_grad_op(square, (3.0,))
        (9.0, (6.0,))

    """
    name = getattr(fn, "__name__", "custom_op1")

    def run(xs: tuple[Any, ...]) -> tuple[Any, GradFn]:
        (x,) = _expect(xs, 1)
        y, grad = fn(x)
        return y, _checked(name, fn, xs, y, lambda d=None: (grad(d),))

    return Op(run)


def _custom_op(fn: Callable[..., tuple[Any, Callable[[Any], Sequence[Any]]]], n: int) -> Op:
    name = getattr(fn, "__name__", f"custom_op{n}")

    def run(xs: tuple[Any, ...]) -> tuple[Any, GradFn]:
        y, grad = fn(*_expect(xs, n))

        def grad_tuple(d: Any | None = None) -> tuple[Any, ...]:
            return _expect(tuple(grad(d)), n, "gradients")

        return y, _checked(name, fn, xs, y, grad_tuple)

    return Op(run)


def custom_op2(fn: Callable[[Any, Any], tuple[Any, Callable[[Any], Sequence[Any]]]]) -> Op:
    """Op of a two-input function with a hand-written gradient.

    ``fn(x, y)`` returns ``(z, grad)`` where ``grad(dk_dz)`` returns
    ``(dk_dz * dz_dx, dk_dz * dz_dy)``; ``grad(None)`` means ``dk_dz == 1``.

    Examples:
        >>> mul = custom_op2(
        ...     lambda x, y: (x * y, lambda d=None: (y, x) if d is None else (d * y, x * d))
        ... )
        >>> value_and_grad_op(mul, (3, 5))
        (15, (5, 3))

    """
    return _custom_op(fn, 2)


def custom_op3(
    fn: Callable[[Any, Any, Any], tuple[Any, Callable[[Any], Sequence[Any]]]],
) -> Op:
    """Op of a three-input function with a hand-written gradient.

    See ``custom_op2``.
    """
    return _custom_op(fn, 3)


def _split(summers: Sequence[Summer], contributions: Sequence[Sequence[Any]]) -> tuple[Any, ...]:
    return tuple(s([c[i] for c in contributions]) for i, s in enumerate(summers))


def compose_op(summers: Sequence[Summer], ops: Sequence[Op], downstream: Op) -> Op:
    """Feed the outputs of ``ops`` (run on shared inputs) into ``downstream``.

    Every op in ``ops`` takes the same ``len(summers)`` inputs, and
    ``downstream`` takes one input per op. An input's gradient is the
    sum, by its summer, of the contributions from each upstream op.

    Args:
        summers: One summer per shared input.
        ops: Upstream ops.
        downstream: Op consuming the upstream outputs.

    Returns:
        Op from the shared inputs to the downstream output.

    Examples:
        >>> add = op2(lambda x, y: x + y)
        >>> mul = op2(lambda x, y: x * y)
        >>> composed = compose_op(n_summers(2), [add, mul], mul)
        >>> y, g = value_and_grad_op(composed, (2.0, 3.0))
        >>> float(y), [float(v) for v in g]
        (30.0, [21.0, 16.0])

    """
    summers = tuple(summers)
    ops = tuple(ops)
    logger.debug("composing %d ops over %d inputs", len(ops), len(summers))

    def run(xs: tuple[Any, ...]) -> tuple[Any, GradFn]:
        xs = _expect(xs, len(summers))
        upstream = [o.run(xs) for o in ops]
        z, grad_z = downstream.run(tuple(y for y, _ in upstream))

        def grad(d: Any | None = None) -> tuple[Any, ...]:
            dys = _expect(tuple(grad_z(d)), len(ops), "downstream gradients")
            return _split(summers, [g(dy) for (_, g), dy in zip(upstream, dys)])

        return z, grad

    return Op(run)


def compose_op_m(
    summers: Sequence[Summer], ops: Sequence[Op | OpM], downstream: Op | OpM
) -> OpM:
    """Effectful ``compose_op``.

    Upstream ops run in order, then ``downstream``; on the way back the
    downstream continuation runs first, then each upstream continuation in
    order. Every effect is awaited exactly once.
    """
    summers = tuple(summers)
    ops = tuple(lift_op(o) for o in ops)
    downstream = lift_op(downstream)
    logger.debug("composing %d effectful ops over %d inputs", len(ops), len(summers))

    async def run(xs: tuple[Any, ...]) -> tuple[Any, AsyncGradFn]:
        xs = _expect(xs, len(summers))
        upstream = []
        for o in ops:
            upstream.append(await o.run(xs))
        z, grad_z = await downstream.run(tuple(y for y, _ in upstream))

        async def grad(d: Any | None = None) -> tuple[Any, ...]:
            dys = _expect(tuple(await grad_z(d)), len(ops), "downstream gradients")
            contributions = []
            for (_, g), dy in zip(upstream, dys):
                contributions.append(await g(dy))
            return _split(summers, contributions)

        return z, grad

    return OpM(run)
