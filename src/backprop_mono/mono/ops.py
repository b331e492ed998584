"""Monomorphic ops: every input has the same type.

A ``MonoOp`` of arity ``n`` is a generic ``Op`` taking ``n`` inputs of
one type, seen through a ``Vec`` instead of a heterogeneous tuple. So an
op over three floats returning an int is ``MonoOp(3, ...)``, run as::

    run_op(o, vec(1.0, 2.0, 3.0))

and its gradient comes back as a ``Vec`` of three floats.

``MonoOpM`` is the effectful counterpart. A ``MonoOp`` can be given to
anything that expects a ``MonoOpM``.

Examples:
    >>> import jax.numpy as jnp
    >>> y, g = value_and_grad_op(op2(lambda x, y: x * jnp.sqrt(y)), vec(3.0, 4.0))
    >>> float(y), [float(v) for v in g]
    (6.0, [2.0, 0.75])

"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from jax import Array

from backprop_mono.errors import ArityError
from backprop_mono.op import core
from backprop_mono.vector import Vec, prod_along, prod_to_vec, vec, vec_to_prod

logger = logging.getLogger(__name__)

VecGradFn = Callable[[Any], Vec]
AsyncVecGradFn = Callable[[Any], Awaitable[Vec]]


@dataclass(frozen=True)
class MonoOp:
    """Pure differentiable function from ``arity`` values of one type."""

    arity: int
    op: core.Op

    def as_function(self) -> Callable[[Sequence[Any]], tuple[Any, VecGradFn]]:
        """The vector-level function this op encodes."""
        return lambda xs: run_op_prime(self, xs)


@dataclass(frozen=True)
class MonoOpM:
    """Effectful differentiable function from ``arity`` values of one type."""

    arity: int
    op: core.OpM

    def as_function(self) -> Callable[[Sequence[Any]], Awaitable[tuple[Any, AsyncVecGradFn]]]:
        """The async vector-level function this op encodes."""
        return lambda xs: run_op_m_prime(self, xs)


def mono_op(n: int, fn: Callable[[Vec], tuple[Any, Callable[[Any], Sequence[Any]]]]) -> MonoOp:
    """Build a ``MonoOp`` from a function of a ``Vec``.

    Args:
        n: Arity.
        fn: ``fn(v)`` returns ``(y, grad)``; ``grad(d)`` returns the
            gradient as a sequence of ``n`` values, with ``d=None``
            meaning a total derivative of one.

    Returns:
        The op.

    Examples:
        >>> total = mono_op(3, lambda v: (sum(v), lambda d=None: [1 if d is None else d] * 3))
        >>> value_and_grad_op(total, vec(1, 2, 3))
        (6, Vec(1, 1, 1))

    """

    def run(xs: tuple[Any, ...]) -> tuple[Any, core.GradFn]:
        y, grad = fn(prod_to_vec(n, xs))
        return y, lambda d=None: vec_to_prod(prod_to_vec(n, grad(d)))

    return MonoOp(n, core.Op(run))


def mono_op_m(
    n: int,
    fn: Callable[[Vec], Awaitable[tuple[Any, Callable[[Any], Awaitable[Sequence[Any]]]]]],
) -> MonoOpM:
    """Build a ``MonoOpM`` from a coroutine function of a ``Vec``.

    Same contract as ``mono_op``, except that ``fn`` and the gradient
    continuation it returns are both coroutine functions.
    """

    async def run(xs: tuple[Any, ...]) -> tuple[Any, core.AsyncGradFn]:
        y, grad = await fn(prod_to_vec(n, xs))

        async def grad_prod(d: Any | None = None) -> tuple[Any, ...]:
            return vec_to_prod(prod_to_vec(n, await grad(d)))

        return y, grad_prod

    return MonoOpM(n, core.OpM(run))


def run_op_prime(o: MonoOp, xs: Sequence[Any]) -> tuple[Any, VecGradFn]:
    """Run ``o``; return the value and a continuation producing the gradient.

    The continuation takes the total derivative of the final result with
    respect to the output (``None`` for "the output is the final result").
    """
    v = prod_to_vec(o.arity, xs)
    y, grad = core.run_op_prime(o.op, vec_to_prod(v))
    return y, lambda d=None: prod_along(v, grad(d))


def run_op(o: MonoOp, xs: Sequence[Any]) -> Any:
    """Run the function ``o`` encodes.

    Examples:
        >>> float(run_op(op2(lambda x, y: x * y), vec(3, 5)))
        15.0

    """
    return run_op_prime(o, xs)[0]


def grad_op_with_prime(o: MonoOp, xs: Sequence[Any], d: Any | None) -> Vec:
    """Gradient for an optional total derivative: ``None`` acts as ``grad_op``."""
    return run_op_prime(o, xs)[1](d)


def grad_op_with(o: MonoOp, xs: Sequence[Any], d: Any) -> Vec:
    """Gradient of a final result, given its total derivative ``d`` w.r.t. the output."""
    return grad_op_with_prime(o, xs, d)


def grad_op(o: MonoOp, xs: Sequence[Any]) -> Vec:
    """Gradient of the output with respect to the inputs.

    Examples:
        >>> [float(g) for g in grad_op(op2(lambda x, y: x * y), vec(3, 5))]
        [5.0, 3.0]

    """
    return grad_op_with_prime(o, xs, None)


def value_and_grad_op(o: MonoOp, xs: Sequence[Any]) -> tuple[Any, Vec]:
    """Output and gradient from one run."""
    y, grad = run_op_prime(o, xs)
    return y, grad(None)


async def run_op_m_prime(o: MonoOp | MonoOpM, xs: Sequence[Any]) -> tuple[Any, AsyncVecGradFn]:
    """Async ``run_op_prime``; accepts pure and effectful ops."""
    v = prod_to_vec(o.arity, xs)
    y, grad = await core.run_op_m_prime(o.op, vec_to_prod(v))

    async def grad_vec(d: Any | None = None) -> Vec:
        return prod_along(v, await grad(d))

    return y, grad_vec


async def run_op_m(o: MonoOp | MonoOpM, xs: Sequence[Any]) -> Any:
    """Async ``run_op``; the backward pass and its effects never run."""
    y, _ = await run_op_m_prime(o, xs)
    return y


async def grad_op_with_m_prime(o: MonoOp | MonoOpM, xs: Sequence[Any], d: Any | None) -> Vec:
    """Async ``grad_op_with_prime``; ``None`` acts as ``grad_op_m``."""
    _, grad = await run_op_m_prime(o, xs)
    return await grad(d)


async def grad_op_with_m(o: MonoOp | MonoOpM, xs: Sequence[Any], d: Any) -> Vec:
    """Async ``grad_op_with``."""
    return await grad_op_with_m_prime(o, xs, d)


async def grad_op_m(o: MonoOp | MonoOpM, xs: Sequence[Any]) -> Vec:
    """Async ``grad_op``."""
    return await grad_op_with_m_prime(o, xs, None)


async def value_and_grad_op_m(o: MonoOp | MonoOpM, xs: Sequence[Any]) -> tuple[Any, Vec]:
    """Async ``value_and_grad_op``: output and gradient from one run."""
    y, grad = await run_op_m_prime(o, xs)
    return y, await grad(None)


def op0(x: Any) -> MonoOp:
    """Op with no inputs that always returns ``x``.

    Examples:
        >>> value_and_grad_op(op0(10), vec())
        (10, Vec())

    """
    return MonoOp(0, core.op0(x))


def op_const(n: int, x: Any) -> MonoOp:
    """Op ignoring its ``n`` inputs and returning ``x``; the gradient is zeros.

    Examples:
        >>> value_and_grad_op(op_const(3, 10), vec(1, 2, 3))
        (10, Vec(0, 0, 0))

    """
    return MonoOp(n, core.op_const(x, core.n_summers(n)))


def op1(fn: Callable[[Array], Array]) -> MonoOp:
    """Op of a one-input numeric function; derivative by forward-mode AD."""
    return MonoOp(1, core.op1(fn))


def op2(fn: Callable[[Array, Array], Array]) -> MonoOp:
    """Op of a two-input numeric function; gradient by reverse-mode AD."""
    return MonoOp(2, core.op2(fn))


def op3(fn: Callable[[Array, Array, Array], Array]) -> MonoOp:
    """Op of a three-input numeric function; gradient by reverse-mode AD.

    Examples:
        >>> y, g = value_and_grad_op(op3(lambda x, y, z: (x * y**0.5) ** z), vec(3.0, 4.0, 2.0))
        >>> round(float(y), 3), [round(float(v), 3) for v in g]
        (36.0, [24.0, 9.0, 64.503])

    """
    return MonoOp(3, core.op3(fn))


def op_n(n: int, fn: Callable[[Vec], Array]) -> MonoOp:
    """Op of an ``n``-input numeric function taking a ``Vec``.

    Examples:
        >>> import jax.numpy as jnp
        >>> o = op_n(2, lambda v: v[0] * jnp.sqrt(v[1]))
        >>> [float(g) for g in grad_op(o, vec(3.0, 4.0))]
        [2.0, 0.75]

    """
    return MonoOp(n, core.op_n(n, fn))


def custom_op1(fn: Callable[[Any], tuple[Any, Callable[[Any], Any]]]) -> MonoOp:
    """Op of one input with an explicit derivative.

    ``fn(x)`` returns ``(y, grad)``; ``grad(dz_dy)`` returns
    ``dz_dy * dy_dx`` and ``grad(None)`` returns ``dy_dx``.

    Examples:
        >>> square = custom_op1(lambda x: (x * x, lambda d=None: 2 * x if d is None else 2 * d * x))
        >>> grad_op_with(square, vec(3.0), 0.5)
        Vec(3.0)

    """
    return MonoOp(1, core.custom_op1(fn))


def custom_op2(fn: Callable[[Any, Any], tuple[Any, Callable[[Any], Sequence[Any]]]]) -> MonoOp:
    """Op of two inputs with an explicit gradient.

    ``fn(x, y)`` returns ``(z, grad)``; ``grad(dk_dz)`` returns the pair
    ``(dk_dz * dz_dx, dk_dz * dz_dy)`` and ``grad(None)`` takes
    ``dk_dz`` to be one.
    """
    return MonoOp(2, core.custom_op2(fn))


def custom_op3(
    fn: Callable[[Any, Any, Any], tuple[Any, Callable[[Any], Sequence[Any]]]],
) -> MonoOp:
    """Op of three inputs with an explicit gradient. See ``custom_op2``."""
    return MonoOp(3, core.custom_op3(fn))


def compose_op(
    ops: Sequence[MonoOp | MonoOpM],
    downstream: MonoOp | MonoOpM,
    arity: int | None = None,
) -> MonoOp | MonoOpM:
    """Compose ``ops`` (sharing their inputs) with ``downstream``.

    Like lifting ``downstream`` over the ops: given ``o`` ops of arity
    ``n`` and a downstream op of arity ``o``, the result is an op of
    arity ``n``. Gradient contributions to a shared input from several
    upstream ops are added.

    Args:
        ops: Upstream ops, all of the same arity.
        downstream: Op taking one input per upstream op.
        arity: Input arity; required only when ``ops`` is empty.

    Returns:
        A ``MonoOp`` when every op is pure, otherwise a ``MonoOpM``.

    Raises:
        ArityError: If the arities do not line up.

    Examples:
        >>> import jax.numpy as jnp
        >>> square = op1(lambda x: x * x)
        >>> sqrt = op1(jnp.sqrt)
        >>> o = compose_op([square, sqrt], op2(lambda a, b: a + b))
        >>> y, g = value_and_grad_op(o, vec(4.0))
        >>> float(y), [float(v) for v in g]
        (18.0, [8.25])

    """
    ops = tuple(ops)
    if arity is None:
        if not ops:
            raise ValueError("arity is required when composing zero ops")
        arity = ops[0].arity
    for o in ops:
        if o.arity != arity:
            raise ArityError(arity, o.arity, "inputs to an upstream op")
    if downstream.arity != len(ops):
        raise ArityError(downstream.arity, len(ops), "upstream ops")

    summers = core.n_summers(arity)
    if isinstance(downstream, MonoOp) and all(isinstance(o, MonoOp) for o in ops):
        return MonoOp(arity, core.compose_op(summers, [o.op for o in ops], downstream.op))
    logger.debug("composition of arity %d involves effectful ops", arity)
    return MonoOpM(arity, core.compose_op_m(summers, [o.op for o in ops], downstream.op))
