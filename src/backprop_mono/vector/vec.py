"""Fixed-length homogeneous vectors.

A ``Vec`` is the input container of monomorphic ops: every element has
the same type and the length is the op's arity. The generic op runtime
instead works on heterogeneous products (plain tuples). The functions
here convert between the two without touching the values, so that
``prod_to_vec(n, vec_to_prod(v)) == v`` for every ``v`` of length ``n``.

``Vec`` is registered as a JAX pytree, so it can be passed straight
through ``jax.vjp``, ``jax.jit`` or ``jax.vmap``.

References:
    - JAX pytrees: https://jax.readthedocs.io/en/latest/pytrees.html

"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, TypeVar

import jax

from backprop_mono.errors import ArityError

T = TypeVar("T")

# Arity names for small fixed input counts.
N0 = 0
N1 = 1
N2 = 2
N3 = 3
N4 = 4
N5 = 5
N6 = 6
N7 = 7
N8 = 8
N9 = 9
N10 = 10


class Vec(tuple):
    """Immutable fixed-length vector of values sharing one type.

    Examples:
        >>> v = vec(1, 2, 3)
        >>> v.arity
        3
        >>> v
        Vec(1, 2, 3)
        >>> x, y, z = v

    """

    __slots__ = ()

    def __new__(cls, items: Iterable[Any] = ()) -> Vec:
        return super().__new__(cls, items)

    @property
    def arity(self) -> int:
        return len(self)

    def map(self, fn) -> Vec:
        return Vec(fn(x) for x in self)

    def __repr__(self) -> str:
        return f"Vec({', '.join(repr(x) for x in self)})"


jax.tree_util.register_pytree_node(
    Vec,
    lambda v: (tuple(v), None),
    lambda _, children: Vec(children),
)


def vec(*xs: Any) -> Vec:
    """Build a vector from its elements."""
    return Vec(xs)


def replicate(n: int, x: Any) -> Vec:
    """Vector of ``n`` copies of ``x``."""
    if n < 0:
        raise ValueError(f"arity must be non-negative, got {n}")
    return Vec((x,) * n)


def cons(x: Any, v: Sequence[Any]) -> Vec:
    """Prepend ``x``: the ``x :+ v`` construction.

    Examples:
        >>> cons(1, cons(2, vec()))
        Vec(1, 2)

    """
    return Vec((x, *v))


def uncons(v: Sequence[Any]) -> tuple[Any, Vec]:
    """Split a non-empty vector into ``(head, tail)``: the ``x :+ v`` match.

    Raises:
        ArityError: If ``v`` is empty.

    """
    if len(v) == 0:
        raise ArityError(1, 0, "elements (cannot split an empty vector)")
    return v[0], Vec(v[1:])


def snoc(v: Sequence[Any], x: Any) -> Vec:
    """Append ``x`` at the end of ``v``."""
    return Vec((*v, x))


def pair(x: Any, y: Any) -> Vec:
    """Two-element vector."""
    return Vec((x, y))


def head(v: Sequence[T]) -> T:
    """First element of a non-empty vector."""
    if len(v) == 0:
        raise ArityError(1, 0, "elements (empty vector has no head)")
    return v[0]


def vec_to_prod(v: Sequence[Any]) -> tuple[Any, ...]:
    """Forget homogeneity: view a vector as a heterogeneous product."""
    return tuple(v)


def prod_to_vec(n: int, p: Sequence[Any]) -> Vec:
    """View a heterogeneous product of ``n`` values as a vector.

    Args:
        n: Declared arity.
        p: Product of exactly ``n`` values.

    Returns:
        Vector holding the same values in the same order.

    Raises:
        ArityError: If ``len(p) != n``.

    Examples:
        >>> prod_to_vec(2, (3.0, 4.0))
        Vec(3.0, 4.0)

    """
    if len(p) != n:
        raise ArityError(n, len(p))
    if isinstance(p, Vec):
        return p
    return Vec(p)


def prod_along(reference: Sequence[Any], p: Sequence[Any]) -> Vec:
    """Convert ``p`` to a vector with the same arity as ``reference``.

    Used on gradients: the gradient of an op has one entry per input.
    """
    return prod_to_vec(len(reference), p)
