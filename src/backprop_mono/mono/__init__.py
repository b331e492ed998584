"""Monomorphic differentiable operations.

Ops whose inputs all share one type, indexed by their arity and run on
``Vec`` values. Arity-specialized constructors build them from numeric
functions (differentiated by JAX) or from hand-written gradients.

Example:
    >>> from backprop_mono.mono import grad_op, op2
    >>> from backprop_mono.vector import vec
    >>> [float(g) for g in grad_op(op2(lambda x, y: x * y), vec(3, 5))]
    [5.0, 3.0]
"""

from backprop_mono.mono.ops import (
    MonoOp,
    MonoOpM,
    compose_op,
    custom_op1,
    custom_op2,
    custom_op3,
    grad_op,
    grad_op_m,
    grad_op_with,
    grad_op_with_m,
    grad_op_with_m_prime,
    grad_op_with_prime,
    mono_op,
    mono_op_m,
    op0,
    op1,
    op2,
    op3,
    op_const,
    op_n,
    run_op,
    run_op_m,
    run_op_m_prime,
    run_op_prime,
    value_and_grad_op,
    value_and_grad_op_m,
)

__all__ = [
    "MonoOp",
    "MonoOpM",
    "mono_op",
    "mono_op_m",
    "run_op_prime",
    "run_op",
    "grad_op",
    "grad_op_with",
    "grad_op_with_prime",
    "value_and_grad_op",
    "run_op_m_prime",
    "run_op_m",
    "grad_op_m",
    "grad_op_with_m",
    "grad_op_with_m_prime",
    "value_and_grad_op_m",
    "op0",
    "op_const",
    "op1",
    "op2",
    "op3",
    "op_n",
    "custom_op1",
    "custom_op2",
    "custom_op3",
    "compose_op",
]
