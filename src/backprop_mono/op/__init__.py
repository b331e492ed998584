"""Differentiable operations over heterogeneous inputs.

The generic runtime underneath the monomorphic interface: ops over
tuples of inputs, pure (``Op``) or coroutine-based (``OpM``), with
runners, constructors and composition.
"""

from backprop_mono.op.core import (
    AsyncGradFn,
    GradFn,
    Op,
    OpM,
    Summer,
    compose_op,
    compose_op_m,
    custom_op1,
    custom_op2,
    custom_op3,
    grad_op,
    grad_op_m,
    grad_op_with,
    grad_op_with_m,
    grad_op_with_m_prime,
    grad_op_with_prime,
    lift_op,
    n_summers,
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
    sum_values,
    value_and_grad_op,
    value_and_grad_op_m,
)

__all__ = [
    "Op",
    "OpM",
    "GradFn",
    "AsyncGradFn",
    "Summer",
    "sum_values",
    "n_summers",
    "lift_op",
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
    "compose_op_m",
]
