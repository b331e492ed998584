"""backprop_mono — monomorphic differentiable operations on JAX.

Modules:
    vector: Fixed-length vectors and conversion to heterogeneous tuples
    autodiff: JAX-backed derivatives, pullbacks and gradient checks
    op: Generic ops over heterogeneous inputs (pure and async)
    mono: Ops whose inputs share one type, indexed by arity
    config: Environment-driven settings
    errors: Exception hierarchy
"""

__version__ = "0.1.0"
