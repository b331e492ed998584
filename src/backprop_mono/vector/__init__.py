"""Fixed-length vectors and conversion to heterogeneous products.

A ``Vec`` holds the inputs (and gradients) of a monomorphic op. The
generic op runtime works on plain tuples; ``vec_to_prod`` and
``prod_to_vec`` convert losslessly in both directions.
"""

from backprop_mono.vector.vec import (
    N0,
    N1,
    N2,
    N3,
    N4,
    N5,
    N6,
    N7,
    N8,
    N9,
    N10,
    Vec,
    cons,
    head,
    pair,
    prod_along,
    prod_to_vec,
    replicate,
    snoc,
    uncons,
    vec,
    vec_to_prod,
)

__all__ = [
    "Vec",
    "vec",
    "replicate",
    "cons",
    "uncons",
    "snoc",
    "pair",
    "head",
    "vec_to_prod",
    "prod_to_vec",
    "prod_along",
    "N0",
    "N1",
    "N2",
    "N3",
    "N4",
    "N5",
    "N6",
    "N7",
    "N8",
    "N9",
    "N10",
]
