"""Structured error types for op construction and evaluation."""

from __future__ import annotations

from typing import Any


class BackpropError(Exception):
    """Base class for backprop_mono errors."""


class ArityError(BackpropError, ValueError):
    """Number of values does not match the declared arity."""

    def __init__(self, expected: int, found: int, what: str = "inputs") -> None:
        super().__init__(expected, found, what)
        self.expected = expected
        self.found = found
        self.what = what

    def __str__(self) -> str:
        return f"expected {self.expected} {self.what}, found {self.found}"


class GradientCheckError(BackpropError):
    """Hand-written gradient disagrees with finite differences."""

    def __init__(
        self, name: str, analytic: tuple[Any, ...], numerical: tuple[Any, ...]
    ) -> None:
        super().__init__(name, analytic, numerical)
        self.name = name
        self.analytic = analytic
        self.numerical = numerical

    def __str__(self) -> str:
        return (
            f"gradient of {self.name} does not match finite differences: "
            f"analytic={self.analytic}, numerical={self.numerical}"
        )
