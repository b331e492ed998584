"""Tests for backprop_mono.mono module."""

from __future__ import annotations

import asyncio
import inspect

import jax.numpy as jnp
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

import backprop_mono.mono
import backprop_mono.op
from backprop_mono.autodiff import numerical_gradient
from backprop_mono.errors import ArityError
from backprop_mono.mono import (
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
from backprop_mono.vector import N0, N2, N3, Vec, vec

positive = st.floats(min_value=0.5, max_value=4.0, allow_nan=False, allow_infinity=False)
moderate = st.floats(min_value=-3.0, max_value=3.0, allow_nan=False, allow_infinity=False)


def floats(g):
    return [float(v) for v in g]


def mul() -> MonoOp:
    return custom_op2(lambda x, y: (x * y, lambda d=None: (y, x) if d is None else (d * y, x * d)))


class TestScenarios:
    """Worked examples."""

    def test_product(self):
        y, g = value_and_grad_op(op2(lambda x, y: x * y), vec(3, 5))
        assert float(y) == 15.0
        assert isinstance(g, Vec)
        assert floats(g) == [5.0, 3.0]

    def test_product_sqrt(self):
        y, g = value_and_grad_op(op2(lambda x, y: x * jnp.sqrt(y)), vec(3, 4))
        assert float(y) == 6.0
        assert floats(g) == [2.0, 0.75]

    def test_three_inputs(self):
        y, g = value_and_grad_op(op3(lambda x, y, z: (x * jnp.sqrt(y)) ** z), vec(3.0, 4.0, 2.0))
        assert abs(float(y) - 36.0) < 1e-4
        assert jnp.allclose(jnp.array(g), jnp.array([24.0, 9.0, 64.503]), atol=1e-3)

    def test_recip_negate(self):
        y, g = value_and_grad_op(op1(lambda x: 1 / -x), vec(5))
        assert abs(float(y) + 0.2) < 1e-6
        assert abs(float(g[0]) - 0.04) < 1e-6

    def test_op_n_matches_op2(self):
        g = grad_op(op_n(N2, lambda v: v[0] * jnp.sqrt(v[1])), vec(3.0, 4.0))
        assert floats(g) == [2.0, 0.75]

    def test_op0(self):
        o = op0(10)
        assert o.arity == N0
        assert value_and_grad_op(o, vec()) == (10, Vec())

    def test_op_const(self):
        assert value_and_grad_op(op_const(N3, 10), vec(1, 2, 3)) == (10, vec(0, 0, 0))


class TestRunners:
    """Tests for the pure runners."""

    def test_run_op(self):
        assert run_op(mul(), vec(3, 5)) == 15

    def test_accepts_any_sequence(self):
        assert run_op(mul(), [3, 5]) == 15

    def test_wrong_arity(self):
        with pytest.raises(ArityError):
            run_op(mul(), vec(1, 2, 3))

    def test_grad_variants(self):
        o = mul()
        assert grad_op(o, vec(3, 5)) == vec(5, 3)
        assert grad_op_with(o, vec(3, 5), 2) == vec(10, 6)
        assert grad_op_with_prime(o, vec(3, 5), None) == vec(5, 3)
        assert grad_op_with_prime(o, vec(3, 5), 2) == vec(10, 6)

    def test_run_op_prime(self):
        y, grad = run_op_prime(mul(), vec(3, 5))
        assert y == 15
        g = grad(None)
        assert isinstance(g, Vec)
        assert g == vec(5, 3)

    def test_total_derivative_automatic(self):
        g = grad_op_with(op2(lambda x, y: x * y), vec(3.0, 5.0), 0.5)
        assert floats(g) == [2.5, 1.5]


class TestMonoOpConstruction:
    """Tests for building ops from vector functions."""

    def test_mono_op(self):
        total = mono_op(3, lambda v: (sum(v), lambda d=None: [1 if d is None else d] * 3))
        assert value_and_grad_op(total, vec(1, 2, 3)) == (6, vec(1, 1, 1))
        assert grad_op_with(total, vec(1, 2, 3), 4) == vec(4, 4, 4)

    def test_mono_op_gradient_arity_checked(self):
        bad = mono_op(2, lambda v: (v[0], lambda d=None: [1]))
        with pytest.raises(ArityError):
            grad_op(bad, vec(1, 2))

    def test_as_function(self):
        fn = mul().as_function()
        y, grad = fn(vec(3, 5))
        assert y == 15
        assert grad(2) == vec(10, 6)

    def test_as_function_roundtrip(self):
        """Building from the extracted function gives an equivalent op."""
        original = op2(lambda x, y: x * y)
        rebuilt = mono_op(2, original.as_function())
        assert floats(grad_op(rebuilt, vec(3.0, 5.0))) == [5.0, 3.0]

    def test_mono_op_m_as_function(self):
        async def fn(v):
            async def grad(d=None):
                return vec(1, 1)

            return v[0] + v[1], grad

        o = mono_op_m(2, fn)

        async def go():
            y, grad = await o.as_function()(vec(2, 3))
            return y, await grad(None)

        assert asyncio.run(go()) == (5, vec(1, 1))


class TestCustomMatchesAutomatic:
    """Hand-written gradients agree with JAX."""

    @given(moderate)
    @settings(max_examples=20, deadline=None)
    def test_square(self, x):
        auto = op1(lambda v: v * v)
        custom = custom_op1(lambda v: (v * v, lambda d=None: 2 * v if d is None else 2 * d * v))
        assert abs(float(grad_op(auto, vec(x))[0]) - grad_op(custom, vec(x))[0]) < 1e-4

    @given(moderate, moderate, moderate)
    @settings(max_examples=20, deadline=None)
    def test_product_with_total_derivative(self, x, y, d):
        auto = grad_op_with(op2(lambda a, b: a * b), vec(x, y), d)
        custom = grad_op_with(mul(), vec(x, y), d)
        assert jnp.allclose(jnp.array(auto), jnp.array(custom), atol=1e-4)

    @given(moderate, moderate, moderate)
    @settings(max_examples=20, deadline=None)
    def test_three_way_product(self, x, y, z):
        auto = op3(lambda a, b, c: a * b * c)
        custom = custom_op3(
            lambda a, b, c: (
                a * b * c,
                lambda d=None: tuple((1 if d is None else d) * v for v in (b * c, a * c, a * b)),
            )
        )
        assert jnp.allclose(
            jnp.array(grad_op(auto, vec(x, y, z))),
            jnp.array(grad_op(custom, vec(x, y, z))),
            atol=1e-4,
        )


class TestAgainstFiniteDifferences:
    """Automatic gradients agree with central differences."""

    @given(positive, positive)
    @settings(max_examples=20, deadline=None)
    def test_op2(self, x, y):
        def f(a, b):
            return a * jnp.sqrt(b) + jnp.sin(a * b)

        g = grad_op(op2(f), vec(x, y))
        expected = numerical_gradient(f, (x, y))
        assert jnp.allclose(jnp.array(g), jnp.array(expected), atol=2e-2)

    @given(positive)
    @settings(max_examples=20, deadline=None)
    def test_op1(self, x):
        def f(a):
            return jnp.log(a) * a

        (g,) = grad_op(op1(f), vec(x))
        (expected,) = numerical_gradient(f, (x,))
        assert abs(float(g) - float(expected)) < 2e-2

    @given(positive, positive, positive)
    @settings(max_examples=20, deadline=None)
    def test_op3(self, x, y, z):
        def f(a, b, c):
            return a * jnp.sqrt(b) + jnp.sin(a * c)

        g = grad_op(op3(f), vec(x, y, z))
        expected = numerical_gradient(f, (x, y, z))
        assert len(g) == 3
        assert jnp.allclose(jnp.array(g), jnp.array(expected), atol=2e-2)

    @given(st.lists(positive, min_size=1, max_size=5))
    @settings(max_examples=20, deadline=None)
    def test_op_n(self, xs):
        def f(v):
            return sum(jnp.sqrt(x) for x in v)

        g = grad_op(op_n(len(xs), f), Vec(xs))
        expected = numerical_gradient(lambda *args: f(Vec(args)), xs)
        assert len(g) == len(xs)
        assert jnp.allclose(jnp.array(g), jnp.array(expected), atol=2e-2)


class TestCompose:
    """Tests for compose_op."""

    def test_pure_composition(self):
        o = compose_op([op1(lambda x: x * x), op1(jnp.sqrt)], op2(lambda a, b: a + b))
        assert isinstance(o, MonoOp)
        assert o.arity == 1
        y, g = value_and_grad_op(o, vec(4.0))
        assert float(y) == 18.0
        assert floats(g) == [8.25]

    @given(positive, positive)
    @settings(max_examples=20, deadline=None)
    def test_composition_law(self, x, y):
        """Composed op equals running upstream then downstream, with chain-rule gradient."""
        f = op2(lambda a, b: a * b)
        h = op2(lambda a, b: a + jnp.sqrt(b))
        down = op2(lambda u, w: u * w)
        composed = compose_op([f, h], down)

        xs = vec(x, y)
        u, gu = value_and_grad_op(f, xs)
        w, gw = value_and_grad_op(h, xs)
        z, (du, dw) = value_and_grad_op(down, vec(u, w))

        cz, cg = value_and_grad_op(composed, xs)
        assert jnp.allclose(cz, z)
        expected = [du * a + dw * b for a, b in zip(gu, gw)]
        assert jnp.allclose(jnp.array(cg), jnp.array(expected), atol=1e-4)

    def test_shared_input_contributions_add(self):
        ident = op1(lambda x: x)
        o = compose_op([ident, ident, ident], op3(lambda a, b, c: a + b + c))
        assert floats(grad_op(o, vec(2.0))) == [3.0]

    def test_empty_needs_arity(self):
        with pytest.raises(ValueError):
            compose_op([], op0(1))
        o = compose_op([], op0(1), arity=2)
        assert o.arity == 2
        assert value_and_grad_op(o, vec(5, 6)) == (1, vec(0, 0))

    def test_mismatched_upstream_arity(self):
        with pytest.raises(ArityError):
            compose_op([op1(lambda x: x), op2(lambda x, y: x)], op2(lambda a, b: a))

    def test_mismatched_downstream_arity(self):
        with pytest.raises(ArityError):
            compose_op([op1(lambda x: x)], op2(lambda a, b: a))

    def test_effectful_composition_is_monadic(self):
        async def fn(v):
            async def grad(d=None):
                return vec(3 if d is None else 3 * d)

            return 3 * v[0], grad

        triple = mono_op_m(1, fn)
        o = compose_op([triple, op1(lambda x: x * x)], mul())
        assert isinstance(o, MonoOpM)
        y, g = asyncio.run(value_and_grad_op_m(o, vec(2.0)))
        # 3x * x^2 = 3x^3
        assert float(y) == 24.0
        assert floats(g) == [36.0]


class TestMonadicRunners:
    """Tests for async runners."""

    def test_pure_op_accepted(self):
        o = mul()
        assert asyncio.run(run_op_m(o, vec(3, 5))) == 15
        assert asyncio.run(grad_op_m(o, vec(3, 5))) == vec(5, 3)
        assert asyncio.run(grad_op_with_m(o, vec(3, 5), 2)) == vec(10, 6)
        assert asyncio.run(grad_op_with_m_prime(o, vec(3, 5), None)) == vec(5, 3)
        assert asyncio.run(value_and_grad_op_m(o, vec(3, 5))) == (15, vec(5, 3))

    def test_effects_not_duplicated(self):
        log: list[str] = []

        async def fn(v):
            log.append("forward")

            async def grad(d=None):
                log.append("backward")
                return vec(1 if d is None else d, 1 if d is None else d)

            return v[0] + v[1], grad

        o = mono_op_m(2, fn)
        assert asyncio.run(value_and_grad_op_m(o, vec(1, 2))) == (3, vec(1, 1))
        assert log == ["forward", "backward"]

        log.clear()
        assert asyncio.run(run_op_m(o, vec(1, 2))) == 3
        assert log == ["forward"]

    def test_run_op_m_prime_gradient_is_vec(self):
        async def go():
            y, grad = await run_op_m_prime(mul(), [3, 5])
            return y, await grad(2)

        y, g = asyncio.run(go())
        assert y == 15
        assert isinstance(g, Vec)
        assert g == vec(10, 6)

    def test_wrong_arity(self):
        with pytest.raises(ArityError):
            asyncio.run(run_op_m(mul(), vec(1)))


class TestDocumented:
    """Every exported function and method of the op layers has a docstring."""

    @pytest.mark.parametrize("module", [backprop_mono.op, backprop_mono.mono])
    def test_public_functions(self, module):
        undocumented = [
            name
            for name in module.__all__
            if inspect.isfunction(getattr(module, name)) and not getattr(module, name).__doc__
        ]
        assert undocumented == []

    @pytest.mark.parametrize("cls", [MonoOp, MonoOpM])
    def test_as_function(self, cls):
        assert cls.as_function.__doc__
