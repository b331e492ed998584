"""Environment-driven settings.

All values are read from environment variables at access time, so tests
can change them with ``monkeypatch.setenv``.

Variables:
    BACKPROP_MONO_CHECK_GRADS: ``off`` (default), ``warn`` or ``raise``.
        Controls the finite-difference cross-check applied to ops built
        from hand-written gradients.
    BACKPROP_MONO_CHECK_EPS: Relative finite-difference step size.
    BACKPROP_MONO_CHECK_ATOL: Absolute tolerance of the cross-check.
    BACKPROP_MONO_CHECK_RTOL: Relative tolerance of the cross-check.

"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache

import jax

logger = logging.getLogger(__name__)

CHECK_MODES = ("off", "warn", "raise")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("ignoring %s=%r: not a number", name, raw)
        return default
    if value <= 0:
        logger.warning("ignoring %s=%r: must be positive", name, raw)
        return default
    return value


class Settings:
    """Runtime configuration for backprop_mono."""

    @property
    def check_grads(self) -> str:
        raw = os.environ.get("BACKPROP_MONO_CHECK_GRADS", "off").strip().lower()
        if raw in ("", "0", "false", "no"):
            return "off"
        if raw in ("1", "true", "yes"):
            return "warn"
        if raw not in CHECK_MODES:
            logger.warning("unknown BACKPROP_MONO_CHECK_GRADS=%r, using 'off'", raw)
            return "off"
        return raw

    @property
    def check_eps(self) -> float:
        return _env_float("BACKPROP_MONO_CHECK_EPS", 6e-6)

    @property
    def check_atol(self) -> float:
        return _env_float("BACKPROP_MONO_CHECK_ATOL", 1e-2)

    @property
    def check_rtol(self) -> float:
        return _env_float("BACKPROP_MONO_CHECK_RTOL", 1e-2)


@lru_cache
def get_settings() -> Settings:
    return Settings()


def enable_x64(enable: bool = True) -> None:
    """Enable or disable float64 arrays in JAX.

    JAX defaults to float32. Gradient checks against finite differences
    are considerably tighter in float64, so scripts and tests that rely
    on them can opt in here.

    Args:
        enable: Whether float64 should be the default float dtype.

    Examples:
        >>> enable_x64(False)
        >>> import jax.numpy as jnp
        >>> str(jnp.asarray(1.0).dtype)
        'float32'

    """
    jax.config.update("jax_enable_x64", bool(enable))
    logger.debug("jax_enable_x64=%s", bool(enable))


def x64_enabled() -> bool:
    return bool(jax.config.read("jax_enable_x64"))


@contextmanager
def x64() -> Iterator[None]:
    """Run a block with float64 enabled, restoring the previous setting.

    Examples:
        >>> import jax.numpy as jnp
        >>> with x64():
        ...     str(jnp.asarray(1.0).dtype)
        'float64'

    """
    previous = x64_enabled()
    jax.config.update("jax_enable_x64", True)
    try:
        yield
    finally:
        jax.config.update("jax_enable_x64", previous)
