"""Precision-dependent numerical settings.

Every closed-form map in this library switches to a truncated Taylor series
below some small angle. The switch-over point depends on the floating point
precision of the inputs, so the thresholds are kept here, keyed by dtype.
"""

import logging
from dataclasses import dataclass
from typing import Dict

import jax
import jax.numpy as jnp

Array = jax.Array

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeriesThresholds:
    """Switch-over points for the small-angle series.

    Attributes:
        small_angle: Below this rotation angle (radians) the exponential map
            and the SO(3) Jacobians use their Taylor series.
        small_log_norm: Below this norm of the quaternion vector part the
            logarithm and its derivative use their Taylor series.
    """
    small_angle: float
    small_log_norm: float


# Series keep terms through theta^4. Thresholds put both the truncation error
# and the cancellation error of the closed forms at rounding level.
SERIES_THRESHOLDS: Dict[jnp.dtype, SeriesThresholds] = {
    jnp.dtype(jnp.float32): SeriesThresholds(small_angle=1e-1, small_log_norm=1e-1),
    jnp.dtype(jnp.float64): SeriesThresholds(small_angle=1e-3, small_log_norm=1e-3),
}

_HALF_PRECISION = (jnp.dtype(jnp.float16), jnp.dtype(jnp.bfloat16))


def thresholds_for(dtype) -> SeriesThresholds:
    """
    Look up the series thresholds for a floating point dtype.

    Half precision inputs reuse the float32 thresholds.

    Args:
        dtype: Any dtype-like accepted by ``jnp.dtype``.

    Returns:
        SeriesThresholds for ``dtype``.

    Raises:
        ValueError: if ``dtype`` is not a floating point type.
    """
    dtype = jnp.dtype(dtype)
    if dtype in SERIES_THRESHOLDS:
        thresholds = SERIES_THRESHOLDS[dtype]
        logger.debug("Series thresholds for %s: %s", dtype, thresholds)
        return thresholds
    if dtype in _HALF_PRECISION:
        logger.warning("No series thresholds tuned for %s, using float32 values", dtype)
        return SERIES_THRESHOLDS[jnp.dtype(jnp.float32)]
    raise ValueError(f"expected a floating point dtype, got {dtype}")


def as_float_array(x) -> Array:
    """Convert ``x`` to a JAX array, promoting non-float input to the default float dtype."""
    x = jnp.asarray(x)
    if not jnp.issubdtype(x.dtype, jnp.floating):
        x = x.astype(jnp.result_type(float))
    return x
