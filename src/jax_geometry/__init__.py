"""
JAX Geometry: closed-form SO(3) maps and Jacobians for manifold optimization.

This library provides numerically stable, JIT-compilable exponential and
logarithm maps on SO(3) together with their analytic derivatives, in both
single and double precision.
"""

import jax
jax.config.update("jax_enable_x64", True)

from . import config
from . import core
from . import transforms

__version__ = "0.1.0"
__all__ = ["config", "core", "transforms"]
