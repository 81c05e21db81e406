"""
JAX-based SO(3) transforms for manifold optimization.

This module provides mathematically rigorous, JIT-compilable implementations of:
- quaternion primitives (rotation module)
- SO(3) exponential/logarithm maps and their Jacobians (so3 module)

All functions are pure, stateless, and designed for high-performance computation.
"""

from . import rotation
from . import so3

__all__ = [
    "rotation",
    "so3",
]
