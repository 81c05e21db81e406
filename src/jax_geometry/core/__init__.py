"""Core data structures for JAX Geometry.

This module provides the immutable PyTree types returned by the
derivative-producing maps.
"""

from .derivatives import QuaternionExpDerivative

__all__ = ["QuaternionExpDerivative"]
