"""Quaternion primitives in JAX.

Quaternions are stored as (..., 4) arrays in (w, x, y, z) order and follow
the Hamilton convention. These helpers are batch-friendly over leading axes.
"""

import jax
import jax.numpy as jnp

from ..config import as_float_array

# Type aliases
Array = jax.Array


def identity_quaternion(dtype=float) -> Array:
    """The identity rotation (1, 0, 0, 0)."""
    return jnp.array([1.0, 0.0, 0.0, 0.0], dtype=dtype)


def normalize_quaternions(quaternions: Array) -> Array:
    """Normalize quaternions to unit length."""
    return quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)


def quaternion_conjugate(quaternions: Array) -> Array:
    """Negate the vector part. For unit quaternions this is the inverse rotation."""
    return quaternions * jnp.array([1.0, -1.0, -1.0, -1.0], dtype=quaternions.dtype)


def quaternion_multiply(q0: Array, q1: Array) -> Array:
    """
    Hamilton product ``q0 * q1``.

    Args:
        q0: (..., 4) left operand in (w, x, y, z) format
        q1: (..., 4) right operand in (w, x, y, z) format

    Returns:
        (..., 4) product; the rotation that applies ``q1`` first, then ``q0``
    """
    w0, x0, y0, z0 = jnp.moveaxis(q0, -1, 0)
    w1, x1, y1, z1 = jnp.moveaxis(q1, -1, 0)
    return jnp.stack([
        w0*w1 - x0*x1 - y0*y1 - z0*z1,
        w0*x1 + x0*w1 + y0*z1 - z0*y1,
        w0*y1 - x0*z1 + y0*w1 + z0*x1,
        w0*z1 + x0*y1 - y0*x1 + z0*w1,
    ], axis=-1)


def quaternion_to_matrix(quaternions: Array) -> Array:
    """
    Convert quaternions to rotation matrices.

    Args:
        quaternions: (..., 4) array of quaternions in (w, x, y, z) format

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    quaternions = normalize_quaternions(as_float_array(quaternions))
    w, x, y, z = jnp.moveaxis(quaternions, -1, 0)

    xx, yy, zz = x*x, y*y, z*z
    wx, wy, wz = w*x, w*y, w*z
    xy, xz, yz = x*y, x*z, y*z

    return jnp.stack([
        jnp.stack([1 - 2*(yy + zz), 2*(xy - wz), 2*(xz + wy)], axis=-1),
        jnp.stack([2*(xy + wz), 1 - 2*(xx + zz), 2*(yz - wx)], axis=-1),
        jnp.stack([2*(xz - wy), 2*(yz + wx), 1 - 2*(xx + yy)], axis=-1)
    ], axis=-2)


def matrix_to_quaternion(matrix: Array) -> Array:
    """
    Convert rotation matrices to unit quaternions (w, x, y, z).

    The largest of |w|, |x|, |y|, |z| is recovered from the diagonal and the
    others from the off-diagonal sums and differences. The result is moved to
    the w >= 0 hemisphere.

    Args:
        matrix: (..., 3, 3) array of rotation matrices

    Returns:
        (..., 4) array of quaternions in (w, x, y, z) format
    """
    matrix = as_float_array(matrix)
    m00, m01, m02 = matrix[..., 0, 0], matrix[..., 0, 1], matrix[..., 0, 2]
    m10, m11, m12 = matrix[..., 1, 0], matrix[..., 1, 1], matrix[..., 1, 2]
    m20, m21, m22 = matrix[..., 2, 0], matrix[..., 2, 1], matrix[..., 2, 2]
    trace = m00 + m11 + m22

    # 4 * component^2 for each of w, x, y, z
    four_sq = jnp.stack([
        1.0 + trace,
        1.0 + m00 - m11 - m22,
        1.0 + m11 - m00 - m22,
        1.0 + m22 - m00 - m11,
    ], axis=-1)
    # Row k holds 4 * component_k * (w, x, y, z); the diagonal is four_sq.
    products = jnp.stack([
        jnp.stack([four_sq[..., 0], m21 - m12, m02 - m20, m10 - m01], axis=-1),
        jnp.stack([m21 - m12, four_sq[..., 1], m01 + m10, m02 + m20], axis=-1),
        jnp.stack([m02 - m20, m01 + m10, four_sq[..., 2], m12 + m21], axis=-1),
        jnp.stack([m10 - m01, m02 + m20, m12 + m21, four_sq[..., 3]], axis=-1),
    ], axis=-2)

    best = jnp.argmax(four_sq, axis=-1)
    row = jnp.take_along_axis(products, best[..., None, None], axis=-2)[..., 0, :]
    eps = jnp.finfo(matrix.dtype).eps
    scale = jnp.take_along_axis(four_sq, best[..., None], axis=-1)
    quaternion = 0.5 * row / jnp.sqrt(jnp.maximum(scale, eps))

    quaternion = jnp.where(quaternion[..., 0:1] < 0, -quaternion, quaternion)
    return normalize_quaternions(quaternion)
