"""SO(3) and so(3) Lie group operations in JAX.

This module implements the exponential and logarithm maps between axis-angle
vectors (so(3)) and unit quaternions / rotation matrices (SO(3)), together
with their closed-form Jacobians. All functions are pure, JIT-able, and
operate on JAX arrays.

Near the zero rotation the closed forms are 0/0, so each coefficient is
replaced by its Taylor series below a precision dependent threshold
(see ``jax_geometry.config``). Tangent-vector functions act on a single
(3,) vector; use ``jax.vmap`` for batches.
"""

import jax
import jax.numpy as jnp

from ..config import as_float_array, thresholds_for
from ..core import QuaternionExpDerivative
from .rotation import matrix_to_quaternion, quaternion_multiply, quaternion_to_matrix

Array = jax.Array


def _check_shape(x: Array, shape, name: str) -> Array:
    x = as_float_array(x)
    if x.shape != shape:
        raise ValueError(f"{name} must have shape {shape}, got {x.shape}")
    return x


def _as_quaternion(rotation: Array) -> Array:
    """Accept a (4,) quaternion or a (3, 3) rotation matrix."""
    rotation = as_float_array(rotation)
    if rotation.shape == (3, 3):
        return matrix_to_quaternion(rotation)
    if rotation.shape != (4,):
        raise ValueError(f"rotation must be a (4,) quaternion or a (3, 3) matrix, got {rotation.shape}")
    return rotation


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric matrix.

    ``skew_symmetric(v) @ u == cross(v, u)`` for any ``u``.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    v = as_float_array(v)
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def _angle_terms(w: Array, small_angle: float):
    """theta^2, the series mask, and theta with the series region masked out."""
    theta_sq = jnp.dot(w, w)
    small = theta_sq < small_angle * small_angle
    # sqrt of a masked value so gradients stay finite at theta = 0
    safe_theta = jnp.sqrt(jnp.where(small, 1.0, theta_sq))
    return theta_sq, small, safe_theta


def _half_cos(theta_sq: Array, safe_theta: Array, small: Array) -> Array:
    """cos(theta/2)"""
    return jnp.where(
        small,
        1.0 - theta_sq / 8.0 + theta_sq * theta_sq / 384.0,
        jnp.cos(0.5 * safe_theta),
    )


def _half_sinc(theta_sq: Array, safe_theta: Array, small: Array) -> Array:
    """sin(theta/2) / theta"""
    return jnp.where(
        small,
        0.5 - theta_sq / 48.0 + theta_sq * theta_sq / 3840.0,
        jnp.sin(0.5 * safe_theta) / safe_theta,
    )


def quaternion_exp(w: Array) -> Array:
    """
    SO(3) exponential map: convert axis-angle vector to unit quaternion.

    q = (cos(theta/2), sin(theta/2) / theta * w), theta = |w|.

    Args:
        w: (3,) axis-angle vector

    Returns:
        (4,) unit quaternion in (w, x, y, z) format. Exactly (1, 0, 0, 0)
        for a zero vector.
    """
    w = _check_shape(w, (3,), "w")
    small_angle = thresholds_for(w.dtype).small_angle

    # Angle, with Taylor series below the threshold
    theta_sq, small, safe_theta = _angle_terms(w, small_angle)

    half_cos = _half_cos(theta_sq, safe_theta, small)
    half_sinc = _half_sinc(theta_sq, safe_theta, small)
    return jnp.concatenate([half_cos[None], half_sinc * w])


def quaternion_exp_derivative(w: Array) -> QuaternionExpDerivative:
    """
    Exponential map and its Jacobian with respect to the tangent vector.

    With f(theta) = sin(theta/2) / theta:

        dq_w / dw = -f(theta) / 2 * w^T
        dq_v / dw = f(theta) * I + (f'(theta) / theta) * w w^T

    f'(theta) / theta is a difference of nearly equal terms for small
    angles and is replaced by -1/24 + theta^2/960 - theta^4/107520. At
    w = 0 the Jacobian is [0^T; I/2].

    Args:
        w: (3,) axis-angle vector

    Returns:
        QuaternionExpDerivative holding q (4,) and q_D_w (4, 3)
    """
    w = _check_shape(w, (3,), "w")
    small_angle = thresholds_for(w.dtype).small_angle

    theta_sq, small, safe_theta = _angle_terms(w, small_angle)
    half_angle = 0.5 * safe_theta

    half_cos = _half_cos(theta_sq, safe_theta, small)
    half_sinc = _half_sinc(theta_sq, safe_theta, small)

    # f'(theta) / theta: series near zero, closed form otherwise
    half_sinc_D_theta_over_theta = jnp.where(
        small,
        -1.0 / 24.0 + theta_sq / 960.0 - theta_sq * theta_sq / 107520.0,
        (half_angle * jnp.cos(half_angle) - jnp.sin(half_angle)) / (safe_theta * safe_theta * safe_theta),
    )

    q = jnp.concatenate([half_cos[None], half_sinc * w])

    # Scalar row on top, vector block below
    I = jnp.eye(3, dtype=w.dtype)
    q_D_w = jnp.concatenate([
        (-0.5 * half_sinc * w)[None, :],
        half_sinc * I + half_sinc_D_theta_over_theta * jnp.outer(w, w),
    ], axis=0)
    return QuaternionExpDerivative(q=q, q_D_w=q_D_w)


def exp_matrix(w: Array) -> Array:
    """
    SO(3) exponential map returning a rotation matrix.

    Args:
        w: (3,) axis-angle vector

    Returns:
        (3, 3) rotation matrix
    """
    return quaternion_to_matrix(quaternion_exp(w))


def quaternion_mul_matrix(q: Array) -> Array:
    """
    Left multiplication by ``q`` as a linear operator.

    ``quaternion_mul_matrix(q) @ p == q * p`` for quaternions stored as
    (w, x, y, z) vectors.

    Args:
        q: (4,) quaternion

    Returns:
        (4, 4) matrix
    """
    q = _check_shape(q, (4,), "q")
    w, x, y, z = q
    return jnp.stack([
        jnp.stack([w, -x, -y, -z]),
        jnp.stack([x, w, -z, y]),
        jnp.stack([y, z, w, -x]),
        jnp.stack([z, -y, x, w]),
    ])


def quaternion_right_mul_matrix(q: Array) -> Array:
    """
    Right multiplication by ``q`` as a linear operator.

    ``quaternion_right_mul_matrix(q) @ p == p * q``.

    Args:
        q: (4,) quaternion

    Returns:
        (4, 4) matrix
    """
    q = _check_shape(q, (4,), "q")
    w, x, y, z = q
    return jnp.stack([
        jnp.stack([w, -x, -y, -z]),
        jnp.stack([x, w, z, -y]),
        jnp.stack([y, -z, w, x]),
        jnp.stack([z, y, -x, w]),
    ])


def _principal_quaternion(q: Array, small_log_norm: float):
    """Move ``q`` to the w >= 0 hemisphere. Returns the sign applied and the parts."""
    sign = jnp.where(q[0] < 0, -1.0, 1.0).astype(q.dtype)
    q = sign * q
    c, v = q[0], q[1:]
    s_sq = jnp.dot(v, v)
    small = s_sq < small_log_norm * small_log_norm
    # |v|, masked in the series region so gradients stay finite at v = 0
    safe_s = jnp.sqrt(jnp.where(small, 1.0, s_sq))
    return sign, c, v, s_sq, small, safe_s


def _log_scale(c: Array, s_sq: Array, small: Array, safe_s: Array) -> Array:
    """2 atan2(s, c) / s, the factor taking vec(q) to the tangent vector."""
    safe_c = jnp.where(small, c, 1.0)
    x_sq = s_sq / (safe_c * safe_c)
    return jnp.where(
        small,
        2.0 / safe_c * (1.0 - x_sq / 3.0 + x_sq * x_sq / 5.0),
        2.0 * jnp.arctan2(safe_s, c) / safe_s,
    )


def rotation_log(rotation: Array) -> Array:
    """
    SO(3) logarithm map: convert a quaternion or rotation matrix to axis-angle.

    The principal value is returned, with rotation angle in [0, pi]: ``q``
    and ``-q`` give the same vector. At exactly pi the rotation is its own
    inverse and ``w``, ``-w`` are equally valid; whichever the quaternion's
    vector part points to is returned.

    Args:
        rotation: (4,) quaternion in (w, x, y, z) format, need not be unit
            length, or (3, 3) rotation matrix

    Returns:
        (3,) axis-angle vector
    """
    q = _as_quaternion(rotation)
    small_log_norm = thresholds_for(q.dtype).small_log_norm

    _, c, v, s_sq, small, safe_s = _principal_quaternion(q, small_log_norm)
    return _log_scale(c, s_sq, small, safe_s) * v


def rotation_log_derivative(q: Array) -> Array:
    """
    Jacobian of ``rotation_log`` with respect to the quaternion components.

    With c = q.w, v = vec(q), s = |v|, n^2 = c^2 + s^2 and h = 2 atan2(s, c) / s:

        dlog / dc = -2 v / n^2
        dlog / dv = h I + 2 (c s / n^2 - atan2(s, c)) / s^3 * v v^T

    Args:
        q: (4,) quaternion in (w, x, y, z) format

    Returns:
        (3, 4) Jacobian, columns ordered (w, x, y, z)
    """
    q = _check_shape(q, (4,), "q")
    small_log_norm = thresholds_for(q.dtype).small_log_norm

    sign, c, v, s_sq, small, safe_s = _principal_quaternion(q, small_log_norm)
    n_sq = c * c + s_sq

    safe_c = jnp.where(small, c, 1.0)
    x_sq = s_sq / (safe_c * safe_c)
    scale = _log_scale(c, s_sq, small, safe_s)

    # h'(s) / s: series in x = s / c near zero, closed form otherwise
    scale_D_v_over_v = jnp.where(
        small,
        2.0 / (safe_c * safe_c * safe_c) * (-2.0 / 3.0 + 4.0 * x_sq / 5.0 - 6.0 * x_sq * x_sq / 7.0),
        2.0 * (c * safe_s / n_sq - jnp.arctan2(safe_s, c)) / (safe_s * safe_s * safe_s),
    )

    I = jnp.eye(3, dtype=q.dtype)
    log_D_c = -2.0 * v / n_sq
    log_D_v = scale * I + scale_D_v_over_v * jnp.outer(v, v)
    # Undo the hemisphere flip
    return sign * jnp.concatenate([log_D_c[:, None], log_D_v], axis=1)


def so3_jacobian(w: Array, inverse: bool = False, left: bool = False) -> Array:
    """
    Jacobian of the SO(3) exponential map.

    With K = skew_symmetric(w), theta = |w|:

        left:           J_l    = I + A K + B K^2
        right:          J_r    = I - A K + B K^2
        left, inverse:  J_l^-1 = I - K/2 + C K^2
        right, inverse: J_r^-1 = I + K/2 + C K^2

    where A = (1 - cos theta) / theta^2, B = (theta - sin theta) / theta^3
    and C = (1 - (theta/2) cot(theta/2)) / theta^2. To first order

        Exp(w + d) = Exp(w) Exp(J_r d) = Exp(J_l d) Exp(w)
        Log(Exp(w) Exp(d)) = w + J_r^-1 d

    The inverse is singular only at theta = 2 pi.

    Args:
        w: (3,) axis-angle vector
        inverse: return the inverse Jacobian, from its own closed form
        left: return the left Jacobian instead of the right one

    Returns:
        (3, 3) matrix
    """
    w = _check_shape(w, (3,), "w")
    small_angle = thresholds_for(w.dtype).small_angle

    theta_sq, small, safe_theta = _angle_terms(w, small_angle)
    safe_theta_sq = safe_theta * safe_theta

    side = 1.0 if left else -1.0
    K = skew_symmetric(w)
    K_sq = jnp.matmul(K, K)
    I = jnp.eye(3, dtype=w.dtype)

    if inverse:
        half_angle = 0.5 * safe_theta
        # C via cot(theta/2)
        C = jnp.where(
            small,
            1.0 / 12.0 + theta_sq / 720.0 + theta_sq * theta_sq / 30240.0,
            (1.0 - half_angle * jnp.cos(half_angle) / jnp.sin(half_angle)) / safe_theta_sq,
        )
        return I - side * 0.5 * K + C * K_sq

    # 1 - cos(theta) written as 2 sin^2(theta/2) to avoid cancellation
    sin_half = jnp.sin(0.5 * safe_theta)
    A = jnp.where(
        small,
        0.5 - theta_sq / 24.0 + theta_sq * theta_sq / 720.0,
        2.0 * sin_half * sin_half / safe_theta_sq,
    )
    B = jnp.where(
        small,
        1.0 / 6.0 - theta_sq / 120.0 + theta_sq * theta_sq / 5040.0,
        (safe_theta - jnp.sin(safe_theta)) / (safe_theta_sq * safe_theta),
    )
    return I + side * A * K + B * K_sq


def _vec_matrix_D_quaternion(q: Array) -> Array:
    """
    Derivative of the column-major vectorized rotation matrix with respect to q.

    Differentiates the unit-quaternion conversion formula. It agrees with
    ``quaternion_to_matrix`` on the unit sphere, so the two derivatives match
    along the tangent directions produced by ``quaternion_exp_derivative``.

    Returns:
        (9, 4) array, rows ordered R00, R10, R20, R01, ..., R22
    """
    w, x, y, z = 2.0 * q
    zero = jnp.zeros_like(w)
    return jnp.stack([
        jnp.stack([zero, zero, -2 * y, -2 * z]),
        jnp.stack([z, y, x, w]),
        jnp.stack([-y, z, -w, x]),
        jnp.stack([-z, y, x, -w]),
        jnp.stack([zero, -2 * x, zero, -2 * z]),
        jnp.stack([x, w, z, y]),
        jnp.stack([y, z, w, x]),
        jnp.stack([-x, -w, z, y]),
        jnp.stack([zero, -2 * x, -2 * y, zero]),
    ])


def so3_exp_matrix_derivative(w: Array) -> Array:
    """
    Derivative of the rotation matrix Exp(w) with respect to w.

    The matrix is vectorized column by column, so rows 3i..3i+2 hold the
    derivative of column i of R. At w = 0 block i equals -skew(e_i), the
    generators of so(3).

    Args:
        w: (3,) axis-angle vector

    Returns:
        (9, 3) Jacobian
    """
    q_and_deriv = quaternion_exp_derivative(w)
    return jnp.matmul(_vec_matrix_D_quaternion(q_and_deriv.q), q_and_deriv.q_D_w)


def so3_retract_derivative(rotation: Array, w: Array) -> Array:
    """
    Derivative of the retraction Log(R * Exp(w)) with respect to w.

    Valid at any w, not only w = 0.

    Args:
        rotation: (4,) quaternion or (3, 3) rotation matrix R
        w: (3,) axis-angle offset

    Returns:
        (3, 3) Jacobian
    """
    R = _as_quaternion(rotation)
    q_and_deriv = quaternion_exp_derivative(w)
    product = quaternion_multiply(R, q_and_deriv.q)

    # Chain rule through the left product R * q
    log_D_product = rotation_log_derivative(product)
    return log_D_product @ quaternion_mul_matrix(R) @ q_and_deriv.q_D_w
