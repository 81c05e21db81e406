"""Tests for the quaternion primitives."""

import hypothesis
import jax
import jax.numpy as jnp
import numpy as np
from hypothesis import given, settings
from hypothesis import strategies as st

from jax_geometry.transforms import rotation

# Use hypothesis profile for CI
hypothesis.settings.register_profile("ci", max_examples=10, deadline=None)


def random_quaternion(key):
    quat = jax.random.uniform(key, (4,), minval=-1.0, maxval=1.0)
    return quat / jnp.linalg.norm(quat)


def test_quaternion_to_matrix_identity():
    """Test quaternion_to_matrix with identity quaternion."""
    matrix = rotation.quaternion_to_matrix(rotation.identity_quaternion())
    np.testing.assert_allclose(matrix, jnp.eye(3), rtol=1e-6, atol=1e-6)


def test_matrix_to_quaternion_identity():
    """Test matrix_to_quaternion with identity matrix."""
    quat = rotation.matrix_to_quaternion(jnp.eye(3))
    np.testing.assert_allclose(quat, rotation.identity_quaternion(), rtol=1e-6, atol=1e-6)


def test_quaternion_to_matrix_jit():
    """Test quaternion_to_matrix with JIT."""
    jitted_func = jax.jit(rotation.quaternion_to_matrix)
    quat = jnp.array([0.7071068, 0.0, 0.7071068, 0.0])  # 90° around Y
    matrix = jitted_func(quat)
    expected = jnp.array([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]])
    np.testing.assert_allclose(matrix, expected, rtol=1e-6, atol=1e-6)


def test_matrix_to_quaternion_jit():
    """Test matrix_to_quaternion with JIT."""
    jitted_func = jax.jit(rotation.matrix_to_quaternion)
    matrix = jnp.array([[0.0, 0.0, 1.0], [0.0, 1.0, 0.0], [-1.0, 0.0, 0.0]])
    quat = jitted_func(matrix)
    expected = jnp.array([0.7071068, 0.0, 0.7071068, 0.0])  # 90° around Y
    np.testing.assert_allclose(quat, expected, rtol=1e-6, atol=1e-6)


def test_matrix_to_quaternion_half_turn():
    """Test the 180° case, where the scalar part vanishes."""
    matrix = jnp.diag(jnp.array([1.0, -1.0, -1.0]))  # 180° around X
    quat = rotation.matrix_to_quaternion(matrix)
    np.testing.assert_allclose(quat, jnp.array([0.0, 1.0, 0.0, 0.0]), rtol=0, atol=1e-12)


def test_quaternion_multiply_identity_and_conjugate():
    """Test q * 1 == q and q * conj(q) == 1."""
    q = jnp.array([0.5, -0.5, 0.5, 0.5])
    identity = rotation.identity_quaternion()

    np.testing.assert_allclose(rotation.quaternion_multiply(q, identity), q, rtol=0, atol=1e-12)
    np.testing.assert_allclose(rotation.quaternion_multiply(identity, q), q, rtol=0, atol=1e-12)
    np.testing.assert_allclose(
        rotation.quaternion_multiply(q, rotation.quaternion_conjugate(q)), identity, rtol=0, atol=1e-12
    )


def test_quaternion_multiply_batched():
    """Test quaternion_multiply broadcasts over leading axes."""
    q0 = jnp.tile(jnp.array([0.5, -0.5, 0.5, 0.5]), (5, 1))
    q1 = jnp.array([0.0, 1.0, 0.0, 0.0])
    product = rotation.quaternion_multiply(q0, q1)
    assert product.shape == (5, 4)
    np.testing.assert_allclose(product[3], rotation.quaternion_multiply(q0[0], q1), rtol=0, atol=1e-12)


# Property-based tests with hypothesis - explicit key handling
@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None)
def test_quaternion_roundtrip(seed):
    """Test quaternion -> matrix -> quaternion roundtrip with explicit key."""
    quat = random_quaternion(jax.random.PRNGKey(seed))

    matrix = rotation.quaternion_to_matrix(quat)
    quat2 = rotation.matrix_to_quaternion(matrix)

    # q and -q represent the same rotation
    assert quat2[0] >= 0.0
    np.testing.assert_allclose(jnp.abs(jnp.sum(quat * quat2)), 1.0, rtol=0, atol=1e-10)


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None)
def test_quaternion_multiply_matches_matrix_product(seed):
    """Test R(q0 * q1) == R(q0) @ R(q1)."""
    key0, key1 = jax.random.split(jax.random.PRNGKey(seed))
    q0 = random_quaternion(key0)
    q1 = random_quaternion(key1)

    np.testing.assert_allclose(
        rotation.quaternion_to_matrix(rotation.quaternion_multiply(q0, q1)),
        rotation.quaternion_to_matrix(q0) @ rotation.quaternion_to_matrix(q1),
        rtol=0,
        atol=1e-12,
    )


@given(st.integers(min_value=0, max_value=100))
@settings(deadline=None)
def test_quaternion_to_matrix_is_rotation(seed):
    """Test the matrix is orthonormal with determinant +1."""
    matrix = rotation.quaternion_to_matrix(random_quaternion(jax.random.PRNGKey(seed)))
    np.testing.assert_allclose(matrix @ matrix.T, jnp.eye(3), rtol=0, atol=1e-12)
    np.testing.assert_allclose(jnp.linalg.det(matrix), 1.0, rtol=0, atol=1e-12)
