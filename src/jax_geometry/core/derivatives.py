"""PyTree result types pairing a map's value with its Jacobian.

These are immutable flax struct dataclasses, so they pass through
``jax.jit`` and ``jax.vmap`` like plain arrays.
"""

from jax import Array
from flax import struct


@struct.dataclass
class QuaternionExpDerivative:
    """Unit quaternion ``q = Exp(w)`` together with ``dq/dw``.

    Attributes:
        q: Array of shape (4,) in (w, x, y, z) order.
        q_D_w: Array of shape (4, 3). Row ``i`` is the gradient of ``q[i]``
               with respect to the tangent vector ``w``.
    """
    q: Array
    q_D_w: Array
