"""Pairwise interference kernels.

Every backend evaluates one of two kernels for an atom pair ``(i, j)`` with
displacement ``d = r_j - r_i``:

- ``phase``: oriented scattering vector ``q``, value ``cos(q . d)``
- ``debye``: orientation-averaged, value ``sin(|q| r) / (|q| r)`` with ``r = |d|``

Each kernel also returns the gradient of its value with respect to ``r_j``.
The scalar forms are compiled with Numba and used inside the pairwise loops of
:mod:`saxspy.functions.cpu_numba`; the array forms take an array namespace
(``numpy`` or ``cupy``) and are used by the dense-array engine. Both forms are
kept next to each other so they cannot drift apart.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numba import jit

PHASE = "phase"
DEBYE = "debye"


@jit(nopython=True, nogil=True, fastmath=True, cache=True)
def phase_pair(qx, qy, qz, dx, dy, dz):
    arg = qx * dx + qy * dy + qz * dz
    s = np.sin(arg)
    return np.cos(arg), -qx * s, -qy * s, -qz * s


@jit(nopython=True, nogil=True, fastmath=True, cache=True)
def debye_pair(q, dx, dy, dz, r):
    if r == 0.0:
        return 1.0, 0.0, 0.0, 0.0
    qr = q * r
    value = np.sin(qr) / qr
    scale = (np.cos(qr) - value) / (r * r)
    return value, scale * dx, scale * dy, scale * dz


def phase_terms(xp: Any, q_vector, displacements):
    """Array form of :func:`phase_pair`.

    Parameters
    ----------
    xp:
        Array namespace.
    q_vector:
        Scattering vector of shape ``(3,)``.
    displacements:
        Array of shape ``(..., 3)``.

    Returns
    -------
    tuple
        ``(value, gradient)`` with shapes ``(...)`` and ``(..., 3)``.
    """

    q_vector = xp.asarray(q_vector, dtype=displacements.dtype)
    arg = displacements @ q_vector
    gradient = -xp.sin(arg)[..., None] * q_vector
    return xp.cos(arg), gradient


def debye_terms(xp: Any, q: float, displacements, distances):
    """Array form of :func:`debye_pair`; zero-distance pairs give ``(1, 0)``."""

    qr = q * distances
    zero = distances == 0
    safe_qr = xp.where(zero, 1.0, qr)
    safe_r2 = xp.where(zero, 1.0, distances * distances)
    value = xp.where(zero, 1.0, xp.sin(safe_qr) / safe_qr)
    scale = xp.where(zero, 0.0, (xp.cos(safe_qr) - value) / safe_r2)
    return value, scale[..., None] * displacements
