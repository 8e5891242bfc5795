"""Index bookkeeping and geometry helpers shared by the intensity backends."""

from __future__ import annotations

import numpy as np


TRUNCATION_MIN = 10
TRUNCATION_MAX = 99


def harmonic_index(n: int, m: int) -> int:
    """
    Converts a degree/order pair to the flat harmonic index.

    Args:
        n (int): The degree, ``n >= 0``.
        m (int): The order, ``-n <= m <= n``.

    Returns:
        (int): The flat index ``n*n + n + m``.
    """
    return n * n + n + m


def harmonic_count(truncation: int) -> int:
    """
    Number of harmonics with degree strictly below ``truncation``.

    Args:
        truncation (int): The truncation order.

    Returns:
        (int): ``truncation**2``.
    """
    return truncation * truncation


def truncation_order(extent: float, q: float) -> int:
    """Estimate the expansion order needed for a given extent and momentum transfer.

    The order follows ``5 + floor(1.2 x + 0.5 (12 - log10 x)^(2/3) x^(1/3))`` with
    ``x = extent * q`` and is clamped to ``[TRUNCATION_MIN, TRUNCATION_MAX]``.

    Parameters
    ----------
    extent:
        Largest edge of the bounding box of all atoms.
    q:
        Magnitude of the scattering vector.

    Returns
    -------
    int
        The truncation order.
    """

    x = float(extent) * float(q)
    if not np.isfinite(x) or x <= 0.0:
        return TRUNCATION_MIN
    tail = max(0.0, 12.0 - np.log10(x))
    order = 5 + int(np.floor(1.2 * x + 0.5 * tail ** (2.0 / 3.0) * x ** (1.0 / 3.0)))
    return int(min(TRUNCATION_MAX, max(TRUNCATION_MIN, order)))


def recursion_tables(degree_max: int) -> tuple[np.ndarray, np.ndarray]:
    """Tabulate the gradient recursion coefficients of the regular solid harmonics.

    Parameters
    ----------
    degree_max:
        Largest degree for which coefficients are needed.

    Returns
    -------
    tuple[numpy.ndarray, numpy.ndarray]
        ``(a, b)`` flat arrays indexed by :func:`harmonic_index`, with
        ``a[n, m] = sqrt((n+1+|m|)(n+1-|m|) / ((2n+1)(2n+3)))`` and
        ``b[n, m] = sign(m) sqrt((n-m-1)(n-m) / ((2n-1)(2n+1)))`` (``sign(0) = +1``).
    """

    size = harmonic_count(degree_max + 1)
    a = np.zeros(size, dtype=np.float64)
    b = np.zeros(size, dtype=np.float64)
    for n in range(degree_max + 1):
        for m in range(-n, n + 1):
            idx = harmonic_index(n, m)
            am = abs(m)
            a[idx] = np.sqrt((n + 1 + am) * (n + 1 - am) / ((2 * n + 1) * (2 * n + 3)))
            if n == 0:
                continue
            value = np.sqrt((n - m - 1) * (n - m) / ((2 * n - 1) * (2 * n + 1)))
            b[idx] = -value if m < 0 else value
    return a, b


def bounding_box(positions: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Return the lower and upper corners of the axis-aligned bounding box."""
    positions = np.asarray(positions, dtype=float)
    if positions.shape[0] == 0:
        return np.zeros(3), np.zeros(3)
    return positions.min(axis=0), positions.max(axis=0)


def max_extent(positions: np.ndarray) -> float:
    """Largest edge length of the bounding box, zero for empty or single-atom sets."""
    lower, upper = bounding_box(positions)
    return float(np.max(upper - lower))


def cartesian_to_polar(positions: np.ndarray, center: np.ndarray | None = None):
    """
    Convert cartesian coordinates to radius, polar cosine and azimuth.

    Args:
        positions (np.ndarray): Array of shape ``(N, 3)``.
        center (np.ndarray, optional): Origin of the expansion. Defaults to the bounding box center.

    Returns:
        r (np.ndarray): Distances from ``center``.
        cos_theta (np.ndarray): Cosine of the polar angle, ``1`` for atoms at the origin.
        phi (np.ndarray): Azimuth in ``(-pi, pi]``, ``0`` for atoms on the z axis.
    """
    positions = np.asarray(positions, dtype=float)
    if center is None:
        lower, upper = bounding_box(positions)
        center = 0.5 * (lower + upper)
    rel = positions - np.asarray(center, dtype=float)
    r = np.sqrt(np.sum(rel**2, axis=1))
    cos_theta = np.ones_like(r)
    nonzero = r > 0
    cos_theta[nonzero] = np.clip(rel[nonzero, 2] / r[nonzero], -1.0, 1.0)
    phi = np.arctan2(rel[:, 1], rel[:, 0])
    return r, cos_theta, phi


def delta_periodic(r1: np.ndarray, r2: np.ndarray, box: np.ndarray) -> np.ndarray:
    """Minimum-image displacement ``r2 - r1`` in a (possibly triclinic) periodic box.

    Parameters
    ----------
    r1, r2:
        Positions of shape ``(3,)`` or broadcastable ``(..., 3)``.
    box:
        Box matrix of shape ``(3, 3)``, one lattice vector per row. Rows whose
        diagonal entry is zero are treated as non-periodic.

    Returns
    -------
    numpy.ndarray
        Displacement with lattice images removed, row 2 first, then row 1, then row 0.
    """

    box = np.asarray(box, dtype=float)
    diff = np.asarray(r2, dtype=float) - np.asarray(r1, dtype=float)
    for c in (2, 1, 0):
        length = box[c, c]
        if length == 0.0:
            continue
        shift = np.floor(diff[..., c] / length + 0.5)
        diff = diff - shift[..., None] * box[c]
    return diff


def box_derivative(positions: np.ndarray, derivatives: np.ndarray) -> np.ndarray:
    """Box (virial) derivative per scattering vector.

    Parameters
    ----------
    positions:
        Array of shape ``(N, 3)``.
    derivatives:
        Per-atom derivatives of shape ``(numq, N, 3)``.

    Returns
    -------
    numpy.ndarray
        Array of shape ``(numq, 3, 3)`` holding ``-sum_i outer(r_i, d_i)``.
    """

    positions = np.asarray(positions, dtype=float)
    return -np.einsum("ia,kib->kab", positions, derivatives)
