from numba import jit, prange, complex128, float64

import numpy as np

from saxspy.functions.kernels import debye_pair, phase_pair


@jit(nopython=True, parallel=True, nogil=True, fastmath=True, cache=True)
def pair_displacements(
    positions: np.ndarray, rows: np.ndarray, box: np.ndarray, use_pbc: bool
):
    """Displacements ``r_j - r_i`` and their moduli for a block of rows.

    Parameters
    ----------
    positions : np.ndarray
        Atom positions of shape ``(N, 3)``.
    rows : np.ndarray
        Indices ``i`` of the atoms owned by the calling rank.
    box : np.ndarray
        Box matrix of shape ``(3, 3)``; ignored unless ``use_pbc`` is set.
    use_pbc : bool
        Apply the minimum-image convention.

    Returns
    -------
    displacements : np.ndarray
        Array of shape ``(rows.size, N, 3)``.
    distances : np.ndarray
        Array of shape ``(rows.size, N)``.
    """
    n_rows = rows.size
    n_atoms = positions.shape[0]
    displacements = np.zeros((n_rows, n_atoms, 3), dtype=float64)
    distances = np.zeros((n_rows, n_atoms), dtype=float64)
    for r in prange(n_rows):
        i = rows[r]
        for j in range(n_atoms):
            d0 = positions[j, 0] - positions[i, 0]
            d1 = positions[j, 1] - positions[i, 1]
            d2 = positions[j, 2] - positions[i, 2]
            if use_pbc:
                for c in range(2, -1, -1):
                    length = box[c, c]
                    if length != 0.0:
                        d = d0
                        if c == 1:
                            d = d1
                        elif c == 2:
                            d = d2
                        shift = np.floor(d / length + 0.5)
                        d0 -= shift * box[c, 0]
                        d1 -= shift * box[c, 1]
                        d2 -= shift * box[c, 2]
            displacements[r, j, 0] = d0
            displacements[r, j, 1] = d1
            displacements[r, j, 2] = d2
            distances[r, j] = np.sqrt(d0 * d0 + d1 * d1 + d2 * d2)
    return displacements, distances


@jit(nopython=True, parallel=True, nogil=True, fastmath=True, cache=True)
def exact_phase_partial(
    q_vectors: np.ndarray,
    amplitudes: np.ndarray,
    rows: np.ndarray,
    displacements: np.ndarray,
    chunks: int,
):
    """Rank-local pair sums of the oriented (phase) kernel.

    Every chunk of rows accumulates into a private buffer; the buffers are summed
    once all chunks finished.

    Parameters
    ----------
    q_vectors : np.ndarray
        Scattering vectors of shape ``(K, 3)``.
    amplitudes : np.ndarray
        Amplitude table of shape ``(K, N)``.
    rows : np.ndarray
        Atom indices ``i`` owned by this rank.
    displacements : np.ndarray
        Output of :func:`pair_displacements` for ``rows``.
    chunks : int
        Number of thread-private buffers.

    Returns
    -------
    intensity : np.ndarray
        Partial intensities of shape ``(K,)``.
    derivatives : np.ndarray
        Partial per-atom derivatives of shape ``(K, N, 3)``.
    """
    n_q = q_vectors.shape[0]
    n_atoms = amplitudes.shape[1]
    n_rows = rows.size
    sums = np.zeros((chunks, n_q), dtype=float64)
    derivs = np.zeros((chunks, n_q, n_atoms, 3), dtype=float64)
    for c in prange(chunks):
        for r in range(c, n_rows, chunks):
            i = rows[r]
            for k in range(n_q):
                qx = q_vectors[k, 0]
                qy = q_vectors[k, 1]
                qz = q_vectors[k, 2]
                ai = amplitudes[k, i]
                sx = 0.0
                sy = 0.0
                sz = 0.0
                total = 0.0
                for j in range(n_atoms):
                    value, gx, gy, gz = phase_pair(
                        qx,
                        qy,
                        qz,
                        displacements[r, j, 0],
                        displacements[r, j, 1],
                        displacements[r, j, 2],
                    )
                    aij = ai * amplitudes[k, j]
                    total += aij * value
                    derivs[c, k, j, 0] += aij * gx
                    derivs[c, k, j, 1] += aij * gy
                    derivs[c, k, j, 2] += aij * gz
                    sx += aij * gx
                    sy += aij * gy
                    sz += aij * gz
                sums[c, k] += total
                derivs[c, k, i, 0] -= sx
                derivs[c, k, i, 1] -= sy
                derivs[c, k, i, 2] -= sz
    return sums.sum(axis=0), derivs.sum(axis=0)


@jit(nopython=True, parallel=True, nogil=True, fastmath=True, cache=True)
def exact_debye_partial(
    q_values: np.ndarray,
    amplitudes: np.ndarray,
    rows: np.ndarray,
    displacements: np.ndarray,
    distances: np.ndarray,
    chunks: int,
):
    """Rank-local pair sums of the orientation-averaged (Debye) kernel.

    Same layout as :func:`exact_phase_partial`, with scalar momentum transfers.
    """
    n_q = q_values.size
    n_atoms = amplitudes.shape[1]
    n_rows = rows.size
    sums = np.zeros((chunks, n_q), dtype=float64)
    derivs = np.zeros((chunks, n_q, n_atoms, 3), dtype=float64)
    for c in prange(chunks):
        for r in range(c, n_rows, chunks):
            i = rows[r]
            for k in range(n_q):
                q = q_values[k]
                ai = amplitudes[k, i]
                sx = 0.0
                sy = 0.0
                sz = 0.0
                total = 0.0
                for j in range(n_atoms):
                    value, gx, gy, gz = debye_pair(
                        q,
                        displacements[r, j, 0],
                        displacements[r, j, 1],
                        displacements[r, j, 2],
                        distances[r, j],
                    )
                    aij = ai * amplitudes[k, j]
                    total += aij * value
                    derivs[c, k, j, 0] += aij * gx
                    derivs[c, k, j, 1] += aij * gy
                    derivs[c, k, j, 2] += aij * gz
                    sx += aij * gx
                    sy += aij * gy
                    sz += aij * gz
                sums[c, k] += total
                derivs[c, k, i, 0] -= sx
                derivs[c, k, i, 1] -= sy
                derivs[c, k, i, 2] -= sz
    return sums.sum(axis=0), derivs.sum(axis=0)


@jit(nopython=True, parallel=True, nogil=True, fastmath=True, cache=True)
def angular_basis(cos_theta: np.ndarray, phi: np.ndarray, degree_max: int):
    """Orthonormal spherical harmonics up to ``degree_max`` for every atom.

    The normalised associated Legendre functions carry the Condon-Shortley phase
    and are built with the usual three-term recursion in ``n`` at fixed ``m``.
    Negative orders are filled with ``Y_n^-m = conj(Y_n^m)``.

    Parameters
    ----------
    cos_theta : np.ndarray
        Cosine of the polar angle per atom.
    phi : np.ndarray
        Azimuth per atom.
    degree_max : int
        Largest degree.

    Returns
    -------
    np.ndarray
        Complex array of shape ``(N, (degree_max + 1)**2)`` indexed by
        :func:`saxspy.functions.misc.harmonic_index`.
    """
    n_atoms = cos_theta.size
    size = (degree_max + 1) * (degree_max + 1)
    basis = np.zeros((n_atoms, size), dtype=complex128)
    for i in prange(n_atoms):
        x = cos_theta[i]
        s = np.sqrt(max(0.0, 1.0 - x * x))
        plm = np.zeros((degree_max + 1, degree_max + 1), dtype=float64)
        plm[0, 0] = 1.0 / np.sqrt(4.0 * np.pi)
        for m in range(1, degree_max + 1):
            plm[m, m] = -np.sqrt((2.0 * m + 1.0) / (2.0 * m)) * s * plm[m - 1, m - 1]
        for m in range(degree_max):
            plm[m + 1, m] = x * np.sqrt(2.0 * m + 3.0) * plm[m, m]
        for m in range(degree_max + 1):
            for n in range(m + 2, degree_max + 1):
                nn = float(n * n)
                mm = float(m * m)
                pn = float((n - 1) * (n - 1))
                plm[n, m] = np.sqrt((4.0 * nn - 1.0) / (nn - mm)) * (
                    x * plm[n - 1, m]
                    - np.sqrt((pn - mm) / (4.0 * pn - 1.0)) * plm[n - 2, m]
                )
        for m in range(degree_max + 1):
            e_phi = complex(np.cos(m * phi[i]), np.sin(m * phi[i]))
            for n in range(m, degree_max + 1):
                value = plm[n, m] * e_phi
                basis[i, n * n + n + m] = value
                if m > 0:
                    basis[i, n * n + n - m] = value.conjugate()
    return basis


@jit(nopython=True, parallel=True, nogil=True, fastmath=True, cache=True)
def expansion_coefficients(
    basis: np.ndarray, radial: np.ndarray, amplitudes: np.ndarray, truncation: int
):
    """Coefficients ``C_nm = sum_i a_i j_n(q r_i) Y_n^m(i)`` for ``n < truncation``.

    Only non-negative orders are accumulated; ``C_n^-m`` is filled as the conjugate.
    Threads split the degrees, so every coefficient is summed over atoms in the
    same order regardless of the thread count.
    """
    n_atoms = amplitudes.size
    coefficients = np.zeros(truncation * truncation, dtype=complex128)
    for n in prange(truncation):
        for m in range(n + 1):
            idx = n * n + n + m
            acc = 0j
            for i in range(n_atoms):
                acc += amplitudes[i] * radial[n, i] * basis[i, idx]
            coefficients[idx] = acc
            if m > 0:
                coefficients[n * n + n - m] = acc.conjugate()
    return coefficients


@jit(nopython=True, nogil=True, cache=True)
def _table(table, n, m):
    if n < 0 or m > n or m < -n:
        return 0.0
    return table[n * n + n + m]


@jit(nopython=True, nogil=True, cache=True)
def _solid(basis, radial, i, n, m):
    if n < 0 or m > n or m < -n:
        return 0j
    return radial[n, i] * basis[i, n * n + n + m]


@jit(nopython=True, parallel=True, nogil=True, fastmath=True, cache=True)
def multipole_gradient(
    basis: np.ndarray,
    radial: np.ndarray,
    coefficients: np.ndarray,
    amplitudes: np.ndarray,
    truncation: int,
    q: float,
    a_table: np.ndarray,
    b_table: np.ndarray,
):
    """Per-atom gradient of ``4 pi sum |C_nm|^2``.

    Uses the ladder relations of the regular solid harmonics
    ``R_n^m = j_n(q r) Y_n^m``::

        d_z R_n^m         = q (a_{n-1}^m R_{n-1}^m - a_n^m R_{n+1}^m)
        (d_x + i d_y) R_n^m = q (b_n^m R_{n-1}^{m+1} - b_{n+1}^{-m-1} R_{n+1}^{m+1})
        (d_x - i d_y) R_n^m = q (b_n^{-m} R_{n-1}^{m-1} - b_{n+1}^{m-1} R_{n+1}^{m-1})

    so ``radial`` must hold degrees up to ``truncation`` inclusive.

    Returns
    -------
    np.ndarray
        Array of shape ``(N, 3)``.
    """
    n_atoms = amplitudes.size
    grad = np.zeros((n_atoms, 3), dtype=float64)
    for i in prange(n_atoms):
        gx = 0.0
        gy = 0.0
        gz = 0.0
        for n in range(truncation):
            for m in range(n + 1):
                c = coefficients[n * n + n + m].conjugate()
                weight = 1.0 if m == 0 else 2.0
                dz = _table(a_table, n - 1, m) * _solid(basis, radial, i, n - 1, m) - _table(
                    a_table, n, m
                ) * _solid(basis, radial, i, n + 1, m)
                dp = _table(b_table, n, m) * _solid(
                    basis, radial, i, n - 1, m + 1
                ) - _table(b_table, n + 1, -m - 1) * _solid(basis, radial, i, n + 1, m + 1)
                dm = _table(b_table, n, -m) * _solid(
                    basis, radial, i, n - 1, m - 1
                ) - _table(b_table, n + 1, m - 1) * _solid(basis, radial, i, n + 1, m - 1)
                dx = 0.5 * (dp + dm)
                dy = -0.5j * (dp - dm)
                gx += weight * (c * dx).real
                gy += weight * (c * dy).real
                gz += weight * (c * dz).real
        scale = 8.0 * np.pi * amplitudes[i] * q
        grad[i, 0] = scale * gx
        grad[i, 1] = scale * gy
        grad[i, 2] = scale * gz
    return grad
