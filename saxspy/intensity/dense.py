"""Dense-array implementation of :class:`saxspy.intensity.ops.DenseArrayOps`.

All pair displacements are materialised as an ``(N, N, 3)`` array and every
kernel is applied elementwise, which maps directly onto GPU array libraries.
The same code runs on NumPy (host) and CuPy (CUDA) through the ``xp`` namespace.

Notes
-----
Memory grows as ``N^2``; this engine targets systems where that fits on the
device and the pair sums dominate.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np

from saxspy.functions.kernels import debye_terms, phase_terms


def _detect_cupy() -> tuple[Any | None, str]:
    try:
        import cupy as cp
    except ImportError as exc:
        return None, f"cupy import failed: {exc}"
    try:
        ndev = int(cp.cuda.runtime.getDeviceCount())
        if ndev <= 0:
            return None, "CUDA runtime reports 0 devices"
    except cp.cuda.runtime.CUDARuntimeError as exc:
        return None, f"CUDA runtime unavailable: {exc}"
    return cp, ""


def to_numpy(x) -> np.ndarray:
    if hasattr(x, "get"):
        return np.asarray(x.get())
    return np.asarray(x)


class ArrayDenseOps:
    """Dense pair-array intensity evaluation on a given array namespace.

    Parameters
    ----------
    xp:
        ``numpy`` or ``cupy``.
    precision:
        ``'float64'`` or ``'float32'``.
    device_id:
        CUDA device ordinal; ignored for NumPy.
    """

    def __init__(self, xp: Any, precision: str = "float64", device_id: int = 0):
        self.xp = xp
        self.dtype = getattr(xp, precision)
        self.device_id = int(device_id)
        self.log = logging.getLogger(self.__class__.__module__)
        if xp is not np:
            xp.cuda.Device(self.device_id).use()

    @classmethod
    def host(cls, precision: str = "float64") -> "ArrayDenseOps":
        return cls(np, precision)

    @classmethod
    def cuda(cls, precision: str = "float64", device_id: int = 0) -> "ArrayDenseOps":
        """CuPy-backed ops; raises :class:`RuntimeError` when no device is usable."""
        cp, reason = _detect_cupy()
        if cp is None:
            raise RuntimeError(f"GPU execution requested but unavailable ({reason}).")
        return cls(cp, precision, device_id)

    @property
    def device(self) -> str:
        return "cpu" if self.xp is np else f"cuda:{self.device_id}"

    def displacements(self, positions, box):
        """``disp[i, j] = r_j - r_i`` with lattice images removed, and ``|disp|``."""
        xp = self.xp
        disp = positions[None, :, :] - positions[:, None, :]
        if box is not None:
            box = xp.asarray(box, dtype=self.dtype)
            for c in (2, 1, 0):
                length = float(box[c, c])
                if length == 0.0:
                    continue
                shift = xp.floor(disp[..., c] / length + 0.5)
                disp = disp - shift[..., None] * box[c]
        dist = xp.sqrt(xp.sum(disp * disp, axis=-1))
        return disp, dist

    def evaluate(
        self,
        positions: np.ndarray,
        amplitudes: np.ndarray,
        q_values: np.ndarray,
        q_vectors: np.ndarray | None,
        box: np.ndarray | None,
        weights: np.ndarray | None = None,
        taper_width: float | None = None,
    ) -> tuple[np.ndarray, np.ndarray]:
        xp = self.xp
        n_q = len(q_values)
        n_atoms = positions.shape[0]
        intensity = np.zeros(n_q, dtype=np.float64)
        derivatives = np.zeros((n_q, n_atoms, 3), dtype=np.float64)
        if n_atoms == 0:
            return intensity, derivatives

        pos = xp.asarray(positions, dtype=self.dtype)
        disp, dist = self.displacements(pos, box)
        amps = xp.asarray(amplitudes, dtype=self.dtype)
        w = None
        if weights is not None:
            if taper_width is None:
                raise ValueError("A taper width is required together with weights.")
            w = xp.asarray(weights, dtype=self.dtype)
            amps = amps * w[None, :]

        for k in range(n_q):
            if q_vectors is not None:
                value, grad = phase_terms(xp, q_vectors[k], disp)
            else:
                value, grad = debye_terms(xp, float(q_values[k]), disp, dist)
            pair = amps[k][:, None] * amps[k][None, :]
            weighted = pair * value
            intensity[k] = float(to_numpy(xp.sum(weighted)))
            deriv = 2.0 * xp.sum(pair[..., None] * grad, axis=0)
            if w is not None:
                taper = -2.0 * (1.0 - w) / taper_width * xp.sum(weighted, axis=0)
                deriv[:, 2] = deriv[:, 2] + taper
            derivatives[k] = to_numpy(deriv)
        return intensity, derivatives
