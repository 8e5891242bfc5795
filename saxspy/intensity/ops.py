"""Protocols for dense-array intensity operations.

The dense-array backend delegates the actual array arithmetic to an object
implementing :class:`DenseArrayOps`. This extra level of indirection allows the
implementation to:

- choose a NumPy (host) or CuPy (CUDA) array namespace at runtime
- attach per-`Simulation` device state such as the selected device
"""

from __future__ import annotations

from typing import Protocol

import numpy as np


class DenseArrayOps(Protocol):
    """Protocol for evaluating intensities on fully materialised pair arrays."""

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
        """Evaluate intensities and per-atom derivatives.

        Parameters
        ----------
        positions:
            Array of shape ``(N, 3)``.
        amplitudes:
            Array of shape ``(numq, N)``.
        q_values:
            Scattering vector magnitudes, shape ``(numq,)``.
        q_vectors:
            Oriented scattering vectors ``(numq, 3)`` or ``None`` for the
            orientation-averaged kernel.
        box:
            Box matrix for the minimum-image convention, or ``None``.
        weights:
            Optional per-atom Fermi-Dirac weights.
        taper_width:
            Width of the weight taper; required with ``weights``.

        Returns
        -------
        tuple[numpy.ndarray, numpy.ndarray]
            Host arrays ``(intensity (numq,), derivatives (numq, N, 3))``.
        """
