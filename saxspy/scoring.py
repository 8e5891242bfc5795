"""Comparison of computed intensities against reference data.

A scorer turns the intensity profile into per-vector weights
``dS/dI_k``; the orchestrator multiplies every derivative of vector ``k`` by
that weight so the caller receives ``dS/dr`` contributions directly.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class Scorer(Protocol):
    def weights(self, intensity: np.ndarray, reference: np.ndarray) -> np.ndarray:
        """Per-vector derivative weights, shape ``(numq,)``."""


class GaussianScorer:
    """Sum of squared residuals with a common uncertainty ``sigma``.

    ``S = sum_k (I_k - I_ref_k)^2 / sigma^2``
    """

    def __init__(self, sigma: float = 1.0):
        if not sigma > 0:
            raise ValueError(f"sigma must be positive, got {sigma}.")
        self.sigma = float(sigma)

    def score(self, intensity: np.ndarray, reference: np.ndarray) -> float:
        residual = np.asarray(intensity, dtype=float) - np.asarray(reference, dtype=float)
        return float(np.sum(residual**2) / self.sigma**2)

    def weights(self, intensity: np.ndarray, reference: np.ndarray) -> np.ndarray:
        residual = np.asarray(intensity, dtype=float) - np.asarray(reference, dtype=float)
        return 2.0 * residual / self.sigma**2
