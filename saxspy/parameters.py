import logging

import numpy as np

from saxspy.functions.kernels import DEBYE, PHASE


class Parameters:
    """
    Class representing the per-run inputs of an intensity evaluation.

    Args:
        q (np.array): Scattering vector magnitudes, shape ``(numq,)``. Derived from
            ``q_vectors`` when omitted.
        amplitudes (np.array): Per-atom scattering amplitudes, shape ``(numq, N)``.
        q_vectors (np.array, optional): Oriented scattering vectors, shape ``(numq, 3)``.
            When given, pairs interfere with ``cos(q . d)``; otherwise the
            orientation-averaged ``sin(q r) / (q r)`` kernel is used.
        reference (np.array, optional): Reference intensities, shape ``(numq,)``.
    """

    def __init__(
        self,
        amplitudes: np.ndarray,
        q: np.ndarray | None = None,
        q_vectors: np.ndarray | None = None,
        reference: np.ndarray | None = None,
    ):
        """
        Initialize the Parameters object and validate shapes.

        Raises:
            ValueError: On inconsistent shapes, non-positive magnitudes or
                non-finite entries.
        """
        self.log = logging.getLogger(self.__class__.__module__)

        if q is None and q_vectors is None:
            raise ValueError("Either scattering vector magnitudes or vectors are required.")

        if q_vectors is not None:
            q_vectors = np.atleast_2d(np.asarray(q_vectors, dtype=float))
            if q_vectors.shape[1] != 3:
                raise ValueError(
                    f"Scattering vectors must have shape (numq, 3), got {q_vectors.shape}."
                )
            norms = np.linalg.norm(q_vectors, axis=1)
            if q is None:
                q = norms
            else:
                q = np.atleast_1d(np.asarray(q, dtype=float))
                if q.shape != norms.shape or not np.allclose(q, norms):
                    raise ValueError(
                        "Scattering vector magnitudes do not match the supplied vectors."
                    )
            q_vectors = np.ascontiguousarray(q_vectors)

        q = np.atleast_1d(np.asarray(q, dtype=float))
        if q.ndim != 1 or q.size == 0:
            raise ValueError("At least one scattering vector is required.")
        if not np.all(np.isfinite(q)) or np.any(q <= 0):
            raise ValueError("Scattering vector magnitudes must be strictly positive.")

        amplitudes = np.asarray(amplitudes, dtype=float)
        if amplitudes.ndim == 1 and q.size == 1:
            amplitudes = amplitudes.reshape(1, -1)
        if amplitudes.ndim != 2 or amplitudes.shape[0] != q.size:
            raise ValueError(
                f"Amplitude table must have shape (numq={q.size}, N), got {amplitudes.shape}."
            )
        if not np.all(np.isfinite(amplitudes)):
            raise ValueError("Amplitude table contains non-finite entries.")

        if reference is not None:
            reference = np.atleast_1d(np.asarray(reference, dtype=float))
            if reference.shape != q.shape:
                raise ValueError(
                    f"Expected {q.size} reference intensities, got {reference.size}."
                )

        self.q = np.ascontiguousarray(q)
        self.q_vectors = q_vectors
        self.amplitudes = np.ascontiguousarray(amplitudes)
        self.reference = reference

    @property
    def q_number(self) -> int:
        return self.q.size

    @property
    def atom_number(self) -> int:
        return self.amplitudes.shape[1]

    @property
    def kernel(self) -> str:
        """``'phase'`` for oriented vectors, ``'debye'`` for magnitudes only."""
        return PHASE if self.q_vectors is not None else DEBYE

    @property
    def is_ascending(self) -> bool:
        return bool(np.all(np.diff(self.q) >= 0))

    @property
    def labels(self) -> list[str]:
        return [f"q_{k}" for k in range(self.q_number)]
