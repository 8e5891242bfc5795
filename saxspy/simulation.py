"""Simulation orchestration.

This module defines :class:`~saxspy.simulation.Simulation`, which ties the
pieces of an evaluation together: path classification per scattering vector,
exact and multipole backends (or the dense-array engine), optional scoring
against reference intensities and the box (virial) derivative.
"""

import logging
from dataclasses import dataclass, field
from time import time

import numpy as np

from saxspy.comm import Communicator
from saxspy.functions.kernels import DEBYE
from saxspy.functions.misc import box_derivative, max_extent
from saxspy.intensity.backends import DenseArrayBackend, ExactBackend, MultipoleBackend
from saxspy.numerics import Numerics
from saxspy.parameters import Parameters
from saxspy.particles import Particles, PeriodicBox
from saxspy.scoring import Scorer
from saxspy.selector import Classification, PathKind, classify


@dataclass
class IntensityResult:
    """Outcome of one evaluation.

    Attributes
    ----------
    q:
        Scattering vector magnitudes, shape ``(numq,)``.
    intensity:
        Intensities, shape ``(numq,)``.
    derivatives:
        Per-atom derivatives, shape ``(numq, N, 3)``; scaled by the scorer weights
        when a scorer was used.
    box_derivatives:
        ``-sum_i outer(r_i, d_i)`` per vector, shape ``(numq, 3, 3)``.
    paths:
        :class:`~saxspy.selector.PathKind` per vector.
    weights:
        Scorer weights, ``None`` without a scorer.
    """

    q: np.ndarray
    intensity: np.ndarray
    derivatives: np.ndarray
    box_derivatives: np.ndarray
    paths: tuple
    weights: np.ndarray | None = None
    timings: dict = field(default_factory=dict)

    @property
    def labels(self) -> list[str]:
        return [f"q_{k}" for k in range(self.q.size)]

    def as_dict(self) -> dict[str, float]:
        """Intensity per output label."""
        return {label: float(value) for label, value in zip(self.labels, self.intensity)}


class Simulation:
    """Run container for intensity evaluations.

    Parameters
    ----------
    parameters
        Scattering vectors, amplitude table and optional reference intensities.
    numerics
        Execution settings (paths, backend, threads, precision, pre-filter).
    particles
        Optional initial atom set; the path classification is derived from it at
        setup and reused while the atom count and extent stay the same.
    comm
        Process group; defaults to the serial group.

    Notes
    -----
    The classification depends only on the magnitudes, the atom count and the
    bounding box extent, never on the rank or thread decomposition.
    """

    def __init__(
        self,
        parameters: Parameters,
        numerics: Numerics,
        particles: Particles | None = None,
        comm: Communicator | None = None,
    ):
        self.parameters = parameters
        self.numerics = numerics
        self.log = logging.getLogger(self.__class__.__module__)

        if comm is None or numerics.serial:
            comm = Communicator.serial()
        self.comm = comm

        self._classification: Classification | None = None
        self._classification_key: tuple[int, float] | None = None

        self.__setup()

        if particles is not None:
            if particles.number != parameters.atom_number:
                raise ValueError(
                    f"Amplitude table covers {parameters.atom_number} atoms, "
                    f"got {particles.number} positions."
                )
            self.classify(particles.position)

    def __setup(self):
        params = self.parameters
        numerics = self.numerics

        if not params.is_ascending:
            raise ValueError("Scattering vectors must be supplied in ascending magnitude order.")

        self.exact_backend = None
        self.multipole_backend = None
        self.dense_backend = None

        if numerics.intensity_backend == "dense":
            self.dense_backend = DenseArrayBackend(self)
            # Fail at setup, not at the first evaluation, when the device is missing.
            from saxspy.intensity.factory import get_dense_array_ops

            get_dense_array_ops(self)
        else:
            self.exact_backend = ExactBackend(self)
            if numerics.multipole:
                if params.kernel != DEBYE:
                    raise ValueError(
                        "The multipole expansion requires scattering vector magnitudes, "
                        "not oriented vectors."
                    )
                self.multipole_backend = MultipoleBackend(self)
            if numerics.force_multipole:
                self.log.warning("Multipole expansion forced for every scattering vector.")

        self.log.info(
            "Setup: %d vectors, %d atoms, kernel=%s, backend=%s, rank %d of %d",
            params.q_number,
            params.atom_number,
            params.kernel,
            numerics.intensity_backend,
            self.comm.rank,
            self.comm.size,
        )

    def classify(self, positions: np.ndarray) -> Classification:
        """Path per scattering vector for the given atom set.

        The result is cached and recomputed only when the atom count or the
        bounding box extent changes.
        """

        positions = np.asarray(positions, dtype=float)
        key = (positions.shape[0], max_extent(positions))
        if self._classification is not None and self._classification_key == key:
            return self._classification

        enabled = self.multipole_backend is not None
        classification = classify(
            self.parameters.q,
            key[1],
            key[0],
            enabled=enabled,
            force=enabled and self.numerics.force_multipole,
        )
        if self._classification is None or classification.paths != self._classification.paths:
            self.log.info(
                "Paths: %d multipole, %d exact (crossover index %d)",
                classification.multipole_indices.size,
                classification.exact_indices.size,
                classification.crossover,
            )
        self._classification = classification
        self._classification_key = key
        return classification

    def calculate(
        self,
        positions: np.ndarray,
        box: PeriodicBox | np.ndarray | None = None,
        scorer: Scorer | None = None,
    ) -> IntensityResult:
        """Evaluate intensities and derivatives for one set of positions.

        Parameters
        ----------
        positions
            Array of shape ``(N, 3)``.
        box
            Optional periodic box; applied when ``numerics.pbc`` is set.
        scorer
            Optional scorer; requires reference intensities.

        Returns
        -------
        IntensityResult
            Freshly allocated result arrays.
        """

        params = self.parameters
        positions = Particles(positions).position
        n_atoms = positions.shape[0]
        if n_atoms != params.atom_number:
            raise ValueError(
                f"Amplitude table covers {params.atom_number} atoms, got {n_atoms} positions."
            )
        if scorer is not None and params.reference is None:
            raise ValueError("Scoring requires reference intensities.")

        box_matrix = None
        if box is not None and self.numerics.pbc:
            if not isinstance(box, PeriodicBox):
                box = PeriodicBox(box)
            if box.is_periodic:
                box_matrix = box.matrix

        intensity = np.zeros(params.q_number, dtype=np.float64)
        derivatives = np.zeros((params.q_number, n_atoms, 3), dtype=np.float64)
        timings = {}

        if self.dense_backend is not None:
            paths = tuple(PathKind.EXACT for _ in range(params.q_number))
            start = time()
            if n_atoms > 0:
                intensity[:], derivatives[:] = self.dense_backend.compute(
                    positions, box_matrix, np.arange(params.q_number), self.comm
                )
            timings["dense"] = time() - start
        else:
            classification = self.classify(positions)
            paths = classification.paths
            multipole_idx = classification.multipole_indices
            exact_idx = classification.exact_indices

            if multipole_idx.size and n_atoms > 0:
                if box_matrix is not None:
                    self.log.debug("Periodic box ignored on the multipole path.")
                start = time()
                values, grads = self.multipole_backend.compute(
                    positions,
                    None,
                    multipole_idx,
                    self.comm,
                    truncation=classification.truncation[multipole_idx],
                )
                intensity[multipole_idx] = values
                derivatives[multipole_idx] = grads
                timings["multipole"] = time() - start

            if exact_idx.size and n_atoms > 0:
                start = time()
                values, grads = self.exact_backend.compute(
                    positions, box_matrix, exact_idx, self.comm
                )
                intensity[exact_idx] = values
                derivatives[exact_idx] = grads
                timings["exact"] = time() - start

        weights = None
        if scorer is not None:
            weights = np.asarray(scorer.weights(intensity, params.reference), dtype=float)
            derivatives *= weights[:, None, None]

        self.log.debug("Evaluation timings: %s", timings)
        return IntensityResult(
            q=params.q.copy(),
            intensity=intensity,
            derivatives=derivatives,
            box_derivatives=box_derivative(positions, derivatives),
            paths=paths,
            weights=weights,
            timings=timings,
        )
