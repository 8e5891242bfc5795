"""Intensity backend implementations.

An intensity backend evaluates

.. math::

    I(q) = \\sum_{i,j} a_i(q) a_j(q) K_q(r_j - r_i)

together with ``dI/dr`` for a subset of scattering vectors. Backends differ in
how they get there:

- exact: pair sums over the atoms owned by each rank, split into thread chunks
- multipole: spherical-harmonic expansion about the bounding box center
  (orientation-averaged kernel only)
- dense-array: fully materialised pair arrays on NumPy or CuPy

Ranks own the atoms ``i = rank, rank + size, ...``; partial sums are combined
with :meth:`saxspy.comm.Communicator.allreduce_sum`, so the result does not
depend on how the work was split beyond floating-point rounding.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
from scipy.special import spherical_jn

from saxspy.functions.cpu_numba import (
    angular_basis,
    exact_debye_partial,
    exact_phase_partial,
    expansion_coefficients,
    multipole_gradient,
    pair_displacements,
)
from saxspy.functions.kernels import DEBYE, PHASE
from saxspy.functions.misc import recursion_tables
from saxspy.intensity.prefilter import partition_by_height, scatter_rows
from saxspy.particles import Particles

if TYPE_CHECKING:
    from saxspy.comm import Communicator
    from saxspy.simulation import Simulation


class IntensityBackend:
    """Base class for intensity backends.

    Attributes
    ----------
    name:
        Short identifier used in logs.
    """

    name: str = "base"

    def __init__(self, simulation: "Simulation"):
        self._sim = simulation
        self.log = logging.getLogger(self.__class__.__module__)

    def compute(
        self,
        positions: np.ndarray,
        box: np.ndarray | None,
        vector_idx: np.ndarray,
        comm: "Communicator",
    ) -> tuple[np.ndarray, np.ndarray]:  # pragma: no cover
        """Evaluate intensities and per-atom derivatives.

        Parameters
        ----------
        positions:
            Array of shape ``(N, 3)``.
        box:
            Box matrix when the minimum-image convention applies, else ``None``.
        vector_idx:
            Indices of the scattering vectors to evaluate.
        comm:
            Process group sharing the work.

        Returns
        -------
        tuple[numpy.ndarray, numpy.ndarray]
            ``(intensity (K,), derivatives (K, N, 3))`` for ``K = len(vector_idx)``,
            identical on every rank.
        """

        raise NotImplementedError


class ExactBackend(IntensityBackend):
    """Exact pair sums.

    Displacements and distances for the owned rows are computed once per call and
    reused for every scattering vector. The Numba kernels give each thread chunk
    a private derivative buffer; the buffers are summed after the loop.
    """

    name = "exact"

    def partial(
        self,
        positions: np.ndarray,
        box: np.ndarray | None,
        vector_idx: np.ndarray,
        rows: np.ndarray,
        chunks: int | None = None,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Rank-local contribution of the atoms ``rows`` (before reduction)."""

        sim = self._sim
        params = sim.parameters
        chunks = sim.numerics.thread_chunks if chunks is None else int(chunks)
        positions = np.ascontiguousarray(positions, dtype=np.float64)
        rows = np.ascontiguousarray(rows, dtype=np.int64)
        vector_idx = np.asarray(vector_idx, dtype=np.int64)

        use_pbc = box is not None
        box_matrix = np.ascontiguousarray(box if use_pbc else np.zeros((3, 3)), dtype=np.float64)
        displacements, distances = pair_displacements(positions, rows, box_matrix, use_pbc)

        amplitudes = np.ascontiguousarray(params.amplitudes[vector_idx])
        if params.kernel == PHASE:
            q_vectors = np.ascontiguousarray(params.q_vectors[vector_idx])
            return exact_phase_partial(q_vectors, amplitudes, rows, displacements, chunks)
        q_values = np.ascontiguousarray(params.q[vector_idx])
        return exact_debye_partial(q_values, amplitudes, rows, displacements, distances, chunks)

    def compute(self, positions, box, vector_idx, comm):
        rows = comm.owned_rows(positions.shape[0])
        intensity, derivatives = self.partial(positions, box, vector_idx, rows)
        comm.allreduce_sum(intensity)
        comm.allreduce_sum(derivatives)
        return intensity, derivatives


class MultipoleBackend(IntensityBackend):
    """Spherical-harmonic expansion of the orientation-averaged intensity.

    With regular solid harmonics ``R_nm(i) = j_n(q r_i) Y_nm(theta_i, phi_i)``
    about the bounding box center and ``C_nm = sum_i a_i R_nm(i)``,

    .. math::

        I = 4 \\pi \\sum_{n < T} \\sum_m |C_{nm}|^2 .

    The angular part is computed once per call and shared by all vectors; only the
    spherical Bessel factors depend on ``q``. Each rank accumulates ``C_nm`` over
    its atoms, the coefficients are sum-reduced, and each rank then evaluates the
    gradient for its atoms.

    Notes
    -----
    Periodic boxes are ignored on this path; the expansion assumes an isolated
    atom set.
    """

    name = "multipole"

    def __init__(self, simulation: "Simulation"):
        super().__init__(simulation)
        if simulation.parameters.kernel != DEBYE:
            raise ValueError(
                "The multipole expansion requires orientation-averaged scattering "
                "vectors (magnitudes only)."
            )
        self._tables: tuple[int, np.ndarray, np.ndarray] | None = None

    def recursion_tables(self, degree_max: int) -> tuple[np.ndarray, np.ndarray]:
        if self._tables is None or self._tables[0] < degree_max:
            a, b = recursion_tables(degree_max)
            self._tables = (degree_max, a, b)
        return self._tables[1], self._tables[2]

    def prepare(self, positions: np.ndarray, rows: np.ndarray, degree_max: int):
        """Radii and angular basis of the atoms ``rows`` up to ``degree_max``."""

        r, cos_theta, phi = Particles(positions).polar()
        r = np.ascontiguousarray(r[rows])
        basis = angular_basis(
            np.ascontiguousarray(cos_theta[rows]),
            np.ascontiguousarray(phi[rows]),
            int(degree_max),
        )
        return r, basis

    @staticmethod
    def radial(q: float, r: np.ndarray, degree_max: int) -> np.ndarray:
        """Spherical Bessel factors ``j_n(q r)``, shape ``(degree_max + 1, len(r))``."""
        orders = np.arange(degree_max + 1)[:, None]
        return np.ascontiguousarray(spherical_jn(orders, q * r[None, :]))

    def partial_coefficients(
        self, positions: np.ndarray, rows: np.ndarray, k: int, truncation: int
    ) -> np.ndarray:
        """Rank-local expansion coefficients of vector ``k`` (before reduction)."""

        params = self._sim.parameters
        r, basis = self.prepare(positions, rows, truncation)
        radial = self.radial(float(params.q[k]), r, truncation)
        amplitudes = np.ascontiguousarray(params.amplitudes[k, rows])
        return expansion_coefficients(basis, radial, amplitudes, int(truncation))

    def compute(self, positions, box, vector_idx, comm, truncation=None):
        params = self._sim.parameters
        vector_idx = np.asarray(vector_idx, dtype=np.int64)
        n_atoms = positions.shape[0]
        intensity = np.zeros(vector_idx.size, dtype=np.float64)
        derivatives = np.zeros((vector_idx.size, n_atoms, 3), dtype=np.float64)
        if vector_idx.size == 0 or n_atoms == 0:
            return intensity, derivatives
        if truncation is None:
            raise ValueError("Truncation orders are required for the multipole path.")
        truncation = np.asarray(truncation, dtype=np.int64)

        rows = comm.owned_rows(n_atoms)
        degree_max = int(truncation.max())
        a_table, b_table = self.recursion_tables(degree_max + 1)
        r, basis = self.prepare(positions, rows, degree_max)

        for out, (k, order) in enumerate(zip(vector_idx, truncation)):
            order = int(order)
            q = float(params.q[k])
            radial = self.radial(q, r, order)
            amplitudes = np.ascontiguousarray(params.amplitudes[k, rows])
            coefficients = expansion_coefficients(basis, radial, amplitudes, order)
            comm.allreduce_sum(coefficients)

            intensity[out] = 4.0 * np.pi * float(np.sum(np.abs(coefficients) ** 2))

            grad = multipole_gradient(
                basis, radial, coefficients, amplitudes, order, q, a_table, b_table
            )
            derivatives[out, rows] = grad
            self.log.debug("multipole q=%g truncation=%d", q, order)

        comm.allreduce_sum(derivatives)
        return intensity, derivatives


class DenseArrayBackend(IntensityBackend):
    """Whole-system evaluation on materialised pair arrays.

    Rank 0 evaluates every vector through the ops returned by
    :func:`saxspy.intensity.factory.get_dense_array_ops` and broadcasts the
    result. With a height pre-filter, only atoms below the cut are evaluated
    (weighted by their Fermi-Dirac factor) and derivatives are scattered back to
    the original atom indices.
    """

    name = "dense"

    def compute(self, positions, box, vector_idx, comm):
        from saxspy.intensity.factory import get_dense_array_ops

        sim = self._sim
        params = sim.parameters
        settings = sim.numerics.prefilter
        vector_idx = np.asarray(vector_idx, dtype=np.int64)
        n_atoms = positions.shape[0]
        intensity = np.zeros(vector_idx.size, dtype=np.float64)
        derivatives = np.zeros((vector_idx.size, n_atoms, 3), dtype=np.float64)

        if comm.rank == 0:
            ops = get_dense_array_ops(sim)
            amplitudes = params.amplitudes[vector_idx]
            q_vectors = None if params.q_vectors is None else params.q_vectors[vector_idx]
            if settings is None:
                result = ops.evaluate(positions, amplitudes, params.q[vector_idx], q_vectors, box)
                intensity[:], derivatives[:] = result
            else:
                kept, weights = partition_by_height(positions, settings)
                self.log.debug("pre-filter kept %d of %d atoms", kept.size, n_atoms)
                sub_intensity, sub_derivatives = ops.evaluate(
                    positions[kept],
                    amplitudes[:, kept],
                    params.q[vector_idx],
                    q_vectors,
                    box,
                    weights=weights,
                    taper_width=settings.taper_width,
                )
                intensity[:] = sub_intensity
                derivatives[:] = scatter_rows(sub_derivatives, kept, n_atoms)

        comm.bcast(intensity)
        comm.bcast(derivatives)
        return intensity, derivatives
