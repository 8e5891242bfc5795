"""Choice between exact pair sums and the multipole expansion per scattering vector.

The expansion costs roughly ``O(N T^2)`` per vector against ``O(N^2)`` for the
pair sum, where the truncation order ``T`` grows with ``extent * |q|``. Vectors
are sorted by magnitude, so ``T`` is non-decreasing along them and the vectors
worth expanding form a prefix ``0 .. crossover``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from saxspy.functions.misc import truncation_order

log = logging.getLogger(__name__)


class PathKind(str, Enum):
    EXACT = "exact"
    MULTIPOLE = "multipole"


@dataclass(frozen=True)
class Classification:
    """Per-vector path decision.

    Attributes
    ----------
    truncation:
        Truncation order per vector.
    crossover:
        Largest vector index on the multipole path, ``-1`` when there is none.
    paths:
        :class:`PathKind` per vector.
    """

    truncation: np.ndarray
    crossover: int
    paths: tuple

    @property
    def multipole_indices(self) -> np.ndarray:
        return np.array(
            [k for k, path in enumerate(self.paths) if path is PathKind.MULTIPOLE],
            dtype=np.int64,
        )

    @property
    def exact_indices(self) -> np.ndarray:
        return np.array(
            [k for k, path in enumerate(self.paths) if path is PathKind.EXACT],
            dtype=np.int64,
        )


def truncation_orders(extent: float, q_values: np.ndarray) -> np.ndarray:
    """Truncation order for every scattering vector magnitude."""
    return np.array([truncation_order(extent, q) for q in np.atleast_1d(q_values)], dtype=np.int64)


def crossover_index(truncation: np.ndarray, atom_count: int) -> int:
    """Largest ``k`` with ``4 T_k < sqrt(2 N)``, scanning from the last vector down.

    Returns ``-1`` when no vector satisfies the bound.
    """

    bound = np.sqrt(2.0 * atom_count)
    for k in range(len(truncation) - 1, -1, -1):
        if 4 * int(truncation[k]) < bound:
            return k
    return -1


def classify(
    q_values: np.ndarray,
    extent: float,
    atom_count: int,
    *,
    enabled: bool = True,
    force: bool = False,
) -> Classification:
    """Assign every scattering vector to a computation path.

    Parameters
    ----------
    q_values:
        Scattering vector magnitudes in ascending order.
    extent:
        Largest bounding box edge of the whole atom set.
    atom_count:
        Number of atoms.
    enabled:
        Whether the multipole path may be used at all.
    force:
        Route every vector through the multipole path.

    Returns
    -------
    Classification
        The decision. It depends only on the arguments, never on how the work
        is later split across ranks or threads.
    """

    q_values = np.atleast_1d(np.asarray(q_values, dtype=float))
    truncation = truncation_orders(extent, q_values)

    if force:
        crossover = q_values.size - 1
    elif not enabled or atom_count == 0:
        crossover = -1
    else:
        crossover = crossover_index(truncation, atom_count)
        if crossover < 0:
            log.warning(
                "Multipole expansion is not worthwhile for %d atoms "
                "(smallest truncation order %d); using exact pair sums only.",
                atom_count,
                int(truncation.min()),
            )

    paths = tuple(
        PathKind.MULTIPOLE if k <= crossover else PathKind.EXACT
        for k in range(q_values.size)
    )
    return Classification(truncation=truncation, crossover=crossover, paths=paths)
