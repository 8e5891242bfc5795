import logging

import numpy as np

from saxspy.functions.misc import bounding_box, cartesian_to_polar


class PeriodicBox:
    """Periodic simulation cell given by three lattice vectors (one per row).

    A zero diagonal entry marks that direction as non-periodic; an all-zero
    matrix means no periodicity at all.
    """

    def __init__(self, matrix: np.ndarray | None = None):
        if matrix is None:
            matrix = np.zeros((3, 3))
        matrix = np.asarray(matrix, dtype=float)
        if matrix.shape != (3, 3):
            raise ValueError(f"Box matrix must have shape (3, 3), got {matrix.shape}.")
        if not np.all(np.isfinite(matrix)):
            raise ValueError("Box matrix contains non-finite entries.")
        self.matrix = np.ascontiguousarray(matrix)

    @classmethod
    def none(cls) -> "PeriodicBox":
        """Degenerate box without periodicity."""
        return cls(np.zeros((3, 3)))

    @classmethod
    def from_lengths(cls, a: float, b: float, c: float) -> "PeriodicBox":
        """Orthorhombic box with the given edge lengths."""
        return cls(np.diag([a, b, c]))

    @property
    def is_periodic(self) -> bool:
        return bool(np.any(np.diag(self.matrix) != 0.0))

    def reciprocal_vectors(self, miller: np.ndarray) -> np.ndarray:
        """Scattering vectors ``2 pi (h k1 + k k2 + l k3)`` of the reciprocal lattice.

        Args:
            miller (np.ndarray): Miller indices of shape ``(numq, 3)``.

        Returns:
            (np.ndarray): Vectors of shape ``(numq, 3)``.
        """
        volume = np.linalg.det(self.matrix)
        if volume == 0:
            raise ValueError("Reciprocal lattice requires a box with non-zero volume.")
        a0, a1, a2 = self.matrix
        reciprocal = np.array(
            [np.cross(a1, a2), np.cross(a2, a0), np.cross(a0, a1)]
        ) / volume
        miller = np.atleast_2d(np.asarray(miller, dtype=float))
        return 2.0 * np.pi * miller @ reciprocal

    def __repr__(self) -> str:
        return f"PeriodicBox({self.matrix.tolist()!r})"


class Particles:
    """The `Particles` class holds the atom positions of one evaluation together
    with optional atom names and provides the geometric quantities the intensity
    backends share (bounding box, extent, polar coordinates).
    """

    def __init__(self, position: np.ndarray, names: list | None = None):
        """Initializes the atom set.

        Args:
            position (np.array): Array of shape ``(N, 3)`` with the atom positions.
            names (list, optional): Element or bead names, one per atom. Only needed
                when amplitudes are derived from atomic form factors.
        """
        position = np.asarray(position, dtype=float)
        if position.size == 0:
            position = position.reshape(0, 3)
        if position.ndim != 2 or position.shape[1] != 3:
            raise ValueError(
                f"Positions must have shape (N, 3), got {position.shape}."
            )
        if not np.all(np.isfinite(position)):
            raise ValueError("Positions contain non-finite entries.")

        self.position = np.ascontiguousarray(position)
        self.number = position.shape[0]
        self.log = logging.getLogger(self.__class__.__module__)

        if names is not None and len(names) != self.number:
            raise ValueError(
                f"Got {len(names)} atom names for {self.number} atoms."
            )
        self.names = None if names is None else [str(name) for name in names]

    @property
    def bounding_box(self) -> tuple[np.ndarray, np.ndarray]:
        return bounding_box(self.position)

    @property
    def center(self) -> np.ndarray:
        """Center of the axis-aligned bounding box."""
        lower, upper = self.bounding_box
        return 0.5 * (lower + upper)

    @property
    def max_extent(self) -> float:
        """Largest bounding box edge, the length scale for the expansion order."""
        lower, upper = self.bounding_box
        return float(np.max(upper - lower))

    def polar(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Radius, polar cosine and azimuth relative to :attr:`center`."""
        return cartesian_to_polar(self.position, self.center)
