"""Height-based pre-filter for interface systems.

Atoms far above a reference plane contribute with vanishing weight. Before the
dense-array engine runs, atoms whose Fermi-Dirac weight

.. math::

    w(z) = \\frac{1}{1 + \\exp((z - z_0) / W)}

falls below ``weight_floor`` are dropped, and the remaining atoms carry ``w`` as a
multiplicative factor on their amplitude. Results are scattered back to the
original atom indices; dropped atoms get zero derivatives.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class PrefilterSettings:
    """Fermi-Dirac taper parameters (lengths in the units of the positions)."""

    reference_z: float = 0.8
    taper_width: float = 0.05
    weight_floor: float = 0.001

    def __post_init__(self):
        if not self.taper_width > 0:
            raise ValueError(f"Taper width must be positive, got {self.taper_width}.")
        if not 0.0 < self.weight_floor < 1.0:
            raise ValueError(
                f"Weight floor must lie in (0, 1), got {self.weight_floor}."
            )

    @classmethod
    def from_value(cls, value) -> "PrefilterSettings | None":
        """Build settings from ``None``, ``True``, a mapping or an instance."""
        if value is None or value is False:
            return None
        if value is True:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls(**value)
        raise ValueError(f"Unsupported prefilter settings: {value!r}.")

    @property
    def z_max(self) -> float:
        """Height above which the weight is below ``weight_floor``."""
        return self.taper_width * np.log(1.0 / self.weight_floor - 1.0) + self.reference_z

    def weights(self, z: np.ndarray) -> np.ndarray:
        return 1.0 / (1.0 + np.exp((np.asarray(z, dtype=float) - self.reference_z) / self.taper_width))


def partition_by_height(
    positions: np.ndarray, settings: PrefilterSettings
) -> tuple[np.ndarray, np.ndarray]:
    """Select the atoms below ``settings.z_max``.

    Parameters
    ----------
    positions:
        Array of shape ``(N, 3)``.
    settings:
        Taper parameters.

    Returns
    -------
    tuple[numpy.ndarray, numpy.ndarray]
        ``(kept, weights)``: original indices of the kept atoms (ascending) and
        their Fermi-Dirac weights.
    """

    positions = np.asarray(positions, dtype=float)
    kept = np.flatnonzero(positions[:, 2] < settings.z_max)
    return kept, settings.weights(positions[kept, 2])


def scatter_rows(values: np.ndarray, kept: np.ndarray, atom_count: int) -> np.ndarray:
    """Place per-atom rows ``values[:, i]`` back at ``kept[i]`` in a zeroed buffer."""

    out = np.zeros((values.shape[0], atom_count) + values.shape[2:], dtype=values.dtype)
    out[:, kept] = values
    return out
