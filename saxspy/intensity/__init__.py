"""Intensity backends and dense-array operation factories.

The public API is centered around backend classes (selected by
``Numerics.intensity_backend`` and the per-vector path classification) and the
low-level dense-array operations returned by
:func:`saxspy.intensity.factory.get_dense_array_ops`.
"""

from __future__ import annotations

from saxspy.intensity.backends import (
    DenseArrayBackend,
    ExactBackend,
    IntensityBackend,
    MultipoleBackend,
)
from saxspy.intensity.factory import get_dense_array_ops
from saxspy.intensity.prefilter import PrefilterSettings

__all__ = [
    "DenseArrayBackend",
    "ExactBackend",
    "IntensityBackend",
    "MultipoleBackend",
    "PrefilterSettings",
    "get_dense_array_ops",
]
