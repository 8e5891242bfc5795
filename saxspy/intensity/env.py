"""Defaults taken from ``SAXSPY_*`` environment variables.

Unset or malformed values never raise; they fall back to the built-in default
so batch jobs keep running with a stale environment.
"""

from __future__ import annotations

import os

THREADS_ENV = "SAXSPY_NUM_THREADS"
DEVICE_ENV = "SAXSPY_GPU_DEVICE"
PRECISION_ENV = "SAXSPY_PRECISION"

PRECISION_ALIASES = {
    "float64": "float64",
    "double": "float64",
    "f64": "float64",
    "fp64": "float64",
    "float32": "float32",
    "single": "float32",
    "f32": "float32",
    "fp32": "float32",
}


def env_int(name: str, *, default: int, minimum: int = 1) -> int:
    """Integer value of ``name``, clipped from below at ``minimum``.

    ``default`` is returned unchanged when the variable is missing, empty or
    not an integer.
    """

    raw = os.environ.get(name, "").strip()
    if raw.lstrip("+-").isdigit():
        return max(minimum, int(raw))
    return default


def normalize_precision(value: str) -> str:
    """Map a precision alias to ``'float64'`` or ``'float32'``.

    Unknown aliases map to ``'float64'``; :class:`saxspy.numerics.Numerics`
    rejects them before they get here.
    """

    return PRECISION_ALIASES.get(str(value).strip().lower(), "float64")


def default_thread_chunks() -> int:
    """Thread-private buffers of the pair-sum kernels; the Numba thread count unless overridden."""

    import numba

    return env_int(THREADS_ENV, default=int(numba.get_num_threads()))


def default_device_id() -> int:
    return env_int(DEVICE_ENV, default=0, minimum=0)


def default_precision() -> str:
    return normalize_precision(os.environ.get(PRECISION_ENV, "float64"))
