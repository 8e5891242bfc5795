"""Factory for per-simulation dense-array operations.

This module provides a single entry point :func:`get_dense_array_ops` that
selects a host (NumPy) or CUDA (CuPy) implementation at runtime.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from saxspy.intensity.dense import ArrayDenseOps
from saxspy.intensity.ops import DenseArrayOps

if TYPE_CHECKING:  # pragma: no cover
    from saxspy.simulation import Simulation


def get_dense_array_ops(sim: "Simulation") -> DenseArrayOps:
    """Return a per-simulation dense-array ops instance.

    Parameters
    ----------
    sim:
        Simulation instance.

    Returns
    -------
    DenseArrayOps
        A host or CUDA implementation of :class:`saxspy.intensity.ops.DenseArrayOps`.

    Raises
    ------
    RuntimeError
        If ``sim.numerics.gpu`` is set but no CUDA device can be used. There is
        no silent fallback to the host.

    Notes
    -----
    The returned object is cached on the simulation instance under
    ``sim._dense_array_ops`` so the device is selected only once.
    """

    cached = getattr(sim, "_dense_array_ops", None)
    if cached is not None:
        return cast(DenseArrayOps, cached)

    numerics = sim.numerics
    if numerics.gpu:
        ops: DenseArrayOps = ArrayDenseOps.cuda(numerics.precision, numerics.device_id)
    else:
        ops = ArrayDenseOps.host(numerics.precision)
    sim.log.info("Dense-array engine on %s (%s)", ops.device, numerics.precision)

    setattr(sim, "_dense_array_ops", ops)
    return ops
