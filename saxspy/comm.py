"""Process-group abstraction used by the intensity backends.

Backends only need the rank, the group size, an in-place sum reduction and a
broadcast. :class:`Communicator` wraps an ``mpi4py`` communicator; the serial
group (rank 0 of 1) needs no MPI at all.
"""

from __future__ import annotations

from typing import Any

import numpy as np


def _load_mpi():
    try:
        import mpi4py

        mpi4py.rc.initialize = False
        mpi4py.rc.finalize = False
        from mpi4py import MPI
    except ImportError as exc:
        raise RuntimeError("mpi4py required for distributed execution") from exc
    if not MPI.Is_initialized():
        MPI.Init()
    return MPI


class Communicator:
    """Sum-reduction and broadcast over a group of processes.

    Parameters
    ----------
    comm:
        An ``mpi4py`` communicator, or ``None`` for the serial group.
    """

    def __init__(self, comm: Any = None):
        self._comm = comm
        self._mpi = None
        if comm is not None:
            self._mpi = _load_mpi()

    @classmethod
    def serial(cls) -> "Communicator":
        return cls(None)

    @classmethod
    def world(cls) -> "Communicator":
        """Wrap ``MPI.COMM_WORLD``; raises :class:`RuntimeError` without mpi4py."""
        mpi = _load_mpi()
        return cls(mpi.COMM_WORLD)

    @property
    def rank(self) -> int:
        return 0 if self._comm is None else int(self._comm.Get_rank())

    @property
    def size(self) -> int:
        return 1 if self._comm is None else int(self._comm.Get_size())

    @property
    def is_serial(self) -> bool:
        return self.size == 1

    def owned_rows(self, atom_count: int) -> np.ndarray:
        """Atoms ``i`` handled by this rank: ``rank, rank + size, ...``."""
        return np.arange(self.rank, atom_count, self.size, dtype=np.int64)

    def allreduce_sum(self, array: np.ndarray) -> np.ndarray:
        """Sum ``array`` over all ranks in place and return it."""
        if self._comm is None or self.size == 1:
            return array
        self._comm.Allreduce(self._mpi.IN_PLACE, array, op=self._mpi.SUM)
        return array

    def bcast(self, array: np.ndarray, root: int = 0) -> np.ndarray:
        """Overwrite ``array`` on every rank with the copy held by ``root``."""
        if self._comm is None or self.size == 1:
            return array
        self._comm.Bcast(array, root=root)
        return array

    def barrier(self) -> None:
        if self._comm is not None:
            self._comm.Barrier()

    def __repr__(self) -> str:
        return f"Communicator(rank={self.rank}, size={self.size})"
