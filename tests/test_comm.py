import numpy as np
import pytest

from saxspy.comm import Communicator


def test_serial_group():
    comm = Communicator.serial()
    assert comm.rank == 0
    assert comm.size == 1
    assert comm.is_serial
    np.testing.assert_array_equal(comm.owned_rows(4), [0, 1, 2, 3])

    values = np.array([1.0, 2.0])
    assert comm.allreduce_sum(values) is values
    assert comm.bcast(values) is values
    np.testing.assert_array_equal(values, [1.0, 2.0])
    comm.barrier()


def test_world_group_with_mpi():
    pytest.importorskip("mpi4py")
    comm = Communicator.world()

    rows = comm.owned_rows(10)
    assert np.all(rows % comm.size == comm.rank)

    values = np.full(3, float(comm.rank))
    comm.allreduce_sum(values)
    np.testing.assert_allclose(values, sum(range(comm.size)))

    root = np.full(2, float(comm.rank))
    comm.bcast(root)
    np.testing.assert_array_equal(root, [0.0, 0.0])
