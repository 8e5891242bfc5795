import numpy as np
import pytest

from saxspy.comm import Communicator
from saxspy.functions.kernels import debye_pair, debye_terms, phase_pair, phase_terms
from saxspy.numerics import Numerics
from saxspy.parameters import Parameters
from saxspy.particles import PeriodicBox
from saxspy.selector import PathKind
from saxspy.simulation import Simulation


class _RankView(Communicator):
    """One rank of an emulated group; reductions are left to the test."""

    def __init__(self, rank: int, size: int):
        super().__init__(None)
        self._rank = rank
        self._size = size

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return self._size


def _make_cluster(n: int = 12, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.uniform(-1.0, 1.0, size=(n, 3))


def _make_simulation(
    *, n: int, q=None, q_vectors=None, seed: int = 0, comm=None, **numerics
) -> Simulation:
    numq = len(q) if q is not None else len(q_vectors)
    rng = np.random.default_rng(seed + 100)
    amplitudes = rng.uniform(0.5, 2.0, size=(numq, n))
    parameters = Parameters(amplitudes=amplitudes, q=q, q_vectors=q_vectors)
    return Simulation(parameters, Numerics(**numerics), comm=comm)


def test_two_atoms_phase_kernel():
    d, q = 0.7, 2.3
    positions = np.array([[0.0, 0.0, 0.0], [d, 0.0, 0.0]])
    parameters = Parameters(amplitudes=np.ones((1, 2)), q_vectors=np.array([[q, 0.0, 0.0]]))
    sim = Simulation(parameters, Numerics())

    result = sim.calculate(positions)

    assert result.intensity[0] == pytest.approx(2.0 + 2.0 * np.cos(q * d))
    np.testing.assert_allclose(result.derivatives[0, 1], [-2.0 * q * np.sin(q * d), 0.0, 0.0])
    np.testing.assert_allclose(result.derivatives[0, 0], [2.0 * q * np.sin(q * d), 0.0, 0.0])
    assert result.paths == (PathKind.EXACT,)
    assert result.labels == ["q_0"]


def test_two_atoms_debye_kernel():
    d, q = 0.9, 1.7
    positions = np.array([[0.0, 0.0, 0.0], [0.0, d, 0.0]])
    sim = Simulation(Parameters(amplitudes=np.ones((1, 2)), q=[q]), Numerics())

    result = sim.calculate(positions)

    sinc = np.sin(q * d) / (q * d)
    assert result.intensity[0] == pytest.approx(2.0 + 2.0 * sinc)
    expected = 2.0 * (np.cos(q * d) - sinc) / d
    np.testing.assert_allclose(result.derivatives[0, 1], [0.0, expected, 0.0], atol=1e-12)


def test_coincident_atoms_give_four_and_no_force():
    positions = np.array([[0.3, -0.2, 0.5], [0.3, -0.2, 0.5]])
    sim = Simulation(
        Parameters(amplitudes=np.ones((1, 2)), q_vectors=np.array([[1.0, 2.0, 0.5]])),
        Numerics(),
    )
    result = sim.calculate(positions)
    assert result.intensity[0] == pytest.approx(4.0)
    np.testing.assert_allclose(result.derivatives, 0.0, atol=1e-14)


def test_single_atom_intensity_is_amplitude_squared():
    sim = Simulation(Parameters(amplitudes=np.array([[3.0]]), q=[0.5]), Numerics())
    result = sim.calculate(np.array([[1.0, 2.0, 3.0]]))
    assert result.intensity[0] == pytest.approx(9.0)
    np.testing.assert_allclose(result.derivatives, 0.0)


@pytest.mark.parametrize("kernel", ["phase", "debye"])
def test_translation_invariance_and_zero_net_force(kernel: str):
    positions = _make_cluster(15, seed=1)
    if kernel == "phase":
        sim = _make_simulation(n=15, q_vectors=np.array([[0.5, 0.0, 1.0], [2.0, -1.0, 0.3]]))
    else:
        sim = _make_simulation(n=15, q=[0.4, 1.5, 3.0])

    base = sim.calculate(positions)
    shifted = sim.calculate(positions + np.array([4.0, -2.5, 7.25]))

    np.testing.assert_allclose(shifted.intensity, base.intensity, rtol=1e-10)
    np.testing.assert_allclose(shifted.derivatives, base.derivatives, rtol=1e-8, atol=1e-10)
    np.testing.assert_allclose(base.derivatives.sum(axis=1), 0.0, atol=1e-10)


@pytest.mark.parametrize("kernel", ["phase", "debye"])
def test_derivatives_match_finite_differences(kernel: str):
    positions = _make_cluster(6, seed=2)
    if kernel == "phase":
        sim = _make_simulation(n=6, q_vectors=np.array([[1.0, 0.5, -0.7]]))
    else:
        sim = _make_simulation(n=6, q=[2.1])

    analytic = sim.calculate(positions).derivatives[0]
    h = 1e-6
    for atom in range(6):
        for axis in range(3):
            plus = positions.copy()
            minus = positions.copy()
            plus[atom, axis] += h
            minus[atom, axis] -= h
            numeric = (
                sim.calculate(plus).intensity[0] - sim.calculate(minus).intensity[0]
            ) / (2 * h)
            assert analytic[atom, axis] == pytest.approx(numeric, rel=1e-5, abs=1e-7)


@pytest.mark.parametrize("size", [1, 2, 3, 5])
@pytest.mark.parametrize("chunks", [1, 2, 4])
def test_rank_and_thread_partition_independence(size: int, chunks: int):
    positions = _make_cluster(11, seed=4)
    sim = _make_simulation(n=11, q=[0.3, 1.1, 2.7])
    backend = sim.exact_backend
    vectors = np.arange(3)
    reference_i, reference_d = backend.partial(positions, None, vectors, np.arange(11), chunks=1)

    intensity = np.zeros(3)
    derivatives = np.zeros((3, 11, 3))
    for rank in range(size):
        rows = np.arange(rank, 11, size, dtype=np.int64)
        part_i, part_d = backend.partial(positions, None, vectors, rows, chunks=chunks)
        intensity += part_i
        derivatives += part_d

    np.testing.assert_allclose(intensity, reference_i, rtol=1e-10)
    np.testing.assert_allclose(derivatives, reference_d, rtol=1e-10, atol=1e-12)


def test_emulated_ranks_through_simulation():
    positions = _make_cluster(9, seed=5)
    q_vectors = np.array([[0.2, 0.1, 0.0], [1.0, 1.0, 1.0]])
    serial = _make_simulation(n=9, q_vectors=q_vectors).calculate(positions)

    total_i = np.zeros(2)
    total_d = np.zeros((2, 9, 3))
    total_box = np.zeros((2, 3, 3))
    for rank in range(3):
        result = _make_simulation(
            n=9, q_vectors=q_vectors, comm=_RankView(rank, 3)
        ).calculate(positions)
        total_i += result.intensity
        total_d += result.derivatives
        total_box += result.box_derivatives

    np.testing.assert_allclose(total_i, serial.intensity, rtol=1e-10)
    np.testing.assert_allclose(total_d, serial.derivatives, rtol=1e-10, atol=1e-12)
    np.testing.assert_allclose(total_box, serial.box_derivatives, rtol=1e-10, atol=1e-12)


def test_serial_flag_ignores_communicator():
    sim = _make_simulation(n=4, q=[1.0], comm=_RankView(1, 2), serial=True)
    assert sim.comm.size == 1


def test_minimum_image_in_pair_sums():
    q = 1.3
    box = PeriodicBox.from_lengths(2.0, 2.0, 2.0)
    sim = Simulation(Parameters(amplitudes=np.ones((1, 2)), q=[q]), Numerics())

    wrapped = sim.calculate(np.array([[0.1, 0.0, 0.0], [1.9, 0.0, 0.0]]), box=box)
    direct = sim.calculate(np.array([[0.1, 0.0, 0.0], [-0.1, 0.0, 0.0]]))

    assert wrapped.intensity[0] == pytest.approx(direct.intensity[0])
    np.testing.assert_allclose(wrapped.derivatives, direct.derivatives, atol=1e-12)

    no_pbc = Simulation(
        Parameters(amplitudes=np.ones((1, 2)), q=[q]), Numerics(pbc=False)
    ).calculate(np.array([[0.1, 0.0, 0.0], [1.9, 0.0, 0.0]]), box=box)
    assert no_pbc.intensity[0] == pytest.approx(2.0 + 2.0 * np.sin(q * 1.8) / (q * 1.8))


def test_scalar_and_array_kernels_agree():
    rng = np.random.default_rng(7)
    displacements = rng.normal(size=(5, 3))
    displacements[0] = 0.0
    distances = np.linalg.norm(displacements, axis=1)
    q_vector = np.array([0.4, -1.2, 0.9])

    value, grad = phase_terms(np, q_vector, displacements)
    d_value, d_grad = debye_terms(np, 1.7, displacements, distances)
    for row in range(5):
        scalar = phase_pair(*q_vector, *displacements[row])
        assert value[row] == pytest.approx(scalar[0])
        np.testing.assert_allclose(grad[row], scalar[1:], atol=1e-12)

        scalar = debye_pair(1.7, *displacements[row], distances[row])
        assert d_value[row] == pytest.approx(scalar[0])
        np.testing.assert_allclose(d_grad[row], scalar[1:], atol=1e-12)
