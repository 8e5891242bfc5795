import numpy as np
import pytest
from scipy.special import sph_harm_y

from saxspy.functions.cpu_numba import angular_basis
from saxspy.functions.misc import harmonic_index
from saxspy.numerics import Numerics
from saxspy.parameters import Parameters
from saxspy.selector import PathKind
from saxspy.simulation import Simulation


def _make_pair(n: int = 20, seed: int = 0, q=(0.3, 1.0, 2.0)):
    rng = np.random.default_rng(seed)
    positions = rng.uniform(-0.5, 0.5, size=(n, 3))
    amplitudes = np.tile(rng.uniform(0.5, 1.5, size=n), (len(q), 1))
    parameters = Parameters(amplitudes=amplitudes, q=list(q))
    exact = Simulation(parameters, Numerics())
    multipole = Simulation(parameters, Numerics(force_multipole=True))
    return positions, exact, multipole


def test_angular_basis_matches_scipy():
    rng = np.random.default_rng(11)
    theta = rng.uniform(0.0, np.pi, size=6)
    phi = rng.uniform(-np.pi, np.pi, size=6)
    basis = angular_basis(np.cos(theta), phi, 6)

    for n in range(7):
        for m in range(-n, n + 1):
            expected = sph_harm_y(n, abs(m), theta, phi)
            if m < 0:
                expected = np.conj(expected)
            np.testing.assert_allclose(basis[:, harmonic_index(n, m)], expected, atol=1e-12)


def test_multipole_agrees_with_exact_pair_sums():
    positions, exact, multipole = _make_pair()

    ref = exact.calculate(positions)
    res = multipole.calculate(positions)

    assert all(path is PathKind.MULTIPOLE for path in res.paths)
    np.testing.assert_allclose(res.intensity, ref.intensity, rtol=1e-6)
    scale = np.abs(ref.derivatives).max()
    np.testing.assert_allclose(res.derivatives, ref.derivatives, rtol=1e-6, atol=1e-8 * scale)


def test_multipole_single_atom_and_coincident_atoms():
    parameters = Parameters(amplitudes=np.array([[3.0]]), q=[0.8])
    result = Simulation(parameters, Numerics(force_multipole=True)).calculate(
        np.array([[1.0, -1.0, 2.0]])
    )
    assert result.intensity[0] == pytest.approx(9.0)
    np.testing.assert_allclose(result.derivatives, 0.0, atol=1e-14)

    parameters = Parameters(amplitudes=np.ones((1, 2)), q=[0.8])
    result = Simulation(parameters, Numerics(force_multipole=True)).calculate(
        np.array([[0.5, 0.5, 0.5], [0.5, 0.5, 0.5]])
    )
    assert result.intensity[0] == pytest.approx(4.0)
    np.testing.assert_allclose(result.derivatives, 0.0, atol=1e-12)


def test_multipole_atom_on_expansion_center():
    # The middle atom sits exactly on the bounding box center.
    positions = np.array([[-0.4, 0.0, 0.0], [0.0, 0.0, 0.0], [0.4, 0.1, -0.2], [0.0, -0.1, 0.2]])
    parameters = Parameters(amplitudes=np.array([[1.0, 2.0, 0.5, 1.5]]), q=[1.2])
    ref = Simulation(parameters, Numerics()).calculate(positions)
    res = Simulation(parameters, Numerics(force_multipole=True)).calculate(positions)

    assert res.intensity[0] == pytest.approx(ref.intensity[0], rel=1e-8)
    np.testing.assert_allclose(res.derivatives, ref.derivatives, atol=1e-8)


def test_multipole_coefficients_are_rank_additive():
    positions, _, multipole = _make_pair(n=13, seed=3)
    backend = multipole.multipole_backend

    full = backend.partial_coefficients(positions, np.arange(13), 2, 12)
    summed = np.zeros_like(full)
    for rank in range(4):
        summed += backend.partial_coefficients(positions, np.arange(rank, 13, 4), 2, 12)

    np.testing.assert_allclose(summed, full, rtol=1e-12, atol=1e-14)
    # Negative orders are conjugates of the positive ones.
    assert full[harmonic_index(3, -2)] == pytest.approx(np.conj(full[harmonic_index(3, 2)]))


@pytest.mark.parametrize("threads", [1, 3])
def test_multipole_independent_of_thread_setting(threads: int):
    positions, _, _ = _make_pair(n=10, seed=8)
    rng = np.random.default_rng(8)
    amplitudes = np.tile(rng.uniform(0.5, 1.5, size=10), (2, 1))
    parameters = Parameters(amplitudes=amplitudes, q=[0.5, 1.5])
    one = Simulation(parameters, Numerics(force_multipole=True, threads=1)).calculate(positions)
    other = Simulation(parameters, Numerics(force_multipole=True, threads=threads)).calculate(
        positions
    )
    np.testing.assert_allclose(other.intensity, one.intensity, rtol=1e-10)
    np.testing.assert_allclose(other.derivatives, one.derivatives, rtol=1e-10, atol=1e-12)


def test_multipole_rejects_oriented_vectors():
    parameters = Parameters(amplitudes=np.ones((1, 2)), q_vectors=np.array([[1.0, 0.0, 0.0]]))
    with pytest.raises(ValueError):
        Simulation(parameters, Numerics(multipole=True))


def test_multipole_rejects_gpu():
    with pytest.raises(NotImplementedError):
        Numerics(force_multipole=True, gpu=True)
    with pytest.raises(NotImplementedError):
        Numerics(multipole=True, intensity_backend="dense")
