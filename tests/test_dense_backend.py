import numpy as np
import pytest

from saxspy.intensity import get_dense_array_ops
from saxspy.intensity.dense import ArrayDenseOps
from saxspy.intensity.prefilter import PrefilterSettings, partition_by_height
from saxspy.numerics import Numerics
from saxspy.parameters import Parameters
from saxspy.particles import PeriodicBox
from saxspy.simulation import Simulation


def _make_parameters(n: int, *, oriented: bool, seed: int = 0) -> Parameters:
    rng = np.random.default_rng(seed)
    if oriented:
        q_vectors = np.array([[0.3, 0.1, -0.2], [1.0, -0.5, 0.8], [2.0, 1.5, 0.5]])
        return Parameters(amplitudes=rng.uniform(0.5, 2.0, size=(3, n)), q_vectors=q_vectors)
    return Parameters(amplitudes=rng.uniform(0.5, 2.0, size=(3, n)), q=[0.4, 1.3, 2.9])


@pytest.mark.parametrize("oriented", [True, False])
@pytest.mark.parametrize("periodic", [True, False])
def test_dense_matches_pair_sums(oriented: bool, periodic: bool):
    rng = np.random.default_rng(5)
    positions = rng.uniform(0.0, 3.0, size=(14, 3))
    box = PeriodicBox.from_lengths(3.0, 3.0, 3.0) if periodic else None
    parameters = _make_parameters(14, oriented=oriented)

    exact = Simulation(parameters, Numerics()).calculate(positions, box=box)
    dense = Simulation(parameters, Numerics(intensity_backend="dense")).calculate(
        positions, box=box
    )

    np.testing.assert_allclose(dense.intensity, exact.intensity, rtol=1e-9)
    np.testing.assert_allclose(dense.derivatives, exact.derivatives, rtol=1e-8, atol=1e-10)
    np.testing.assert_allclose(dense.box_derivatives, exact.box_derivatives, rtol=1e-8, atol=1e-9)


def test_dense_single_precision_is_close():
    rng = np.random.default_rng(6)
    positions = rng.uniform(-1.0, 1.0, size=(10, 3))
    parameters = _make_parameters(10, oriented=False)

    exact = Simulation(parameters, Numerics()).calculate(positions)
    dense = Simulation(
        parameters, Numerics(intensity_backend="dense", precision="float32")
    ).calculate(positions)

    np.testing.assert_allclose(dense.intensity, exact.intensity, rtol=1e-4)


def test_factory_caches_ops_on_simulation():
    sim = Simulation(_make_parameters(3, oriented=False), Numerics(intensity_backend="dense"))
    ops = get_dense_array_ops(sim)
    assert ops is get_dense_array_ops(sim)
    assert ops.device == "cpu"


def test_prefilter_partition():
    settings = PrefilterSettings(reference_z=0.8, taper_width=0.05, weight_floor=0.001)
    assert settings.z_max == pytest.approx(0.05 * np.log(999.0) + 0.8)

    positions = np.array(
        [[0.0, 0.0, 0.1], [0.0, 0.0, 2.0], [1.0, 0.0, 0.8], [0.0, 1.0, 1.5], [0.0, 0.0, 1.0]]
    )
    kept, weights = partition_by_height(positions, settings)

    np.testing.assert_array_equal(kept, [0, 2, 4])
    assert weights[1] == pytest.approx(0.5)
    assert weights[0] > 0.999
    assert weights[2] > settings.weight_floor


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(taper_width=0.0),
        dict(weight_floor=0.0),
        dict(weight_floor=1.0),
    ],
)
def test_prefilter_settings_validation(kwargs):
    with pytest.raises(ValueError):
        PrefilterSettings(**kwargs)


def test_prefilter_requires_dense_engine():
    with pytest.raises(ValueError):
        Numerics(prefilter=True)


def test_prefilter_scatters_back_and_weights_amplitudes():
    rng = np.random.default_rng(9)
    positions = rng.uniform(0.0, 1.0, size=(12, 3))
    positions[:, 2] = np.linspace(0.5, 1.6, 12)
    settings = PrefilterSettings(reference_z=0.8, taper_width=0.05, weight_floor=0.001)
    parameters = _make_parameters(12, oriented=False)

    result = Simulation(
        parameters, Numerics(intensity_backend="dense", prefilter=settings)
    ).calculate(positions)

    kept, weights = partition_by_height(positions, settings)
    dropped = np.setdiff1d(np.arange(12), kept)
    assert dropped.size > 0
    np.testing.assert_allclose(result.derivatives[:, dropped], 0.0)

    weighted = Parameters(amplitudes=parameters.amplitudes[:, kept] * weights, q=parameters.q)
    reference = Simulation(weighted, Numerics()).calculate(positions[kept])
    np.testing.assert_allclose(result.intensity, reference.intensity, rtol=1e-9)
    # In-plane components carry no taper term.
    np.testing.assert_allclose(
        result.derivatives[:, kept, :2], reference.derivatives[:, :, :2], rtol=1e-8, atol=1e-10
    )


def test_prefilter_taper_derivative_matches_finite_differences():
    rng = np.random.default_rng(10)
    positions = rng.uniform(0.0, 1.0, size=(6, 3))
    positions[:, 2] = rng.uniform(0.6, 0.95, size=6)
    settings = PrefilterSettings()
    ops = ArrayDenseOps.host()
    amplitudes = rng.uniform(0.5, 2.0, size=(1, 6))
    q = np.array([1.7])

    def intensity(pos):
        value, _ = ops.evaluate(
            pos, amplitudes, q, None, None,
            weights=settings.weights(pos[:, 2]), taper_width=settings.taper_width,
        )
        return value[0]

    _, derivatives = ops.evaluate(
        positions, amplitudes, q, None, None,
        weights=settings.weights(positions[:, 2]), taper_width=settings.taper_width,
    )
    h = 1e-6
    for atom in range(6):
        plus = positions.copy()
        minus = positions.copy()
        plus[atom, 2] += h
        minus[atom, 2] -= h
        numeric = (intensity(plus) - intensity(minus)) / (2 * h)
        assert derivatives[0, atom, 2] == pytest.approx(numeric, rel=1e-5, abs=1e-7)


def test_gpu_unavailable_is_a_setup_error():
    try:
        import cupy

        if cupy.cuda.runtime.getDeviceCount() > 0:
            pytest.skip("CUDA device available")
    except ImportError:
        pass
    except Exception:  # cupy installed without a usable driver
        pass

    with pytest.raises(RuntimeError):
        Simulation(_make_parameters(3, oriented=False), Numerics(gpu=True))


def test_gpu_dense_matches_host():
    cp = pytest.importorskip("cupy")
    try:
        if cp.cuda.runtime.getDeviceCount() <= 0:
            pytest.skip("no CUDA device")
    except cp.cuda.runtime.CUDARuntimeError:
        pytest.skip("no CUDA runtime")

    rng = np.random.default_rng(12)
    positions = rng.uniform(0.0, 2.0, size=(16, 3))
    parameters = _make_parameters(16, oriented=True)
    host = Simulation(parameters, Numerics(intensity_backend="dense")).calculate(positions)
    device = Simulation(parameters, Numerics(gpu=True)).calculate(positions)

    np.testing.assert_allclose(device.intensity, host.intensity, rtol=1e-9)
    np.testing.assert_allclose(device.derivatives, host.derivatives, rtol=1e-8, atol=1e-10)
