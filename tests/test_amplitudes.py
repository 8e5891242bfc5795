import numpy as np
import pytest

from saxspy.amplitudes import (
    FORM_FACTORS,
    WATER_DENSITY,
    atomistic_amplitudes,
    element_of,
    normalise,
    polynomial_amplitudes,
)


def test_polynomial_amplitudes_with_ragged_coefficients():
    table, i0 = polynomial_amplitudes([[1.0, 2.0], [3.0]], [1.0, 2.0])
    np.testing.assert_allclose(table, [[3.0, 3.0], [5.0, 3.0]])
    assert i0 == pytest.approx(4.0)


def test_polynomial_amplitudes_need_coefficients():
    with pytest.raises(ValueError):
        polynomial_amplitudes([[1.0], []], [1.0])


@pytest.mark.parametrize(
    "name,element",
    [("C", "C"), ("CA", "C"), ("1HB", "H"), ("OW", "O"), (" n ", "N")],
)
def test_element_of(name: str, element: str):
    assert element_of(name) == element


@pytest.mark.parametrize("name", ["", "1"])
def test_element_of_rejects_unusable_names(name: str):
    with pytest.raises(ValueError):
        element_of(name)


def test_atomistic_forward_amplitudes_sum_to_i0():
    names = ["C", "N", "O", "1HB", "S"]
    table, i0 = atomistic_amplitudes(names, np.array([0.0]))
    assert table.shape == (1, 5)
    assert table.sum() == pytest.approx(i0)

    carbon = FORM_FACTORS["C"]
    expected = sum(carbon["a"]) + carbon["c"] - WATER_DENSITY * carbon["v"]
    assert table[0, 0] == pytest.approx(expected)


def test_atomistic_amplitudes_decay():
    table, _ = atomistic_amplitudes(["C"], np.array([0.0, 0.5, 1.0]), water_density=0.0)
    assert table[0, 0] > table[1, 0] > table[2, 0]


def test_atomistic_rejects_unknown_elements():
    with pytest.raises(ValueError):
        atomistic_amplitudes(["Zn"], np.array([0.1]))


def test_normalise_scales():
    table = np.array([[2.0, 2.0]])
    np.testing.assert_allclose(normalise(table, 4.0), [[0.5, 0.5]])
    # Forward intensity (sum a)^2 matches the requested scale.
    scaled = normalise(table, 4.0, scale_int=9.0)
    assert scaled.sum() ** 2 == pytest.approx(9.0)
    from_reference = normalise(table, 4.0, reference=np.array([16.0, 1.0]))
    assert from_reference.sum() ** 2 == pytest.approx(16.0)


@pytest.mark.parametrize(
    "i0,kwargs",
    [(0.0, {}), (4.0, dict(scale_int=-1.0)), (4.0, dict(reference=np.array([0.0])))],
)
def test_normalise_rejects(i0, kwargs):
    with pytest.raises(ValueError):
        normalise(np.ones((1, 2)), i0, **kwargs)
