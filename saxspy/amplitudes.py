"""Per-atom scattering amplitudes.

Two ways to obtain the ``(numq, N)`` amplitude table are provided:

- polynomial: each atom carries coefficients ``c_j`` and ``a(q) = sum_j c_j q^j``
- atomistic: Waasmaier-Kirfel form factors of the element, corrected for the
  solvent displaced by the atom (Fraser et al.)

Both also return the forward-scattering amplitude sum ``I0`` used by
:func:`normalise`.
"""

from __future__ import annotations

import logging

import numpy as np

log = logging.getLogger(__name__)

WATER_DENSITY = 0.334

# Waasmaier & Kirfel (1995): four Gaussians a_j exp(-b_j s^2) plus c, with the
# excluded volume v (A^3) of Fraser et al. (1978).
FORM_FACTORS = {
    "H": {
        "a": (0.493002, 0.322912, 0.140191, 0.040810),
        "b": (10.5109, 26.1257, 3.14236, 57.7997),
        "c": 0.003038,
        "v": 5.15,
    },
    "C": {
        "a": (2.31000, 1.02000, 1.58860, 0.86500),
        "b": (20.8439, 10.2075, 0.56870, 51.6512),
        "c": 0.215600,
        "v": 16.44,
    },
    "N": {
        "a": (12.2126, 3.13220, 2.01250, 1.16630),
        "b": (0.00570, 9.89330, 28.9975, 0.58260),
        "c": -11.529,
        "v": 2.49,
    },
    "O": {
        "a": (3.04850, 2.28680, 1.54630, 0.86700),
        "b": (13.2771, 5.70110, 0.32390, 32.9089),
        "c": 0.250800,
        "v": 9.13,
    },
    "P": {
        "a": (6.43450, 4.17910, 1.78000, 1.49080),
        "b": (1.90670, 27.1570, 0.52600, 68.1645),
        "c": 1.11490,
        "v": 5.73,
    },
    "S": {
        "a": (6.90530, 5.20340, 1.43790, 1.58630),
        "b": (1.46790, 22.2151, 0.25360, 56.1720),
        "c": 0.866900,
        "v": 19.86,
    },
    "B": {
        "a": (2.05450, 1.33260, 1.09790, 0.70680),
        "b": (23.2185, 1.02100, 60.3498, 0.14030),
        "c": -0.19320,
        "v": 38.19,
    },
    "F": {
        "a": (3.53920, 2.64120, 1.51700, 1.02430),
        "b": (10.2825, 4.29440, 0.26150, 26.1476),
        "c": 0.277600,
        "v": 17.69,
    },
}


def element_of(name: str) -> str:
    """Element symbol of an atom name: its first character, or the second if the first is a digit."""
    name = str(name).strip()
    if not name:
        raise ValueError("Empty atom name.")
    if name[0].isdigit():
        if len(name) < 2:
            raise ValueError(f"Cannot derive an element from atom name {name!r}.")
        return name[1].upper()
    return name[0].upper()


def polynomial_amplitudes(coefficients, q: np.ndarray) -> tuple[np.ndarray, float]:
    """
    Evaluate per-atom amplitude polynomials.

    Args:
        coefficients (list): One coefficient sequence ``(c_0, c_1, ...)`` per atom;
            sequences may differ in length.
        q (np.ndarray): Scattering vector magnitudes.

    Returns:
        table (np.ndarray): Amplitudes of shape ``(numq, N)``.
        i0 (float): Sum of the constant terms.
    """
    q = np.atleast_1d(np.asarray(q, dtype=float))
    table = np.zeros((q.size, len(coefficients)), dtype=float)
    i0 = 0.0
    for i, coeffs in enumerate(coefficients):
        coeffs = np.atleast_1d(np.asarray(coeffs, dtype=np.longdouble))
        if coeffs.size == 0:
            raise ValueError(f"Atom {i} has no amplitude coefficients.")
        table[:, i] = np.polynomial.polynomial.polyval(q.astype(np.longdouble), coeffs)
        i0 += float(coeffs[0])
    return table, i0


def atomistic_amplitudes(
    names, q: np.ndarray, water_density: float = WATER_DENSITY
) -> tuple[np.ndarray, float]:
    """
    Solvent-corrected atomic form factors.

    Args:
        names (list): Atom names; the element is taken from :func:`element_of`.
        q (np.ndarray): Scattering vector magnitudes in inverse Angstrom.
        water_density (float): Electron density of the solvent.

    Returns:
        table (np.ndarray): Amplitudes of shape ``(numq, N)``.
        i0 (float): Forward-scattering amplitude sum.

    Raises:
        ValueError: For elements without tabulated parameters.
    """
    q = np.atleast_1d(np.asarray(q, dtype=float))
    s2 = (q / (4.0 * np.pi)) ** 2
    table = np.zeros((q.size, len(names)), dtype=float)
    i0 = 0.0
    for i, name in enumerate(names):
        element = element_of(name)
        if element not in FORM_FACTORS:
            raise ValueError(f"Wrong atom type {element!r} from atom name {name!r}.")
        params = FORM_FACTORS[element]
        volr = params["v"] ** (2.0 / 3.0) / (4.0 * np.pi)
        value = np.full(q.size, params["c"])
        for a, b in zip(params["a"], params["b"]):
            value += a * np.exp(-b * s2)
        value -= water_density * params["v"] * np.exp(-volr * q * q)
        table[:, i] = value
        i0 += sum(params["a"]) - water_density * params["v"] + params["c"]
    return table, i0


def normalise(
    table: np.ndarray,
    i0: float,
    scale_int: float = 1.0,
    reference: np.ndarray | None = None,
) -> np.ndarray:
    """Scale amplitudes so the forward intensity matches the requested scale.

    The divisor is ``sqrt(I0^2 / scale)`` with ``scale = scale_int`` when it is not
    one, else the first reference intensity when references are given, else one.
    """

    if i0 == 0:
        raise ValueError("Forward-scattering amplitude sum is zero; cannot normalise.")
    scale = 1.0
    if scale_int != 1:
        scale = float(scale_int)
    elif reference is not None and len(reference):
        scale = float(reference[0])
    if scale <= 0:
        raise ValueError(f"Intensity scale must be positive, got {scale}.")
    divisor = np.sqrt(i0 * i0 / scale)
    log.debug("Amplitude normalisation: I0=%g scale=%g divisor=%g", i0, scale, divisor)
    return np.asarray(table, dtype=float) / divisor
