import json
import logging
import os
from numbers import Number
from pathlib import Path

import numpy as np
import pandas as pd
import yaml

from saxspy.amplitudes import (
    WATER_DENSITY,
    atomistic_amplitudes,
    normalise,
    polynomial_amplitudes,
)
from saxspy.particles import PeriodicBox

NUMERICS_KEYS = (
    "multipole",
    "force_multipole",
    "intensity_backend",
    "gpu",
    "device_id",
    "serial",
    "pbc",
    "threads",
    "precision",
    "prefilter",
)


def _as_values(value, what: str) -> np.ndarray:
    """A list of numbers, a single number or ``{start, stop, step}`` arange parameters."""
    if isinstance(value, Number):
        return np.array([float(value)])
    if isinstance(value, list):
        return np.asarray(value, dtype=float)
    if isinstance(value, dict):
        return np.arange(value["start"], value["stop"], value["step"], dtype=float)
    raise ValueError(
        f"Please provide {what} as an array, or the (start, stop, step) numpy.arange parameters."
    )


class Config:
    """Reads a JSON or YAML run description.

    Sections
    --------
    parameters:
        ``q`` (list, number or arange dict), ``q_unit`` (``nm`` or ``angstrom``),
        optional ``q_vectors`` or ``miller`` indices, optional ``reference``.
    amplitudes:
        ``type`` (``table``, ``polynomial`` or ``atomistic``), ``scale_int``,
        ``water_density`` and the type-specific ``table`` or ``coefficients``.
    particles:
        ``file`` (x, y, z and an optional name column), ``delimiter``, ``scale``,
        optional ``box`` (three edge lengths or a 3x3 matrix of lattice rows).
    numerics:
        Keyword arguments of :class:`saxspy.numerics.Numerics`.
    output:
        ``folder``, ``filename``, ``extension``; or a plain file name.
    """

    config: dict = {}
    path_positions: str = ""

    def __init__(self, path_config: str, path_positions: str = ""):
        if not isinstance(path_config, (str, Path)):
            raise ValueError("The config file path needs to be a string!")
        _path_config = Path(path_config)
        self.file_type = _path_config.suffix
        match self.file_type:
            case ".json":
                with open(_path_config) as data:
                    self.config = json.load(data)
            case ".yaml" | ".yml":
                with open(_path_config) as data:
                    self.config = yaml.safe_load(data)
            case _:
                raise ValueError(
                    "The provided config file needs to be a json or yaml file!"
                )
        if self.config is None:
            raise ValueError(f"Could not read config file {path_config}.")

        self.log = logging.getLogger(self.__class__.__module__)

        particles = self.config.get("particles", {})
        self.path_positions = path_positions or particles.get("file", "")
        if not self.path_positions:
            raise ValueError("No positions file given in the config or on the command line.")
        if not os.path.isabs(self.path_positions):
            self.path_positions = str(_path_config.parent / self.path_positions)

        self.__read_particles()
        self.__read_parameters()
        self.__read_amplitudes()
        self.__read_numerics()
        self.__folder()

    def __read_particles(self):
        particles = self.config.get("particles", {})
        delim = particles.get("delimiter", ",")
        delim = r"\s+" if delim == "whitespace" else delim
        frame = pd.read_csv(self.path_positions, header=None, sep=delim, comment="#")
        if frame.shape[1] < 3:
            raise ValueError(
                "The positions file needs at least 3 columns (x, y, z) and an optional name column"
            )
        if frame.shape[1] > 4:
            self.log.warning(
                "More than 4 columns have been provided. Everything after the 4th will be ignored!"
            )
        self.particles_scale = particles.get("scale", 1)
        self.positions = frame.iloc[:, :3].to_numpy(dtype=float) * self.particles_scale
        self.names = (
            frame.iloc[:, 3].astype(str).str.strip().tolist() if frame.shape[1] >= 4 else None
        )
        self.box = None
        if "box" in particles:
            box = np.asarray(particles["box"], dtype=float) * self.particles_scale
            # Three edge lengths describe an orthorhombic cell.
            self.box = PeriodicBox(np.diag(box) if box.shape == (3,) else box)
        self.log.info(
            f"Read {self.positions.shape[0]} atoms from {self.path_positions} (scale {self.particles_scale})"
        )

    def __read_parameters(self):
        parameters = self.config.get("parameters", {})
        self.q_unit = str(parameters.get("q_unit", "nm")).lower()
        if self.q_unit not in {"nm", "angstrom"}:
            raise ValueError(f"Unknown q unit {self.q_unit!r}; expected 'nm' or 'angstrom'.")
        to_nm = 10.0 if self.q_unit == "angstrom" else 1.0

        self.q_vectors = None
        if "q_vectors" in parameters:
            self.q_vectors = np.asarray(parameters["q_vectors"], dtype=float) * to_nm
        elif "miller" in parameters:
            if self.box is None:
                raise ValueError("Miller indices need a periodic box in the particles section.")
            self.q_vectors = self.box.reciprocal_vectors(parameters["miller"])
            to_nm = 1.0

        if self.q_vectors is not None:
            self.q = np.linalg.norm(self.q_vectors, axis=1)
        elif "q" in parameters:
            self.q = _as_values(parameters["q"], "the scattering vector magnitudes") * to_nm
        else:
            raise ValueError("The parameters section needs q, q_vectors or miller.")

        self.reference = (
            np.asarray(parameters["reference"], dtype=float)
            if "reference" in parameters
            else None
        )

    def __read_amplitudes(self):
        amplitudes = self.config.get("amplitudes", {})
        kind = str(amplitudes.get("type", "polynomial")).lower()
        n_atoms = self.positions.shape[0]

        match kind:
            case "table":
                table = np.asarray(amplitudes["table"], dtype=float)
                self.amplitudes = np.atleast_2d(table)
                self.i0 = None
            case "polynomial":
                coefficients = amplitudes.get("coefficients")
                if coefficients is None:
                    raise ValueError("Polynomial amplitudes need a coefficients list.")
                if len(coefficients) != n_atoms:
                    raise ValueError(
                        f"Found {len(coefficients)} coefficient vectors for {n_atoms} atoms."
                    )
                self.amplitudes, self.i0 = polynomial_amplitudes(coefficients, self.q)
            case "atomistic":
                if self.names is None:
                    raise ValueError("Atomistic amplitudes need a name column in the positions file.")
                # Form factors are tabulated for q in inverse Angstrom.
                q_angstrom = self.q / 10.0
                self.amplitudes, self.i0 = atomistic_amplitudes(
                    self.names,
                    q_angstrom,
                    amplitudes.get("water_density", WATER_DENSITY),
                )
            case _:
                raise ValueError(
                    f"Unknown amplitude type {kind!r}; expected 'table', 'polynomial' or 'atomistic'."
                )

        if self.i0 is not None and amplitudes.get("normalise", True):
            self.amplitudes = normalise(
                self.amplitudes,
                self.i0,
                scale_int=amplitudes.get("scale_int", 1.0),
                reference=self.reference,
            )

    def __read_numerics(self):
        numerics = self.config.get("numerics", {}) or {}
        unknown = set(numerics) - set(NUMERICS_KEYS)
        if unknown:
            raise ValueError(f"Unknown numerics settings: {sorted(unknown)}")
        self.numerics = dict(numerics)

    def __folder(self):
        output = self.config.get("output", {})
        if isinstance(output, str):
            output = dict(filename=output)
        folder = output.get("folder", ".")
        folder = os.sep.join(folder.replace("\\", "/").split("/"))
        extension = output.get("extension", "json")

        filename = Path(self.path_positions).stem
        filename = output.get("filename", filename)
        filename = f"{filename}.{extension}" if Path(filename).suffix == "" else filename
        self.output_filename = os.path.join(folder, filename)
