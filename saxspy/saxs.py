import logging
from pathlib import Path

from saxspy.comm import Communicator
from saxspy.config import Config
from saxspy.export import Export
from saxspy.numerics import Numerics
from saxspy.parameters import Parameters
from saxspy.particles import Particles
from saxspy.simulation import IntensityResult, Simulation


class SAXS:
    """Config-driven entry point: builds the run from a config file and evaluates it."""

    path_config: str
    path_positions: str
    _config: Config | None

    def __init__(
        self,
        path_config: str,
        path_positions: str = "",
        comm: Communicator | None = None,
    ):
        self.path_config = path_config
        self.path_positions = path_positions
        self.log = logging.getLogger(self.__class__.__module__)
        self._config = Config(path_config=path_config, path_positions=path_positions)

        self.particles = Particles(self.config.positions, self.config.names)
        self.box = self.config.box
        self.parameters = Parameters(
            amplitudes=self.config.amplitudes,
            q=self.config.q,
            q_vectors=self.config.q_vectors,
            reference=self.config.reference,
        )
        self.numerics = Numerics(**self.config.numerics)
        self.simulation = Simulation(
            self.parameters, self.numerics, particles=self.particles, comm=comm
        )
        self.result: IntensityResult | None = None

    @property
    def config(self) -> Config:
        if self._config is None:
            raise RuntimeError("Config is not loaded")
        return self._config

    def run(self, scorer=None) -> IntensityResult:
        self.result = self.simulation.calculate(
            self.particles.position, box=self.box, scorer=scorer
        )
        return self.result

    def export(self, filename: str | Path | None = None, include_gradients: bool = False) -> Path:
        if self.result is None:
            raise RuntimeError("Nothing to export; call run() first.")
        filename = Path(filename or self.config.output_filename)
        filename.parent.mkdir(parents=True, exist_ok=True)
        Export.from_result(
            self.result,
            reference=self.parameters.reference,
            include_gradients=include_gradients,
            metadata=dict(config=str(self.path_config), numerics=repr(self.numerics)),
        ).save(filename)
        self.log.info(f"Wrote {filename}")
        return filename
