from .comm import Communicator
from .config import Config
from .numerics import Numerics
from .parameters import Parameters
from .particles import Particles, PeriodicBox
from .saxs import SAXS
from .scoring import GaussianScorer, Scorer
from .selector import PathKind, classify
from .simulation import IntensityResult, Simulation

__version__ = "0.1.0"
