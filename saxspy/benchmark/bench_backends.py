"""pyperf benchmark of the intensity backends.

One evaluation of the exact pair sums, the forced multipole expansion and the
dense-array engine is timed on the same random globular cluster::

    python -m saxspy.benchmark.bench_backends --atoms 4000 --vectors 16 -o bench.json
"""

from __future__ import annotations

import logging
import os

import numpy as np
import pyperf

from saxspy.numerics import Numerics
from saxspy.parameters import Parameters
from saxspy.particles import Particles
from saxspy.simulation import Simulation

# BLAS threads would compete with the numba thread pool.
PINNED_LIBRARY_THREADS = ("OMP_NUM_THREADS", "MKL_NUM_THREADS", "OPENBLAS_NUM_THREADS")

WORKER_OPTIONS = ("atoms", "vectors", "q_max", "seed")


def _forward_options(cmd: list[str], args) -> None:
    """Repeat the benchmark options on the command line of every pyperf worker."""
    for option in WORKER_OPTIONS:
        cmd.extend([f"--{option.replace('_', '-')}", str(getattr(args, option))])
    cmd.extend(flag for flag in ("--gpu", "--log-quiet") if getattr(args, flag[2:].replace("-", "_")))


def _runner() -> pyperf.Runner:
    runner = pyperf.Runner(add_cmdline_args=_forward_options, processes=1, warmups=1)
    parser = runner.argparser
    parser.description = "Time exact, multipole and dense-array intensity evaluation"
    parser.add_argument("--atoms", type=int, default=2000)
    parser.add_argument("--vectors", type=int, default=8)
    parser.add_argument("--q-max", type=float, default=2.0, dest="q_max")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--gpu", action="store_true", help="dense engine on CUDA via CuPy")
    parser.add_argument("--log-quiet", action="store_true", dest="log_quiet")
    return runner


def _make_simulation(
    *, atom_number: int, vectors: int, q_max: float, seed: int, **numerics
) -> tuple[Simulation, np.ndarray]:
    """Simulation over a Gaussian cloud of atoms with equal amplitudes per vector."""
    rng = np.random.default_rng(seed)
    position = rng.normal(size=(atom_number, 3))
    amplitudes = np.tile(rng.uniform(0.5, 1.5, size=atom_number), (vectors, 1))
    parameters = Parameters(amplitudes=amplitudes, q=np.linspace(q_max / vectors, q_max, vectors))
    simulation = Simulation(parameters, Numerics(**numerics), particles=Particles(position))
    return simulation, position


def main() -> None:
    for name in PINNED_LIBRARY_THREADS:
        os.environ.setdefault(name, "1")

    runner = _runner()
    args = runner.parse_args()
    if args.log_quiet:
        logging.getLogger().setLevel(logging.ERROR)

    geometry = dict(atom_number=args.atoms, vectors=args.vectors, q_max=args.q_max, seed=args.seed)
    cases = {
        "exact": dict(),
        "multipole": dict(force_multipole=True),
        "dense_gpu" if args.gpu else "dense_cpu": dict(intensity_backend="dense", gpu=args.gpu),
    }
    for label, numerics in cases.items():
        simulation, position = _make_simulation(**geometry, **numerics)
        # First call compiles the numba kernels.
        simulation.calculate(position)
        runner.bench_func(f"intensity_{label}", simulation.calculate, position)


if __name__ == "__main__":
    main()
