import logging

from saxspy.intensity.env import (
    PRECISION_ALIASES,
    default_device_id,
    default_precision,
    default_thread_chunks,
    normalize_precision,
)
from saxspy.intensity.prefilter import PrefilterSettings

PAIRWISE_BACKENDS = {"pairwise", "exact", "auto"}
DENSE_BACKENDS = {"dense", "dense_array", "dense-array"}


class Numerics:
    """Execution settings of an intensity evaluation.

    Args:
        multipole (bool): Allow the multipole expansion for vectors where the
            selector deems it cheaper. Requires magnitude-only scattering vectors.
        force_multipole (bool): Route every vector through the multipole expansion.
        intensity_backend (str): ``'pairwise'`` (exact pair sums plus optional
            multipole path) or ``'dense'`` (materialised dense-array engine).
        gpu (bool): Run the dense-array engine on a CUDA device via CuPy.
            Implies ``intensity_backend='dense'``.
        device_id (int, optional): CUDA device ordinal. Defaults to ``SAXSPY_GPU_DEVICE`` or 0.
        serial (bool): Ignore any distributed communicator and run on one rank.
        pbc (bool): Apply the minimum-image convention when a periodic box is given.
        threads (int, optional): Number of thread-private buffers in the pairwise
            kernels. Defaults to ``SAXSPY_NUM_THREADS`` or the Numba thread count.
        precision (str, optional): Working precision of the dense-array engine.
        prefilter (PrefilterSettings | dict | bool, optional): Height pre-filter of
            the dense-array engine.

    Raises:
        NotImplementedError: For the multipole path combined with the dense-array engine.
        ValueError: For unknown backends, precisions or inconsistent settings.
    """

    def __init__(
        self,
        multipole: bool = False,
        force_multipole: bool = False,
        intensity_backend: str = "pairwise",
        gpu: bool = False,
        device_id: int | None = None,
        serial: bool = False,
        pbc: bool = True,
        threads: int | None = None,
        precision: str | None = None,
        prefilter=None,
    ):
        self.log = logging.getLogger(self.__class__.__module__)

        backend = str(intensity_backend).strip().lower()
        if backend in PAIRWISE_BACKENDS:
            backend = "pairwise"
        elif backend in DENSE_BACKENDS:
            backend = "dense"
        else:
            raise ValueError(
                f"Unsupported intensity backend: {intensity_backend!r}. "
                "Expected one of {'pairwise', 'dense'}."
            )
        if gpu and backend != "dense":
            self.log.info("GPU execution requested; using the dense-array engine.")
            backend = "dense"

        self.force_multipole = bool(force_multipole)
        self.multipole = bool(multipole) or self.force_multipole
        if self.multipole and backend == "dense":
            raise NotImplementedError(
                "The multipole expansion cannot be combined with the dense-array engine."
            )

        if precision is None:
            precision = default_precision()
        elif str(precision).strip().lower() not in PRECISION_ALIASES:
            raise ValueError(f"Unsupported precision: {precision!r}.")

        if threads is not None and int(threads) < 1:
            raise ValueError(f"Thread count must be positive, got {threads}.")

        self.intensity_backend = backend
        self.gpu = bool(gpu)
        self.device_id = default_device_id() if device_id is None else int(device_id)
        self.serial = bool(serial)
        self.pbc = bool(pbc)
        self.threads = None if threads is None else int(threads)
        self.precision = normalize_precision(precision)
        self.prefilter = PrefilterSettings.from_value(prefilter)

        if self.prefilter is not None and backend != "dense":
            raise ValueError("The height pre-filter is only available with the dense-array engine.")

    @property
    def thread_chunks(self) -> int:
        if self.threads is not None:
            return self.threads
        return default_thread_chunks()

    def __repr__(self) -> str:
        return (
            f"Numerics(backend={self.intensity_backend!r}, multipole={self.multipole}, "
            f"force_multipole={self.force_multipole}, gpu={self.gpu}, pbc={self.pbc}, "
            f"precision={self.precision!r})"
        )
