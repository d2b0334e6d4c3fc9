"""
Generation Parameters

TreeParams holds everything a generation request needs besides the
secret key. Parameters are immutable and validated on construction.
"""

from dataclasses import dataclass
import os

from .errors import ConfigurationError


# =============================================================================
# Reference scheme constants
# =============================================================================

SEED_SIZE = 100
"""Bytes drawn per leaf seed."""

SIGNATURE_BITS = 100
"""K: each Lamport private key holds 2*K parts."""

PART_COUNT = 2 * SIGNATURE_BITS

PART_SIZE = 20
"""L: bytes per Lamport private part."""

SOFTWARE_VERSION = "2.0.0a"

MIN_LAYERS = 14
MAX_LAYERS = 18

DEFAULT_BATCH_SIZE = 512

DEFAULT_MAX_IN_FLIGHT = 512 * 1024 * 1024  # 512 MB of private parts per wave

DEFAULT_STORAGE_ROOT = "addresses"

EXECUTORS = ("process", "thread")


def default_storage_root() -> str:
    """Storage root, overridable through SIGMATREE_HOME."""
    return os.environ.get("SIGMATREE_HOME", DEFAULT_STORAGE_ROOT)


@dataclass(frozen=True)
class TreeParams:
    """
    Parameters of one tree generation request.

    A tree of num_layers layers has 2^(num_layers-1) leaves and can sign
    that many messages.
    """

    num_layers: int
    """Tree depth, counting the leaf layer and the root layer."""

    workers: int = 1
    """Worker tasks per wave."""

    batch_size: int = DEFAULT_BATCH_SIZE
    """Leaves generated by one worker per wave."""

    executor: str = "process"
    """'process' for a ProcessPoolExecutor, 'thread' for a ThreadPoolExecutor."""

    max_in_flight_bytes: int = DEFAULT_MAX_IN_FLIGHT
    """Ceiling on private key material held by one wave."""

    def __post_init__(self):
        if self.num_layers < 2:
            raise ConfigurationError(
                f"num_layers must be at least 2, got {self.num_layers}"
            )
        # Fewer than one worker runs single-threaded
        if self.workers < 1:
            object.__setattr__(self, 'workers', 1)
        if self.batch_size < 1:
            raise ConfigurationError(
                f"batch_size must be positive, got {self.batch_size}"
            )
        if self.executor not in EXECUTORS:
            raise ConfigurationError(
                f"Unknown executor {self.executor!r}, expected one of {EXECUTORS}"
            )
        if self.in_flight_bytes > self.max_in_flight_bytes:
            raise ConfigurationError(
                f"{self.workers} workers x {self.batch_size} keys need "
                f"{self.in_flight_bytes} bytes per wave, "
                f"limit is {self.max_in_flight_bytes}"
            )

    @property
    def leaf_count(self) -> int:
        """Number of leaves (and one-time signatures)."""
        return 1 << (self.num_layers - 1)

    @property
    def keys_per_wave(self) -> int:
        return self.workers * self.batch_size

    @property
    def wave_count(self) -> int:
        return -(-self.leaf_count // self.keys_per_wave)

    @property
    def in_flight_bytes(self) -> int:
        """Private part bytes generated concurrently in one wave."""
        return self.keys_per_wave * PART_COUNT * PART_SIZE

    @property
    def is_standard(self) -> bool:
        """Whether the depth maps to a network address version."""
        return MIN_LAYERS <= self.num_layers <= MAX_LAYERS

    def layer_size(self, layer: int) -> int:
        """Entries in layer `layer` (0 = leaves)."""
        if not 0 <= layer < self.num_layers:
            raise IndexError(
                f"Layer {layer} out of range [0, {self.num_layers})"
            )
        return 1 << (self.num_layers - 1 - layer)
