"""
Leaf Seed Derivation

One generator, seeded with the raw bytes of the secret key, produces the
seed of every leaf in strict index order:

    S_0, S_1, ..., S_{n-1} = next_bytes(SEED_SIZE) repeated n times

Seeds are cheap to regenerate and are never persisted. Batching for
parallel dispatch only slices this sequence; it never reorders it.
"""

from typing import Iterator, List, Type, Union

from .params import SEED_SIZE
from .prng import DEFAULT_GENERATOR, SeededGenerator


def secret_key_bytes(secret_key: Union[str, bytes]) -> bytes:
    """Raw bytes used to seed the generator (UTF-8 for text keys)."""
    if isinstance(secret_key, bytes):
        return secret_key
    return secret_key.encode('utf-8')


class SeedDeriver:
    """Deterministic per-leaf seed stream for one secret key."""

    def __init__(
        self,
        secret_key: Union[str, bytes],
        generator: Type[SeededGenerator] = DEFAULT_GENERATOR,
        seed_size: int = SEED_SIZE
    ):
        self.seed_size = seed_size
        self.drawn = 0
        self._rng = generator(secret_key_bytes(secret_key))

    def next_seed(self) -> bytes:
        """Draw the seed of leaf `self.drawn`."""
        self.drawn += 1
        return self._rng.next_bytes(self.seed_size)

    def batch(self, count: int) -> List[bytes]:
        """Draw the next `count` seeds in index order."""
        return [self.next_seed() for _ in range(count)]

    def skip(self, count: int) -> None:
        """Advance past `count` seeds without keeping them."""
        for _ in range(count):
            self.next_seed()

    def waves(
        self,
        num_leaves: int,
        workers: int,
        batch_size: int
    ) -> Iterator[List[List[bytes]]]:
        """
        Yield seeds for leaves [self.drawn, num_leaves) wave by wave.

        Each wave is a list of at most `workers` batches of at most
        `batch_size` seeds. Flattening all waves gives the seed sequence
        in leaf-index order. Seeds of a wave are drawn only when the wave
        is requested.
        """
        remaining = num_leaves - self.drawn
        while remaining > 0:
            wave = []
            for _ in range(workers):
                if remaining <= 0:
                    break
                count = min(batch_size, remaining)
                wave.append(self.batch(count))
                remaining -= count
            yield wave
