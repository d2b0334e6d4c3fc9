"""
Lamport One-Time Keys

Each leaf seed re-seeds its own generator, which yields the 2*K private
parts of one Lamport key. The leaf hash commits to all of them:

    parts    = [next_bytes(PART_SIZE) for _ in range(PART_COUNT)]
    leaf     = base64(SHA256(parts[0] || parts[1] || ... || parts[2K-1]))

This is the dominant cost of tree generation. Every function here is pure
and keeps no state between calls, so batches can run in any worker.
"""

from typing import List, Sequence, Type, Union

from .hashing import sha256_base64_bytes
from .params import PART_COUNT, PART_SIZE
from .prng import DEFAULT_GENERATOR, SeededGenerator
from .seeds import SeedDeriver


def private_parts(
    seed: bytes,
    generator: Type[SeededGenerator] = DEFAULT_GENERATOR,
    part_count: int = PART_COUNT,
    part_size: int = PART_SIZE
) -> List[bytes]:
    """Regenerate the private parts of the one-time key behind `seed`."""
    rng = generator(seed)
    return [rng.next_bytes(part_size) for _ in range(part_count)]


def leaf_hash(
    seed: bytes,
    generator: Type[SeededGenerator] = DEFAULT_GENERATOR
) -> str:
    """Public leaf hash for one seed."""
    return sha256_base64_bytes(b''.join(private_parts(seed, generator)))


def leaf_hashes(
    seeds: Sequence[bytes],
    generator: Type[SeededGenerator] = DEFAULT_GENERATOR
) -> List[str]:
    """Hash a batch of seeds, preserving order. Runs inside workers."""
    return [leaf_hash(seed, generator) for seed in seeds]


def private_key_for_leaf(
    secret_key: Union[str, bytes],
    index: int,
    generator: Type[SeededGenerator] = DEFAULT_GENERATOR
) -> List[bytes]:
    """
    Rebuild the private parts of leaf `index` from the secret key.

    Private keys are never stored; a signer regenerates the one it needs.
    """
    if index < 0:
        raise IndexError(f"Leaf index must be non-negative, got {index}")
    deriver = SeedDeriver(secret_key, generator)
    deriver.skip(index)
    return private_parts(deriver.next_seed(), generator)
