"""
Parallel Leaf Layer Construction

Leaf generation runs in waves. Per wave the coordinator:

1. draws one batch of seeds per worker (in leaf-index order),
2. submits one leaf_hashes task per batch to the pool,
3. waits for every task of the wave (barrier),
4. writes the results to the sink in submission order.

The next wave is only drawn and submitted after the previous one has been
written, so the output is in leaf-index order whatever order the workers
finish in, and the leaf layer does not depend on the worker count.
"""

from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, List, Optional, TextIO, Type, Union
import logging
import time

from .errors import LeafGenerationError
from .lamport import leaf_hashes
from .params import TreeParams
from .prng import DEFAULT_GENERATOR, SeededGenerator
from .seeds import SeedDeriver

logger = logging.getLogger(__name__)


@dataclass
class WaveStats:
    """Progress of one completed wave."""
    wave: int
    keys: int
    keys_done: int
    keys_total: int
    seconds: float

    @property
    def keys_per_second(self) -> float:
        if self.seconds <= 0:
            return float('inf')
        return self.keys / self.seconds


def make_executor(params: TreeParams) -> Executor:
    """Pool with one worker per batch of a wave."""
    if params.executor == 'thread':
        return ThreadPoolExecutor(max_workers=params.workers)
    return ProcessPoolExecutor(max_workers=params.workers)


def build_leaf_layer(
    secret_key: Union[str, bytes],
    params: TreeParams,
    sink: TextIO,
    generator: Type[SeededGenerator] = DEFAULT_GENERATOR,
    on_wave: Optional[Callable[[WaveStats], None]] = None
) -> int:
    """
    Generate the leaf layer of a tree and write it to `sink`.

    Args:
        secret_key: Secret key seeding the whole tree
        params: Depth, worker count, batch size and executor kind
        sink: Text stream receiving one leaf hash per line
        generator: Seeded generator class for seeds and private parts
        on_wave: Called with WaveStats after each wave is written

    Returns:
        Number of leaf hashes written (always params.leaf_count)

    Raises:
        LeafGenerationError: If any worker task fails
    """
    deriver = SeedDeriver(secret_key, generator)
    total = params.leaf_count
    done = 0

    logger.info(
        "Generating %d leaves with %d %s workers, %d keys per batch",
        total, params.workers, params.executor, params.batch_size
    )

    with make_executor(params) as executor:
        waves = deriver.waves(total, params.workers, params.batch_size)
        for wave_index, batches in enumerate(waves):
            started = time.perf_counter()

            futures = [
                executor.submit(leaf_hashes, batch, generator)
                for batch in batches
            ]
            wait(futures)

            results: List[List[str]] = []
            for worker, future in enumerate(futures):
                try:
                    results.append(future.result())
                except Exception as e:
                    raise LeafGenerationError(
                        f"Worker {worker} failed in wave {wave_index}: {e}"
                    ) from e

            keys = 0
            for hashes in results:
                for h in hashes:
                    sink.write(h + '\n')
                keys += len(hashes)
            sink.flush()
            done += keys

            stats = WaveStats(
                wave=wave_index,
                keys=keys,
                keys_done=done,
                keys_total=total,
                seconds=time.perf_counter() - started
            )
            logger.info(
                "Wave %d: %d/%d leaves, %.1f keys per second",
                wave_index, done, total, stats.keys_per_second
            )
            if on_wave is not None:
                on_wave(stats)

    if done != total:
        raise LeafGenerationError(f"Generated {done} leaves, expected {total}")
    return done
