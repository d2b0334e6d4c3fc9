"""
Tree Generation Pipeline

    INIT -> SEEDING -> LEAF_GENERATION -> FOLDING -> ROOT_COMPUTED
         -> ADDRESS_DERIVED -> FINALIZE_OR_SKIP -> DONE

Generation is a pure function of (secret key, number of layers): two runs
with the same inputs produce the same layers and address whatever the
worker count or batch size. A failed run is never resumed; it is simply
run again. Its workspace is left on disk for inspection.

Errors never escape generate(): they are logged and returned as a failed
GenerationResult naming the stage that failed.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Type, Union
import logging

from .address import encode_address
from .builder import WaveStats, build_leaf_layer
from .errors import ConfigurationError, StorageError
from .folding import fold_layers
from .params import DEFAULT_BATCH_SIZE, TreeParams, default_storage_root
from .prng import DEFAULT_GENERATOR, SeededGenerator
from .store import DirectoryTreeStore, TreeMetadata, TreeStore, WorkSpace

logger = logging.getLogger(__name__)

SCRATCH_FILE = 'scratch'


class Stage(Enum):
    """Progress of one generation request."""
    INIT = "INIT"
    SEEDING = "SEEDING"
    LEAF_GENERATION = "LEAF_GENERATION"
    FOLDING = "FOLDING"
    ROOT_COMPUTED = "ROOT_COMPUTED"
    ADDRESS_DERIVED = "ADDRESS_DERIVED"
    FINALIZE_OR_SKIP = "FINALIZE_OR_SKIP"
    DONE = "DONE"


@dataclass
class GenerationResult:
    """Outcome of a generation request."""
    ok: bool
    stage: Stage
    address: Optional[str] = None
    root: Optional[str] = None
    num_layers: Optional[int] = None
    stored: Optional[bool] = None  # False when the address already existed
    workspace: Optional[str] = None
    error: Optional[str] = None


def finalize(
    store: TreeStore,
    address: str,
    workspace: WorkSpace,
    num_layers: int
) -> bool:
    """Persist the layers of `workspace` under `address` unless already stored."""
    return store.finalize(address, workspace, TreeMetadata(address, num_layers))


class TreeGenerator:
    """
    Runs generation requests against one store.

    Each request tracks its own progress in the GenerationResult it
    returns, so one generator can serve concurrent requests.

    Example:
        gen = TreeGenerator(DirectoryTreeStore("addresses"))
        result = gen.generate("correct horse battery staple", TreeParams(14, workers=4))
        print(result.address)
    """

    def __init__(
        self,
        store: Optional[TreeStore] = None,
        generator: Type[SeededGenerator] = DEFAULT_GENERATOR,
        on_wave: Optional[Callable[[WaveStats], None]] = None
    ):
        self._store = store
        self.generator = generator
        self.on_wave = on_wave

    @property
    def store(self) -> TreeStore:
        if self._store is None:
            self._store = DirectoryTreeStore(default_storage_root())
        return self._store

    @staticmethod
    def _fail(
        result: GenerationResult,
        e: Exception,
        workspace: Optional[WorkSpace] = None
    ) -> GenerationResult:
        logger.exception("Tree generation failed during %s", result.stage.value)
        result.ok = False
        result.workspace = str(workspace.path) if workspace is not None else None
        result.error = f"{type(e).__name__}: {e}"
        return result

    def _write_leaves(
        self,
        result: GenerationResult,
        path: Path,
        secret_key: Union[str, bytes],
        params: TreeParams
    ) -> None:
        result.stage = Stage.LEAF_GENERATION
        try:
            with open(path, 'w', encoding='ascii', newline='\n') as sink:
                build_leaf_layer(secret_key, params, sink, self.generator, self.on_wave)
        except OSError as e:
            raise StorageError(f"Cannot write scratch file {path}: {e}") from e

    def _fold_and_store(
        self,
        result: GenerationResult,
        workspace: WorkSpace,
        num_layers: int
    ) -> GenerationResult:
        result.stage = Stage.FOLDING
        result.num_layers = num_layers
        result.root = fold_layers(workspace, num_layers)
        result.stage = Stage.ROOT_COMPUTED

        result.address = encode_address(result.root, num_layers)
        result.stage = Stage.ADDRESS_DERIVED
        logger.info("Derived address %s", result.address)

        result.stage = Stage.FINALIZE_OR_SKIP
        result.stored = finalize(self.store, result.address, workspace, num_layers)

        result.stage = Stage.DONE
        result.ok = True
        return result

    def generate(
        self,
        secret_key: Union[str, bytes],
        params: TreeParams
    ) -> GenerationResult:
        """Build, fold, encode and store the tree of `secret_key`."""
        result = GenerationResult(ok=False, stage=Stage.INIT)
        workspace = None
        try:
            if not secret_key:
                raise ConfigurationError("A secret key is required")

            result.stage = Stage.SEEDING
            workspace = self.store.workspace()
            scratch = workspace.path / SCRATCH_FILE
            self._write_leaves(result, scratch, secret_key, params)
            workspace.adopt_scratch(scratch)

            return self._fold_and_store(result, workspace, params.num_layers)
        except Exception as e:
            return self._fail(result, e, workspace)

    def generate_scratch_file(
        self,
        scratch_path: Union[str, Path],
        secret_key: Union[str, bytes],
        params: TreeParams
    ) -> GenerationResult:
        """Only write the flat leaf layer of `secret_key` to `scratch_path`."""
        result = GenerationResult(ok=False, stage=Stage.INIT, num_layers=params.num_layers)
        try:
            if not secret_key:
                raise ConfigurationError("A secret key is required")
            result.stage = Stage.SEEDING
            self._write_leaves(result, Path(scratch_path), secret_key, params)
        except Exception as e:
            return self._fail(result, e)

        result.stage = Stage.DONE
        result.ok = True
        return result

    def generate_from_scratch_file(
        self,
        scratch_path: Union[str, Path],
        num_layers: int
    ) -> GenerationResult:
        """Fold, encode and store a tree whose leaf layer is in `scratch_path`."""
        result = GenerationResult(ok=False, stage=Stage.INIT)
        workspace = None
        try:
            if num_layers < 2:
                raise ConfigurationError(f"num_layers must be at least 2, got {num_layers}")
            workspace = self.store.workspace()
            workspace.adopt_scratch(scratch_path)
            return self._fold_and_store(result, workspace, num_layers)
        except Exception as e:
            return self._fail(result, e, workspace)


def generate(
    secret_key: Union[str, bytes],
    num_layers: int,
    workers: int = 1,
    batch_size: int = DEFAULT_BATCH_SIZE,
    *,
    store: Optional[TreeStore] = None,
    generator: Type[SeededGenerator] = DEFAULT_GENERATOR,
    executor: str = 'process',
    on_wave: Optional[Callable[[WaveStats], None]] = None
) -> GenerationResult:
    """
    Generate the tree and address of `secret_key`.

    Args:
        secret_key: Secret key (text is used as UTF-8)
        num_layers: Tree depth; 2^(num_layers-1) one-time signatures
        workers: Worker tasks per wave (values below 1 mean 1)
        batch_size: Leaves per worker per wave
        store: Where to persist the tree (default: directory store at
            SIGMATREE_HOME or ./addresses)
        generator: Seeded generator class
        executor: 'process' or 'thread'

    Returns:
        GenerationResult; result.ok is False on any failure
    """
    gen = TreeGenerator(store, generator, on_wave)
    try:
        params = TreeParams(num_layers, workers, batch_size, executor)
    except ConfigurationError as e:
        return gen._fail(GenerationResult(ok=False, stage=Stage.INIT), e)
    return gen.generate(secret_key, params)


def generate_scratch_file(
    scratch_path: Union[str, Path],
    secret_key: Union[str, bytes],
    num_layers: int,
    workers: int = 1,
    batch_size: int = DEFAULT_BATCH_SIZE,
    *,
    generator: Type[SeededGenerator] = DEFAULT_GENERATOR,
    executor: str = 'process',
    on_wave: Optional[Callable[[WaveStats], None]] = None
) -> GenerationResult:
    """Write only the leaf layer of `secret_key` to a flat scratch file."""
    gen = TreeGenerator(generator=generator, on_wave=on_wave)
    try:
        params = TreeParams(num_layers, workers, batch_size, executor)
    except ConfigurationError as e:
        return gen._fail(GenerationResult(ok=False, stage=Stage.INIT), e)
    return gen.generate_scratch_file(scratch_path, secret_key, params)


def generate_from_scratch_file(
    scratch_path: Union[str, Path],
    num_layers: int,
    *,
    store: Optional[TreeStore] = None
) -> GenerationResult:
    """Finish a tree from a scratch file written by generate_scratch_file."""
    return TreeGenerator(store).generate_from_scratch_file(scratch_path, num_layers)
