"""
Tree Storage

Layout of a finalized tree under the storage root:

    <root>/<address>/layer0.lyr ... layer<L-1>.lyr   one hash per line
    <root>/<address>/info.dta                        address / layers / version

Trees are built inside a WorkSpace (a private temporary directory) and
finalized by renaming that directory to the address. A finalized tree is
never overwritten: finalizing an address that already exists discards the
new layers and succeeds. A WorkSpace left behind by a failed run is kept
for inspection.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, TextIO, Tuple, Union
import logging
import os
import shutil
import tempfile

from .errors import StorageError
from .params import SOFTWARE_VERSION

logger = logging.getLogger(__name__)

LAYER_SUFFIX = '.lyr'
INFO_FILE = 'info.dta'
WORK_PREFIX = '.work-'


def layer_file_name(layer: int) -> str:
    return f"layer{layer}{LAYER_SUFFIX}"


@dataclass(frozen=True)
class TreeMetadata:
    """Metadata record stored next to the layers of a tree."""
    address: str
    layers: int
    software_version: str = SOFTWARE_VERSION

    def to_text(self) -> str:
        return (
            f"address: {self.address}\n"
            f"layers: {self.layers}\n"
            f"software_version: {self.software_version}\n"
        )

    @classmethod
    def from_text(cls, text: str) -> 'TreeMetadata':
        fields = {}
        for line in text.splitlines():
            if not line.strip():
                continue
            key, sep, value = line.partition(':')
            if not sep:
                raise ValueError(f"Malformed metadata line: {line!r}")
            fields[key.strip()] = value.strip()
        try:
            return cls(
                address=fields['address'],
                layers=int(fields['layers']),
                software_version=fields.get('software_version', SOFTWARE_VERSION)
            )
        except KeyError as e:
            raise ValueError(f"Metadata missing field {e}") from e


# =============================================================================
# WORKSPACE
# =============================================================================

class WorkSpace:
    """
    Temporary directory holding the layer files of a tree being built.

    Layers are written by a single writer, one file at a time.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    @classmethod
    def create(cls, parent: Optional[Union[str, Path]] = None) -> 'WorkSpace':
        try:
            path = tempfile.mkdtemp(prefix=WORK_PREFIX, dir=parent)
        except OSError as e:
            raise StorageError(f"Cannot create work directory in {parent}: {e}") from e
        logger.debug("Created workspace %s", path)
        return cls(path)

    def layer_path(self, layer: int) -> Path:
        return self.path / layer_file_name(layer)

    def has_layer(self, layer: int) -> bool:
        return self.layer_path(layer).is_file()

    @contextmanager
    def open_layer(self, layer: int) -> Iterator[TextIO]:
        """Open a layer file for writing."""
        path = self.layer_path(layer)
        try:
            with open(path, 'w', encoding='ascii', newline='\n') as f:
                yield f
        except OSError as e:
            raise StorageError(f"Cannot write {path}: {e}") from e

    def write_layer(self, layer: int, hashes: Iterable[str]) -> int:
        """Write `hashes` as layer `layer`; returns the entry count."""
        count = 0
        with self.open_layer(layer) as f:
            for h in hashes:
                f.write(h + '\n')
                count += 1
        return count

    def iter_layer(self, layer: int) -> Iterator[str]:
        """Stream the entries of a layer file in order."""
        return iter_hash_file(self.layer_path(layer))

    def adopt_scratch(self, scratch_path: Union[str, Path]) -> None:
        """Move a flat scratch file into place as layer 0."""
        try:
            shutil.move(str(scratch_path), str(self.layer_path(0)))
        except OSError as e:
            raise StorageError(f"Cannot move scratch file {scratch_path}: {e}") from e

    def discard(self) -> None:
        shutil.rmtree(self.path, ignore_errors=True)


def iter_hash_file(path: Union[str, Path]) -> Iterator[str]:
    """Yield the non-empty lines of a newline-delimited hash file."""
    try:
        with open(path, 'r', encoding='ascii') as f:
            for line in f:
                line = line.strip()
                if line:
                    yield line
    except OSError as e:
        raise StorageError(f"Cannot read {path}: {e}") from e


# =============================================================================
# STORES
# =============================================================================

class TreeStore(ABC):
    """Address-keyed storage of finalized trees."""

    @abstractmethod
    def workspace(self) -> WorkSpace:
        """Create a fresh workspace for building a tree."""
        pass

    @abstractmethod
    def exists(self, address: str) -> bool:
        pass

    @abstractmethod
    def finalize(
        self,
        address: str,
        workspace: WorkSpace,
        metadata: TreeMetadata
    ) -> bool:
        """
        Store the layers in `workspace` under `address`.

        Returns True if the tree was stored, False if a tree already
        existed for the address (the workspace is then discarded).
        """
        pass

    @abstractmethod
    def read_layer(self, address: str, layer: int) -> List[str]:
        pass

    @abstractmethod
    def read_metadata(self, address: str) -> TreeMetadata:
        pass

    @abstractmethod
    def addresses(self) -> List[str]:
        pass


def _check_complete(workspace: WorkSpace, metadata: TreeMetadata) -> None:
    missing = [i for i in range(metadata.layers) if not workspace.has_layer(i)]
    if missing:
        raise StorageError(
            f"Workspace {workspace.path} is missing layers {missing}"
        )


class DirectoryTreeStore(TreeStore):
    """One directory per address under a root directory."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage root {self.root}: {e}") from e

    def _tree_dir(self, address: str) -> Path:
        if not address or '/' in address or address.startswith('.'):
            raise StorageError(f"Invalid address for storage: {address!r}")
        return self.root / address

    def workspace(self) -> WorkSpace:
        return WorkSpace.create(self.root)

    def exists(self, address: str) -> bool:
        return self._tree_dir(address).exists()

    def finalize(
        self,
        address: str,
        workspace: WorkSpace,
        metadata: TreeMetadata
    ) -> bool:
        target = self._tree_dir(address)
        if target.exists():
            logger.info("Tree for %s already stored, discarding new layers", address)
            workspace.discard()
            return False

        _check_complete(workspace, metadata)
        info_path = workspace.path / INFO_FILE
        try:
            info_path.write_text(metadata.to_text(), encoding='utf-8')
            os.rename(workspace.path, target)
        except OSError as e:
            # Lost a race against another run deriving the same address
            if target.exists():
                logger.info("Tree for %s stored concurrently, discarding new layers", address)
                workspace.discard()
                return False
            raise StorageError(f"Cannot finalize {address}: {e}") from e

        workspace.path = target
        logger.info("Stored %d layers for %s", metadata.layers, address)
        return True

    def read_layer(self, address: str, layer: int) -> List[str]:
        return list(iter_hash_file(self._tree_dir(address) / layer_file_name(layer)))

    def read_metadata(self, address: str) -> TreeMetadata:
        path = self._tree_dir(address) / INFO_FILE
        try:
            text = path.read_text(encoding='utf-8')
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e
        return TreeMetadata.from_text(text)

    def addresses(self) -> List[str]:
        return sorted(
            p.name for p in self.root.iterdir()
            if p.is_dir() and not p.name.startswith(WORK_PREFIX)
        )


class MemoryTreeStore(TreeStore):
    """Dict-backed store; workspaces live in the system temp directory."""

    def __init__(self):
        self._trees: Dict[str, Tuple[List[List[str]], TreeMetadata]] = {}

    def workspace(self) -> WorkSpace:
        return WorkSpace.create()

    def exists(self, address: str) -> bool:
        return address in self._trees

    def finalize(
        self,
        address: str,
        workspace: WorkSpace,
        metadata: TreeMetadata
    ) -> bool:
        if address in self._trees:
            workspace.discard()
            return False

        _check_complete(workspace, metadata)
        layers = [list(workspace.iter_layer(i)) for i in range(metadata.layers)]
        self._trees[address] = (layers, metadata)
        workspace.discard()
        return True

    def _get(self, address: str) -> Tuple[List[List[str]], TreeMetadata]:
        try:
            return self._trees[address]
        except KeyError:
            raise StorageError(f"No tree stored for {address}") from None

    def read_layer(self, address: str, layer: int) -> List[str]:
        layers, _ = self._get(address)
        if not 0 <= layer < len(layers):
            raise StorageError(f"Tree {address} has no layer {layer}")
        return list(layers[layer])

    def read_metadata(self, address: str) -> TreeMetadata:
        return self._get(address)[1]

    def addresses(self) -> List[str]:
        return sorted(self._trees)
