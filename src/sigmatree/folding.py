"""
Tree Folding

Internal nodes hash the concatenation of their children's printable
forms:

    layer[i+1][j] = base64(SHA256(layer[i][2j] + layer[i][2j+1]))

Layers are folded one at a time, streaming from one layer file into the
next, so only the layer being read and the layer being written are ever
in use regardless of tree size.
"""

from typing import Iterable, Iterator, List
import logging

from .errors import TreeShapeError
from .hashing import sha256_base64
from .store import WorkSpace

logger = logging.getLogger(__name__)


def node_hash(left: str, right: str) -> str:
    """Parent of two encoded child hashes, in that order."""
    return sha256_base64(left + right)


def fold_pairs(hashes: Iterable[str]) -> Iterator[str]:
    """
    Lazily hash adjacent pairs of a layer.

    Raises:
        TreeShapeError: If the layer has an odd number of entries
    """
    it = iter(hashes)
    index = 0
    for left in it:
        try:
            right = next(it)
        except StopIteration:
            raise TreeShapeError(
                f"Layer has an unpaired entry at position {index}"
            ) from None
        yield node_hash(left, right)
        index += 2


def _expect_size(layer: int, actual: int, num_layers: int) -> None:
    expected = 1 << (num_layers - 1 - layer)
    if actual != expected:
        raise TreeShapeError(
            f"Layer {layer} has {actual} entries, a {num_layers}-layer tree "
            f"needs {expected}"
        )


def fold_layers(workspace: WorkSpace, num_layers: int) -> str:
    """
    Fold layer 0 of `workspace` up to the root, writing every layer.

    Layer i+1 is only started once layer i is fully written.

    Returns:
        The root hash (the single entry of layer num_layers-1)

    Raises:
        TreeShapeError: If any layer has the wrong number of entries
    """
    if num_layers < 2:
        raise TreeShapeError(f"Cannot fold a {num_layers}-layer tree")

    _expect_size(0, sum(1 for _ in workspace.iter_layer(0)), num_layers)

    for layer in range(1, num_layers):
        count = workspace.write_layer(
            layer, fold_pairs(workspace.iter_layer(layer - 1))
        )
        _expect_size(layer, count, num_layers)
        logger.debug("Folded layer %d: %d entries", layer, count)

    root = next(workspace.iter_layer(num_layers - 1))
    logger.info("Computed root of %d-layer tree", num_layers)
    return root


def fold_in_memory(leaves: List[str]) -> List[List[str]]:
    """
    Build every layer of a small tree in memory.

    Returns:
        Layers from the leaves (index 0) to the single-entry root layer
    """
    n = len(leaves)
    if n < 2 or n & (n - 1):
        raise TreeShapeError(f"Leaf count {n} is not a power of two >= 2")

    layers = [list(leaves)]
    while len(layers[-1]) > 1:
        layers.append(list(fold_pairs(layers[-1])))
    return layers
