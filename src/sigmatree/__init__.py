"""
sigmatree: Merkle-Tree Addresses from Lamport One-Time Keys

A secret key deterministically seeds 2^(L-1) Lamport one-time keys. Their
hashes are the leaves of a perfect binary Merkle tree of L layers, and the
root is encoded as a checksummed address able to sign 2^(L-1) messages.

    secret key -> leaf seeds -> leaf hashes (parallel) -> folded layers
               -> root -> address -> stored tree

Usage:
    from sigmatree import generate

    result = generate("correct horse battery staple", num_layers=14, workers=4)
    if result.ok:
        print(result.address)   # S1...

    # Lower-level pieces
    from sigmatree import fold_in_memory, encode_address, is_valid_address
    layers = fold_in_memory(leaves)
    address = encode_address(layers[-1][0], len(layers))
"""

from .hashing import check_capabilities

# Refuse to load without the hash primitives the generator needs
check_capabilities()

# Errors
from .errors import (
    SigmaTreeError,
    CapabilityError,
    ConfigurationError,
    TreeShapeError,
    StorageError,
    LeafGenerationError,
)

# Parameters
from .params import (
    TreeParams,
    SEED_SIZE,
    SIGNATURE_BITS,
    PART_COUNT,
    PART_SIZE,
    SOFTWARE_VERSION,
    MIN_LAYERS,
    MAX_LAYERS,
)

# Primitives
from .hashing import sha256_base64, sha256_base64_bytes, sha256_base32
from .prng import SeededGenerator, Sha1Prng, DEFAULT_GENERATOR

# Key material
from .seeds import SeedDeriver
from .lamport import private_parts, leaf_hash, leaf_hashes, private_key_for_leaf

# Tree construction
from .builder import WaveStats, build_leaf_layer
from .folding import node_hash, fold_pairs, fold_layers, fold_in_memory

# Addresses
from .address import (
    AddressInfo,
    VERSION_TAGS,
    CHECKSUM_TAGS,
    pre_address,
    encode_address,
    parse_address,
    is_valid_address,
    signature_capacity,
)

# Storage
from .store import (
    TreeMetadata,
    WorkSpace,
    TreeStore,
    DirectoryTreeStore,
    MemoryTreeStore,
)

# Pipeline
from .generator import (
    Stage,
    GenerationResult,
    TreeGenerator,
    finalize,
    generate,
    generate_scratch_file,
    generate_from_scratch_file,
)

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Errors
    "SigmaTreeError",
    "CapabilityError",
    "ConfigurationError",
    "TreeShapeError",
    "StorageError",
    "LeafGenerationError",
    # Parameters
    "TreeParams",
    "SEED_SIZE",
    "SIGNATURE_BITS",
    "PART_COUNT",
    "PART_SIZE",
    "SOFTWARE_VERSION",
    "MIN_LAYERS",
    "MAX_LAYERS",
    # Primitives
    "check_capabilities",
    "sha256_base64",
    "sha256_base64_bytes",
    "sha256_base32",
    "SeededGenerator",
    "Sha1Prng",
    "DEFAULT_GENERATOR",
    # Key material
    "SeedDeriver",
    "private_parts",
    "leaf_hash",
    "leaf_hashes",
    "private_key_for_leaf",
    # Tree construction
    "WaveStats",
    "build_leaf_layer",
    "node_hash",
    "fold_pairs",
    "fold_layers",
    "fold_in_memory",
    # Addresses
    "AddressInfo",
    "VERSION_TAGS",
    "CHECKSUM_TAGS",
    "pre_address",
    "encode_address",
    "parse_address",
    "is_valid_address",
    "signature_capacity",
    # Storage
    "TreeMetadata",
    "WorkSpace",
    "TreeStore",
    "DirectoryTreeStore",
    "MemoryTreeStore",
    # Pipeline
    "Stage",
    "GenerationResult",
    "TreeGenerator",
    "finalize",
    "generate",
    "generate_scratch_file",
    "generate_from_scratch_file",
]
