"""
Address Encoding

    root        = base64(SHA256(left + right))     (last layer of the tree)
    pre_address = base32(SHA256(left + right))[:32]
    checksum    = base32(SHA256(prefix + checksum_tag + pre_address))[:4]
    address     = prefix + version_tag + pre_address + checksum

Supported depths 14..18 use prefix "S" and a version tag naming the depth.
Depth 18 is emitted as "SC" but its checksum is computed with tag "5";
issued addresses depend on this, so it must not change. Any other depth is
encoded in the "F1" namespace instead of failing.

The pre-address re-encodes the root digest in base32; it does not hash the
base64 root text again.
"""

from dataclasses import dataclass
from typing import Dict, Optional
import base64

from .hashing import sha256_base32

ROOT_DIGEST_SIZE = 32

ADDRESS_PREFIX = "S"
FALLBACK_PREFIX = "F1"

PRE_ADDRESS_LENGTH = 32
CHECKSUM_LENGTH = 4

VERSION_TAGS: Dict[int, str] = {
    14: "1",
    15: "2",
    16: "3",
    17: "4",
    18: "C",
}

CHECKSUM_TAGS: Dict[int, str] = {
    14: "1",
    15: "2",
    16: "3",
    17: "4",
    18: "5",
}

_LAYERS_BY_TAG = {tag: layers for layers, tag in VERSION_TAGS.items()}


@dataclass(frozen=True)
class AddressInfo:
    """Components of an encoded address."""
    prefix: str
    pre_address: str
    checksum: str
    num_layers: Optional[int]  # None for fallback addresses

    @property
    def is_standard(self) -> bool:
        return self.num_layers is not None


def pre_address(root: str) -> str:
    """
    Truncated base32 form of the root digest.

    Raises:
        ValueError: If `root` is not the base64 text of a SHA-256 digest
    """
    digest = base64.b64decode(root, validate=True)
    if len(digest) != ROOT_DIGEST_SIZE:
        raise ValueError(
            f"Root must encode a {ROOT_DIGEST_SIZE}-byte digest, got {len(digest)} bytes"
        )
    return base64.b32encode(digest).decode('ascii')[:PRE_ADDRESS_LENGTH]


def checksum(checked_prefix: str, pre: str) -> str:
    return sha256_base32(checked_prefix + pre, CHECKSUM_LENGTH)


def address_prefix(num_layers: int) -> str:
    """Emitted prefix: "S" + version tag, or "F1" for unsupported depths."""
    tag = VERSION_TAGS.get(num_layers)
    if tag is None:
        return FALLBACK_PREFIX
    return ADDRESS_PREFIX + tag


def checksum_prefix(num_layers: int) -> str:
    """Prefix fed to the checksum hash (differs from the emitted one at depth 18)."""
    tag = CHECKSUM_TAGS.get(num_layers)
    if tag is None:
        return FALLBACK_PREFIX
    return ADDRESS_PREFIX + tag


def encode_address(root: str, num_layers: int) -> str:
    """
    Address of the tree with root `root` and `num_layers` layers.

    Any depth is accepted. A malformed root raises ValueError.
    """
    pre = pre_address(root)
    return address_prefix(num_layers) + pre + checksum(checksum_prefix(num_layers), pre)


def parse_address(address: str) -> AddressInfo:
    """
    Split an address into its components.

    Raises:
        ValueError: If the address has the wrong length or prefix
    """
    expected = 2 + PRE_ADDRESS_LENGTH + CHECKSUM_LENGTH
    if len(address) != expected:
        raise ValueError(
            f"Address must be {expected} characters, got {len(address)}"
        )

    prefix = address[:2]
    if prefix == FALLBACK_PREFIX:
        num_layers = None
    elif prefix[0] == ADDRESS_PREFIX and prefix[1] in _LAYERS_BY_TAG:
        num_layers = _LAYERS_BY_TAG[prefix[1]]
    else:
        raise ValueError(f"Unknown address prefix: {prefix!r}")

    return AddressInfo(
        prefix=prefix,
        pre_address=address[2:2 + PRE_ADDRESS_LENGTH],
        checksum=address[2 + PRE_ADDRESS_LENGTH:],
        num_layers=num_layers
    )


def is_valid_address(address: str) -> bool:
    """Check the prefix, length and checksum of an address."""
    try:
        info = parse_address(address)
    except ValueError:
        return False

    if info.num_layers is None:
        checked = FALLBACK_PREFIX
    else:
        checked = checksum_prefix(info.num_layers)
    return checksum(checked, info.pre_address) == info.checksum


def signature_capacity(num_layers: int) -> int:
    """One-time signatures available to a tree of `num_layers` layers."""
    return 1 << (num_layers - 1)
