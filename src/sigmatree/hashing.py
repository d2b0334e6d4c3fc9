"""
Printable SHA-256 hashes used throughout the tree.

Every function builds a fresh hashlib object, so calls are safe from any
number of concurrent workers.
"""

import base64
import hashlib

from .errors import CapabilityError

REQUIRED_ALGORITHMS = ('sha1', 'sha256')


def check_capabilities() -> None:
    """Fail fast if the hash primitives the generator needs are missing."""
    available = hashlib.algorithms_available
    missing = [name for name in REQUIRED_ALGORITHMS if name not in available]
    if missing:
        raise CapabilityError(
            f"Required hash algorithms unavailable: {', '.join(missing)}"
        )


def sha256_base64_bytes(data: bytes) -> str:
    """SHA-256 of raw bytes as padded base64."""
    return base64.b64encode(hashlib.sha256(data).digest()).decode('ascii')


def sha256_base64(text: str) -> str:
    """
    SHA-256 of a string as padded base64.

    Internal tree nodes hash the concatenation of their children's
    base64 forms with this function.
    """
    return sha256_base64_bytes(text.encode('utf-8'))


def sha256_base32(text: str, length: int = 32) -> str:
    """SHA-256 of a string as RFC 4648 base32, truncated to `length` chars."""
    digest = hashlib.sha256(text.encode('utf-8')).digest()
    return base64.b32encode(digest).decode('ascii')[:length]
