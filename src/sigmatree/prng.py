"""
Seeded Pseudo-Random Generators

Key material is drawn from deterministic generators: the same seed always
yields the same byte stream. Callers pass a generator *class* (any
SeededGenerator subclass) so tests can substitute their own stream and so
the class can be shipped to worker processes.

Sha1Prng reproduces the SHA1PRNG construction:

    state_0   = SHA1(seed)
    out_i     = SHA1(state_i)
    state_i+1 = state_i + out_i + 1        (20-byte little-endian, signed digits)

Output is a stream: bytes left over from one block are returned by the
next call, so drawing 200 x 20 bytes or 1 x 4000 bytes gives the same data.
"""

from abc import ABC, abstractmethod
import hashlib

DIGEST_SIZE = 20
_MODULUS = 1 << (8 * DIGEST_SIZE)
_LOW_BIT_MASK = int.from_bytes(b'\x01' * DIGEST_SIZE, 'little')


class SeededGenerator(ABC):
    """Deterministic byte generator constructed from seed bytes."""

    def __init__(self, seed: bytes):
        self.set_seed(seed)

    @abstractmethod
    def set_seed(self, seed: bytes) -> None:
        """Mix seed material into the generator state."""
        pass

    @abstractmethod
    def next_bytes(self, n: int) -> bytes:
        """Draw the next `n` bytes of the stream."""
        pass


def _signed_value(block: bytes) -> int:
    """Little-endian value of `block` with every byte read as signed."""
    value = int.from_bytes(block, 'little')
    high_bits = (value >> 7) & _LOW_BIT_MASK
    return value - (high_bits << 8)


def update_state(state: bytes, output: bytes) -> bytes:
    """
    Advance the SHA1PRNG state after producing `output`.

    Adds state + output + 1 byte by byte with signed bytes and an
    arithmetic carry, dropping the final carry. If no byte changed, the
    first byte is incremented on its own.
    """
    total = (_signed_value(state) + _signed_value(output) + 1) % _MODULUS
    new_state = total.to_bytes(DIGEST_SIZE, 'little')
    if new_state == state:
        new_state = bytes([(new_state[0] + 1) & 0xFF]) + new_state[1:]
    return new_state


class Sha1Prng(SeededGenerator):
    """SHA1PRNG-compatible generator."""

    def __init__(self, seed: bytes):
        self._state = None
        self._remainder = b''
        super().__init__(seed)

    def set_seed(self, seed: bytes) -> None:
        h = hashlib.sha1()
        if self._state is not None:
            h.update(self._state)
        h.update(seed)
        self._state = h.digest()
        self._remainder = b''

    def next_bytes(self, n: int) -> bytes:
        if n < 0:
            raise ValueError(f"Cannot draw {n} bytes")

        out = self._remainder[:n]
        self._remainder = self._remainder[n:]

        blocks = [out]
        needed = n - len(out)
        while needed > 0:
            block = hashlib.sha1(self._state).digest()
            self._state = update_state(self._state, block)
            if needed < DIGEST_SIZE:
                blocks.append(block[:needed])
                self._remainder = block[needed:]
            else:
                blocks.append(block)
            needed -= DIGEST_SIZE

        return b''.join(blocks)


DEFAULT_GENERATOR = Sha1Prng
