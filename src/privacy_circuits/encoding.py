"""
privacy_circuits/encoding.py
Field-element encoding between integers, little-endian buffers and hex.
"""
import secrets
from dataclasses import dataclass
from typing import Union

from eth_utils import is_address, to_canonical_address

from .constants import ADDRESS_SIZE, FIELD_ELEMENT_SIZE, FIELD_SIZE

HexLike = Union[bytes, int, str]


def random_int(size: int) -> int:
    """Draw a cryptographically random integer of ``size`` bytes.

    Uses the secrets module (OS CSPRNG). The bytes are read little-endian,
    matching how the value is later laid out in a circuit preimage.

    Args:
        size: Number of random bytes

    Returns:
        Integer in ``[0, 2**(8*size))``
    """
    return le_bytes_to_int(secrets.token_bytes(size))


def le_int_to_bytes(value: int, length: int) -> bytes:
    """Encode a non-negative integer as exactly ``length`` little-endian bytes.

    Raises:
        ValueError: If the value is negative or does not fit
    """
    if value < 0:
        raise ValueError(f"Cannot encode negative value {value}")
    try:
        return value.to_bytes(length, 'little')
    except OverflowError:
        raise ValueError(f"Value does not fit in {length} bytes") from None


def le_bytes_to_int(buf: bytes) -> int:
    return int.from_bytes(buf, 'little')


def to_hex(value: HexLike, length: int = FIELD_ELEMENT_SIZE) -> str:
    """Render a value as ``0x``-prefixed hex.

    Bytes are rendered verbatim. Integers (and decimal or hex strings) are
    left-padded to ``length`` bytes.
    """
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    return '0x' + format(parse_int(value), 'x').rjust(length * 2, '0')


def parse_int(value: HexLike) -> int:
    """Parse an int, decimal string, ``0x`` hex string or big-endian bytes."""
    if isinstance(value, bool):
        raise TypeError("Booleans are not field values")
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, 'big')
    if isinstance(value, str):
        text = value.strip()
        if text[:2].lower() == '0x':
            return int(text, 16) if len(text) > 2 else 0
        return int(text, 10)
    raise TypeError(f"Cannot interpret {type(value).__name__} as an integer")


def address_to_int(address: str) -> int:
    """Convert a 20-byte hex address to its integer value.

    Raises:
        ValueError: If ``address`` is not a valid address
    """
    if not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return int.from_bytes(to_canonical_address(address), 'big')


def address_to_le_bytes(address: str) -> bytes:
    return le_int_to_bytes(address_to_int(address), ADDRESS_SIZE)


@dataclass(frozen=True)
class FieldElement:
    """An element of the proving system's scalar field.

    Three lossless views are available:

    - ``str(fe)``: decimal string, the form snarkjs consumes and emits
    - ``fe.as_hex``: ``0x``-prefixed 32-byte big-endian hex, the form
      contracts and event logs use
    - ``fe.as_bytes``: 32-byte little-endian buffer
    """
    value: int

    def __post_init__(self):
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise TypeError("FieldElement value must be an int")
        if not 0 <= self.value < FIELD_SIZE:
            raise ValueError("Value is outside the scalar field")

    @classmethod
    def parse(cls, value: Union['FieldElement', HexLike]) -> 'FieldElement':
        """Build from an int, decimal string, hex string or big-endian bytes."""
        if isinstance(value, FieldElement):
            return value
        return cls(parse_int(value))

    @classmethod
    def from_le_bytes(cls, buf: bytes) -> 'FieldElement':
        return cls(le_bytes_to_int(buf))

    @property
    def as_hex(self) -> str:
        return to_hex(self.value)

    @property
    def as_bytes(self) -> bytes:
        return le_int_to_bytes(self.value, FIELD_ELEMENT_SIZE)

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)
