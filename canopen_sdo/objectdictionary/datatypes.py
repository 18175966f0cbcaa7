import struct
from typing import Optional

INTEGER8 = 0x2
INTEGER16 = 0x3
INTEGER32 = 0x4
UNSIGNED8 = 0x5
UNSIGNED16 = 0x6
UNSIGNED32 = 0x7
REAL32 = 0x8
VISIBLE_STRING = 0x9
OCTET_STRING = 0xA

SIGNED_TYPES = (INTEGER8, INTEGER16, INTEGER32)

STRUCT_TYPES = {
    INTEGER8:   struct.Struct("b"),   # int
    INTEGER16:  struct.Struct("<h"),  # int
    INTEGER32:  struct.Struct("<l"),  # int
    UNSIGNED8:  struct.Struct("B"),   # int
    UNSIGNED16: struct.Struct("<H"),  # int
    UNSIGNED32: struct.Struct("<L"),  # int
    REAL32:     struct.Struct("<f"),  # float
}

NAMES = {
    INTEGER8: "INTEGER8",
    INTEGER16: "INTEGER16",
    INTEGER32: "INTEGER32",
    UNSIGNED8: "UNSIGNED8",
    UNSIGNED16: "UNSIGNED16",
    UNSIGNED32: "UNSIGNED32",
    REAL32: "REAL32",
    VISIBLE_STRING: "VISIBLE_STRING",
    OCTET_STRING: "OCTET_STRING",
}

# Default type for a mapped object when nothing better is known
_BIT_LENGTH_TYPES = {
    8: UNSIGNED8,
    16: UNSIGNED16,
    32: UNSIGNED32,
}


def parse_int(text: str) -> int:
    """Parse a hexadecimal (``0x`` prefixed) or decimal integer string."""
    text = text.strip()
    try:
        return int(text, 0)
    except ValueError:
        # Zero padded decimals like "0010" are not accepted with base 0
        return int(text, 10)


def from_eds_type(text: str) -> Optional[int]:
    """Convert an EDS ``DataType`` entry (e.g. ``0x0007`` or ``7``) to a
    supported data type code.

    :return: The data type or ``None`` if it is not supported.
    """
    try:
        data_type = parse_int(text)
    except (ValueError, AttributeError):
        return None
    return data_type if data_type in NAMES else None


def type_from_bit_length(bit_length: int) -> int:
    """Guess an unsigned type from a PDO mapping length."""
    return _BIT_LENGTH_TYPES.get(bit_length, UNSIGNED32)


def type_name(data_type: Optional[int]) -> str:
    if data_type is None:
        return "UNKNOWN"
    return NAMES.get(data_type, "0x%X" % data_type)
