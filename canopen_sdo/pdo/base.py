import logging
import time
from typing import List, NamedTuple, Optional, Tuple

from canopen_sdo.objectdictionary import datatypes
from canopen_sdo.sdo.base import ObjectAddress
from canopen_sdo.utils import pretty_index

PDO_NOT_VALID = 1 << 31
COB_ID_MASK = 0x7FF

#: Index of the first TPDO communication parameter record
COM_OFFSET = 0x1800
#: Index of the first TPDO mapping parameter record
MAP_OFFSET = 0x1A00
TPDO_COUNT = 4
MAX_MAPPINGS = 8

#: Transmission type used for new configurations (event driven)
DEFAULT_TRANSMISSION_TYPE = 0xFE

logger = logging.getLogger(__name__)


class TpdoMapping:
    """One object packed into a TPDO.

    :param int index: Index of the mapped object
    :param int subindex: Sub-index of the mapped object
    :param int bit_length: Number of bits the object takes in the frame
    :param data_type: Data type code, ``None`` if unknown
    :param name: Human readable name, ``None`` if unknown
    """

    def __init__(self, index: int, subindex: int, bit_length: int,
                 data_type: Optional[int] = None, name: Optional[str] = None):
        self.index = index
        self.subindex = subindex
        self.bit_length = bit_length
        self.data_type = data_type
        self.name = name

    @classmethod
    def from_value(cls, value: int) -> "TpdoMapping":
        """Decompose a 32-bit mapping entry as stored in 0x1A00-0x1A03."""
        return cls(value >> 16, (value >> 8) & 0xFF, value & 0xFF)

    @property
    def value(self) -> int:
        """Mapping entry packed as index << 16 | subindex << 8 | bit length."""
        return (self.index & 0xFFFF) << 16 | (self.subindex & 0xFF) << 8 | (self.bit_length & 0xFF)

    @property
    def address(self) -> ObjectAddress:
        return ObjectAddress(self.index, self.subindex)

    @property
    def is_empty(self) -> bool:
        """Entry takes no space in the frame."""
        return not self.bit_length

    @property
    def display_name(self) -> str:
        return self.name or pretty_index(self.index, self.subindex)

    def __eq__(self, other):
        if not isinstance(other, TpdoMapping):
            return NotImplemented
        return (self.value, self.data_type, self.name) == (other.value, other.data_type, other.name)

    def __repr__(self):
        return "<%s %s %d bits %s>" % (
            type(self).__name__, self.display_name, self.bit_length,
            datatypes.type_name(self.data_type))


class TpdoConfig:
    """Communication and mapping parameters of one TPDO."""

    def __init__(self, tpdo_number: int, cob_id: int,
                 transmission_type: int = DEFAULT_TRANSMISSION_TYPE,
                 inhibit_time: int = 0, event_timer: int = 0,
                 mappings: Optional[List[TpdoMapping]] = None):
        #: TPDO number, 1 to 4
        self.tpdo_number = tpdo_number
        #: 11-bit identifier the TPDO is broadcast on
        self.cob_id = cob_id
        self.transmission_type = transmission_type
        #: Inhibit time in multiples of 100 us
        self.inhibit_time = inhibit_time
        #: Event timer in ms
        self.event_timer = event_timer
        self.mappings: List[TpdoMapping] = list(mappings or [])

    @property
    def comm_index(self) -> int:
        return COM_OFFSET + self.tpdo_number - 1

    @property
    def map_index(self) -> int:
        return MAP_OFFSET + self.tpdo_number - 1

    @property
    def length(self) -> int:
        """Total number of mapped bits."""
        return sum(mapping.bit_length for mapping in self.mappings)

    def validate(self):
        """Check that the configuration may be written to a device.

        :raises ValueError: If the TPDO number or mapping count is out of range.
        """
        if not 1 <= self.tpdo_number <= TPDO_COUNT:
            raise ValueError("TPDO number must be in range 1 to %d, not %r" % (
                TPDO_COUNT, self.tpdo_number))
        if len(self.mappings) > MAX_MAPPINGS:
            raise ValueError("A TPDO can map at most %d objects, got %d" % (
                MAX_MAPPINGS, len(self.mappings)))

    def __repr__(self):
        return "<%s %d on 0x%03X with %d mappings>" % (
            type(self).__name__, self.tpdo_number, self.cob_id, len(self.mappings))


class TpdoData(NamedTuple):
    """Decoded TPDO frame."""

    tpdo_number: int
    cob_id: int
    #: Reception time as reported by python-can
    timestamp: float
    #: (name, formatted value) in mapping order
    values: List[Tuple[str, str]]


def format_value(value, data_type: Optional[int]) -> str:
    if data_type == datatypes.REAL32:
        return "%.2f" % value
    return str(value)


def decode_tpdo_frame(data: bytes, config: TpdoConfig) -> List[Tuple[str, str]]:
    """Extract the mapped values from a received TPDO.

    Fields are byte aligned, the offset of each field is the sum of the
    preceding bit lengths divided by 8. Fields missing from a short frame
    are rendered as ``"N/A"``, unsupported lengths and types as
    ``"Unsupported: <bits> bits, <TYPE>"``.
    """
    values = []
    bit_offset = 0
    for mapping in config.mappings:
        data_type = mapping.data_type
        if data_type is None:
            data_type = datatypes.type_from_bit_length(mapping.bit_length)
        offset = bit_offset // 8
        size = mapping.bit_length // 8
        bit_offset += mapping.bit_length

        st = datatypes.STRUCT_TYPES.get(data_type)
        if st is None or mapping.bit_length % 8 or st.size != size:
            text = "Unsupported: %d bits, %s" % (
                mapping.bit_length, datatypes.type_name(data_type))
        elif offset + size > len(data):
            text = "N/A"
        else:
            text = format_value(st.unpack_from(data, offset)[0], data_type)
        values.append((mapping.display_name, text))
    return values


def tpdo_data(msg, config: TpdoConfig) -> TpdoData:
    """Build :class:`TpdoData` from a received :class:`can.Message`."""
    timestamp = msg.timestamp or time.time()
    return TpdoData(config.tpdo_number, config.cob_id, timestamp,
                    decode_tpdo_frame(msg.data, config))
