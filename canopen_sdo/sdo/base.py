from typing import NamedTuple, Union

from canopen_sdo.utils import pretty_index

TValue = Union[int, float, str, bytes]


class ObjectAddress(NamedTuple):
    """Address of one entry in a device's object dictionary."""

    #: 16-bit index
    index: int
    #: 8-bit sub-index
    subindex: int = 0

    def __str__(self):
        return pretty_index(self.index, self.subindex)


class SdoRequest(NamedTuple):
    """Read (upload) of one object."""

    node_id: int
    address: ObjectAddress
    #: Data type the value is decoded as
    data_type: int


class SdoWriteRequest(NamedTuple):
    """Expedited write (download) of one object."""

    node_id: int
    address: ObjectAddress
    #: Raw little-endian payload, 1 to 4 bytes
    data: bytes


class SdoResponse(NamedTuple):
    """Decoded answer to an :class:`SdoRequest`."""

    node_id: int
    address: ObjectAddress
    value: TValue
    #: The complete data field of the response frame
    raw: bytes
