import itertools
import logging
import random
from typing import Callable, Dict, Iterator, Optional, Tuple, Union

import can

from canopen_sdo.objectdictionary import datatypes
from canopen_sdo.sdo import codec
from canopen_sdo.sdo.constants import *
from canopen_sdo.sdo.exceptions import *
from canopen_sdo.utils import pretty_index


logger = logging.getLogger(__name__)


class StaticEntry:
    """Object holding a fixed value that may be overwritten by downloads."""

    writable = True

    def __init__(self, data: bytes, data_type: int):
        self.data = bytes(data)
        self.data_type = data_type

    def get_data(self) -> bytes:
        return self.data

    def __repr__(self):
        return "Static %s" % datatypes.type_name(self.data_type)


class DynamicEntry:
    """Object whose value is produced on every read."""

    writable = False

    def __init__(self, producer: Callable[[], bytes], data_type: int):
        self.producer = producer
        self.data_type = data_type

    def get_data(self) -> bytes:
        return bytes(self.producer())

    def __repr__(self):
        return "Dynamic %s" % datatypes.type_name(self.data_type)


Entry = Union[StaticEntry, DynamicEntry]


class ObjectTable:
    """Simulated object dictionary of a mock node."""

    def __init__(self):
        self.entries: Dict[Tuple[int, int], Entry] = {}

    def add_static(self, index: int, subindex: int, data: bytes, data_type: int):
        self.entries[(index, subindex)] = StaticEntry(data, data_type)

    def add_dynamic(self, index: int, subindex: int,
                    producer: Callable[[], bytes], data_type: int):
        self.entries[(index, subindex)] = DynamicEntry(producer, data_type)

    def add_value(self, index: int, subindex: int, value, data_type: int):
        """Add a static entry from a Python value."""
        self.add_static(index, subindex, codec.encode_value(value, data_type), data_type)

    def get(self, index: int, subindex: int) -> Optional[Entry]:
        return self.entries.get((index, subindex))

    def __len__(self):
        return len(self.entries)

    def __iter__(self) -> Iterator[Tuple[int, int]]:
        return iter(sorted(self.entries))

    def summary(self) -> str:
        """One line per object, sorted by address."""
        return "\n".join("  %s - %r" % (pretty_index(index, subindex),
                                         self.entries[(index, subindex)])
                         for index, subindex in self)

    def add_test_objects(self, node_id: Optional[int] = None):
        """Populate the table with a small demonstration dictionary.

        :param node_id:
            If given, TPDO parameters are added as well with TPDO1 enabled on
            ``0x180 + node_id``, matching what :class:`~canopen_sdo.mock.MockNode`
            broadcasts.
        """
        self.add_value(0x1000, 0, 0x00000191, datatypes.UNSIGNED32)
        self.add_value(0x1001, 0, 0, datatypes.UNSIGNED8)
        # Too long for expedited transfer
        self.add_value(0x1008, 0, "MockCANopenNode", datatypes.VISIBLE_STRING)
        self.add_value(0x1018, 1, 0x00000001, datatypes.UNSIGNED32)

        def uniform(low, high):
            st = datatypes.STRUCT_TYPES[datatypes.REAL32]
            return lambda: st.pack(random.uniform(low, high))

        def ramp(step, data_type):
            counter = itertools.count(0, step)
            st = datatypes.STRUCT_TYPES[data_type]
            mask = (1 << (st.size * 8)) - 1
            if data_type in datatypes.SIGNED_TYPES:
                return lambda: st.pack(_to_signed(next(counter) & mask, st.size * 8))
            return lambda: st.pack(next(counter) & mask)

        # Temperature and pressure sensors
        self.add_dynamic(0x2000, 1, uniform(20.0, 30.0), datatypes.REAL32)
        self.add_dynamic(0x2000, 2, uniform(95.0, 105.0), datatypes.REAL32)
        self.add_dynamic(0x2001, 1, ramp(1, datatypes.UNSIGNED32), datatypes.UNSIGNED32)
        # Voltage and current
        self.add_dynamic(0x2002, 1, uniform(11.5, 12.5), datatypes.REAL32)
        self.add_dynamic(0x2002, 2, uniform(0.5, 5.0), datatypes.REAL32)
        self.add_value(0x2003, 1, 0x0031, datatypes.UNSIGNED16)
        self.add_value(0x2003, 2, 0x000F, datatypes.UNSIGNED16)
        self.add_dynamic(
            0x2004, 1,
            lambda: datatypes.STRUCT_TYPES[datatypes.INTEGER32].pack(
                random.randrange(1000, 3000)),
            datatypes.INTEGER32)
        self.add_dynamic(0x2005, 1, ramp(10, datatypes.INTEGER32), datatypes.INTEGER32)

        if node_id is not None:
            self.add_tpdo_objects(node_id)

    def add_tpdo_objects(self, node_id: int):
        """Add communication and mapping parameters for four TPDOs.

        TPDO1 maps temperature (16 bit), pressure (16 bit) and status (8 bit)
        from 0x2006, the others are disabled and empty.
        """
        self.add_value(0x2006, 1, 2350, datatypes.UNSIGNED16)
        self.add_value(0x2006, 2, 1013, datatypes.UNSIGNED16)
        self.add_value(0x2006, 3, 1, datatypes.UNSIGNED8)
        mappings = [0x20060110, 0x20060210, 0x20060308]
        for n in range(4):
            cob_id = (0x180 + n * 0x100 + node_id)
            if n > 0:
                cob_id |= 0x80000000
            self.add_value(0x1800 + n, 0, 5, datatypes.UNSIGNED8)
            self.add_value(0x1800 + n, 1, cob_id, datatypes.UNSIGNED32)
            self.add_value(0x1800 + n, 2, 0xFE, datatypes.UNSIGNED8)
            self.add_value(0x1800 + n, 3, 0, datatypes.UNSIGNED16)
            self.add_value(0x1800 + n, 5, 0, datatypes.UNSIGNED16)
            used = mappings if n == 0 else []
            self.add_value(0x1A00 + n, 0, len(used), datatypes.UNSIGNED8)
            for subindex in range(1, 9):
                value = used[subindex - 1] if subindex <= len(used) else 0
                self.add_value(0x1A00 + n, subindex, value, datatypes.UNSIGNED32)


def _to_signed(value: int, bits: int) -> int:
    if value & (1 << (bits - 1)):
        value -= 1 << bits
    return value


class SdoServer:
    """Answers expedited SDO requests from an :class:`ObjectTable`."""

    def __init__(self, node_id: int, table: Optional[ObjectTable] = None):
        """
        :param node_id:
            Node ID the server answers for. Requests are received on
            0x600 + node ID and responses sent on 0x580 + node ID.
        :param table:
            Objects to serve, an empty table by default.
        """
        self.node_id = node_id
        self.table = table if table is not None else ObjectTable()
        self.rx_cobid = REQUEST_COB_BASE + node_id
        self.tx_cobid = RESPONSE_COB_BASE + node_id
        self.last_received_error = 0x00000000

    def on_request(self, can_id: int, data: bytes) -> Optional[can.Message]:
        """Handle one received frame.

        :return:
            The response to send, or ``None`` if the frame was not a request
            for this node.
        """
        if can_id != self.rx_cobid or len(data) < SDO_STRUCT.size:
            return None
        command, index, subindex = SDO_STRUCT.unpack_from(data)
        ccs = command & COMMAND_MASK

        try:
            if command == REQUEST_UPLOAD:
                response = self.init_upload(index, subindex)
            elif ccs == REQUEST_DOWNLOAD and command & EXPEDITED:
                response = self.expedited_download(command, index, subindex, data)
            elif ccs == REQUEST_ABORTED:
                self.request_aborted(data)
                return None
            else:
                raise SdoAbortedError(ABORT_COMMAND_INVALID)
        except SdoAbortedError as exc:
            logger.info("Aborting transfer of %s: %s",
                        pretty_index(index, subindex), exc)
            response = codec.abort_response(index, subindex, exc.code)
        except Exception as exc:
            logger.exception(exc)
            response = codec.abort_response(index, subindex, ABORT_GENERAL)
        return can.Message(arbitration_id=self.tx_cobid, data=response,
                           is_extended_id=False)

    def init_upload(self, index: int, subindex: int) -> bytes:
        entry = self.table.get(index, subindex)
        if entry is None:
            raise SdoAbortedError(ABORT_NOT_FOUND)
        data = entry.get_data()
        if not 0 < len(data) <= EXPEDITED_MAX_SIZE:
            raise SdoAbortedError(ABORT_COMMAND_INVALID)
        logger.debug("Expedited upload for %s", pretty_index(index, subindex))
        return codec.upload_response(index, subindex, data)

    def expedited_download(self, command: int, index: int, subindex: int,
                           request: bytes) -> bytes:
        entry = self.table.get(index, subindex)
        if entry is None:
            raise SdoAbortedError(ABORT_NOT_FOUND)
        if not entry.writable:
            raise SdoAbortedError(ABORT_READ_ONLY)
        if command & SIZE_SPECIFIED:
            size = EXPEDITED_MAX_SIZE - ((command >> 2) & 0x3)
        else:
            size = EXPEDITED_MAX_SIZE
        entry.data = bytes(request[4:4 + size])
        logger.info("Expedited download for %s", pretty_index(index, subindex))
        return codec.download_response(index, subindex)

    def request_aborted(self, data: bytes):
        if len(data) < SDO_ABORT_STRUCT.size:
            return
        _, index, subindex, code = SDO_ABORT_STRUCT.unpack_from(data)
        self.last_received_error = code
        logger.info("Received request aborted for %s with code 0x%X",
                    pretty_index(index, subindex), code)
