import asyncio
import logging
from typing import Tuple, Union

from canopen_sdo.network import CommandChannel, ReadCommand, WriteCommand
from canopen_sdo.sdo import codec
from canopen_sdo.sdo.base import ObjectAddress, SdoRequest, SdoResponse, SdoWriteRequest, TValue
from canopen_sdo.sdo.exceptions import SdoEncodingError


logger = logging.getLogger(__name__)

TAddress = Union[ObjectAddress, Tuple[int, int]]


class DeviceHandle:
    """Client side view of one registered device.

    Holds nothing but the node ID and the channel to the connection
    manager, so it may be copied freely and shared between tasks.

    :param int node_id:
        Node ID of the device.
    :param channel:
        Command channel of the owning :class:`~canopen_sdo.network.Network`.
    """

    def __init__(self, node_id: int, channel: CommandChannel):
        #: Node ID
        self.id = node_id
        self.channel = channel

    @property
    def node_id(self) -> int:
        return self.id

    async def read(self, address: TAddress, data_type: int) -> SdoResponse:
        """Read one object with an expedited upload.

        :param address:
            Index and sub-index of the object.
        :param data_type:
            Data type to decode the value as.

        :raises canopen_sdo.SdoAbortedError:
            When the device aborts the transfer.
        :raises canopen_sdo.SdoTimeoutError:
            When the device does not answer in time.
        :raises canopen_sdo.RequestFailedError:
            When the connection manager is not running.
        """
        request = SdoRequest(self.id, ObjectAddress(*address), data_type)
        future = asyncio.get_running_loop().create_future()
        self.channel.put(ReadCommand(request, future))
        return await future

    async def read_value(self, index: int, subindex: int, data_type: int) -> TValue:
        """Read one object and return only the decoded value."""
        response = await self.read(ObjectAddress(index, subindex), data_type)
        return response.value

    async def write(self, address: TAddress, data: bytes):
        """Write 1 to 4 raw bytes with an expedited download.

        :raises canopen_sdo.SdoEncodingError:
            When the data does not fit in an expedited transfer.
        :raises canopen_sdo.SdoAbortedError:
            When the device aborts the transfer.
        """
        request = SdoWriteRequest(self.id, ObjectAddress(*address), bytes(data))
        future = asyncio.get_running_loop().create_future()
        self.channel.put(WriteCommand(request, future))
        await future

    async def write_value(self, index: int, subindex: int, value: TValue, data_type: int):
        """Encode a value as *data_type* and write it."""
        try:
            data = codec.encode_value(value, data_type)
        except ValueError as exc:
            raise SdoEncodingError(str(exc)) from exc
        await self.write(ObjectAddress(index, subindex), data)

    async def configure_tpdo(self, config):
        """Write a TPDO configuration to the device.

        See :func:`canopen_sdo.pdo.configure_tpdo`.
        """
        from canopen_sdo.pdo.tpdo import configure_tpdo
        await configure_tpdo(self, config)

    def __copy__(self):
        return type(self)(self.id, self.channel)

    def __eq__(self, other):
        if not isinstance(other, DeviceHandle):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return "<%s node %d>" % (type(self).__name__, self.id)
