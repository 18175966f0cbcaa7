"""Simulated CANopen node for testing without hardware."""
import asyncio
import logging
import struct
from typing import Optional

import can

from canopen_sdo.sdo.server import ObjectTable, SdoServer

logger = logging.getLogger(__name__)

# Temperature (0.01 degC), pressure (hPa), status
TPDO1_STRUCT = struct.Struct("<HHB")


class MockNode:
    """Answers SDO requests on a python-can bus from an asyncio task.

    :param bus:
        Bus to serve on. It is not shut down by :meth:`stop`.
    :param node_id:
        Node ID to answer for.
    :param table:
        Objects to serve. Defaults to the demonstration objects including
        TPDO parameters, see :meth:`ObjectTable.add_test_objects`.
    :param broadcast_tpdo:
        Send a simulated TPDO1 on 0x180 + node ID every
        :attr:`TPDO_INTERVAL` seconds.
    """

    #: Period of the simulated TPDO1 in seconds
    TPDO_INTERVAL = 0.1

    def __init__(self, bus: can.BusABC, node_id: int,
                 table: Optional[ObjectTable] = None, broadcast_tpdo: bool = False):
        if table is None:
            table = ObjectTable()
            table.add_test_objects(node_id)
        self.bus = bus
        self.node_id = node_id
        self.server = SdoServer(node_id, table)
        self.broadcast_tpdo = broadcast_tpdo
        self.temperature = 2350
        self.pressure = 1013
        self.status = 1
        self._reader = None
        self._notifier = None
        self._tasks = []

    @property
    def table(self) -> ObjectTable:
        return self.server.table

    async def start(self):
        if self._notifier is not None:
            return
        loop = asyncio.get_running_loop()
        self._reader = can.AsyncBufferedReader()
        self._notifier = can.Notifier(self.bus, [self._reader], timeout=0.1, loop=loop)
        self._tasks.append(asyncio.create_task(self._serve()))
        if self.broadcast_tpdo:
            self._tasks.append(asyncio.create_task(self._broadcast()))
        logger.info("Mock node %d serving %d objects", self.node_id, len(self.table))

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._notifier is not None:
            self._notifier.stop()
            self._notifier = None
        logger.info("Mock node %d stopped", self.node_id)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    def _send(self, msg: can.Message):
        try:
            self.bus.send(msg)
        except can.CanError as exc:
            logger.warning("Failed to send 0x%03X: %s", msg.arbitration_id, exc)

    async def _serve(self):
        while True:
            msg = await self._reader.get_message()
            if msg.is_extended_id or msg.is_error_frame or msg.is_remote_frame:
                continue
            response = self.server.on_request(msg.arbitration_id, msg.data)
            if response is not None:
                self._send(response)

    def next_tpdo1(self) -> can.Message:
        """Advance the simulated process values and build the TPDO1 frame."""
        self.temperature = (self.temperature + 1) % 3000
        self.pressure = 1000 + (self.pressure - 1000 + 1) % 50
        self.status = 2 if self.status == 1 else 1
        table = self.table
        for subindex, value in enumerate((self.temperature, self.pressure, self.status), 1):
            entry = table.get(0x2006, subindex)
            if entry is not None:
                entry.data = struct.pack("<H" if subindex < 3 else "B", value)
        return can.Message(arbitration_id=0x180 + self.node_id,
                           data=TPDO1_STRUCT.pack(self.temperature, self.pressure, self.status),
                           is_extended_id=False)

    async def _broadcast(self):
        while True:
            await asyncio.sleep(self.TPDO_INTERVAL)
            msg = self.next_tpdo1()
            self._send(msg)
            logger.debug("TPDO1: Temp=%.2f, Press=%d, Status=%d",
                         self.temperature / 100.0, self.pressure, self.status)
