import itertools
import os

import can

from canopen_sdo import MockNode, Network


SAMPLE_EDS = os.path.join(os.path.dirname(__file__), "sample.eds")

TIMEOUT = 0.1
NODE_ID = 4

_channels = itertools.count()


def unique_channel():
    """Name of a virtual CAN channel no other test uses."""
    return "canopen-sdo-test-%d-%d" % (os.getpid(), next(_channels))


def virtual_bus(channel):
    return can.Bus(interface="virtual", channel=channel, receive_own_messages=False)


class NetworkTestMixin:
    """Runs a :class:`Network` and a :class:`MockNode` on a private channel.

    For use with :class:`unittest.IsolatedAsyncioTestCase`.
    """

    node_id = NODE_ID
    timeout = TIMEOUT
    broadcast_tpdo = False

    async def asyncSetUp(self):
        self.channel = unique_channel()
        self.node_bus = virtual_bus(self.channel)
        self.node = MockNode(self.node_bus, self.node_id,
                             broadcast_tpdo=self.broadcast_tpdo)
        await self.node.start()
        self.network = Network(virtual_bus(self.channel), default_timeout=self.timeout)
        await self.network.start()

    async def asyncTearDown(self):
        await self.network.disconnect()
        await self.node.stop()
        self.node_bus.shutdown()
