import asyncio
import copy
import unittest
from unittest import mock

import can

from canopen_sdo import (
    DeviceHandle,
    MockNode,
    Network,
    ObjectAddress,
    open_network,
)
from canopen_sdo.exceptions import DeviceRemovedError, NotConnectedError, RequestFailedError
from canopen_sdo.objectdictionary import datatypes as dt
from canopen_sdo.sdo.exceptions import (
    SdoAbortedError,
    SdoEncodingError,
    SdoSocketError,
    SdoTimeoutError,
)

from .util import NODE_ID, NetworkTestMixin, unique_channel, virtual_bus

# No mock node answers for this ID
SILENT_ID = 9


class TestNetwork(NetworkTestMixin, unittest.IsolatedAsyncioTestCase):

    async def test_read(self):
        self.node.table.add_value(0x1000, 0, 0x1234, dt.UNSIGNED16)
        device = await self.network.register_device(NODE_ID)
        response = await device.read(ObjectAddress(0x1000, 0), dt.UNSIGNED16)
        self.assertEqual(response.value, 4660)
        self.assertEqual(response.node_id, NODE_ID)
        self.assertEqual(response.address, ObjectAddress(0x1000, 0))
        self.assertEqual(response.raw[:4], b'\x4b\x00\x10\x00')

    async def test_read_value(self):
        device = await self.network.register_device(NODE_ID)
        self.assertEqual(await device.read_value(0x1000, 0, dt.UNSIGNED32), 0x191)
        self.assertEqual(await device.read_value(0x2003, 1, dt.UNSIGNED16), 0x31)
        temperature = await device.read_value(0x2000, 1, dt.REAL32)
        self.assertTrue(20.0 <= temperature <= 30.0)
        rpm = await device.read_value(0x2004, 1, dt.INTEGER32)
        self.assertTrue(1000 <= rpm < 3000)

    async def test_read_with_tuple_address(self):
        device = await self.network.register_device(NODE_ID)
        response = await device.read((0x1018, 1), dt.UNSIGNED32)
        self.assertEqual(response.value, 1)

    async def test_requests_served_in_order(self):
        device = await self.network.register_device(NODE_ID)
        counts = await asyncio.gather(*[
            device.read_value(0x2001, 1, dt.UNSIGNED32) for _ in range(5)])
        self.assertEqual(counts, [0, 1, 2, 3, 4])

    async def test_two_devices(self):
        other_bus = virtual_bus(self.channel)
        self.addCleanup(other_bus.shutdown)
        async with MockNode(other_bus, 5):
            first = await self.network.register_device(NODE_ID)
            second = await self.network.register_device(5)
            reads = []
            for _ in range(5):
                reads.append(first.read_value(0x2005, 1, dt.INTEGER32))
                reads.append(second.read_value(0x2005, 1, dt.INTEGER32))
            positions = await asyncio.gather(*reads)
        self.assertEqual(positions[0::2], [0, 10, 20, 30, 40])
        self.assertEqual(positions[1::2], [0, 10, 20, 30, 40])
        self.assertEqual(self.network.devices, [NODE_ID, 5])

    async def test_abort(self):
        device = await self.network.register_device(NODE_ID)
        with self.assertRaises(SdoAbortedError) as cm:
            await device.read_value(0x3000, 0, dt.UNSIGNED8)
        self.assertEqual(cm.exception.code, 0x06020000)
        self.assertEqual(cm.exception.description,
                         "Object does not exist in the object dictionary")

    async def test_too_long_for_expedited(self):
        device = await self.network.register_device(NODE_ID)
        with self.assertRaises(SdoAbortedError) as cm:
            await device.read_value(0x1008, 0, dt.VISIBLE_STRING)
        self.assertEqual(cm.exception.code, 0x05040001)

    async def test_write(self):
        device = await self.network.register_device(NODE_ID)
        await device.write_value(0x2003, 2, 0x1234, dt.UNSIGNED16)
        self.assertEqual(await device.read_value(0x2003, 2, dt.UNSIGNED16), 0x1234)
        await device.write((0x2003, 2), b'\x01')
        self.assertEqual(await device.read_value(0x2003, 2, dt.UNSIGNED8), 1)

    async def test_write_read_only(self):
        device = await self.network.register_device(NODE_ID)
        with self.assertRaises(SdoAbortedError) as cm:
            await device.write_value(0x2000, 1, 1.0, dt.REAL32)
        self.assertEqual(cm.exception.code, 0x06010002)

    async def test_write_invalid(self):
        device = await self.network.register_device(NODE_ID)
        with self.assertRaises(SdoEncodingError):
            await device.write((0x2003, 2), b'')
        with self.assertRaises(SdoEncodingError):
            await device.write_value(0x2003, 2, 70000, dt.UNSIGNED16)
        # The device is still usable afterwards
        self.assertEqual(await device.read_value(0x2003, 1, dt.UNSIGNED16), 0x31)

    async def test_timeouts_are_serialized(self):
        device = await self.network.register_device(SILENT_ID, timeout=0.05)
        loop = asyncio.get_running_loop()
        start = loop.time()
        results = await asyncio.gather(
            device.read_value(0x1000, 0, dt.UNSIGNED32),
            device.read_value(0x1000, 0, dt.UNSIGNED32),
            return_exceptions=True)
        elapsed = loop.time() - start
        for result in results:
            self.assertIsInstance(result, SdoTimeoutError)
        self.assertGreaterEqual(elapsed, 0.095)
        self.assertEqual(str(results[0]), "SDO request timeout")

    async def test_timeout_does_not_block_other_devices(self):
        silent = await self.network.register_device(SILENT_ID, timeout=0.5)
        device = await self.network.register_device(NODE_ID)
        pending = asyncio.ensure_future(silent.read_value(0x1000, 0, dt.UNSIGNED32))
        self.assertEqual(await device.read_value(0x1000, 0, dt.UNSIGNED32), 0x191)
        self.assertFalse(pending.done())
        pending.cancel()

    async def test_not_connected(self):
        device = DeviceHandle(10, self.network.channel)
        with self.assertRaises(NotConnectedError) as cm:
            await device.read_value(0x1000, 0, dt.UNSIGNED32)
        self.assertEqual(cm.exception.node_id, 10)
        self.assertEqual(str(cm.exception), "Node 10 not connected")

    async def test_invalid_node_id(self):
        for node_id in (0, 128):
            with self.assertRaises(ValueError):
                await self.network.register_device(node_id)

    async def test_unregister(self):
        device = await self.network.register_device(SILENT_ID, timeout=1.0)
        active = asyncio.ensure_future(device.read_value(0x1000, 0, dt.UNSIGNED32))
        queued = asyncio.ensure_future(device.read_value(0x1001, 0, dt.UNSIGNED8))
        await asyncio.sleep(0.02)
        await self.network.unregister_device(SILENT_ID)
        for task in (active, queued):
            with self.assertRaises(DeviceRemovedError):
                await task
        self.assertEqual(self.network.devices, [])
        with self.assertRaises(NotConnectedError):
            await device.read_value(0x1000, 0, dt.UNSIGNED32)

    async def test_register_again(self):
        device = await self.network.register_device(SILENT_ID, timeout=1.0)
        active = asyncio.ensure_future(device.read_value(0x1000, 0, dt.UNSIGNED32))
        await asyncio.sleep(0.02)
        again = await self.network.register_device(SILENT_ID, timeout=0.02)
        with self.assertRaises(DeviceRemovedError):
            await active
        self.assertEqual(again, device)
        with self.assertRaises(SdoTimeoutError):
            await again.read_value(0x1000, 0, dt.UNSIGNED32)

    async def test_handle_copy(self):
        device = await self.network.register_device(NODE_ID)
        clone = copy.copy(device)
        self.assertEqual(clone, device)
        self.assertEqual(hash(clone), hash(device))
        self.assertEqual(await clone.read_value(0x1001, 0, dt.UNSIGNED8), 0)

    async def test_subscriptions(self):
        first = await self.network.subscribe_raw_frames()
        second = await self.network.subscribe_raw_frames()
        device = await self.network.register_device(NODE_ID)
        await device.read_value(0x1000, 0, dt.UNSIGNED32)
        for subscription in (first, second):
            msg = await subscription.get(timeout=1.0)
            self.assertEqual(msg.arbitration_id, 0x580 + NODE_ID)
            self.assertEqual(bytes(msg.data), b'\x43\x00\x10\x00\x91\x01\x00\x00')

    async def test_closed_subscription_is_removed(self):
        subscription = await self.network.subscribe_raw_frames()
        other = await self.network.subscribe_raw_frames()
        subscription.close()
        device = await self.network.register_device(NODE_ID)
        await device.read_value(0x1000, 0, dt.UNSIGNED32)
        self.assertNotIn(subscription, self.network.subscriptions)
        self.assertIn(other, self.network.subscriptions)
        self.assertIsNone(await subscription.get())

    async def test_slow_subscriber_is_dropped(self):
        slow = await self.network.subscribe_raw_frames(maxsize=1)
        device = await self.network.register_device(NODE_ID)
        with self.assertLogs("canopen_sdo.network", level="WARNING"):
            await device.read_value(0x1000, 0, dt.UNSIGNED32)
            await device.read_value(0x1001, 0, dt.UNSIGNED8)
        self.assertNotIn(slow, self.network.subscriptions)
        received = [msg async for msg in slow]
        self.assertEqual(len(received), 1)

    async def test_send_failure(self):
        device = await self.network.register_device(NODE_ID)
        with mock.patch.object(self.network.bus, "send", side_effect=can.CanError("boom")):
            with self.assertRaises(SdoSocketError):
                await device.read_value(0x1000, 0, dt.UNSIGNED32)
        self.assertEqual(await device.read_value(0x1000, 0, dt.UNSIGNED32), 0x191)

    async def test_read_fault(self):
        self.network.check()
        with self.assertLogs("canopen_sdo.network", level="ERROR"):
            with mock.patch.object(self.network.bus, "recv", side_effect=can.CanError("boom")):
                await asyncio.sleep(0.02)
            self.assertIsInstance(self.network.bus_fault, can.CanError)
            with self.assertRaises(SdoSocketError):
                self.network.check()
        self.network.check()
        # Reading continues after the fault
        device = await self.network.register_device(NODE_ID)
        self.assertEqual(await device.read_value(0x1001, 0, dt.UNSIGNED8), 0)

    async def test_shutdown(self):
        device = await self.network.register_device(SILENT_ID, timeout=5.0)
        active = asyncio.ensure_future(device.read_value(0x1000, 0, dt.UNSIGNED32))
        queued = asyncio.ensure_future(device.read_value(0x1001, 0, dt.UNSIGNED8))
        await asyncio.sleep(0.02)
        await self.network.disconnect()
        for task in (active, queued):
            with self.assertRaises(RequestFailedError):
                await task
        with self.assertRaises(RequestFailedError):
            await device.read_value(0x1000, 0, dt.UNSIGNED32)
        with self.assertRaises(RequestFailedError):
            await self.network.register_device(NODE_ID)
        self.assertIsNone(self.network.bus)


class TestOpen(unittest.IsolatedAsyncioTestCase):

    async def test_open_network(self):
        channel = unique_channel()
        node_bus = virtual_bus(channel)
        self.addCleanup(node_bus.shutdown)
        network = await open_network(channel, default_timeout=0.2, interface="virtual")
        self.assertEqual(network.default_timeout, 0.2)
        async with MockNode(node_bus, NODE_ID):
            async with network:
                device = await network.register_device(NODE_ID)
                self.assertEqual(await device.read_value(0x1018, 1, dt.UNSIGNED32), 1)
        self.assertFalse(network.running)

    async def test_open_failure(self):
        with self.assertRaises(SdoSocketError):
            await open_network("any", interface="no-such-interface")

    async def test_default_timeout(self):
        network = Network(virtual_bus(unique_channel()))
        self.assertEqual(network.default_timeout, Network.DEFAULT_TIMEOUT)
        async with network:
            self.assertTrue(network.running)
            device = await network.register_device(SILENT_ID)
            self.assertEqual(network.sessions[SILENT_ID].timeout, 1.0)
            self.assertEqual(device.id, SILENT_ID)

    async def test_zero_timeout_kept(self):
        network = Network(virtual_bus(unique_channel()), default_timeout=0.0)
        self.assertEqual(network.default_timeout, 0.0)
        async with Network(virtual_bus(unique_channel()), default_timeout=0.5) as other:
            await other.register_device(SILENT_ID, timeout=0)
            self.assertEqual(other.sessions[SILENT_ID].timeout, 0)
        network.bus.shutdown()

    async def test_not_started(self):
        network = Network(virtual_bus(unique_channel()))
        self.addCleanup(network.bus.shutdown)
        with self.assertRaises(RequestFailedError):
            await network.register_device(NODE_ID)


if __name__ == "__main__":
    unittest.main()
