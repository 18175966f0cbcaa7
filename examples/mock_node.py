"""
Mock CANopen node

Serves the demonstration object dictionary over SDO and broadcasts a
simulated TPDO1, e.g. on a virtual SocketCAN interface:

    sudo ip link add dev vcan0 type vcan && sudo ip link set up vcan0
    python examples/mock_node.py vcan0 --node-id 4
"""
import argparse
import asyncio
import logging

import can

from canopen_sdo import MockNode

log = logging.getLogger(__name__)


async def serve(args):
    bus = can.Bus(interface=args.interface, channel=args.channel)
    try:
        node = MockNode(bus, args.node_id, broadcast_tpdo=not args.no_tpdo)
        log.info("Objects:\n%s", node.table.summary())
        async with node:
            while True:
                await asyncio.sleep(1)
    finally:
        bus.shutdown()


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("channel", help="CAN channel, e.g. vcan0")
    parser.add_argument("--interface", default="socketcan", help="python-can interface")
    parser.add_argument("--node-id", type=int, default=4, help="node ID to answer for")
    parser.add_argument("--no-tpdo", action="store_true", help="do not broadcast TPDO1")
    parser.add_argument("-v", "--verbose", action="store_true", help="log every frame")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        asyncio.run(serve(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
