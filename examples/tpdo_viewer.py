"""
TPDO viewer

Reads a few objects from a node, discovers its TPDO configuration and
prints every received TPDO:

    python examples/tpdo_viewer.py vcan0 --node-id 4 --eds test/sample.eds
"""
import argparse
import asyncio
import logging

import canopen_sdo
from canopen_sdo.objectdictionary import datatypes

log = logging.getLogger(__name__)


async def view(args):
    async with await canopen_sdo.open_network(
            args.channel, args.timeout, interface=args.interface) as network:
        device = await network.register_device(args.node_id)

        device_type = await device.read_value(0x1000, 0, datatypes.UNSIGNED32)
        print("Device type: 0x%08X" % device_type)
        try:
            error_register = await device.read_value(0x1001, 0, datatypes.UNSIGNED8)
        except canopen_sdo.SdoError as exc:
            log.warning("Could not read error register: %s", exc)
        else:
            print("Error register: 0x%02X" % error_register)

        tpdos = await canopen_sdo.discover_tpdos(device)
        if args.eds:
            od = canopen_sdo.import_od(args.eds)
            eds_tpdos = canopen_sdo.import_tpdos_from_eds(args.eds, od, args.node_id)
            tpdos = canopen_sdo.merge_tpdo_configs(tpdos, eds_tpdos, od)
        else:
            tpdos = canopen_sdo.merge_tpdo_configs(tpdos, [])
        if not tpdos:
            print("No TPDOs enabled")
            return
        for config in tpdos:
            print("TPDO%d on 0x%03X: %s" % (
                config.tpdo_number, config.cob_id,
                ", ".join(mapping.display_name for mapping in config.mappings)))

        listeners = [await network.listen_tpdo(config) for config in tpdos]
        await asyncio.gather(*(show(listener) for listener in listeners))


async def show(listener):
    async with listener:
        async for data in listener:
            values = ", ".join("%s=%s" % value for value in data.values)
            print("%.3f TPDO%d: %s" % (data.timestamp, data.tpdo_number, values))


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("channel", help="CAN channel, e.g. vcan0")
    parser.add_argument("--interface", default="socketcan", help="python-can interface")
    parser.add_argument("--node-id", type=int, default=4, help="node to read from")
    parser.add_argument("--eds", help="EDS file with object names")
    parser.add_argument("--timeout", type=float, default=1.0, help="SDO timeout in seconds")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(view(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
