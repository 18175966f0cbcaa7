import copy
import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from canopen_sdo.objectdictionary import ObjectDictionary, datatypes
from canopen_sdo.pdo.base import (
    COB_ID_MASK, COM_OFFSET, MAP_OFFSET, PDO_NOT_VALID, TPDO_COUNT,
    TpdoConfig, TpdoData, TpdoMapping, tpdo_data)
from canopen_sdo.sdo.exceptions import SdoError

if TYPE_CHECKING:
    from canopen_sdo.device import DeviceHandle
    from canopen_sdo.network import Network

logger = logging.getLogger(__name__)


async def discover_tpdos(device: "DeviceHandle") -> List[TpdoConfig]:
    """Read the TPDO configuration of a device using SDO.

    TPDOs that are disabled, empty or that fail to be read are left out,
    so the result may be partial.
    """
    configs = []
    for tpdo_number in range(1, TPDO_COUNT + 1):
        try:
            config = await _read_tpdo(device, tpdo_number)
        except SdoError as exc:
            logger.warning("Skipping TPDO %d of node %d: %s",
                           tpdo_number, device.id, exc)
            continue
        if config is not None:
            configs.append(config)
    return configs


async def _read_tpdo(device: "DeviceHandle", tpdo_number: int) -> Optional[TpdoConfig]:
    com_index = COM_OFFSET + tpdo_number - 1
    map_index = MAP_OFFSET + tpdo_number - 1

    cob_id = await device.read_value(com_index, 1, datatypes.UNSIGNED32)
    if cob_id & PDO_NOT_VALID:
        logger.info("TPDO %d is disabled", tpdo_number)
        return None
    config = TpdoConfig(tpdo_number, cob_id & COB_ID_MASK)
    logger.info("TPDO %d COB-ID is 0x%X", tpdo_number, config.cob_id)

    nof_entries = await device.read_value(map_index, 0, datatypes.UNSIGNED8)
    if not nof_entries:
        logger.info("TPDO %d has no mapped objects", tpdo_number)
        return None
    for subindex in range(1, nof_entries + 1):
        value = await device.read_value(map_index, subindex, datatypes.UNSIGNED32)
        mapping = TpdoMapping.from_value(value)
        if mapping.is_empty:
            continue
        if mapping.bit_length in (8, 16, 32):
            logger.info("TPDO %d maps %s (%d bits)",
                        tpdo_number, mapping.display_name, mapping.bit_length)
        else:
            # Still occupies its bits in the frame
            logger.warning("%s in TPDO %d has %d bits and will not be decoded",
                           mapping.display_name, tpdo_number, mapping.bit_length)
        config.mappings.append(mapping)

    try:
        config.transmission_type = await device.read_value(com_index, 2, datatypes.UNSIGNED8)
    except SdoError as e:
        logger.info("Could not read transmission type (%s)", e)
    else:
        logger.info("Transmission type is %d", config.transmission_type)

    try:
        config.inhibit_time = await device.read_value(com_index, 3, datatypes.UNSIGNED16)
    except SdoError as e:
        logger.info("Could not read inhibit time (%s)", e)
    else:
        logger.info("Inhibit time is set to %d us", config.inhibit_time * 100)

    try:
        config.event_timer = await device.read_value(com_index, 5, datatypes.UNSIGNED16)
    except SdoError as e:
        logger.info("Could not read event timer (%s)", e)
    else:
        logger.info("Event timer is set to %d ms", config.event_timer)

    return config


def merge_tpdo_configs(device: List[TpdoConfig], eds: List[TpdoConfig],
                       od: Optional[ObjectDictionary] = None) -> List[TpdoConfig]:
    """Combine TPDOs read from a device with those from an EDS file.

    The device decides which TPDOs exist and what they map. Names and data
    types come from the EDS TPDO with the same number, then from the object
    dictionary, then from the bit length. TPDOs only found in the EDS are
    appended unchanged.

    The given configurations are not modified.
    """
    eds_by_number: Dict[int, TpdoConfig] = {config.tpdo_number: config for config in eds}
    merged = []
    for config in device:
        config = copy.deepcopy(config)
        eds_config = eds_by_number.get(config.tpdo_number)
        for mapping in config.mappings:
            _fill_mapping(mapping, eds_config, od)
        merged.append(config)

    numbers = {config.tpdo_number for config in device}
    for config in eds:
        if config.tpdo_number not in numbers:
            logger.info("TPDO %d only found in EDS", config.tpdo_number)
            merged.append(copy.deepcopy(config))
    return merged


def _fill_mapping(mapping: TpdoMapping, eds_config: Optional[TpdoConfig],
                  od: Optional[ObjectDictionary]):
    if eds_config is not None:
        for eds_mapping in eds_config.mappings:
            if eds_mapping.address == mapping.address:
                mapping.name = eds_mapping.name
                mapping.data_type = eds_mapping.data_type
                break
    if (mapping.name is None or mapping.data_type is None) and od is not None:
        var = od.get_variable(mapping.index, mapping.subindex)
        if var is not None:
            if mapping.name is None:
                mapping.name = var.name
            if mapping.data_type is None:
                mapping.data_type = var.data_type
    if mapping.name is None:
        mapping.name = mapping.display_name
    if mapping.data_type is None:
        mapping.data_type = datatypes.type_from_bit_length(mapping.bit_length)


async def configure_tpdo(device: "DeviceHandle", config: TpdoConfig):
    """Write a TPDO configuration to a device using SDO.

    The TPDO is disabled while the mapping is rewritten and enabled again as
    the last step. The first failing write aborts the sequence.

    :raises ValueError:
        If the configuration is invalid, before anything is written.
    :raises canopen_sdo.SdoError:
        When a write fails.
    """
    config.validate()
    com_index = config.comm_index
    map_index = config.map_index
    u8, u16, u32 = datatypes.UNSIGNED8, datatypes.UNSIGNED16, datatypes.UNSIGNED32

    logger.info("Setting COB-ID 0x%X and temporarily disabling TPDO %d",
                config.cob_id, config.tpdo_number)
    await device.write_value(com_index, 1, config.cob_id | PDO_NOT_VALID, u32)
    await device.write_value(map_index, 0, 0, u8)
    for subindex, mapping in enumerate(config.mappings, 1):
        logger.info("Writing %s (%d bits) to TPDO map",
                    mapping.display_name, mapping.bit_length)
        await device.write_value(map_index, subindex, mapping.value, u32)
    await device.write_value(map_index, 0, len(config.mappings), u8)
    logger.info("Setting transmission type to %d", config.transmission_type)
    await device.write_value(com_index, 2, config.transmission_type, u8)
    if config.inhibit_time:
        logger.info("Setting inhibit time to %d us", config.inhibit_time * 100)
        await device.write_value(com_index, 3, config.inhibit_time, u16)
    if config.event_timer:
        logger.info("Setting event timer to %d ms", config.event_timer)
        await device.write_value(com_index, 5, config.event_timer, u16)
    logger.info("Enabling TPDO %d", config.tpdo_number)
    await device.write_value(com_index, 1, config.cob_id, u32)


class TpdoListener:
    """Decodes one TPDO from the raw frames of a :class:`~canopen_sdo.network.Network`.

    Use :meth:`start` (or ``async with``) and iterate with ``async for`` to
    get :class:`~canopen_sdo.pdo.base.TpdoData`.
    """

    def __init__(self, network: "Network", config: TpdoConfig, maxsize: int = 0):
        self.network = network
        self.config = config
        self.maxsize = maxsize
        self.subscription = None

    async def start(self):
        if self.subscription is None:
            self.subscription = await self.network.subscribe_raw_frames(self.maxsize)

    def close(self):
        if self.subscription is not None:
            self.subscription.close()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> TpdoData:
        assert self.subscription is not None, "Listener not started"
        async for msg in self.subscription:
            if msg.arbitration_id == self.config.cob_id and not msg.is_extended_id:
                return tpdo_data(msg, self.config)
        raise StopAsyncIteration
