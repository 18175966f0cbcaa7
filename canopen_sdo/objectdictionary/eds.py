import re
import logging
from configparser import RawConfigParser, NoOptionError

from canopen_sdo import objectdictionary
from canopen_sdo.objectdictionary import datatypes
from canopen_sdo.utils import pretty_index

logger = logging.getLogger(__name__)

# Object type. Don't confuse with Data type
DOMAIN = 2
VAR = 7

#: Only these access types are exposed as readable objects
READABLE_ACCESS_TYPES = ("ro", "rw")


def _read_eds(source):
    if isinstance(source, RawConfigParser):
        return source
    eds = RawConfigParser(strict=False)
    if hasattr(source, "read"):
        eds.read_file(source)
    else:
        with open(source) as fp:
            eds.read_file(fp)
    return eds


def import_eds(source):
    """Build an object dictionary from the readable entries of an EDS file.

    Only sub-entries (``[2000sub1]``) and plain variables (``[1000]``) with
    access type ``ro`` or ``rw`` are included.

    :param source: Path, file like object or an already parsed
        :class:`configparser.RawConfigParser`.
    """
    eds = _read_eds(source)
    od = objectdictionary.ObjectDictionary()

    for section in eds.sections():
        # Match indexes
        match = re.match(r"^[0-9A-Fa-f]{4}$", section)
        if match is not None:
            if eds.has_option(section, "SubNumber"):
                # Members are described in their own sections
                continue
            try:
                object_type = int(eds.get(section, "ObjectType"), 0)
            except NoOptionError:
                # DS306 4.6.3.2 object description
                # If the keyword ObjectType is missing, this is regarded as
                # "ObjectType=0x7" (=VAR).
                object_type = VAR
            if object_type not in (VAR, DOMAIN):
                continue
            var = build_variable(eds, section, int(section, 16))
            if var is not None:
                od.add_variable(var, var.name)
            continue

        # Match subindexes
        match = re.match(r"^([0-9A-Fa-f]{4})[Ss]ub([0-9A-Fa-f]+)$", section)
        if match is not None:
            index = int(match.group(1), 16)
            subindex = int(match.group(2), 16)
            var = build_variable(eds, section, index, subindex)
            if var is not None:
                od.add_variable(var, _parent_name(eds, match.group(1)))

    logger.debug("Loaded %d readable objects from EDS", len(od))
    return od


def _parent_name(eds, index_section):
    for section in (index_section, index_section.upper(), index_section.lower()):
        if eds.has_section(section):
            return eds.get(section, "ParameterName", fallback="Unnamed Object")
    return "Unnamed Object"


def build_variable(eds, section, index, subindex=0):
    """Creates an object dictionary entry if it is readable.

    :param eds: Parsed EDS file
    :param section: Name of the section describing the entry
    :param index: Index of the CANopen object
    :param subindex: Subindex of the CANopen object (if present, else 0)
    :return: :class:`~canopen_sdo.objectdictionary.ODVariable` or None
    """
    access_type = eds.get(section, "AccessType", fallback="").strip().lower()
    if access_type not in READABLE_ACCESS_TYPES:
        return None
    name = eds.get(section, "ParameterName", fallback="")
    data_type = datatypes.from_eds_type(eds.get(section, "DataType", fallback=""))
    if data_type is None:
        logger.debug("%s has an unknown or unsupported data type",
                     pretty_index(index, subindex))
    return objectdictionary.ODVariable(name, index, subindex, data_type, access_type)


def _convert_cob_id(value, node_id=0):
    # COB-ID can contain '$NODEID+' so replace this with node_id before converting
    value = value.replace(" ", "").upper()
    if "NODEID" in value:
        return datatypes.parse_int(re.sub(r"\+?\$?NODEID\+?", "", value) or "0") + node_id
    return datatypes.parse_int(value)


def _find_section(eds, index, subindex):
    name = "%04Xsub%X" % (index, subindex)
    for section in (name, name.lower(), name.replace("sub", "Sub")):
        if eds.has_section(section):
            return section
    return None


def _default_value(eds, index, subindex):
    section = _find_section(eds, index, subindex)
    if section is None:
        return None
    return eds.get(section, "DefaultValue", fallback=None)


def import_tpdos_from_eds(source, od=None, node_id=0):
    """Read the default TPDO configuration described by an EDS file.

    :param source: Path, file like object or a parsed EDS.
    :param od: Object dictionary used for names and data types. Built from
        the same source if not given.
    :param int node_id: Value substituted for ``$NODEID`` in COB-IDs.
    :return: List of :class:`~canopen_sdo.pdo.TpdoConfig`.
    """
    from canopen_sdo.pdo.base import (
        TpdoConfig, TpdoMapping, COM_OFFSET, MAP_OFFSET, PDO_NOT_VALID, TPDO_COUNT)

    eds = _read_eds(source)
    if od is None:
        od = import_eds(eds)

    configs = []
    for tpdo_number in range(1, TPDO_COUNT + 1):
        com_index = COM_OFFSET + tpdo_number - 1
        map_index = MAP_OFFSET + tpdo_number - 1

        value = _default_value(eds, com_index, 1)
        if value is None:
            logger.info("EDS: No COB-ID found for TPDO %d", tpdo_number)
            continue
        try:
            cob_id = _convert_cob_id(value, node_id)
        except ValueError:
            logger.warning("EDS: Failed to parse COB-ID %r for TPDO %d",
                           value, tpdo_number)
            continue
        if cob_id & PDO_NOT_VALID:
            logger.info("EDS: TPDO %d is disabled", tpdo_number)
            continue

        value = _default_value(eds, map_index, 0)
        if value is None:
            logger.info("EDS: No mapping count found for TPDO %d", tpdo_number)
            continue
        try:
            nof_entries = datatypes.parse_int(value)
        except ValueError:
            nof_entries = 0
        if nof_entries == 0:
            logger.info("EDS: TPDO %d has no mapped objects", tpdo_number)
            continue

        config = TpdoConfig(tpdo_number, cob_id & 0x7FF)
        value = _default_value(eds, com_index, 2)
        if value is not None:
            try:
                config.transmission_type = datatypes.parse_int(value)
            except ValueError:
                pass

        for subindex in range(1, nof_entries + 1):
            value = _default_value(eds, map_index, subindex)
            try:
                mapping = TpdoMapping.from_value(datatypes.parse_int(value))
            except (ValueError, AttributeError):
                logger.warning("EDS: Failed to parse mapping %d of TPDO %d",
                               subindex, tpdo_number)
                continue
            if mapping.is_empty:
                continue
            var = od.get_variable(mapping.index, mapping.subindex)
            if var is not None:
                mapping.name = var.name
                mapping.data_type = var.data_type
            else:
                mapping.name = pretty_index(mapping.index, mapping.subindex)
            if mapping.data_type is None:
                mapping.data_type = datatypes.type_from_bit_length(mapping.bit_length)
            config.mappings.append(mapping)

        if config.mappings:
            logger.info("EDS: Found TPDO %d with COB-ID 0x%03X and %d mapped objects",
                        tpdo_number, config.cob_id, len(config.mappings))
            configs.append(config)
    return configs
