from canopen_sdo.pdo.base import (
    COM_OFFSET,
    MAP_OFFSET,
    MAX_MAPPINGS,
    PDO_NOT_VALID,
    TPDO_COUNT,
    TpdoConfig,
    TpdoData,
    TpdoMapping,
    decode_tpdo_frame,
)
from canopen_sdo.pdo.tpdo import TpdoListener, configure_tpdo, discover_tpdos, merge_tpdo_configs

__all__ = [
    "TpdoConfig",
    "TpdoData",
    "TpdoMapping",
    "TpdoListener",
    "configure_tpdo",
    "decode_tpdo_frame",
    "discover_tpdos",
    "merge_tpdo_configs",
]
