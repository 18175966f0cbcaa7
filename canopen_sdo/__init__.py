from canopen_sdo.device import DeviceHandle
from canopen_sdo.exceptions import (
    CanopenError,
    DeviceRemovedError,
    NetworkError,
    NotConnectedError,
    RequestFailedError,
)
from canopen_sdo.mock import MockNode
from canopen_sdo.network import FrameSubscription, Network, open_network
from canopen_sdo.objectdictionary import ObjectDictionary, datatypes, import_od
from canopen_sdo.objectdictionary.eds import import_tpdos_from_eds
from canopen_sdo.pdo import (
    TpdoConfig,
    TpdoData,
    TpdoListener,
    TpdoMapping,
    configure_tpdo,
    decode_tpdo_frame,
    discover_tpdos,
    merge_tpdo_configs,
)
from canopen_sdo.sdo import (
    ObjectAddress,
    ObjectTable,
    SdoAbortedError,
    SdoCommunicationError,
    SdoError,
    SdoResponse,
    SdoServer,
    SdoTimeoutError,
)

__version__ = "0.1.0"

__all__ = [
    "Network",
    "open_network",
    "DeviceHandle",
    "FrameSubscription",
    "MockNode",
    "ObjectAddress",
    "ObjectTable",
    "SdoServer",
    "SdoResponse",
    "SdoError",
    "SdoAbortedError",
    "SdoCommunicationError",
    "SdoTimeoutError",
    "CanopenError",
    "NetworkError",
    "NotConnectedError",
    "DeviceRemovedError",
    "RequestFailedError",
    "ObjectDictionary",
    "import_od",
    "import_tpdos_from_eds",
    "datatypes",
    "TpdoConfig",
    "TpdoData",
    "TpdoListener",
    "TpdoMapping",
    "configure_tpdo",
    "decode_tpdo_frame",
    "discover_tpdos",
    "merge_tpdo_configs",
]
