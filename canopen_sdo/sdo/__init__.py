from canopen_sdo.sdo.base import ObjectAddress, SdoRequest, SdoResponse, SdoWriteRequest
from canopen_sdo.sdo.exceptions import (
    SdoAbortedError,
    SdoCommunicationError,
    SdoEncodingError,
    SdoError,
    SdoFrameTooShortError,
    SdoInvalidResponseError,
    SdoNotImplementedError,
    SdoParseError,
    SdoResponseMismatchError,
    SdoSocketError,
    SdoTimeoutError,
)
from canopen_sdo.sdo.server import DynamicEntry, ObjectTable, SdoServer, StaticEntry
