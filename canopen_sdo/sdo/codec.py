"""Encoding and decoding of expedited SDO frames.

Everything in here is free of I/O and state. Requests are built as
:class:`can.Message` objects, responses are parsed from the raw data field
of a received frame.
"""
import logging
import struct

import can

from canopen_sdo.objectdictionary import datatypes
from canopen_sdo.sdo.base import SdoRequest, SdoResponse, SdoWriteRequest, TValue
from canopen_sdo.sdo.constants import *
from canopen_sdo.sdo.exceptions import *
from canopen_sdo.utils import pretty_index

logger = logging.getLogger(__name__)


def is_expedited_response(command: int) -> bool:
    return (command & COMMAND_MASK) == RESPONSE_UPLOAD and bool(command & EXPEDITED)


def abort_description(code: int) -> str:
    """Get a human readable description of an SDO abort code.

    Unknown codes are rendered as hexadecimal, this never fails.
    """
    return SdoAbortedError.describe(code)


def _cob_id(base: int, node_id: int) -> int:
    if not MIN_NODE_ID <= node_id <= MAX_NODE_ID:
        raise SdoEncodingError("Invalid node ID %r for a CAN identifier" % (node_id, ))
    return base + node_id


def _message(can_id: int, data: bytes) -> can.Message:
    return can.Message(arbitration_id=can_id, data=data, is_extended_id=False)


def upload_request(request: SdoRequest) -> can.Message:
    """Create the initiate upload request frame for a read."""
    can_id = _cob_id(REQUEST_COB_BASE, request.node_id)
    data = bytearray(8)
    SDO_STRUCT.pack_into(data, 0, REQUEST_UPLOAD,
                         request.address.index, request.address.subindex)
    return _message(can_id, data)


def download_request(request: SdoWriteRequest) -> can.Message:
    """Create an expedited initiate download request frame for a write.

    :raises SdoEncodingError:
        If the payload does not fit in an expedited transfer.
    """
    size = len(request.data)
    if not 0 < size <= EXPEDITED_MAX_SIZE:
        raise SdoEncodingError(
            "Expedited transfer needs 1 to %d bytes, got %d" % (EXPEDITED_MAX_SIZE, size))
    can_id = _cob_id(REQUEST_COB_BASE, request.node_id)
    command = REQUEST_DOWNLOAD | EXPEDITED | SIZE_SPECIFIED
    command |= (EXPEDITED_MAX_SIZE - size) << 2
    data = bytearray(8)
    SDO_STRUCT.pack_into(data, 0, command,
                         request.address.index, request.address.subindex)
    data[4:4 + size] = request.data
    return _message(can_id, data)


def _check_header(data: bytes, request):
    if len(data) < SDO_STRUCT.size:
        raise SdoFrameTooShortError(
            "Frame too short (%d bytes)" % len(data))
    command, index, subindex = SDO_STRUCT.unpack_from(data)
    expected = request.address
    if index != expected.index or subindex != expected.subindex:
        raise SdoResponseMismatchError(
            "Response mismatch: expected %s, got %s" % (
                pretty_index(expected.index, expected.subindex),
                pretty_index(index, subindex)))
    return command


def _check_abort(data: bytes, command: int):
    if command == RESPONSE_ABORTED:
        if len(data) < SDO_ABORT_STRUCT.size:
            raise SdoFrameTooShortError("Abort frame too short (%d bytes)" % len(data))
        _, _, _, code = SDO_ABORT_STRUCT.unpack_from(data)
        raise SdoAbortedError(code)


def parse_upload_response(data: bytes, request: SdoRequest) -> SdoResponse:
    """Parse the answer to an upload request.

    :raises SdoAbortedError: The server aborted the transfer.
    :raises SdoNotImplementedError: The server started a segmented transfer.
    :raises SdoInvalidResponseError: The frame is malformed or unrelated.
    :raises SdoParseError: The payload is too short for the data type.
    """
    data = bytes(data)
    command = _check_header(data, request)
    _check_abort(data, command)

    if is_expedited_response(command):
        # Number of bytes that do not contain data
        n = (command >> 2) & 0x3
        size = EXPEDITED_MAX_SIZE - n
        if len(data) < 4 + size:
            raise SdoFrameTooShortError(
                "Expedited response with %d data bytes truncated to %d bytes" % (
                    size, len(data)))
        payload = data[4:4 + size]
        value = decode_value(payload, request.data_type)
        return SdoResponse(request.node_id, request.address, value, data)

    raise SdoNotImplementedError(
        "Segmented SDO transfer not implemented (command=0x%02X)" % command)


def parse_download_response(data: bytes, request: SdoWriteRequest) -> None:
    """Check the answer to an expedited download request.

    :raises SdoAbortedError: The server aborted the transfer.
    :raises SdoInvalidResponseError: Anything but a download response.
    """
    data = bytes(data)
    command = _check_header(data, request)
    _check_abort(data, command)
    if command != RESPONSE_DOWNLOAD:
        raise SdoInvalidResponseError(
            "Unexpected response to download (command=0x%02X)" % command)


def decode_value(payload: bytes, data_type: int) -> TValue:
    """Decode the data of an expedited transfer.

    :raises SdoParseError: The payload is shorter than the data type.
    """
    if data_type == datatypes.VISIBLE_STRING:
        return bytes(payload).rstrip(b"\x00").decode("utf-8", errors="replace")
    elif data_type == datatypes.OCTET_STRING:
        return bytes(payload)
    try:
        st = datatypes.STRUCT_TYPES[data_type]
    except KeyError:
        raise SdoParseError("Unsupported data type 0x%X" % data_type)
    if len(payload) < st.size:
        raise SdoParseError("Insufficient data for %s (%d of %d bytes)" % (
            datatypes.type_name(data_type), len(payload), st.size))
    return st.unpack_from(payload)[0]


def encode_value(value: TValue, data_type: int) -> bytes:
    """Encode a value as little-endian bytes for the given data type."""
    if data_type == datatypes.VISIBLE_STRING:
        return value.encode("utf-8")
    elif data_type == datatypes.OCTET_STRING:
        return bytes(value)
    try:
        return datatypes.STRUCT_TYPES[data_type].pack(value)
    except KeyError:
        raise ValueError("Unsupported data type 0x%X" % data_type)
    except struct.error as e:
        raise ValueError("Value %r does not fit %s: %s" % (
            value, datatypes.type_name(data_type), e))


def upload_response(index: int, subindex: int, data: bytes) -> bytes:
    """Data field of an expedited upload response (server side)."""
    size = len(data)
    if not 0 < size <= EXPEDITED_MAX_SIZE:
        raise SdoEncodingError("Expedited response needs 1 to %d bytes, got %d" % (
            EXPEDITED_MAX_SIZE, size))
    command = RESPONSE_UPLOAD | EXPEDITED | SIZE_SPECIFIED
    command |= (EXPEDITED_MAX_SIZE - size) << 2
    response = bytearray(8)
    SDO_STRUCT.pack_into(response, 0, command, index, subindex)
    response[4:4 + size] = data
    return bytes(response)


def download_response(index: int, subindex: int) -> bytes:
    """Data field of a download response (server side)."""
    response = bytearray(8)
    SDO_STRUCT.pack_into(response, 0, RESPONSE_DOWNLOAD, index, subindex)
    return bytes(response)


def abort_response(index: int, subindex: int, code: int) -> bytes:
    """Data field of an abort transfer frame."""
    return SDO_ABORT_STRUCT.pack(RESPONSE_ABORTED, index, subindex, code)
