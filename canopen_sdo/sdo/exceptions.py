from canopen_sdo.exceptions import CanopenError


class SdoError(CanopenError):
    pass


class SdoSocketError(SdoError):
    """The CAN bus could not be opened or written to."""


class SdoCommunicationError(SdoError):
    """No or unexpected response from slave."""


class SdoTimeoutError(SdoCommunicationError):
    """No response was received within the device timeout."""

    def __str__(self):
        return "SDO request timeout"


class SdoInvalidResponseError(SdoCommunicationError):
    """A frame failed structural or semantic validation."""


class SdoFrameTooShortError(SdoInvalidResponseError):
    """The frame is too short to contain the expected fields."""


class SdoResponseMismatchError(SdoInvalidResponseError):
    """The response does not belong to the outstanding request."""


class SdoNotImplementedError(SdoInvalidResponseError):
    """The server answered with a transfer type this client does not support."""


class SdoEncodingError(SdoInvalidResponseError):
    """The request can not be represented as an expedited SDO frame."""


class SdoParseError(SdoError):
    """The payload is too short for the declared data type."""


class SdoAbortedError(SdoError):
    """SDO abort exception."""

    CODES = {
        0x05030000: "Toggle bit not alternated",
        0x05040000: "SDO protocol timed out",
        0x05040001: "Client/server command specifier not valid or unknown",
        0x05040005: "Out of memory",
        0x06010000: "Unsupported access to an object",
        0x06010001: "Attempt to read a write only object",
        0x06010002: "Attempt to write a read only object",
        0x06020000: "Object does not exist in the object dictionary",
        0x06040041: "Object cannot be mapped to the PDO",
        0x06040042: ("The number and length of the objects to be mapped "
                     "would exceed PDO length"),
        0x06040043: "General parameter incompatibility reason",
        0x06040047: "General internal incompatibility in the device",
        0x06060000: "Access failed due to a hardware error",
        0x06070010: ("Data type does not match, length of service parameter "
                     "does not match"),
        0x06070012: ("Data type does not match, length of service parameter "
                     "too high"),
        0x06070013: ("Data type does not match, length of service parameter "
                     "too low"),
        0x06090011: "Sub-index does not exist",
        0x06090030: "Value range of parameter exceeded (only for write access)",
        0x06090031: "Value of parameter written too high",
        0x06090032: "Value of parameter written too low",
        0x06090036: "Maximum value is less than minimum value",
        0x08000000: "General error",
        0x08000020: "Data cannot be transferred or stored to the application",
        0x08000021: ("Data cannot be transferred or stored to the application "
                     "because of local control"),
        0x08000022: ("Data cannot be transferred or stored to the application "
                     "because of the present device state"),
    }

    def __init__(self, code: int):
        #: Abort code
        self.code = code

    @classmethod
    def describe(cls, code: int) -> str:
        """Human readable text for an abort code."""
        try:
            return cls.CODES[code]
        except KeyError:
            return "Unknown abort code: 0x{:08X}".format(code)

    @property
    def description(self) -> str:
        return self.describe(self.code)

    def __str__(self):
        return "SDO abort 0x{:08X}: {}".format(self.code, self.description)

    def __eq__(self, other):
        """Compare two exception objects based on SDO abort code."""
        if not isinstance(other, SdoAbortedError):
            return NotImplemented
        return self.code == other.code

    __hash__ = Exception.__hash__
