import struct

# Command, index, subindex
SDO_STRUCT = struct.Struct("<BHB")
SDO_ABORT_STRUCT = struct.Struct("<BHBL")  # c + i + si + Abort code

# COB-ID bases, node ID is added
REQUEST_COB_BASE = 0x600
RESPONSE_COB_BASE = 0x580
RESPONSE_COB_LAST = 0x5FF

MIN_NODE_ID = 1
MAX_NODE_ID = 127

# Command[5-7]
REQUEST_DOWNLOAD = 1 << 5
REQUEST_UPLOAD = 2 << 5
REQUEST_ABORTED = 4 << 5

RESPONSE_UPLOAD = 2 << 5
RESPONSE_DOWNLOAD = 3 << 5
RESPONSE_ABORTED = 4 << 5

COMMAND_MASK = 0xE0
EXPEDITED = 0x2             # Expedited and segmented
SIZE_SPECIFIED = 0x1        # All transfers

# Expedited transfers carry at most this many bytes
EXPEDITED_MAX_SIZE = 4

# Abort codes used by the server
ABORT_COMMAND_INVALID = 0x05040001
ABORT_READ_ONLY = 0x06010002
ABORT_NOT_FOUND = 0x06020000
ABORT_GENERAL = 0x08000000
