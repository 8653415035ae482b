from __future__ import annotations

import struct

INT_STRUCT = struct.Struct("!i")
U16_STRUCT = struct.Struct("!H")
BOOL_STRUCT = struct.Struct("!?")

TAG_LEN = 4
MAX_U16 = 0xFFFF

TAG_UPLOAD = "UPLD"
TAG_LIST = "LIST"
TAG_DOWNLOAD = "DWLD"
TAG_DELETE = "DELF"
TAG_QUIT = "QUIT"

STATUS_EXISTS = 1
STATUS_NOT_FOUND = -1

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 1234
DEFAULT_TIMEOUT_MS = 5000
DEFAULT_BASE_DIR = "server_files"
DELETE_GRACE_S = 60.0

RECV_CHUNK = 64 * 1024
# sent in place of a size for files whose length does not fit the int32 field
STATUS_TOO_LARGE = -2
MAX_FILE_SIZE = 2**31 - 1

ACCEPT_POLL_S = 0.5
MAX_PORT = 0xFFFF
