"""Protocol constants for MAVLink v1 parameter traffic."""

from enum import IntEnum

# ============================================================================
# Frame Structure
# ============================================================================

STX = 0xFE
HEADER_LEN = 6  # STX + LEN + SEQ + SYS + COMP + MSG
CHECKSUM_LEN = 2
PACKET_MIN_LEN = HEADER_LEN + CHECKSUM_LEN
PARAM_ID_LEN = 16

# ============================================================================
# Addresses
# ============================================================================

GCS_SYSTEM_ID = 255
GCS_COMPONENT_ID = 190
DEFAULT_TARGET_SYSTEM = 1
DEFAULT_TARGET_COMPONENT = 1

# ============================================================================
# Messages
# ============================================================================


class MessageId(IntEnum):
    """MAVLink message ids used by the gateway."""

    HEARTBEAT = 0
    PARAM_REQUEST_READ = 20
    PARAM_REQUEST_LIST = 21
    PARAM_VALUE = 22
    PARAM_SET = 23


# Per-message seed folded into the checksum after the payload
CRC_EXTRA = {
    MessageId.HEARTBEAT: 50,
    MessageId.PARAM_REQUEST_READ: 214,
    MessageId.PARAM_REQUEST_LIST: 159,
    MessageId.PARAM_VALUE: 220,
    MessageId.PARAM_SET: 168,
}

PAYLOAD_LENGTHS = {
    MessageId.HEARTBEAT: 9,
    MessageId.PARAM_REQUEST_READ: 20,
    MessageId.PARAM_REQUEST_LIST: 2,
    MessageId.PARAM_VALUE: 25,
    MessageId.PARAM_SET: 23,
}

# param_index value meaning "look the parameter up by name"
PARAM_INDEX_BY_NAME = -1

# ============================================================================
# Data Types
# ============================================================================


class ParamType(IntEnum):
    """MAV_PARAM_TYPE codes."""

    UINT8 = 1
    INT8 = 2
    UINT16 = 3
    INT16 = 4
    UINT32 = 5
    INT32 = 6
    UINT64 = 7
    INT64 = 8
    REAL32 = 9
    REAL64 = 10


# ============================================================================
# Communication Settings
# ============================================================================

HEARTBEAT_TIMEOUT = 5.0  # Link considered dead after this much silence (seconds)
HEARTBEAT_INTERVAL = 1.0  # Liveness check period (seconds)
CONNECT_TIMEOUT = 5.0  # Bound on opening serial/TCP (seconds)
IDLE_TIMEOUT = 3.0  # Download idle timer and monitor tick (seconds)
DOWNLOAD_DEADLINE = 60.0  # Overall download deadline (seconds)
MAX_RETRIES = 3  # Missing-index retry rounds per download
WRITE_TIMEOUT = 5.0  # Wait for PARAM_VALUE after PARAM_SET (seconds)
VERIFY_TIMEOUT = 3.0  # Wait for PARAM_VALUE after a forced re-read (seconds)
PERSISTENCE_DELAY = 0.2  # Let the vehicle commit to non-volatile storage (seconds)
VALUE_TOLERANCE = 0.001  # Float match tolerance for write verification
