"""
Guest-to-host command channel.

The guest passes a pointer to a fixed-size command record; the record is
read from the state's memory and dispatched here. The only command asks the
coordinator to write a statistics row immediately.
"""

from __future__ import annotations

import logging
import struct
from enum import IntEnum

from ticoop.engine import ExecutionState
from ticoop.telemetry import TelemetryController

logger = logging.getLogger(__name__)

# uint32 command code, padding to 8-byte alignment, uint64 parameter.
COMMAND_FORMAT = struct.Struct("<I4xQ")
COMMAND_SIZE = COMMAND_FORMAT.size


class Command(IntEnum):
    PRINT_STATISTICS = 0


def encode_command(command: int, param: int = 0) -> bytes:
    return COMMAND_FORMAT.pack(command, param)


def decode_command(payload: bytes) -> tuple[int, int]:
    """Return ``(command_code, param)``. Raises ValueError on a size mismatch."""
    if len(payload) != COMMAND_SIZE:
        raise ValueError(f"expected {COMMAND_SIZE} bytes, got {len(payload)}")
    return COMMAND_FORMAT.unpack(payload)


def handle_opcode_invocation(
    state: ExecutionState,
    guest_ptr: int,
    size: int,
    telemetry: TelemetryController,
) -> bool:
    """
    Read and execute one guest command.

    Returns True if a known command ran. Malformed or unknown commands are
    reported and ignored.
    """
    if size != COMMAND_SIZE:
        logger.warning(f"[!] Mismatched command size: expected {COMMAND_SIZE}, got {size}.")
        return False

    payload = state.read_memory(guest_ptr, size)
    if payload is None or len(payload) != size:
        logger.warning(f"[!] Could not read command data at {guest_ptr:#x}.")
        return False

    code, _param = decode_command(payload)
    if code == Command.PRINT_STATISTICS:
        telemetry.on_timer()
        return True

    logger.warning(f"[!] Unknown command {code}")
    return False
