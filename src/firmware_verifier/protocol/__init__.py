"""Controller protocol layer - serial transport and parameters handshake."""

from .serial_transport import SerialTransport
from .handshake import (
    ParamsHandshake,
    HandshakeOutcome,
    HandshakeState,
    HandshakeStatus,
    SystemClock,
    frame_payload,
    MAGIC_TOKEN,
)

__all__ = [
    # Transport
    "SerialTransport",
    # Handshake
    "ParamsHandshake",
    "HandshakeOutcome",
    "HandshakeState",
    "HandshakeStatus",
    "SystemClock",
    "frame_payload",
    "MAGIC_TOKEN",
]
