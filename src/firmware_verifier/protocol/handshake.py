"""
Parameters handshake with the controller.

Protocol:
    1. [Boards that reboot on open] Toggle DTR/RTS off/on twice, 250ms apart,
       then give the firmware 1s to boot and start listening.
    2. Send the magic token, wait 250ms, and repeat (up to 4 times) until
       any byte shows up on the port.
    3. Accumulate the reply until "\\r\\n" arrives or 2s elapse.
    4. Cut boot noise before the first '{' and anything from "\\r\\n" on.

The reply is a single JSON object describing the firmware (see params.py).
All waiting goes through a clock object so tests can run the state machine
without real delays.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum

from firmware_verifier.errors import ChannelError

logger = logging.getLogger(__name__)

MAGIC_TOKEN = b"GCCVerify"
TERMINATOR = b"\r\n"

RESET_TOGGLES = 2
RESET_TOGGLE_DELAY = 0.25
BOOT_SETTLE_DELAY = 1.0
REQUEST_ATTEMPTS = 4
REQUEST_POLL_INTERVAL = 0.25
RECEIVE_WINDOW = 2.0
RECEIVE_POLL_INTERVAL = 0.01


class HandshakeState(Enum):
    IDLE = "idle"
    RESETTING = "resetting"
    AWAITING_ACK = "awaiting_ack"
    REQUESTING = "requesting"
    RECEIVING = "receiving"
    TERMINATED = "terminated"


class HandshakeStatus(Enum):
    """How a terminated handshake ended."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    CHANNEL_ERROR = "channel_error"


class SystemClock:
    """Wall clock used outside of tests."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


@dataclass
class HandshakeOutcome:
    """
    Result of one handshake attempt.

    Attributes:
        status: SUCCESS (terminator seen), TIMEOUT (window elapsed) or
            CHANNEL_ERROR
        raw_text: Everything received, decoded as UTF-8
        payload: raw_text with framing noise removed; handed to the validator
            even on TIMEOUT
        error: Channel error text, if any
    """
    status: HandshakeStatus
    raw_text: str = ""
    payload: str = ""
    error: str = ""

    @property
    def channel_ok(self) -> bool:
        return self.status != HandshakeStatus.CHANNEL_ERROR


def frame_payload(text: str) -> str:
    """
    Strip boot noise before the first '{' and everything from the terminator on.

    Text without a '{' is returned unchanged and will fail JSON parsing.
    """
    brace = text.find("{")
    if brace == -1:
        return text
    text = text[brace:]
    term = text.find(TERMINATOR.decode())
    if term > -1:
        text = text[:term]
    return text


class ParamsHandshake:
    """
    Drives one parameters request over a transport.

    The transport must provide open(), close(), set_control_lines(dtr, rts),
    send_raw(data), bytes_waiting() and read_available(); see
    SerialTransport. The handshake owns the channel for the duration of
    run() and always closes it, whatever happens.

    Retries of a whole handshake are left to the caller.

    Example:
        transport = SerialTransport.for_platform("/dev/ttyUSB0", platform)
        outcome = ParamsHandshake(transport, reset_on_open=True).run()
        report = validate_params(outcome.payload, manifest)
    """

    def __init__(self, transport, reset_on_open: bool = False, clock=None, magic: bytes = MAGIC_TOKEN):
        self.transport = transport
        self.reset_on_open = reset_on_open
        self.clock = clock or SystemClock()
        self.magic = magic
        self.state = HandshakeState.IDLE

    def run(self) -> HandshakeOutcome:
        """Run the full exchange and return what was received."""
        try:
            self.transport.open()
            if self.reset_on_open:
                self._reset()
            self._request()
            received, terminated = self._receive()
        except ChannelError as e:
            logger.error(f"Serial channel error during {self.state.value}: {e}")
            self.state = HandshakeState.TERMINATED
            return HandshakeOutcome(HandshakeStatus.CHANNEL_ERROR, error=str(e))
        finally:
            self._close_quietly()

        self.state = HandshakeState.TERMINATED
        raw_text = received.decode("utf-8", errors="replace")
        logger.info(f"Received {len(raw_text)} bytes. Parsing...")
        logger.debug(f"Raw response: {raw_text!r}")

        status = HandshakeStatus.SUCCESS if terminated else HandshakeStatus.TIMEOUT
        if not terminated:
            logger.warning(f"No terminator within {RECEIVE_WINDOW:.0f}s, using partial response")
        return HandshakeOutcome(status, raw_text=raw_text, payload=frame_payload(raw_text))

    def _reset(self) -> None:
        self.state = HandshakeState.RESETTING
        logger.info("Waiting for boot...")
        for _ in range(RESET_TOGGLES):
            self.transport.set_control_lines(dtr=False, rts=False)
            self.transport.set_control_lines(dtr=True, rts=True)
            self.clock.sleep(RESET_TOGGLE_DELAY)

        # Nano takes ~920ms after the last toggle before it listens
        self.state = HandshakeState.AWAITING_ACK
        self.clock.sleep(BOOT_SETTLE_DELAY)

    def _request(self) -> None:
        self.state = HandshakeState.REQUESTING
        logger.info("Requesting firmware parameters...")
        for attempt in range(REQUEST_ATTEMPTS):
            self.transport.send_raw(self.magic)
            self.clock.sleep(REQUEST_POLL_INTERVAL)
            if self.transport.bytes_waiting() > 0:
                logger.debug(f"Controller answered after {attempt + 1} request(s)")
                return
        logger.debug(f"No answer after {REQUEST_ATTEMPTS} requests")

    def _receive(self):
        self.state = HandshakeState.RECEIVING
        buffer = bytearray()
        deadline = self.clock.monotonic() + RECEIVE_WINDOW
        while self.clock.monotonic() < deadline:
            if self.transport.bytes_waiting() > 0:
                buffer += self.transport.read_available()
                if buffer.find(TERMINATOR) > 0:
                    return bytes(buffer), True
            else:
                self.clock.sleep(RECEIVE_POLL_INTERVAL)
        return bytes(buffer), False

    def _close_quietly(self) -> None:
        try:
            self.transport.close()
        except ChannelError as e:
            logger.warning(
                f"Could not close serial port ({e}). "
                "Restart may be required if port remains busy."
            )
