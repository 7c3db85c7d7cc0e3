"""
Controller Serial Transport Layer

Handles low-level serial communication with the controller under test.

This module provides:
- Serial port initialization and configuration
- Raw write and non-blocking read of whatever has arrived
- DTR/RTS control line handling (board reset)
- Translation of pyserial failures into ChannelError
"""

import logging
from typing import Optional

try:
    import serial
except ImportError:
    raise ImportError("PySerial required: pip install pyserial")

from firmware_verifier.errors import ChannelError
from firmware_verifier.platforms import PlatformConfig

logger = logging.getLogger(__name__)


class SerialTransport:
    """
    Low-level serial transport for the parameters handshake.

    Handles:
    - Serial port management
    - Raw byte write / available-byte read
    - Control line toggling for boards that reset on DTR/RTS

    Example:
        transport = SerialTransport(port="/dev/ttyUSB0")
        transport.open()
        transport.send_raw(b"GCCVerify")
        if transport.bytes_waiting():
            data = transport.read_available()
        transport.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        bytesize: int = 8,
        parity: str = "N",
        stopbits: int = 1,
        timeout: float = 0.0,
    ):
        """
        Initialize transport layer.

        Args:
            port: Serial port (e.g., "/dev/ttyUSB0", "COM3")
            baudrate: Serial baud rate (default 9600)
            bytesize: Data bits (default 8)
            parity: Parity (default 'N')
            stopbits: Stop bits (default 1)
            timeout: Read timeout in seconds (default 0, non-blocking)
        """
        self.port = port
        self.baudrate = baudrate
        self.bytesize = bytesize
        self.parity = parity
        self.stopbits = stopbits
        self.timeout = timeout
        self.ser: Optional[serial.Serial] = None

    @classmethod
    def for_platform(cls, port: str, platform: PlatformConfig) -> "SerialTransport":
        """Create a transport using a platform's serial parameters."""
        return cls(
            port,
            baudrate=platform.baud_rate,
            bytesize=platform.bytesize,
            parity=platform.parity,
            stopbits=platform.stopbits,
        )

    @property
    def is_open(self) -> bool:
        return bool(self.ser and self.ser.is_open)

    def open(self) -> None:
        """
        Open serial port.

        Raises:
            ChannelError: If port cannot be opened
        """
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=self.bytesize,
                parity=self.parity,
                stopbits=self.stopbits,
                timeout=self.timeout,
                write_timeout=1.0,
            )
            self.ser.reset_input_buffer()

            logger.debug(
                f"Opened {self.port} at {self.baudrate} bps "
                f"({self.bytesize}{self.parity}{self.stopbits})"
            )
        except serial.SerialException as e:
            raise ChannelError(f"Cannot open port {self.port}: {e}")

    def close(self) -> None:
        """
        Close serial port.

        Raises:
            ChannelError: If the port refuses to close
        """
        if self.ser and self.ser.is_open:
            try:
                self.ser.close()
            except (serial.SerialException, OSError) as e:
                raise ChannelError(f"Cannot close port {self.port}: {e}")
            logger.debug(f"Closed {self.port}")

    def _require_open(self) -> "serial.Serial":
        if not self.ser or not self.ser.is_open:
            raise ChannelError("Serial port not open")
        return self.ser

    def set_control_lines(self, dtr: bool, rts: bool) -> None:
        """Drive the DTR and RTS lines."""
        ser = self._require_open()
        try:
            ser.dtr = dtr
            ser.rts = rts
        except (serial.SerialException, OSError) as e:
            raise ChannelError(f"Control line error: {e}")

    def send_raw(self, data: bytes) -> None:
        """
        Send raw bytes to the controller.

        Raises:
            ChannelError: If write fails
        """
        ser = self._require_open()
        try:
            written = ser.write(data)
            if written != len(data):
                raise ChannelError(
                    f"Incomplete write: sent {written}/{len(data)} bytes"
                )
            logger.debug(f">>> {data.hex().upper()}")
        except serial.SerialException as e:
            raise ChannelError(f"Write error: {e}")

    def bytes_waiting(self) -> int:
        """Number of received bytes not yet read."""
        ser = self._require_open()
        try:
            return ser.in_waiting
        except (serial.SerialException, OSError) as e:
            raise ChannelError(f"Read error: {e}")

    def read_available(self) -> bytes:
        """
        Read whatever is currently buffered, without waiting.

        Raises:
            ChannelError: If read fails
        """
        ser = self._require_open()
        try:
            count = ser.in_waiting
            if not count:
                return b""
            data = ser.read(count)
            logger.debug(f"<<< {data.hex().upper()}")
            return data
        except (serial.SerialException, OSError) as e:
            raise ChannelError(f"Read error: {e}")
