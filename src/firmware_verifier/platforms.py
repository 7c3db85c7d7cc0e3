"""
Platform registry for verifiable controllers.

Provides a single source of truth for:
- Serial parameters used for the parameters handshake
- Whether the board must be reset before it listens
- Settings for the program-memory dump tool

Usage:
    from firmware_verifier.platforms import get_platform, list_platforms

    platform = get_platform("arduino")
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List


class Platform(Enum):
    """Supported controller platforms."""
    ARDUINO = "arduino"


@dataclass(frozen=True)
class PlatformConfig:
    """
    Serial and dump settings for one platform.

    Attributes:
        platform: Platform identifier
        baud_rate: Baud rate for the parameters handshake
        bytesize: Data bits
        parity: Parity ('N', 'E', 'O')
        stopbits: Stop bits
        reset_on_open: Board reboots on DTR/RTS transitions and must be
            given time to boot before it answers
        dump_part: avrdude part id (-p)
        dump_programmer: avrdude programmer id (-c)
        dump_baud_rate: Bootloader baud rate used while dumping (-b)
    """
    platform: Platform
    baud_rate: int = 9600
    bytesize: int = 8
    parity: str = "N"
    stopbits: int = 1
    reset_on_open: bool = False
    dump_part: str = ""
    dump_programmer: str = ""
    dump_baud_rate: int = 57600

    @property
    def name(self) -> str:
        return self.platform.value


PLATFORMS: Dict[Platform, PlatformConfig] = {
    # Nano/Uno class boards, ATmega328P with the optiboot/arduino bootloader
    Platform.ARDUINO: PlatformConfig(
        platform=Platform.ARDUINO,
        baud_rate=9600,
        reset_on_open=True,
        dump_part="atmega328p",
        dump_programmer="arduino",
        dump_baud_rate=57600,
    ),
}


def list_platforms() -> List[str]:
    """Names of all known platforms."""
    return [p.value for p in PLATFORMS]


def get_platform(name: str) -> PlatformConfig:
    """
    Look up a platform by name (case-insensitive).

    Raises:
        KeyError: If the platform is unknown.
    """
    key = name.strip().lower()
    for platform, config in PLATFORMS.items():
        if platform.value == key:
            return config
    raise KeyError(
        f"Unknown platform '{name}'. Known platforms: {', '.join(list_platforms())}"
    )
