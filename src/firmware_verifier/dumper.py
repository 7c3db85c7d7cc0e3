"""
Program memory dumping through an external tool.

The verification workflows only need ``dump_memory(port) -> bytes``; any
object providing it can stand in for the real tool (tests use a stub).
AvrdudeDumper reads the flash of AVR boards through their serial
bootloader.
"""

import logging
import subprocess
from pathlib import Path
from typing import List, Union

from firmware_verifier.errors import ExternalToolFailure
from firmware_verifier.platforms import PlatformConfig

logger = logging.getLogger(__name__)


class AvrdudeDumper:
    """
    Dump program memory with avrdude.

    The dump file is transient: it is read and removed before
    dump_memory() returns, whatever the outcome.

    Example:
        dumper = AvrdudeDumper("bin/avrdude", "etc/avrdude.conf", platform)
        progmem = dumper.dump_memory("/dev/ttyUSB0")
    """

    def __init__(
        self,
        avrdude_path: Union[str, Path],
        conf_path: Union[str, Path],
        platform: PlatformConfig,
        dump_path: Union[str, Path] = "progmem.bin",
    ):
        self.avrdude_path = Path(avrdude_path)
        self.conf_path = Path(conf_path)
        self.platform = platform
        self.dump_path = Path(dump_path)

    def build_command(self, port: str) -> List[str]:
        return [
            str(self.avrdude_path),
            f"-C{self.conf_path}",
            "-v",
            f"-p{self.platform.dump_part}",
            f"-c{self.platform.dump_programmer}",
            f"-P{port}",
            f"-Uflash:r:{self.dump_path}:r",
            f"-b{self.platform.dump_baud_rate}",
        ]

    def dump_memory(self, port: str) -> bytes:
        """
        Read the controller's program memory.

        Raises:
            ExternalToolFailure: If avrdude or its config is missing, cannot
                be started, exits non-zero, or leaves no dump behind.
        """
        if not self.avrdude_path.is_file():
            raise ExternalToolFailure(
                f"Could not find avrdude at {self.avrdude_path}. Please check the bin directory."
            )
        if not self.conf_path.is_file():
            raise ExternalToolFailure(
                f"Could not find avrdude.conf at {self.conf_path}. Please check the etc directory."
            )

        cmd = self.build_command(port)
        logger.info("Downloading controller firmware (this can take a while)...")
        try:
            proc = subprocess.run(
                cmd,
                check=False,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise ExternalToolFailure(f"Could not start avrdude: {e}")

        logger.debug(proc.stdout or "")

        try:
            if proc.returncode != 0:
                raise ExternalToolFailure(
                    f"avrdude encountered an error (exit {proc.returncode}). "
                    f"Command: {' '.join(cmd)}\navrdude output:\n{proc.stdout or ''}"
                )
            try:
                return self.dump_path.read_bytes()
            except OSError as e:
                raise ExternalToolFailure(f"avrdude did not produce {self.dump_path}: {e}")
        finally:
            self.discard_dump()

    def discard_dump(self) -> None:
        try:
            self.dump_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not delete {self.dump_path}: {e}")
