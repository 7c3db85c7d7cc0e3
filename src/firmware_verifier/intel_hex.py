"""
Intel HEX record parsing for library firmware images.

Record layout (one per line, hex digits in either case):

    :BB AAAA TT DD..DD CC
     |  |    |  |      +- checksum: two's complement of the low byte of the
     |  |    |  |         sum of every preceding byte
     |  |    |  +-------- BB data bytes
     |  |    +----------- record type (00 data, 01 end of file, ...)
     |  +---------------- 16-bit big-endian load address
     +------------------- byte count

Lines that do not start with ':' or are shorter than a minimal record are
inert: they decode to an empty data record that contributes nothing.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Tuple, Union

from firmware_verifier.errors import HexRecordError

logger = logging.getLogger(__name__)

START_CODE = ":"
MIN_RECORD_LEN = 11  # ':' + count + address + type + checksum

DATA = 0x00
END_OF_FILE = 0x01


@dataclass(frozen=True)
class IntelHexRecord:
    byte_count: int = 0
    address: int = 0
    record_type: int = DATA
    data: bytes = b""
    checksum: int = 0

    @property
    def is_data(self) -> bool:
        return self.record_type == DATA

    def computed_checksum(self) -> int:
        total = (
            self.byte_count
            + (self.address >> 8) + (self.address & 0xFF)
            + self.record_type
            + sum(self.data)
        )
        return (-total) & 0xFF

    def checksum_valid(self) -> bool:
        return self.computed_checksum() == self.checksum


def parse_record(line: str) -> IntelHexRecord:
    """
    Decode one line into a record.

    Raises:
        HexRecordError: If a line that looks like a record is truncated or
            contains non-hex characters.
    """
    line = line.strip()
    if len(line) < MIN_RECORD_LEN or not line.startswith(START_CODE):
        return IntelHexRecord()

    try:
        byte_count = int(line[1:3], 16)
        address = int(line[3:7], 16)
        record_type = int(line[7:9], 16)
        end = 9 + byte_count * 2
        if len(line) < end + 2:
            raise HexRecordError(
                f"Record declares {byte_count} data bytes but the line is too short"
            )
        data = bytes.fromhex(line[9:end])
        checksum = int(line[end:end + 2], 16)
    except ValueError as e:
        raise HexRecordError(f"Invalid hex digits in record: {e}")

    return IntelHexRecord(
        byte_count=byte_count,
        address=address,
        record_type=record_type,
        data=data,
        checksum=checksum,
    )


def iter_records(path: Union[str, Path]) -> Iterator[Tuple[int, IntelHexRecord]]:
    """
    Yield (line_number, record) for every line of a .hex file.

    Line numbers start at 1.

    Raises:
        HexRecordError: On an undecodable record (line number included).
        OSError: If the file cannot be read.
    """
    with open(path, "r", encoding="ascii", errors="replace") as f:
        for line_no, line in enumerate(f, start=1):
            try:
                yield line_no, parse_record(line)
            except HexRecordError as e:
                raise HexRecordError(f"Line {line_no}: {e}")


def find_checksum_errors(path: Union[str, Path]) -> list:
    """Return the line numbers of data records whose checksum is wrong."""
    bad = []
    for line_no, record in iter_records(path):
        if record.is_data and not record.checksum_valid():
            logger.debug(
                f"Line {line_no}: checksum {record.checksum:02X}, "
                f"expected {record.computed_checksum():02X}"
            )
            bad.append(line_no)
    return bad
