"""
Byte-level comparison of dumped program memory against a library image.

Only data records are compared; each data byte at ``record.address + i``
must equal ``dump[record.address + i]``. The first difference ends the
comparison. Records with a bad checksum are reported as library defects,
separately from device mismatches, and make the comparison fail because
the baseline itself can no longer be trusted.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

from firmware_verifier.intel_hex import IntelHexRecord, iter_records

logger = logging.getLogger(__name__)


@dataclass
class ComparisonResult:
    """
    Attributes:
        mismatch_address: Absolute address of the first differing byte
        expected: Library byte at mismatch_address
        actual: Dumped byte at mismatch_address (None if the dump is too short)
        checksum_error_lines: Library lines whose checksum is wrong
        records_checked: Data records compared
        bytes_checked: Data bytes compared
    """
    mismatch_address: Optional[int] = None
    expected: Optional[int] = None
    actual: Optional[int] = None
    checksum_error_lines: List[int] = field(default_factory=list)
    records_checked: int = 0
    bytes_checked: int = 0

    @property
    def matches(self) -> bool:
        return self.mismatch_address is None and not self.checksum_error_lines


def compare_records(
    records: Iterable[Tuple[int, IntelHexRecord]],
    dump: bytes,
) -> ComparisonResult:
    """
    Compare (line_number, record) pairs against a dumped memory buffer.
    """
    result = ComparisonResult()
    for line_no, record in records:
        if not record.is_data:
            continue
        if not record.checksum_valid():
            logger.error(f"Error in library firmware file. Bad checksum at line {line_no}.")
            result.checksum_error_lines.append(line_no)
        result.records_checked += 1

        for offset, expected in enumerate(record.data):
            address = record.address + offset
            actual = dump[address] if address < len(dump) else None
            if actual != expected:
                result.mismatch_address = address
                result.expected = expected
                result.actual = actual
                if actual is None:
                    logger.error(
                        f"Controller firmware dump ends before byte {address} "
                        f"({len(dump)} bytes dumped)."
                    )
                else:
                    logger.error(
                        f"Controller firmware does not match firmware in library at byte {address}."
                    )
                return result
            result.bytes_checked += 1

    return result


def compare_hex_file(hex_path: Union[str, Path], dump: bytes) -> ComparisonResult:
    """
    Compare a library .hex file against a dumped memory buffer.

    Raises:
        HexRecordError: If a line cannot be decoded.
        OSError: If the file cannot be read.
    """
    result = compare_records(iter_records(hex_path), dump)
    logger.debug(
        f"Compared {result.records_checked} records / {result.bytes_checked} bytes "
        f"from {hex_path}"
    )
    return result
