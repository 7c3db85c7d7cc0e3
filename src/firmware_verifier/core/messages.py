"""
Standardized error codes and messages for Firmware Verifier.

Every failure a verification run can end in maps to one stable code, so the
CLI (and anything else driving the workflows) can display it consistently
and attach a remediation hint.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Dict, Any

from firmware_verifier.errors import ErrorCode


class MessageLevel(Enum):
    """Severity level for messages."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


ERROR_REMEDIATIONS: Dict[ErrorCode, str] = {
    ErrorCode.E_MANIFEST_NOT_LOADED:
        "Run 'manifest-update' to fetch the manifest, or check lib/manifest.json.",
    ErrorCode.E_MANIFEST_FORMAT:
        "The manifest file is corrupt. Fetch a fresh copy with 'manifest-update --force'.",
    ErrorCode.E_MALFORMED_RESPONSE:
        "The controller did not answer with valid parameters. Re-plug it and try again.",
    ErrorCode.E_UNKNOWN_MOD:
        "The firmware reports a mod that is not in the manifest. Update the manifest.",
    ErrorCode.E_ILLEGAL_MOD:
        "The firmware has a mod enabled that is not permitted.",
    ErrorCode.E_UNKNOWN_VALUE:
        "A mod reports a value that the manifest does not describe.",
    ErrorCode.E_ILLEGAL_VALUE:
        "A mod value is outside the permitted range.",
    ErrorCode.E_IMAGE_NOT_FOUND:
        "The reported firmware is not listed in the manifest.",
    ErrorCode.E_IMAGE_NOT_PERMITTED:
        "The reported firmware is listed in the manifest but not permitted.",
    ErrorCode.E_HEX_FORMAT:
        "The library firmware file has an undecodable line. Run 'update-lib' to download it again.",
    ErrorCode.E_CHECKSUM_MISMATCH:
        "The library firmware file is damaged. Run 'update-lib' to download it again.",
    ErrorCode.E_HASH_MISMATCH:
        "The library firmware file does not match the manifest. Run 'update-lib'.",
    ErrorCode.E_BYTE_MISMATCH:
        "The controller's program memory differs from the library firmware.",
    ErrorCode.E_CHANNEL:
        "Check the USB connection and close any serial monitor using the port.",
    ErrorCode.E_EXTERNAL_TOOL:
        "Check that avrdude and avrdude.conf are present in bin/ and etc/.",
    ErrorCode.E_IO:
        "Check file permissions in the working directory.",
    ErrorCode.E_UNKNOWN:
        "Re-run with --debug for details.",
}


@dataclass
class MessageItem:
    """
    Structured message with a stable code.

    Attributes:
        level: Severity (INFO, WARN, ERROR)
        code: Stable error code for programmatic handling
        title: Short, user-facing title
        detail: Longer explanation of the issue
        remediation: Suggested action to resolve the issue
    """
    level: MessageLevel
    code: ErrorCode
    title: str
    detail: str = ""
    remediation: str = ""

    def __post_init__(self):
        """Set default remediation if not provided."""
        if not self.remediation and self.code in ERROR_REMEDIATIONS:
            self.remediation = ERROR_REMEDIATIONS[self.code]

    @classmethod
    def error(cls, code: ErrorCode, title: str, detail: str = "") -> "MessageItem":
        """Create an ERROR-level message."""
        return cls(MessageLevel.ERROR, code, title, detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON/display."""
        return {
            "level": self.level.value,
            "code": self.code.value,
            "title": self.title,
            "detail": self.detail,
            "remediation": self.remediation,
        }

    def to_cli_string(self, verbose: bool = False) -> str:
        """Format for CLI output."""
        icons = {
            MessageLevel.INFO: "ℹ️ ",
            MessageLevel.WARN: "⚠️ ",
            MessageLevel.ERROR: "❌",
        }
        icon = icons.get(self.level, "")

        if verbose:
            lines = [f"{icon} [{self.code.value}] {self.title}"]
            if self.detail:
                lines.append(f"   {self.detail}")
            if self.remediation:
                lines.append(f"   → {self.remediation}")
            return "\n".join(lines)
        return f"{icon} {self.title}"


def result_to_messages(result: "OperationResult") -> List[MessageItem]:
    """
    Pair a result's error strings with their recorded error codes.
    """
    return [
        MessageItem.error(code, err)
        for err, code in zip(result.errors, result.codes)
    ]
