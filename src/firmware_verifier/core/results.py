"""
Result objects for core operations.

Provides a unified result structure that the CLI (or any other front end)
can use to display verification outcomes consistently.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any

from firmware_verifier.errors import ErrorCode


@dataclass
class OperationResult:
    """
    Unified result object for all core operations.

    Attributes:
        ok: Whether the operation completed successfully
        operation: Name of the operation (e.g., "verify_params")
        platform: Device platform the operation ran against
        port: Serial port used, if any
        firmware: Firmware identifier ("name-major.minor"), once known
        report: Human-readable multi-line report (mod blocks, banners)
        hashes: Dict of hash values (expected/actual sha256, etc.)
        warnings: Non-blocking issues encountered
        errors: Blocking errors that caused failure
        codes: Error code for each entry in errors
        metadata: Additional operation-specific data
        logs: Captured log lines from the operation
    """
    ok: bool
    operation: str
    platform: str = ""
    port: str = ""
    firmware: str = ""
    report: str = ""
    hashes: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    codes: List[ErrorCode] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> None:
        """Add a warning message."""
        self.warnings.append(message)

    def add_error(self, message: str, code: ErrorCode = ErrorCode.E_UNKNOWN) -> None:
        """Add an error message and mark result as failed."""
        self.errors.append(message)
        self.codes.append(code)
        self.ok = False

    def to_summary(self) -> str:
        """
        Generate a human-readable summary string.

        Suitable for CLI output or simple logging.
        """
        status = "VERIFIED" if self.ok else "FAILED"
        lines = [f"[{status}] {self.operation}"]

        if self.platform:
            lines.append(f"  Platform: {self.platform}")
        if self.port:
            lines.append(f"  Port: {self.port}")
        if self.firmware:
            lines.append(f"  Firmware: {self.firmware}")

        if self.hashes:
            for name, value in self.hashes.items():
                lines.append(f"  {name}: {value[:16]}...")

        if self.warnings:
            lines.append("  Warnings:")
            for warn in self.warnings:
                lines.append(f"    - {warn}")

        if self.errors:
            lines.append("  Errors:")
            for err, code in zip(self.errors, self.codes):
                lines.append(f"    - [{code.value}] {err}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "ok": self.ok,
            "operation": self.operation,
            "platform": self.platform,
            "port": self.port,
            "firmware": self.firmware,
            "report": self.report,
            "hashes": self.hashes,
            "warnings": self.warnings,
            "errors": self.errors,
            "codes": [c.value for c in self.codes],
            "metadata": self.metadata,
            "logs": self.logs,
        }

    @classmethod
    def success(cls, operation: str, **kwargs) -> "OperationResult":
        """Create a successful result."""
        return cls(ok=True, operation=operation, **kwargs)

    @classmethod
    def failure(
        cls,
        operation: str,
        error: str,
        code: ErrorCode = ErrorCode.E_UNKNOWN,
        **kwargs,
    ) -> "OperationResult":
        """Create a failed result."""
        result = cls(ok=False, operation=operation, **kwargs)
        result.add_error(error, code)
        return result
