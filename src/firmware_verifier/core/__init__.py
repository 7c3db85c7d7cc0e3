"""
Core module for Firmware Verifier.

This module provides the single source of truth for:
- Result objects (results.py)
- Error codes and remediation messages (messages.py)
- Parameters/image verification workflows (actions.py)

Front ends should call into this module rather than chaining the
engine modules themselves.
"""

from .results import OperationResult
from .messages import (
    MessageLevel,
    MessageItem,
    ERROR_REMEDIATIONS,
    result_to_messages,
)
from .actions import (
    verify_params,
    verify_params_with_retries,
    verify_firmware_image,
    verify_device,
    check_hex_file,
)

__all__ = [
    # Results
    "OperationResult",
    # Messages
    "MessageLevel",
    "MessageItem",
    "ERROR_REMEDIATIONS",
    "result_to_messages",
    # Actions
    "verify_params",
    "verify_params_with_retries",
    "verify_firmware_image",
    "verify_device",
    "check_hex_file",
]
