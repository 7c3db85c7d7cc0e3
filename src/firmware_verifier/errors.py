"""Exception hierarchy and error codes for Firmware Verifier."""

from enum import Enum


class ErrorCode(Enum):
    """Stable codes for every way a verification run can fail."""
    # Manifest
    E_MANIFEST_NOT_LOADED = "E_MANIFEST_NOT_LOADED"
    E_MANIFEST_FORMAT = "E_MANIFEST_FORMAT"

    # Device parameters
    E_MALFORMED_RESPONSE = "E_MALFORMED_RESPONSE"
    E_UNKNOWN_MOD = "E_UNKNOWN_MOD"
    E_ILLEGAL_MOD = "E_ILLEGAL_MOD"
    E_UNKNOWN_VALUE = "E_UNKNOWN_VALUE"
    E_ILLEGAL_VALUE = "E_ILLEGAL_VALUE"

    # Firmware image
    E_IMAGE_NOT_FOUND = "E_IMAGE_NOT_FOUND"
    E_IMAGE_NOT_PERMITTED = "E_IMAGE_NOT_PERMITTED"
    E_HEX_FORMAT = "E_HEX_FORMAT"
    E_CHECKSUM_MISMATCH = "E_CHECKSUM_MISMATCH"
    E_HASH_MISMATCH = "E_HASH_MISMATCH"
    E_BYTE_MISMATCH = "E_BYTE_MISMATCH"

    # Channel / environment
    E_CHANNEL = "E_CHANNEL"
    E_EXTERNAL_TOOL = "E_EXTERNAL_TOOL"
    E_IO = "E_IO"

    # Generic
    E_UNKNOWN = "E_UNKNOWN"


class VerifierError(Exception):
    """Base exception for verification errors"""
    code = ErrorCode.E_UNKNOWN


class ManifestFormatError(VerifierError):
    """Manifest document is unreadable or has the wrong shape"""
    code = ErrorCode.E_MANIFEST_FORMAT


class MalformedResponse(VerifierError):
    """Device response is empty, not JSON, or missing a required field"""
    code = ErrorCode.E_MALFORMED_RESPONSE


class ChannelError(VerifierError):
    """Serial port open/write/read/close failure"""
    code = ErrorCode.E_CHANNEL


class HexRecordError(VerifierError):
    """Intel HEX line cannot be decoded"""
    code = ErrorCode.E_HEX_FORMAT


class HashMismatch(VerifierError):
    """Library image digest differs from the manifest"""
    code = ErrorCode.E_HASH_MISMATCH


class ImageNotFound(VerifierError):
    """Firmware image is missing from the manifest or the library"""
    code = ErrorCode.E_IMAGE_NOT_FOUND


class ExternalToolFailure(VerifierError):
    """Memory dump tool missing, failed to start, or exited non-zero"""
    code = ErrorCode.E_EXTERNAL_TOOL
