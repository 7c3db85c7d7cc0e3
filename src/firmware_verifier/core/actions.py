"""
Core verification workflows for Firmware Verifier.

This module exposes functions the CLI (or any other front end) can call.
Each workflow is a run boundary: every failure is turned into a failed
OperationResult, nothing escapes as an exception, and nothing ever
defaults to "verified".
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Union

from firmware_verifier.comparator import compare_hex_file
from firmware_verifier.config import VerifierConfig
from firmware_verifier.errors import ErrorCode, HashMismatch, ImageNotFound, VerifierError
from firmware_verifier.intel_hex import find_checksum_errors
from firmware_verifier.integrity import file_digest, verify_image_hash
from firmware_verifier.manifest import Manifest
from firmware_verifier.params import validate_params
from firmware_verifier.platforms import PlatformConfig
from firmware_verifier.protocol.handshake import HandshakeStatus, ParamsHandshake

from .results import OperationResult

logger = logging.getLogger(__name__)

# Error codes worth another handshake attempt
RETRYABLE_CODES = (ErrorCode.E_CHANNEL, ErrorCode.E_MALFORMED_RESPONSE)


class _ListLogHandler(logging.Handler):
    """Capture log records into a list of formatted strings."""

    def __init__(self, level: int = logging.INFO) -> None:
        super().__init__(level)
        self.records = []
        self.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(self.format(record))


@contextmanager
def _capture_logs(logger_name: str = "firmware_verifier"):
    """Capture logs for core operations into a list."""
    target_logger = logging.getLogger(logger_name)
    handler = _ListLogHandler()
    previous_level = target_logger.level
    if previous_level in (logging.NOTSET, logging.WARNING, logging.ERROR, logging.CRITICAL):
        target_logger.setLevel(logging.INFO)
    target_logger.addHandler(handler)
    try:
        yield handler.records
    finally:
        target_logger.removeHandler(handler)
        target_logger.setLevel(previous_level)


def verify_params(
    transport,
    platform: PlatformConfig,
    manifest: Manifest,
    clock=None,
) -> OperationResult:
    """
    Request the controller's parameters and check them against the manifest.

    Args:
        transport: Unopened channel (see SerialTransport); opened and closed here
        platform: Platform settings (decides whether to reset the board first)
        manifest: Active manifest
        clock: Optional clock for the handshake (tests)

    Returns:
        OperationResult with:
            - ok: True only if every reported mod is permitted
            - firmware: "name-major.minor" when the response was usable
            - report: mod blocks, populated on failure as well
            - metadata["classifications"]: per-block verdicts
            - metadata["handshake"]: handshake status
    """
    port = getattr(transport, "port", "")
    result = OperationResult.success(operation="verify_params", platform=platform.name, port=port)

    with _capture_logs() as logs:
        result.logs = logs
        logger.info(f"Verifying parameters of {platform.name.upper()} on {port}")
        if not manifest.is_loaded():
            logger.error("Manifest is not loaded.")
            result.add_error("Manifest is not loaded.", ErrorCode.E_MANIFEST_NOT_LOADED)
            return result

        try:
            handshake = ParamsHandshake(transport, reset_on_open=platform.reset_on_open, clock=clock)
            outcome = handshake.run()
            result.metadata["handshake"] = outcome.status.value
            if outcome.status == HandshakeStatus.CHANNEL_ERROR:
                result.add_error(outcome.error, ErrorCode.E_CHANNEL)
                return result
            if outcome.status == HandshakeStatus.TIMEOUT:
                result.add_warning("Response was not terminated within the receive window")

            report = validate_params(outcome.payload, manifest)
        except Exception as e:
            logger.exception("verify_params failed")
            result.add_error(f"An unhandled exception occurred: {e}", ErrorCode.E_UNKNOWN)
            return result

        result.firmware = report.firmware_name
        result.report = report.report
        result.metadata["classifications"] = [c.to_dict() for c in report.classifications]
        if report.error:
            result.add_error(report.error, report.error_code or ErrorCode.E_MALFORMED_RESPONSE)
        elif not report.succeeded:
            for code in report.failure_codes():
                result.add_error(f"Firmware mods failed verification ({code.value})", code)
        logger.info("Done.")
        return result


def verify_params_with_retries(
    transport,
    platform: PlatformConfig,
    manifest: Manifest,
    retries: int = 0,
    clock=None,
) -> OperationResult:
    """
    Run verify_params, repeating the whole handshake up to ``retries`` times.

    Only channel and malformed-response failures are repeated; a
    classification failure is final. The transport is reopened for every
    attempt.
    """
    result = verify_params(transport, platform, manifest, clock=clock)
    for attempt in range(1, retries + 1):
        if result.ok or not any(code in RETRYABLE_CODES for code in result.codes):
            break
        logger.warning(f"Attempt {attempt} failed, retrying...")
        result = verify_params(transport, platform, manifest, clock=clock)
    return result


def verify_firmware_image(
    firmware_name: str,
    manifest: Manifest,
    dumper,
    port: str,
    config: Optional[VerifierConfig] = None,
) -> OperationResult:
    """
    Compare the controller's program memory with the library image.

    Steps (each a hard stop on failure):
        1. manifest loaded, firmware name known
        2. firmware listed in the manifest and permitted
        3. library .hex file matches the manifest hash
        4. dump program memory (dumper.dump_memory(port))
        5. byte-by-byte comparison of every data record

    The dumped buffer is dropped as soon as the comparison ends.
    """
    config = config or VerifierConfig()
    result = OperationResult.success(operation="verify_firmware_image", port=port, firmware=firmware_name)

    with _capture_logs() as logs:
        result.logs = logs
        logger.info(f"Verifying firmware image on {port}")
        if not manifest.is_loaded():
            logger.error("Manifest is not loaded.")
            result.add_error("Manifest is not loaded.", ErrorCode.E_MANIFEST_NOT_LOADED)
            return result
        if not firmware_name:
            result.add_error(
                "Firmware name not available. Verify firmware parameters first.",
                ErrorCode.E_MALFORMED_RESPONSE,
            )
            return result

        try:
            image = manifest.find_image(firmware_name)
            if image is None:
                raise ImageNotFound(f"Could not find firmware {firmware_name} in manifest.")
            if not image.permitted:
                result.add_error(
                    f"Firmware {firmware_name} is not permitted.",
                    ErrorCode.E_IMAGE_NOT_PERMITTED,
                )
                return result

            hex_path = config.image_path(firmware_name)
            logger.info("Verifying library firmware image...")
            result.hashes["expected_sha256"] = image.hash.lower()
            if not verify_image_hash(hex_path, image.hash):
                raise HashMismatch(
                    "Could not verify controller firmware because library image does not match manifest."
                )

            progmem = dumper.dump_memory(port)
            logger.info("Comparing to firmware in library...")
            try:
                comparison = compare_hex_file(hex_path, progmem)
            finally:
                del progmem
        except VerifierError as e:
            logger.error(str(e))
            result.add_error(str(e), e.code)
            return result
        except OSError as e:
            logger.error(f"Could not open firmware file: {e}")
            result.add_error(f"Could not open firmware file: {e}", ErrorCode.E_IO)
            return result
        except Exception as e:
            logger.exception("verify_firmware_image failed")
            result.add_error(f"An unhandled exception occurred: {e}", ErrorCode.E_UNKNOWN)
            return result

        result.metadata["records_checked"] = comparison.records_checked
        result.metadata["bytes_checked"] = comparison.bytes_checked
        if comparison.checksum_error_lines:
            result.metadata["checksum_error_lines"] = comparison.checksum_error_lines
            lines = ", ".join(str(n) for n in comparison.checksum_error_lines)
            result.add_error(
                f"Error in library firmware file. Bad checksum at line(s) {lines}.",
                ErrorCode.E_CHECKSUM_MISMATCH,
            )
        if comparison.mismatch_address is not None:
            result.metadata["mismatch_address"] = comparison.mismatch_address
            result.add_error(
                f"Controller firmware does not match firmware in library at byte "
                f"{comparison.mismatch_address}.",
                ErrorCode.E_BYTE_MISMATCH,
            )
        if result.ok:
            logger.info(f"Controller firmware matches {firmware_name} in library.")
        return result


def verify_device(
    transport,
    platform: PlatformConfig,
    manifest: Manifest,
    dumper,
    config: Optional[VerifierConfig] = None,
    clock=None,
    retries: int = 0,
) -> OperationResult:
    """
    Full run: parameters, then the firmware image.

    The parameters step is retried as in verify_params_with_retries. The
    image check is skipped when the parameters step fails.
    """
    params_result = verify_params_with_retries(
        transport, platform, manifest, retries=retries, clock=clock
    )
    result = OperationResult(
        ok=params_result.ok,
        operation="verify_device",
        platform=platform.name,
        port=params_result.port,
        firmware=params_result.firmware,
        report=params_result.report,
        warnings=list(params_result.warnings),
        errors=list(params_result.errors),
        codes=list(params_result.codes),
        logs=list(params_result.logs),
    )
    result.metadata["params"] = params_result.to_dict()
    if not params_result.ok:
        return result

    image_result = verify_firmware_image(
        params_result.firmware, manifest, dumper, params_result.port, config
    )
    result.metadata["image"] = image_result.to_dict()
    result.hashes.update(image_result.hashes)
    result.logs.extend(image_result.logs)
    result.warnings.extend(image_result.warnings)
    for err, code in zip(image_result.errors, image_result.codes):
        result.add_error(err, code)
    return result


def check_hex_file(path: Union[str, Path], expected_hash: Optional[str] = None) -> OperationResult:
    """
    Scan a library .hex file for defective records.

    Optionally also checks the file against an expected SHA-256.
    """
    result = OperationResult.success(operation="check_hex_file")
    with _capture_logs() as logs:
        result.logs = logs
        try:
            result.hashes["sha256"] = file_digest(path)
            bad_lines = find_checksum_errors(path)
        except VerifierError as e:
            result.add_error(str(e), e.code)
            return result
        except OSError as e:
            result.add_error(f"Could not open firmware file: {e}", ErrorCode.E_IO)
            return result

        result.metadata["checksum_error_lines"] = bad_lines
        for line_no in bad_lines:
            result.add_error(f"Bad checksum at line {line_no}", ErrorCode.E_CHECKSUM_MISMATCH)
        if expected_hash is not None and not verify_image_hash(path, expected_hash):
            result.add_error("File does not match the expected hash", ErrorCode.E_HASH_MISMATCH)
        return result
