"""
Firmware Verifier - integrity checks for microcontroller-based controllers

Requests the parameters a controller's firmware reports about itself,
checks them against a manifest, and compares the controller's program
memory with a hash-verified library image.
"""

__version__ = "0.1.0"

from firmware_verifier.manifest import Manifest
from firmware_verifier.protocol import SerialTransport, ParamsHandshake
from firmware_verifier.core import verify_params, verify_firmware_image, verify_device

__all__ = [
    "Manifest",
    "SerialTransport",
    "ParamsHandshake",
    "verify_params",
    "verify_firmware_image",
    "verify_device",
    "__version__",
]
