"""
Library image integrity checks.

A library .hex file is only trusted as a comparison baseline after its
SHA-256 matches the digest declared in the manifest. Every failure here
(missing file, read error, unavailable algorithm) counts as "not verified".
"""

import hashlib
import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

HASH_ALGORITHM = "sha256"
CHUNK_SIZE = 8192


def file_digest(path: Union[str, Path], algorithm: str = HASH_ALGORITHM) -> str:
    """
    Stream a file through a hash and return the lowercase hex digest.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the algorithm is not available.
    """
    digest = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_image_hash(
    path: Union[str, Path],
    expected_hash: str,
    algorithm: str = HASH_ALGORITHM,
) -> bool:
    """
    Check a file against an expected hex digest (case-insensitive).

    Returns False on any mismatch or error, never raises.
    """
    try:
        actual = file_digest(path, algorithm)
    except OSError as e:
        logger.error(f"IO error while verifying image {path}: {e}")
        return False
    except ValueError:
        logger.error(f"{algorithm} hash algorithm is not available on this system.")
        return False

    expected = (expected_hash or "").strip().lower()
    logger.debug(f"File Hash: {actual} | Expected Hash: {expected}")
    return bool(expected) and actual == expected
