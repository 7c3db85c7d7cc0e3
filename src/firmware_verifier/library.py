"""
Manifest and firmware library management.

Handles the files the verifier trusts:
- lib/manifest.json (local manifest) and its published remote copy
- lib/<firmware>.hex library images listed in the manifest

Which manifest is active is decided by select_active(); the result is
passed explicitly into the verification workflows.
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Optional, Union

import requests

from firmware_verifier.config import library_image_path
from firmware_verifier.core.results import OperationResult
from firmware_verifier.errors import ErrorCode, ManifestFormatError, VerifierError
from firmware_verifier.integrity import verify_image_hash
from firmware_verifier.manifest import Manifest

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def load_local_manifest(path: PathLike) -> Manifest:
    """
    Load a manifest from disk.

    Raises:
        ManifestFormatError: If the file is not a valid manifest.
        OSError: If the file cannot be read.
    """
    logger.info("Loading local manifest...")
    text = Path(path).read_text(encoding="utf-8")
    try:
        doc = json.loads(text)
    except ValueError as e:
        raise ManifestFormatError(
            f"Local manifest could not be loaded because it is improperly formatted: {e}"
        )
    return Manifest.from_dict(doc)


def fetch_remote_manifest(url: str, timeout: float = 10.0) -> Manifest:
    """
    Download and parse the published manifest.

    Raises:
        ManifestFormatError: If the document is not a valid manifest.
        VerifierError: If the manifest could not be retrieved.
    """
    logger.info("Loading remote manifest...")
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        doc = response.json()
    except ValueError as e:
        raise ManifestFormatError(
            f"Remote manifest could not be loaded because it is improperly formatted: {e}"
        )
    except requests.RequestException as e:
        raise VerifierError(f"Could not retrieve remote manifest: {e}")
    return Manifest.from_dict(doc)


def is_remote_newer(remote: Manifest, local: Manifest) -> bool:
    return remote.timestamp > local.timestamp


def select_active(local: Manifest, remote: Manifest, use_remote: bool = False) -> Manifest:
    """Pick the manifest verification runs against."""
    return remote if use_remote else local


def save_manifest(manifest: Manifest, path: PathLike, backup_path: Optional[PathLike] = None) -> None:
    """
    Write a manifest to disk, backing up the existing file first.

    The manifest is not written when the backup fails.

    Raises:
        OSError: If the backup or the write fails.
    """
    logger.info("Updating manifest with remote copy...")
    path = Path(path)
    if backup_path is not None and path.is_file():
        shutil.copyfile(path, backup_path)
        logger.debug(f"Backed up {path} to {backup_path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(manifest.to_dict(), indent=2), encoding="utf-8")


def download_image(url: str, path: PathLike, limit: int = 1_000_000, timeout: float = 10.0) -> None:
    """
    Stream a library image to disk, stopping after ``limit`` bytes.

    Raises:
        VerifierError: If the download fails.
    """
    written = 0
    try:
        with requests.get(url, stream=True, timeout=timeout) as r:
            r.raise_for_status()
            with open(path, "wb") as f:
                for chunk in r.iter_content(chunk_size=8192):
                    if not chunk:
                        continue
                    chunk = chunk[:limit - written]
                    f.write(chunk)
                    written += len(chunk)
                    if written >= limit:
                        logger.warning(f"Download of {url} truncated at {limit} bytes")
                        break
    except (requests.RequestException, OSError) as e:
        raise VerifierError(f"Could not download {url}: {e}")
    logger.debug(f"Downloaded {written} bytes from {url} to {path}")


def download_and_verify_image(
    path: PathLike,
    url: str,
    expected_hash: str,
    limit: int = 1_000_000,
    timeout: float = 10.0,
) -> bool:
    logger.info(f"Downloading image from {url}...")
    try:
        download_image(url, path, limit=limit, timeout=timeout)
    except VerifierError as e:
        logger.error(f"Failed! {e}")
        return False
    if not verify_image_hash(path, expected_hash):
        logger.error("Failed! Image does not match manifest.")
        return False
    logger.info("Done.")
    return True


def update_library(
    manifest: Manifest,
    lib_dir: PathLike,
    limit: int = 1_000_000,
    timeout: float = 10.0,
) -> OperationResult:
    """
    Bring every library image in line with the manifest.

    Present images are verified against their hash; missing or
    mismatching ones are downloaded again and re-verified.
    """
    if not manifest.is_loaded():
        return OperationResult.failure(
            "update_library", "Manifest is not loaded.", ErrorCode.E_MANIFEST_NOT_LOADED
        )

    result = OperationResult.success(operation="update_library")

    logger.info("Updating firmware images...")
    Path(lib_dir).mkdir(parents=True, exist_ok=True)
    for image in manifest.firmware_images:
        path = library_image_path(lib_dir, image.name)
        if path.is_file():
            logger.info(f"{image.name} found. Verifying...")
            if verify_image_hash(path, image.hash):
                result.metadata.setdefault("verified", []).append(image.name)
                continue
            logger.warning(f"{image.name} does not match manifest.")
        else:
            logger.info(f"{image.name} was not found.")

        if download_and_verify_image(path, image.url, image.hash, limit=limit, timeout=timeout):
            result.metadata.setdefault("downloaded", []).append(image.name)
        else:
            result.add_error(
                f"{image.name} could not be brought in line with the manifest",
                ErrorCode.E_HASH_MISMATCH,
            )
    return result
