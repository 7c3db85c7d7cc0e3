"""
Runtime configuration.

Defaults mirror the on-disk layout the verifier ships with:

    lib/manifest.json      active local manifest
    lib/<firmware>.hex     library firmware images
    bin/avrdude            dump tool
    etc/avrdude.conf       dump tool configuration

Every path can be overridden from the environment (FIRMWARE_VERIFIER_*)
and again from CLI options.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional, Union

ENV_PREFIX = "FIRMWARE_VERIFIER_"

DEFAULT_MANIFEST_URL = (
    "https://raw.githubusercontent.com/kaysond/GCCVerify/master/build/lib/manifest.json"
)

_TRUTHY = ("1", "true", "yes", "on")


def library_image_path(lib_dir: Union[str, Path], firmware_name: str) -> Path:
    """Library .hex file for a firmware identifier."""
    return Path(lib_dir) / f"{firmware_name}.hex"


def _default_avrdude() -> Path:
    return Path("bin", "avrdude.exe" if os.name == "nt" else "avrdude")


@dataclass(frozen=True)
class VerifierConfig:
    """
    Paths and limits used by the verification workflows.

    Attributes:
        lib_dir: Directory holding the manifest and library .hex images
        manifest_url: URL of the published remote manifest
        dump_path: Where the dump tool writes program memory (deleted after use)
        avrdude_path: Dump tool executable
        avrdude_conf: Dump tool configuration file
        debug: Surface raw exception detail and DEBUG logs
        download_limit: Max bytes fetched per library image
        http_timeout: Timeout for manifest/image downloads, in seconds
    """
    lib_dir: Path = Path("lib")
    manifest_url: str = DEFAULT_MANIFEST_URL
    dump_path: Path = Path("progmem.bin")
    avrdude_path: Path = field(default_factory=_default_avrdude)
    avrdude_conf: Path = Path("etc", "avrdude.conf")
    debug: bool = False
    download_limit: int = 1_000_000
    http_timeout: float = 10.0

    @property
    def manifest_path(self) -> Path:
        return self.lib_dir / "manifest.json"

    def image_path(self, firmware_name: str) -> Path:
        return library_image_path(self.lib_dir, firmware_name)

    @property
    def manifest_backup_path(self) -> Path:
        return self.lib_dir / "manifest_old.json"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VerifierConfig":
        """Build a config from FIRMWARE_VERIFIER_* environment variables."""
        env = os.environ if environ is None else environ
        config = cls()

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_PREFIX + name, "").strip()
            return value or None

        overrides = {}
        if get("LIB_DIR"):
            overrides["lib_dir"] = Path(get("LIB_DIR"))
        if get("MANIFEST_URL"):
            overrides["manifest_url"] = get("MANIFEST_URL")
        if get("DUMP_PATH"):
            overrides["dump_path"] = Path(get("DUMP_PATH"))
        if get("AVRDUDE"):
            overrides["avrdude_path"] = Path(get("AVRDUDE"))
        if get("AVRDUDE_CONF"):
            overrides["avrdude_conf"] = Path(get("AVRDUDE_CONF"))
        if get("DEBUG"):
            overrides["debug"] = get("DEBUG").lower() in _TRUTHY

        return replace(config, **overrides)

    def with_overrides(self, **kwargs) -> "VerifierConfig":
        """Return a copy with every non-None keyword applied."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})
