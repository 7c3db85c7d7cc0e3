"""
Manifest catalog for Firmware Verifier.

The manifest is the trust data a device is verified against:
- Firmware images (name, download URL, SHA-256 of the .hex file, permitted flag)
- Mod specs (name, permitted flag, allowed value ranges)

Usage:
    from firmware_verifier.manifest import Manifest

    manifest = Manifest.from_dict(json.loads(text))
    if manifest.is_loaded():
        spec = manifest.find_mod_spec("turbo")
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from firmware_verifier.errors import ManifestFormatError


@dataclass(frozen=True)
class ValueSpec:
    """Inclusive range a named mod value must fall in."""
    name: str
    min_val: int
    max_val: int

    def contains(self, value: int) -> bool:
        return self.min_val <= value <= self.max_val


@dataclass(frozen=True)
class ModSpec:
    """Definition of a known firmware modification."""
    name: str
    permitted: bool
    value_specs: List[ValueSpec] = field(default_factory=list)


@dataclass(frozen=True)
class FirmwareImage:
    """Catalogued firmware build and the digest of its library .hex file."""
    name: str
    url: str
    hash: str
    permitted: bool


@dataclass
class Manifest:
    """
    Versioned trust catalog.

    A manifest with timestamp 0 is the "not loaded" manifest and must never
    be used for verification.
    """
    timestamp: int = 0
    firmware_images: List[FirmwareImage] = field(default_factory=list)
    mod_specs: List[ModSpec] = field(default_factory=list)

    def is_loaded(self) -> bool:
        return self.timestamp != 0

    def find_image(self, name: str) -> Optional[FirmwareImage]:
        """Return the first firmware image with this name."""
        for image in self.firmware_images:
            if image.name == name:
                return image
        return None

    def find_mod_spec(self, name: str) -> Optional[ModSpec]:
        """Return the first mod spec with this name."""
        for spec in self.mod_specs:
            if spec.name == name:
                return spec
        return None

    @staticmethod
    def find_value_spec(mod_spec: ModSpec, name: str) -> Optional[ValueSpec]:
        """Return the first value spec of ``mod_spec`` with this name."""
        for spec in mod_spec.value_specs:
            if spec.name == name:
                return spec
        return None

    @classmethod
    def from_dict(cls, doc: Any) -> "Manifest":
        """
        Build a manifest from its JSON document.

        Expected shape:
            {"timestamp": int,
             "firmwareImages": [{"name", "url", "hash", "permitted"}],
             "modSpecs": [{"name", "permitted",
                           "valueSpecs": [{"name", "minVal", "maxVal"}]}]}

        Raises:
            ManifestFormatError: On a wrong shape, wrong field types or
                duplicate names.
        """
        if not isinstance(doc, dict):
            raise ManifestFormatError("Manifest must be a JSON object")

        timestamp = _get(doc, "timestamp", int, "manifest", default=0)

        images = []
        for i, entry in enumerate(_get_list(doc, "firmwareImages", "manifest")):
            where = f"firmwareImages[{i}]"
            _require_dict(entry, where)
            images.append(FirmwareImage(
                name=_get(entry, "name", str, where),
                url=_get(entry, "url", str, where, default=""),
                hash=_get(entry, "hash", str, where),
                permitted=_get(entry, "permitted", bool, where, default=False),
            ))
        _require_unique([img.name for img in images], "firmware image")

        mods = []
        for i, entry in enumerate(_get_list(doc, "modSpecs", "manifest")):
            where = f"modSpecs[{i}]"
            _require_dict(entry, where)
            values = []
            for j, value in enumerate(_get_list(entry, "valueSpecs", where)):
                vwhere = f"{where}.valueSpecs[{j}]"
                _require_dict(value, vwhere)
                spec = ValueSpec(
                    name=_get(value, "name", str, vwhere),
                    min_val=_get(value, "minVal", int, vwhere),
                    max_val=_get(value, "maxVal", int, vwhere),
                )
                if spec.min_val > spec.max_val:
                    raise ManifestFormatError(
                        f"{vwhere}: minVal {spec.min_val} > maxVal {spec.max_val}"
                    )
                values.append(spec)
            mod_name = _get(entry, "name", str, where)
            _require_unique([v.name for v in values], f"value spec of mod '{mod_name}'")
            mods.append(ModSpec(
                name=mod_name,
                permitted=_get(entry, "permitted", bool, where, default=False),
                value_specs=values,
            ))
        _require_unique([m.name for m in mods], "mod spec")

        return cls(timestamp=timestamp, firmware_images=images, mod_specs=mods)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON document shape accepted by from_dict."""
        return {
            "timestamp": self.timestamp,
            "firmwareImages": [
                {
                    "name": img.name,
                    "url": img.url,
                    "hash": img.hash,
                    "permitted": img.permitted,
                }
                for img in self.firmware_images
            ],
            "modSpecs": [
                {
                    "name": mod.name,
                    "permitted": mod.permitted,
                    "valueSpecs": [
                        {"name": v.name, "minVal": v.min_val, "maxVal": v.max_val}
                        for v in mod.value_specs
                    ],
                }
                for mod in self.mod_specs
            ],
        }


_MISSING = object()


def _require_dict(value: Any, where: str) -> None:
    if not isinstance(value, dict):
        raise ManifestFormatError(f"{where} must be an object")


def _get(doc: dict, key: str, kind: type, where: str, default: Any = _MISSING) -> Any:
    if key not in doc or doc[key] is None:
        if default is _MISSING:
            raise ManifestFormatError(f"{where} is missing '{key}'")
        return default
    value = doc[key]
    # bool is an int subclass; a flag is never a number here
    if kind is int and isinstance(value, bool):
        raise ManifestFormatError(f"{where}.{key} must be an integer")
    if not isinstance(value, kind):
        raise ManifestFormatError(f"{where}.{key} must be of type {kind.__name__}")
    return value


def _get_list(doc: dict, key: str, where: str) -> list:
    value = doc.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ManifestFormatError(f"{where}.{key} must be a list")
    return value


def _require_unique(names: List[str], label: str) -> None:
    seen = set()
    for name in names:
        if name in seen:
            raise ManifestFormatError(f"Duplicate {label} name '{name}'")
        seen.add(name)
