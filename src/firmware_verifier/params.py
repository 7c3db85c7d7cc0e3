"""
Firmware parameters reported by the controller, and their validation.

The controller answers the handshake with one JSON object:

    {"name": "stock", "major_version": 1, "minor_version": 0,
     "mods": [{"name": "turbo", "enabled": true,
               "values": [{"name": "speed", "value": 50}]}]}

Missing fields keep sentinel defaults (empty name, version -1, value
INT32_MAX) so that a truncated reply fails validation instead of passing.
Each reported mod is classified against the active manifest and rendered
as a text block; the concatenated blocks form the report.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from firmware_verifier.errors import ErrorCode, MalformedResponse
from firmware_verifier.manifest import Manifest

logger = logging.getLogger(__name__)

# Trips any range check when the firmware omits a value
VALUE_SENTINEL = 2 ** 31 - 1

RULE = "-" * 32

NO_MODS_BANNER = (
    f"{RULE}\n"
    "|   --Firmware has no mods--   |\n"
    f"{RULE}\n"
)


@dataclass
class ModValue:
    name: str = ""
    value: int = VALUE_SENTINEL


@dataclass
class ReportedMod:
    name: str = ""
    enabled: bool = False
    values: List[ModValue] = field(default_factory=list)

    def render(self, banner: str) -> str:
        """Render the mod as a boxed text block under ``banner``."""
        lines = [
            RULE,
            banner,
            RULE,
            "|  Name:                       |",
            f"|    {self.name:<20}      |",
            f"|{'':30}|",
            f"|  Enabled: {'Yes' if self.enabled else 'No':<19}|",
            f"|{'':30}|",
            "|  Values:                     |",
        ]
        for value in self.values:
            lines.append(f"|    {f'{value.name}: {value.value}':<26}|")
        lines.append(RULE)
        return "\n".join(lines) + "\n\n"


@dataclass
class ReportedParams:
    name: str = ""
    major_version: int = -1
    minor_version: int = -1
    mods: List[ReportedMod] = field(default_factory=list)

    @property
    def firmware_name(self) -> str:
        return f"{self.name}-{self.major_version}.{self.minor_version}"


class Classification(Enum):
    NO_MODS = "no_mods"
    UNKNOWN_MOD = "unknown_mod"
    ILLEGAL_MOD = "illegal_mod"
    ILLEGAL_VALUE = "illegal_value"
    UNKNOWN_VALUE = "unknown_value"
    PERMITTED = "permitted"

    @property
    def is_failure(self) -> bool:
        return self not in (Classification.NO_MODS, Classification.PERMITTED)


BANNERS = {
    Classification.UNKNOWN_MOD: "|     **Unknown Mod Found**    |",
    Classification.ILLEGAL_MOD: "|     **Illegal Mod Found**    |",
    Classification.UNKNOWN_VALUE: "| **Unknown Mod Value Found**  |",
    Classification.ILLEGAL_VALUE: "| **Illegal Mod Values Found** |",
    Classification.PERMITTED: "|         --Mod Info--         |",
}


@dataclass
class ClassifiedMod:
    """One rendered verdict about a reported mod."""
    classification: Classification
    mod: Optional[ReportedMod] = None

    def render(self) -> str:
        if self.classification == Classification.NO_MODS:
            return NO_MODS_BANNER
        return self.mod.render(BANNERS[self.classification])

    def to_dict(self) -> dict:
        return {
            "classification": self.classification.value,
            "mod": self.mod.name if self.mod else "",
        }


@dataclass
class ParamsReport:
    """
    Outcome of validating a parameters response.

    Attributes:
        succeeded: True only if every reported mod is permitted
        firmware_name: "name-major.minor", empty if the response was rejected
        report: Concatenated mod blocks, populated on failure as well
        classifications: Verdicts in report order
        error: Why the response was rejected before classification
        error_code: Code for ``error``
    """
    succeeded: bool
    firmware_name: str = ""
    report: str = ""
    classifications: List[ClassifiedMod] = field(default_factory=list)
    error: str = ""
    error_code: Optional[ErrorCode] = None

    @classmethod
    def rejected(cls, error: str, code: ErrorCode) -> "ParamsReport":
        return cls(succeeded=False, error=error, error_code=code)

    def failure_codes(self) -> List[ErrorCode]:
        """Distinct error codes of failing classifications, in report order."""
        codes = []
        for item in self.classifications:
            if item.classification.is_failure:
                code = ErrorCode["E_" + item.classification.name]
                if code not in codes:
                    codes.append(code)
        return codes


def _field(doc: dict, key: str, kind: type, default: Any, where: str) -> Any:
    value = doc.get(key)
    if value is None:
        return default
    if kind is int and isinstance(value, bool):
        raise MalformedResponse(f"{where}.{key} must be an integer")
    if not isinstance(value, kind):
        raise MalformedResponse(f"{where}.{key} must be of type {kind.__name__}")
    return value


def _list(doc: dict, key: str, where: str) -> list:
    value = doc.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedResponse(f"{where}.{key} must be a list")
    return value


def parse_params(text: str) -> ReportedParams:
    """
    Parse a response payload into ReportedParams.

    Only the structure is checked here; missing fields keep their sentinel
    defaults.

    Raises:
        MalformedResponse: If the text is empty, not JSON, or has the
            wrong shape.
    """
    if not text:
        raise MalformedResponse("JSON string was empty")
    try:
        doc = json.loads(text)
    except ValueError as e:
        raise MalformedResponse(f"Response is invalid JSON: {e}")
    if not isinstance(doc, dict):
        raise MalformedResponse("Response is not a JSON object")

    mods = []
    for i, entry in enumerate(_list(doc, "mods", "response")):
        where = f"mods[{i}]"
        if not isinstance(entry, dict):
            raise MalformedResponse(f"{where} must be an object")
        values = []
        for j, value in enumerate(_list(entry, "values", where)):
            vwhere = f"{where}.values[{j}]"
            if not isinstance(value, dict):
                raise MalformedResponse(f"{vwhere} must be an object")
            values.append(ModValue(
                name=_field(value, "name", str, "", vwhere),
                value=_field(value, "value", int, VALUE_SENTINEL, vwhere),
            ))
        mods.append(ReportedMod(
            name=_field(entry, "name", str, "", where),
            enabled=_field(entry, "enabled", bool, False, where),
            values=values,
        ))

    return ReportedParams(
        name=_field(doc, "name", str, "", "response"),
        major_version=_field(doc, "major_version", int, -1, "response"),
        minor_version=_field(doc, "minor_version", int, -1, "response"),
        mods=mods,
    )


def classify_mod(mod: ReportedMod, manifest: Manifest) -> List[ClassifiedMod]:
    """
    Classify one reported mod against the manifest.

    Returns one verdict per rendered block: an unknown value yields a block
    for every unknown value, the first out-of-range value ends the value
    scan, and a mod without value problems also gets an informational
    block.
    """
    spec = manifest.find_mod_spec(mod.name)
    if spec is None:
        return [ClassifiedMod(Classification.UNKNOWN_MOD, mod)]

    verdicts = []
    value_problem = False
    if mod.enabled and not spec.permitted:
        verdicts.append(ClassifiedMod(Classification.ILLEGAL_MOD, mod))
    else:
        for value in mod.values:
            value_spec = manifest.find_value_spec(spec, value.name)
            if value_spec is None:
                value_problem = True
                verdicts.append(ClassifiedMod(Classification.UNKNOWN_VALUE, mod))
            elif not value_spec.contains(value.value):
                value_problem = True
                verdicts.append(ClassifiedMod(Classification.ILLEGAL_VALUE, mod))
                break

    if not value_problem:
        verdicts.append(ClassifiedMod(Classification.PERMITTED, mod))
    return verdicts


def validate_params(text: str, manifest: Manifest) -> ParamsReport:
    """
    Validate a parameters response against the active manifest.

    Each step is a hard gate:
        1. empty text, invalid JSON, or a missing name/version -> rejected
        2. no mods -> success with the "no mods" banner
        3. every mod classified in received order; any failing verdict
           fails the whole report

    A mod with an empty name marks the end of the real mods (firmware
    fills a fixed-size array with blank entries). Wherever it appears, the
    whole run ends with the "no mods" result and earlier verdicts are
    discarded.
    """
    if not manifest.is_loaded():
        return ParamsReport.rejected("Manifest is not loaded.", ErrorCode.E_MANIFEST_NOT_LOADED)

    try:
        params = parse_params(text)
    except MalformedResponse as e:
        logger.error(f"Malformed response: {e}")
        return ParamsReport.rejected(str(e), e.code)

    logger.debug(f"Parsed parameters: {params}")

    if params.name == "":
        return _missing("Response did not contain firmware name.")
    if params.major_version < 0:
        return _missing("Response did not contain major version number.")
    if params.minor_version < 0:
        return _missing("Response did not contain minor version number.")

    firmware_name = params.firmware_name
    logger.info(f"Detected firmware: {firmware_name}")
    logger.info("Checking firmware mods...")

    if not params.mods:
        logger.info("Controller firmware reported no mods.")
        return _no_mods(firmware_name)

    verdicts: List[ClassifiedMod] = []
    for index, mod in enumerate(params.mods):
        if mod.name == "":
            logger.debug(f"Blank mod entry at index {index}, reporting no mods")
            return _no_mods(firmware_name)
        verdicts.extend(classify_mod(mod, manifest))

    succeeded = not any(v.classification.is_failure for v in verdicts)
    return ParamsReport(
        succeeded=succeeded,
        firmware_name=firmware_name,
        report="".join(v.render() for v in verdicts),
        classifications=verdicts,
    )


def _missing(message: str) -> ParamsReport:
    logger.error(message)
    return ParamsReport.rejected(message, ErrorCode.E_MALFORMED_RESPONSE)


def _no_mods(firmware_name: str) -> ParamsReport:
    return ParamsReport(
        succeeded=True,
        firmware_name=firmware_name,
        report=NO_MODS_BANNER,
        classifications=[ClassifiedMod(Classification.NO_MODS)],
    )
