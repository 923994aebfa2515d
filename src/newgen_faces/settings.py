#!/usr/bin/env python3
"""
Run settings: the three working paths, the two policy flags, the game
version hint and the nation override table.

Settings can come from a JSON file using the same keys as the desktop
tool's config (preserve, xml_path, rtf_path, img_path, fm_version,
allow_duplicate, mapping_override) and from command-line flags, which win.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_XML_PATH = "./config.xml"
DEFAULT_RTF_PATH = "./newgen.rtf"
DEFAULT_IMAGES_PATH = "./"
DEFAULT_FM_VERSION = "2024"
DEFAULT_PRESERVE = False
DEFAULT_ALLOW_DUPLICATE = False

_YEAR_IN_PART = re.compile(r"\b(20\d{2})\b")


class SettingsError(Exception):
    """Settings file is unreadable or holds a value of the wrong type."""


@dataclass(frozen=True)
class RunSettings:
    xml_path: str = DEFAULT_XML_PATH
    rtf_path: str = DEFAULT_RTF_PATH
    img_path: str = DEFAULT_IMAGES_PATH
    fm_version: Optional[str] = None
    preserve: bool = DEFAULT_PRESERVE
    allow_duplicates: bool = DEFAULT_ALLOW_DUPLICATE
    mapping_override: Dict[str, str] = field(default_factory=dict)

    def resolved_fm_version(self) -> str:
        """Explicit version, else one guessed from the image path, else the default."""
        if self.fm_version:
            return self.fm_version
        return guess_fm_version(self.img_path) or DEFAULT_FM_VERSION


# JSON key -> (RunSettings field, expected type)
_SETTINGS_KEYS = {
    "xml_path": ("xml_path", str),
    "rtf_path": ("rtf_path", str),
    "img_path": ("img_path", str),
    "fm_version": ("fm_version", str),
    "preserve": ("preserve", bool),
    "allow_duplicate": ("allow_duplicates", bool),
    "allow_duplicates": ("allow_duplicates", bool),
    "mapping_override": ("mapping_override", dict),
}


def settings_from_dict(data: Dict[str, Any], base: Optional[RunSettings] = None) -> RunSettings:
    """Validate a decoded settings document and apply it over base."""
    if not isinstance(data, dict):
        raise SettingsError("settings must be a JSON object")

    values: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in _SETTINGS_KEYS:
            logger.warning(f"Ignoring unknown settings key: {key}")
            continue
        if value is None:
            continue
        name, expected = _SETTINGS_KEYS[key]
        # JSON numbers are a common way to write the year
        if name == "fm_version" and isinstance(value, int) and not isinstance(value, bool):
            value = str(value)
        if not isinstance(value, expected):
            raise SettingsError(
                f"{key} must be {expected.__name__}, got {type(value).__name__}"
            )
        if name == "mapping_override":
            bad = [k for k, v in value.items() if not isinstance(v, str)]
            if bad:
                raise SettingsError(f"mapping_override values must be strings: {bad}")
            value = dict(value)
        if name.endswith("_path") and not value:
            continue
        values[name] = value

    return replace(base or RunSettings(), **values)


def load_settings(path, base: Optional[RunSettings] = None) -> RunSettings:
    """Read a JSON settings file. A missing file yields base (or the defaults)."""
    path = Path(path)
    if not path.exists():
        logger.info(f"No settings file at {path}, using defaults")
        return base or RunSettings()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise SettingsError(f"could not read settings file {path}: {e}") from e
    return settings_from_dict(data, base)


def parse_override(text: str) -> tuple:
    """Parse a CODE=Category command-line override."""
    code, sep, category = text.partition("=")
    if not sep or not code.strip() or not category.strip():
        raise SettingsError(f"override must look like CODE=Category, got {text!r}")
    return code.strip(), category.strip()


def guess_fm_version(path: Optional[str]) -> Optional[str]:
    """
    Find the game year in a path such as
    ".../Sports Interactive/Football Manager 2023/graphics/faces".
    Only path components mentioning "football manager" or "fm" are considered.
    """
    if not path:
        return None
    parts = re.split(r"[\\/]+", str(path))
    for part in parts:
        lowered = part.lower()
        if "football manager" in lowered or "fm" in lowered:
            match = _YEAR_IN_PART.search(part)
            if match:
                return match.group(1)
            compact = re.search(r"fm\s*(20\d{2})", lowered)
            if compact:
                return compact.group(1)
    return None


def expand_path(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))
