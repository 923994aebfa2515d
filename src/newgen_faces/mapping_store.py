#!/usr/bin/env python3
"""
Face mapping store.

Reads and writes the Football Manager graphics config.xml that maps person
IDs to face images:

    <record>
        <boolean id="preload" value="false"/>
        <boolean id="amap" value="false"/>
        <list id="maps">
            <record from="Caucasian/1234.png" to="graphics/pictures/person/r-2000123456/portrait"/>
        </list>
    </record>

Every save also keeps a JSON history file beside config.xml so assignments
survive the game (or the user) resetting config.xml.
"""

import json
import logging
import os
import re
import tempfile
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

HISTORY_SUFFIX = ".history.json"
FLAG_IDS = ("preload", "amap")

# Accepts both "person/r-<id>/portrait" and "person/<id>/portrait"
_PERSON_KEY = re.compile(r"graphics/pictures/person/(?:r-)?([^/]+)/portrait/?$")
_YEAR = re.compile(r"(20\d{2}|\d{2})")


class MappingIOError(Exception):
    """Reading or writing the mapping file or its history failed."""

    def __init__(self, path, message: str):
        self.path = str(path)
        super().__init__(f"{message}: {path}")


class FormatVariant(Enum):
    """Structural variants of config.xml across game versions."""

    FM2021_PLUS = "fm2021+"
    LEGACY = "legacy"

    @classmethod
    def from_hint(cls, hint: Union[str, int, "FormatVariant", None]) -> "FormatVariant":
        """
        Map a game version hint ("2024", "FM20", 2019, ...) to a variant.

        Versions up to 2020 use plain person IDs, later ones prefix them
        with "r-". Missing or unrecognised hints get the current format.
        """
        if isinstance(hint, FormatVariant):
            return hint
        if hint is None or hint == "":
            return cls.FM2021_PLUS
        text = str(hint).strip().lower()
        for variant in cls:
            if text == variant.value:
                return variant
        match = _YEAR.search(text)
        if not match:
            return cls.FM2021_PLUS
        year = int(match.group(1))
        if year < 100:
            year += 2000
        return cls.LEGACY if year <= 2020 else cls.FM2021_PLUS

    def person_key(self, player_id: str) -> str:
        if self is FormatVariant.LEGACY:
            return f"graphics/pictures/person/{player_id}/portrait"
        return f"graphics/pictures/person/r-{player_id}/portrait"


def parse_person_key(key: Optional[str]) -> Optional[str]:
    """Extract the player ID from a 'to' attribute, in either variant."""
    if not key:
        return None
    match = _PERSON_KEY.search(key.strip().replace("\\", "/"))
    return match.group(1) if match else None


def default_history_path(xml_path) -> Path:
    xml_path = Path(xml_path)
    return xml_path.with_name(xml_path.stem + HISTORY_SUFFIX)


def _atomic_write_text(path: Path, text: str):
    """Write text next to path, then move it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


class MappingStore:
    """In-memory player ID -> relative image path table."""

    def __init__(
        self,
        path,
        variant: FormatVariant = FormatVariant.FM2021_PLUS,
        history_path=None,
    ):
        self.path = Path(path)
        self.variant = variant
        self.history_path = (
            Path(history_path) if history_path else default_history_path(self.path)
        )
        self.flags: Dict[str, bool] = {flag: False for flag in FLAG_IDS}
        self._entries: Dict[str, str] = {}

    @classmethod
    def open(cls, path, format_hint=None, history_path=None) -> "MappingStore":
        """
        Load history, then overlay whatever config.xml currently holds.

        A missing config.xml (or history) simply contributes nothing.
        """
        store = cls(path, FormatVariant.from_hint(format_hint), history_path)
        from_history = store._load_history()
        from_xml = store._load_xml()
        logger.info(
            f"Opened mapping {store.path} ({store.variant.value}): "
            f"{len(store)} entries ({from_xml} from XML, {from_history} from history)"
        )
        return store

    def _load_xml(self) -> int:
        if not self.path.exists():
            return 0
        try:
            content = self.path.read_bytes()
        except OSError as e:
            raise MappingIOError(self.path, "could not read mapping file") from e
        if not content.strip():
            return 0
        if b"<" not in content:
            raise MappingIOError(self.path, "mapping file is not XML")

        try:
            soup = BeautifulSoup(content, "xml")
        except Exception as e:
            raise MappingIOError(self.path, "could not parse mapping file") from e
        if soup.find() is None:
            raise MappingIOError(self.path, "mapping file is not XML")

        for flag in soup.find_all("boolean"):
            flag_id = flag.get("id")
            if flag_id in self.flags:
                self.flags[flag_id] = str(flag.get("value", "")).lower() == "true"

        count = 0
        for record in soup.find_all("record"):
            image = record.get("from")
            player_id = parse_person_key(record.get("to"))
            if image is None or player_id is None:
                continue
            self._entries[player_id] = image
            count += 1
        return count

    def _load_history(self) -> int:
        if not self.history_path.exists():
            return 0
        try:
            with open(self.history_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise MappingIOError(self.history_path, "could not read mapping history") from e

        mappings = data.get("mappings") if isinstance(data, dict) else None
        if not isinstance(mappings, dict):
            raise MappingIOError(self.history_path, "mapping history has no 'mappings' table")

        count = 0
        for player_id, image in mappings.items():
            if isinstance(image, str):
                self._entries[str(player_id)] = image
                count += 1
        return count

    def exist(self, player_id: str) -> bool:
        return player_id in self._entries

    def get(self, player_id: str) -> Optional[str]:
        return self._entries.get(player_id)

    def map_to_image(self, player_id: str, relative_path: str):
        """Insert or overwrite. Paths are stored with forward slashes."""
        self._entries[player_id] = str(relative_path).replace("\\", "/")

    def entries(self) -> Dict[str, str]:
        return dict(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def save(self):
        """Persist the mapping to the JSON history file."""
        payload = {
            "format": self.variant.value,
            "saved_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "mappings": self._entries,
        }
        try:
            _atomic_write_text(self.history_path, json.dumps(payload, indent=2) + "\n")
        except OSError as e:
            raise MappingIOError(self.history_path, "could not save mapping history") from e
        logger.info(f"Saved {len(self)} mappings to {self.history_path}")

    def to_xml(self) -> str:
        root = ET.Element("record")
        for flag in FLAG_IDS:
            value = "true" if self.flags.get(flag) else "false"
            ET.SubElement(root, "boolean", {"id": flag, "value": value})
        maps = ET.SubElement(root, "list", {"id": "maps"})
        for player_id, image in self._entries.items():
            ET.SubElement(
                maps, "record", {"from": image, "to": self.variant.person_key(player_id)}
            )
        tree = ET.ElementTree(root)
        ET.indent(tree, space="\t")
        body = ET.tostring(root, encoding="unicode")
        return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n"

    def write(self, path=None):
        """Replace the XML file at path (default: the file opened) with the full mapping."""
        target = Path(path) if path is not None else self.path
        try:
            _atomic_write_text(target, self.to_xml())
        except OSError as e:
            raise MappingIOError(target, "could not write mapping file") from e
        logger.info(f"Wrote {len(self)} mappings to {target}")
