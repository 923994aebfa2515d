#!/usr/bin/env python3
"""
Extract newgen players from a Football Manager RTF export.

The "print to text file" report is an RTF document whose body is a
pipe-delimited table (one player per line). Parsing happens in three steps:

1. tokenize_rtf() lexes the document into group, control word and text tokens.
2. rtf_to_text() interprets those tokens, drops non-body destinations
   (font table, colour table, ...) and rebuilds plain lines of text.
3. parse_player_rows() splits the lines into cells, locates the ID and
   nation columns and yields (player_id, nation_code) rows, which
   resolve_rows() classifies through a NationEthnicTable.
"""

import logging
import re
from pathlib import Path
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple

from nation_ethnicity import (
    EthnicCategory,
    NationEthnicTable,
    UnknownNationError,
    normalize_nation,
)

logger = logging.getLogger(__name__)

# Token kinds
GROUP_START = "group_start"
GROUP_END = "group_end"
CONTROL_WORD = "control_word"
CONTROL_SYMBOL = "control_symbol"
HEX = "hex"
TEXT = "text"


class Token(NamedTuple):
    kind: str
    value: str = ""
    param: Optional[int] = None


class Player(NamedTuple):
    player_id: str
    ethnic: EthnicCategory


# Groups whose content is never part of the visible document body
DESTINATIONS = frozenset(
    {
        "fonttbl",
        "colortbl",
        "stylesheet",
        "listtable",
        "listoverridetable",
        "rsidtbl",
        "info",
        "generator",
        "pict",
        "object",
        "header",
        "headerl",
        "headerr",
        "headerf",
        "footer",
        "footerl",
        "footerr",
        "footerf",
        "footnote",
        "themedata",
        "colorschememapping",
        "latentstyles",
        "datastore",
        "xmlnstbl",
        "mmathPr",
    }
)

# Control words that map straight to a piece of text
_WORD_TEXT = {
    "par": "\n",
    "line": "\n",
    "row": "\n",
    "sect": "\n",
    "page": "\n",
    "cell": "|",
    "nestcell": "|",
    "tab": "\t",
    "emdash": "—",
    "endash": "–",
    "emspace": " ",
    "enspace": " ",
    "qmspace": " ",
    "bullet": "•",
    "lquote": "‘",
    "rquote": "’",
    "ldblquote": "“",
    "rdblquote": "”",
}

_SYMBOL_TEXT = {
    "~": " ",
    "_": "-",
    "-": "",
}

_TEXT_STOP = re.compile(r"[\\{}\r\n]")

ID_HEADERS = frozenset({"uid", "unique id", "id", "player id"})
NATION_HEADERS = frozenset({"nat", "nat.", "nation", "nationality"})

_NUMERIC_ID = re.compile(r"^\d+$")
_NATION_CODE = re.compile(r"^[A-Z]{3}\b")
_SEPARATOR_CELL = re.compile(r"^[-=+_ ]*$")


def tokenize_rtf(content: str) -> Iterator[Token]:
    """Lex RTF source into tokens. Raw line breaks in the source are ignored."""
    i = 0
    n = len(content)
    while i < n:
        ch = content[i]
        if ch == "{":
            yield Token(GROUP_START)
            i += 1
        elif ch == "}":
            yield Token(GROUP_END)
            i += 1
        elif ch == "\\":
            i += 1
            if i >= n:
                break
            nxt = content[i]
            if nxt.isalpha() and nxt.isascii():
                start = i
                while i < n and content[i].isalpha() and content[i].isascii():
                    i += 1
                name = content[start:i]
                param = None
                num_start = i
                if i < n and content[i] == "-":
                    i += 1
                while i < n and content[i].isdigit():
                    i += 1
                if i > num_start and content[num_start:i] != "-":
                    param = int(content[num_start:i])
                else:
                    i = num_start
                # A single space delimits the control word and is consumed
                if i < n and content[i] == " ":
                    i += 1
                yield Token(CONTROL_WORD, name, param)
            elif nxt == "'":
                hex_digits = content[i + 1 : i + 3]
                i += 3
                try:
                    yield Token(HEX, hex_digits, int(hex_digits, 16))
                except ValueError:
                    continue
            elif nxt in "\\{}":
                yield Token(TEXT, nxt)
                i += 1
            elif nxt in "\r\n":
                # Escaped line break is equivalent to \par
                yield Token(CONTROL_WORD, "par")
                i += 1
            else:
                yield Token(CONTROL_SYMBOL, nxt)
                i += 1
        elif ch in "\r\n":
            i += 1
        else:
            match = _TEXT_STOP.search(content, i)
            end = match.start() if match else n
            yield Token(TEXT, content[i:end])
            i = end


def rtf_to_text(content: str, encoding: str = "cp1252") -> str:
    """Interpret RTF tokens and return the visible body as plain text."""
    out: List[str] = []
    # Per-group state: [skip, unicode fallback length]
    stack: List[List] = []
    skip = False
    uc = 1
    pending_fallback = 0
    group_fresh = False

    for token in tokenize_rtf(content):
        if token.kind == GROUP_START:
            stack.append([skip, uc])
            group_fresh = True
            pending_fallback = 0
            continue
        if token.kind == GROUP_END:
            if stack:
                skip, uc = stack.pop()
            group_fresh = False
            pending_fallback = 0
            continue

        first_in_group = group_fresh
        group_fresh = False

        if token.kind == CONTROL_SYMBOL:
            if token.value == "*" and first_in_group:
                skip = True
            elif not skip:
                out.append(_SYMBOL_TEXT.get(token.value, ""))
            continue

        if token.kind == CONTROL_WORD:
            name = token.value
            if name in DESTINATIONS:
                skip = True
                continue
            if name == "uc" and token.param is not None:
                uc = max(token.param, 0)
                continue
            if skip:
                continue
            if name == "u" and token.param is not None:
                code_point = token.param + 65536 if token.param < 0 else token.param
                out.append(chr(code_point))
                pending_fallback = uc
                continue
            text = _WORD_TEXT.get(name)
            if text is not None:
                out.append(text)
                pending_fallback = 0
            continue

        if skip:
            continue

        if token.kind == HEX:
            if pending_fallback:
                pending_fallback -= 1
                continue
            out.append(bytes([token.param]).decode(encoding, errors="replace"))
            continue

        # TEXT
        text = token.value
        if pending_fallback:
            dropped = min(pending_fallback, len(text))
            text = text[dropped:]
            pending_fallback -= dropped
        out.append(text)

    return "".join(out)


def split_fields(line: str) -> List[str]:
    """Split one report line into stripped cells. Non-table lines give []."""
    stripped = line.strip()
    if not stripped:
        return []
    if "|" in stripped:
        if stripped.startswith("|"):
            stripped = stripped[1:]
        if stripped.endswith("|"):
            stripped = stripped[:-1]
        return [cell.strip() for cell in stripped.split("|")]
    if "\t" in stripped:
        return [cell.strip() for cell in stripped.split("\t")]
    return []


def find_columns(fields: Sequence[str]) -> Optional[Tuple[int, int]]:
    """Return (id_index, nation_index) if fields look like the header row."""
    id_index = nation_index = None
    for index, cell in enumerate(fields):
        label = cell.strip().lower()
        if id_index is None and label in ID_HEADERS:
            id_index = index
        elif nation_index is None and label in NATION_HEADERS:
            nation_index = index
    if id_index is None or nation_index is None:
        return None
    return id_index, nation_index


def _is_separator(fields: Sequence[str]) -> bool:
    return all(_SEPARATOR_CELL.match(cell) for cell in fields)


def _guess_row(
    fields: Sequence[str], table: Optional[NationEthnicTable] = None
) -> Optional[Tuple[str, str]]:
    """
    Header-less fallback: the first all-digit cell is the ID. The nation is the
    first code-like cell the table knows, else the last code-like cell
    (position codes such as AMC come before the nationality).
    """
    player_id = next((cell for cell in fields if _NUMERIC_ID.match(cell)), None)
    candidates = [cell for cell in fields if _NATION_CODE.match(cell)]
    nation = None
    if table is not None:
        nation = next((cell for cell in candidates if cell in table), None)
    if nation is None and candidates:
        nation = candidates[-1]
    if player_id is None or nation is None:
        return None
    return player_id, nation


def parse_player_rows(
    text: str, table: Optional[NationEthnicTable] = None
) -> List[Tuple[str, str]]:
    """
    Turn reconstructed report text into (player_id, nation_code) rows.

    The header row (UID / Nat columns) fixes the column positions; it may be
    repeated on every printed page. Separator lines, blank rows and rows
    missing either value are skipped.
    """
    rows: List[Tuple[str, str]] = []
    columns: Optional[Tuple[int, int]] = None
    skipped = 0

    for line in text.splitlines():
        fields = split_fields(line)
        if not fields or _is_separator(fields):
            continue

        header = find_columns(fields)
        if header is not None:
            columns = header
            continue

        if columns is not None:
            id_index, nation_index = columns
            if len(fields) <= max(id_index, nation_index):
                skipped += 1
                continue
            player_id = fields[id_index]
            nation = normalize_nation(fields[nation_index])
            if not player_id or not nation:
                skipped += 1
                continue
            rows.append((player_id, nation))
        else:
            guessed = _guess_row(fields, table)
            if guessed is None:
                skipped += 1
                continue
            player_id, nation = guessed
            rows.append((player_id, normalize_nation(nation)))

    if skipped:
        logger.debug(f"Skipped {skipped} malformed row(s)")
    return rows


def resolve_rows(
    rows: Sequence[Tuple[str, str]], table: NationEthnicTable
) -> List[Player]:
    """
    Classify every row. Unknown nations are collected across all rows and
    raised once as a single UnknownNationError.
    """
    players: List[Player] = []
    unknown: List[str] = []
    for player_id, nation in rows:
        try:
            players.append(Player(player_id, table.resolve(nation)))
        except UnknownNationError as e:
            unknown.extend(e.codes)
    if unknown:
        raise UnknownNationError(unknown)
    return players


def read_export(path) -> str:
    """Read an export file and return its plain text body."""
    raw = Path(path).read_bytes()
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError:
        content = raw.decode("cp1252", errors="replace")
    if content.startswith("\ufeff"):
        content = content[1:]
    # Some exports are saved as plain text despite the extension
    if not content.lstrip().startswith("{\\rtf"):
        return content
    return rtf_to_text(content)


def extract_players(content: str, table: NationEthnicTable) -> List[Player]:
    """Parse RTF (or already plain) report content into classified players."""
    text = rtf_to_text(content) if content.lstrip().startswith("{\\rtf") else content
    return resolve_rows(parse_player_rows(text, table), table)


def get_players(path, table: NationEthnicTable) -> List[Player]:
    """Read the export at path and return classified players in source order."""
    rows = parse_player_rows(read_export(path), table)
    players = resolve_rows(rows, table)
    logger.info(f"Extracted {len(players)} players from {path}")
    return players
