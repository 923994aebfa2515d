#!/usr/bin/env python3
"""
Nation to ethnic category classification.

A read-only base table maps Football Manager nation codes to one of the
visual ethnic categories used to group face images. A user supplied override
layer sits on top of it and is validated and replaced as a whole.
"""

import logging
import re
import unicodedata
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class EthnicCategory(str, Enum):
    """Closed set of face-image buckets. Values are the on-disk folder names."""

    AFRICAN = "African"
    ASIAN = "Asian"
    CAUCASIAN = "Caucasian"
    CENTRAL_EUROPEAN = "Central European"
    EECA = "EECA"
    ITALMED = "Italmed"
    MENA = "MENA"
    MESA = "MESA"
    SAMED = "SAMed"
    SCANDINAVIAN = "Scandinavian"
    SEASIAN = "Seasian"
    SOUTH_AMERICAN = "South American"
    SPANMED = "SpanMed"
    YUGOGREEK = "YugoGreek"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, value: str) -> Optional["EthnicCategory"]:
        """Exact (case-sensitive) lookup by folder name. Returns None if unknown."""
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip())
        except ValueError:
            return None


class UnknownNationError(Exception):
    """One or more nation codes are in neither the override layer nor the base table."""

    def __init__(self, codes: Iterable[str]):
        # Distinct, first-seen order
        self.codes: List[str] = list(dict.fromkeys(codes))
        super().__init__(
            "ethnic not found for country initials: " + ", ".join(self.codes)
        )


class InvalidEthnicCategoryError(Exception):
    """An override maps a nation to a value outside EthnicCategory."""

    def __init__(self, code: str, value: str):
        self.code = code
        self.value = value
        valid = ", ".join(c.value for c in EthnicCategory)
        super().__init__(
            f"ethnic value not found: {value!r} for country {code!r} "
            f"(available: {valid})"
        )


# (code, name, category) - codes follow the Football Manager nation short names
_BASE_NATIONS: Tuple[Tuple[str, str, str], ...] = (
    # British Isles and the English speaking world
    ("ENG", "England", "Caucasian"),
    ("SCO", "Scotland", "Caucasian"),
    ("WAL", "Wales", "Caucasian"),
    ("NIR", "Northern Ireland", "Caucasian"),
    ("IRL", "Republic of Ireland", "Caucasian"),
    ("USA", "United States", "Caucasian"),
    ("CAN", "Canada", "Caucasian"),
    ("AUS", "Australia", "Caucasian"),
    ("NZL", "New Zealand", "Caucasian"),
    ("FRA", "France", "Caucasian"),
    ("BEL", "Belgium", "Caucasian"),
    ("NED", "Netherlands", "Caucasian"),
    ("LUX", "Luxembourg", "Caucasian"),
    ("MON", "Monaco", "Caucasian"),
    # Scandinavia
    ("SWE", "Sweden", "Scandinavian"),
    ("NOR", "Norway", "Scandinavian"),
    ("DEN", "Denmark", "Scandinavian"),
    ("FIN", "Finland", "Scandinavian"),
    ("ISL", "Iceland", "Scandinavian"),
    ("FRO", "Faroe Islands", "Scandinavian"),
    # Central Europe
    ("GER", "Germany", "Central European"),
    ("AUT", "Austria", "Central European"),
    ("SUI", "Switzerland", "Central European"),
    ("LIE", "Liechtenstein", "Central European"),
    ("POL", "Poland", "Central European"),
    ("CZE", "Czech Republic", "Central European"),
    ("SVK", "Slovakia", "Central European"),
    ("HUN", "Hungary", "Central European"),
    # Eastern Europe and Central Asia
    ("RUS", "Russia", "EECA"),
    ("UKR", "Ukraine", "EECA"),
    ("BLR", "Belarus", "EECA"),
    ("MDA", "Moldova", "EECA"),
    ("ROU", "Romania", "EECA"),
    ("BUL", "Bulgaria", "EECA"),
    ("LTU", "Lithuania", "EECA"),
    ("LVA", "Latvia", "EECA"),
    ("EST", "Estonia", "EECA"),
    ("GEO", "Georgia", "EECA"),
    ("ARM", "Armenia", "EECA"),
    ("AZE", "Azerbaijan", "EECA"),
    ("KAZ", "Kazakhstan", "EECA"),
    ("KGZ", "Kyrgyzstan", "EECA"),
    ("TJK", "Tajikistan", "EECA"),
    ("TKM", "Turkmenistan", "EECA"),
    ("UZB", "Uzbekistan", "EECA"),
    # Balkans and Greece
    ("SRB", "Serbia", "YugoGreek"),
    ("CRO", "Croatia", "YugoGreek"),
    ("BIH", "Bosnia and Herzegovina", "YugoGreek"),
    ("MNE", "Montenegro", "YugoGreek"),
    ("MKD", "North Macedonia", "YugoGreek"),
    ("SVN", "Slovenia", "YugoGreek"),
    ("ALB", "Albania", "YugoGreek"),
    ("KVX", "Kosovo", "YugoGreek"),
    ("GRE", "Greece", "YugoGreek"),
    ("CYP", "Cyprus", "YugoGreek"),
    # Italy and the central Mediterranean
    ("ITA", "Italy", "Italmed"),
    ("MLT", "Malta", "Italmed"),
    ("SMR", "San Marino", "Italmed"),
    # Iberia
    ("ESP", "Spain", "SpanMed"),
    ("POR", "Portugal", "SpanMed"),
    ("AND", "Andorra", "SpanMed"),
    ("GIB", "Gibraltar", "SpanMed"),
    # Southern cone
    ("ARG", "Argentina", "SAMed"),
    ("URU", "Uruguay", "SAMed"),
    ("CHI", "Chile", "SAMed"),
    # Rest of Latin America
    ("BRA", "Brazil", "South American"),
    ("COL", "Colombia", "South American"),
    ("PER", "Peru", "South American"),
    ("VEN", "Venezuela", "South American"),
    ("ECU", "Ecuador", "South American"),
    ("BOL", "Bolivia", "South American"),
    ("PAR", "Paraguay", "South American"),
    ("MEX", "Mexico", "South American"),
    ("CRC", "Costa Rica", "South American"),
    ("PAN", "Panama", "South American"),
    ("HON", "Honduras", "South American"),
    ("GUA", "Guatemala", "South American"),
    ("SLV", "El Salvador", "South American"),
    ("NCA", "Nicaragua", "South American"),
    ("CUB", "Cuba", "South American"),
    ("DOM", "Dominican Republic", "South American"),
    ("PUR", "Puerto Rico", "South American"),
    # Sub-Saharan Africa and the Caribbean
    ("NGA", "Nigeria", "African"),
    ("GHA", "Ghana", "African"),
    ("CIV", "Ivory Coast", "African"),
    ("SEN", "Senegal", "African"),
    ("CMR", "Cameroon", "African"),
    ("MLI", "Mali", "African"),
    ("BFA", "Burkina Faso", "African"),
    ("GUI", "Guinea", "African"),
    ("GNB", "Guinea-Bissau", "African"),
    ("GAM", "Gambia", "African"),
    ("SLE", "Sierra Leone", "African"),
    ("LBR", "Liberia", "African"),
    ("TOG", "Togo", "African"),
    ("BEN", "Benin", "African"),
    ("NIG", "Niger", "African"),
    ("CPV", "Cape Verde", "African"),
    ("COD", "DR Congo", "African"),
    ("CGO", "Congo", "African"),
    ("GAB", "Gabon", "African"),
    ("EQG", "Equatorial Guinea", "African"),
    ("CTA", "Central African Republic", "African"),
    ("CHA", "Chad", "African"),
    ("ANG", "Angola", "African"),
    ("ZAM", "Zambia", "African"),
    ("ZIM", "Zimbabwe", "African"),
    ("MOZ", "Mozambique", "African"),
    ("RSA", "South Africa", "African"),
    ("NAM", "Namibia", "African"),
    ("BOT", "Botswana", "African"),
    ("LES", "Lesotho", "African"),
    ("SWZ", "Eswatini", "African"),
    ("MWI", "Malawi", "African"),
    ("MAD", "Madagascar", "African"),
    ("KEN", "Kenya", "African"),
    ("UGA", "Uganda", "African"),
    ("TAN", "Tanzania", "African"),
    ("RWA", "Rwanda", "African"),
    ("BDI", "Burundi", "African"),
    ("ETH", "Ethiopia", "African"),
    ("ERI", "Eritrea", "African"),
    ("SOM", "Somalia", "African"),
    ("SDN", "Sudan", "African"),
    ("SSD", "South Sudan", "African"),
    ("JAM", "Jamaica", "African"),
    ("TRI", "Trinidad and Tobago", "African"),
    ("HAI", "Haiti", "African"),
    ("BRB", "Barbados", "African"),
    ("GRN", "Grenada", "African"),
    ("SUR", "Suriname", "African"),
    ("GUY", "Guyana", "African"),
    ("CUW", "Curacao", "African"),
    # Middle East and North Africa
    ("MAR", "Morocco", "MENA"),
    ("ALG", "Algeria", "MENA"),
    ("TUN", "Tunisia", "MENA"),
    ("LBY", "Libya", "MENA"),
    ("EGY", "Egypt", "MENA"),
    ("MTN", "Mauritania", "MENA"),
    ("KSA", "Saudi Arabia", "MENA"),
    ("UAE", "United Arab Emirates", "MENA"),
    ("QAT", "Qatar", "MENA"),
    ("KUW", "Kuwait", "MENA"),
    ("BHR", "Bahrain", "MENA"),
    ("OMA", "Oman", "MENA"),
    ("YEM", "Yemen", "MENA"),
    ("JOR", "Jordan", "MENA"),
    ("LIB", "Lebanon", "MENA"),
    ("SYR", "Syria", "MENA"),
    ("IRQ", "Iraq", "MENA"),
    ("PLE", "Palestine", "MENA"),
    ("ISR", "Israel", "MENA"),
    ("TUR", "Turkey", "MENA"),
    # Middle East and South Asia
    ("IRN", "Iran", "MESA"),
    ("AFG", "Afghanistan", "MESA"),
    ("PAK", "Pakistan", "MESA"),
    ("IND", "India", "MESA"),
    ("BAN", "Bangladesh", "MESA"),
    ("SRI", "Sri Lanka", "MESA"),
    ("NEP", "Nepal", "MESA"),
    ("BHU", "Bhutan", "MESA"),
    ("MDV", "Maldives", "MESA"),
    # East Asia
    ("CHN", "China", "Asian"),
    ("JPN", "Japan", "Asian"),
    ("KOR", "South Korea", "Asian"),
    ("PRK", "North Korea", "Asian"),
    ("TPE", "Chinese Taipei", "Asian"),
    ("HKG", "Hong Kong", "Asian"),
    ("MAC", "Macau", "Asian"),
    ("MGL", "Mongolia", "Asian"),
    # South East Asia
    ("THA", "Thailand", "Seasian"),
    ("VIE", "Vietnam", "Seasian"),
    ("IDN", "Indonesia", "Seasian"),
    ("MAS", "Malaysia", "Seasian"),
    ("SIN", "Singapore", "Seasian"),
    ("PHI", "Philippines", "Seasian"),
    ("CAM", "Cambodia", "Seasian"),
    ("LAO", "Laos", "Seasian"),
    ("MYA", "Myanmar", "Seasian"),
    ("BRU", "Brunei", "Seasian"),
    ("TLS", "Timor-Leste", "Seasian"),
    ("FIJ", "Fiji", "Seasian"),
    ("PNG", "Papua New Guinea", "Seasian"),
)

BASE_TABLE: Mapping[str, EthnicCategory] = MappingProxyType(
    {code: EthnicCategory(category) for code, _, category in _BASE_NATIONS}
)

# Alternative spellings seen in exports, keyed by folded name
_NAME_ALIASES = {
    "holland": "NED",
    "the netherlands": "NED",
    "ireland": "IRL",
    "eire": "IRL",
    "united states of america": "USA",
    "america": "USA",
    "czechia": "CZE",
    "macedonia": "MKD",
    "fyr macedonia": "MKD",
    "bosnia": "BIH",
    "bosnia-herzegovina": "BIH",
    "cote d'ivoire": "CIV",
    "cote divoire": "CIV",
    "congo dr": "COD",
    "democratic republic of congo": "COD",
    "korea republic": "KOR",
    "korea dpr": "PRK",
    "republic of korea": "KOR",
    "taiwan": "TPE",
    "turkiye": "TUR",
    "iran ir": "IRN",
    "cabo verde": "CPV",
    "swaziland": "SWZ",
    "east timor": "TLS",
    "burma": "MYA",
    "uae": "UAE",
}

_CODE_PATTERN = re.compile(r"^[A-Za-z]{3}$")
# Second nationality separators: "ENG / IRL", "ENG (IRL)", "ENG, IRL"
_DUAL_SPLIT = re.compile(r"\s*[/(,;]\s*")


def _fold(text: str) -> str:
    """Lowercase and strip accents so 'Côte d'Ivoire' matches 'cote d'ivoire'."""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = stripped.replace("’", "'")
    return " ".join(stripped.lower().split())


def _build_name_index() -> Dict[str, str]:
    index = {_fold(name): code for code, name, _ in _BASE_NATIONS}
    index.update(_NAME_ALIASES)
    return index


NAME_TO_CODE: Mapping[str, str] = MappingProxyType(_build_name_index())


def normalize_nation(text: Optional[str]) -> str:
    """
    Normalize a nation field to the code form the table is keyed by.

    Accepts codes in any case ("eng"), full names ("England") and dual
    nationality forms ("ENG / IRL"); only the first nationality is kept.
    Text that cannot be mapped is returned cleaned but otherwise as-is so
    it can be reported back to the user.
    """
    if not text:
        return ""
    cleaned = " ".join(text.split())
    if not cleaned:
        return ""

    first = _DUAL_SPLIT.split(cleaned, maxsplit=1)[0].strip()
    if not first:
        return ""

    if _CODE_PATTERN.match(first):
        return first.upper()

    code = NAME_TO_CODE.get(_fold(first))
    if code:
        return code
    return first


class NationEthnicTable:
    """
    Base table plus override layer.

    The base table is never mutated. Overrides are held as an immutable
    snapshot that apply_overrides() swaps out wholesale after validation,
    so a failed call leaves the previous snapshot in place.
    """

    def __init__(
        self,
        base: Optional[Mapping[str, EthnicCategory]] = None,
        overrides: Optional[Mapping[str, str]] = None,
    ):
        self._base: Mapping[str, EthnicCategory] = (
            BASE_TABLE if base is None else MappingProxyType(dict(base))
        )
        self._overrides: Mapping[str, EthnicCategory] = MappingProxyType({})
        if overrides:
            self.apply_overrides(overrides)

    @property
    def overrides(self) -> Mapping[str, EthnicCategory]:
        return self._overrides

    def resolve(self, code: str) -> EthnicCategory:
        """Override layer first, then base table. Raises UnknownNationError."""
        key = normalize_nation(code)
        category = self._overrides.get(key)
        if category is None:
            category = self._base.get(key)
        if category is None:
            raise UnknownNationError([key or code])
        return category

    def apply_overrides(self, entries: Mapping[str, str]) -> None:
        """
        Validate every entry, then replace the override layer.

        Raises InvalidEthnicCategoryError on the first invalid value; nothing
        is applied in that case.
        """
        snapshot: Dict[str, EthnicCategory] = {}
        for code, value in entries.items():
            category = (
                value if isinstance(value, EthnicCategory) else EthnicCategory.from_name(value)
            )
            if category is None:
                raise InvalidEthnicCategoryError(code, value)
            key = normalize_nation(code)
            previous = snapshot.get(key)
            if previous is not None and previous is not category:
                logger.warning(
                    f"Override {code!r} also maps to {key}: {previous.value} replaced by {category.value}"
                )
            snapshot[key] = category

        self._overrides = MappingProxyType(snapshot)
        logger.info(f"Applied {len(snapshot)} nation override(s)")

    def __contains__(self, code: str) -> bool:
        key = normalize_nation(code)
        return key in self._overrides or key in self._base
