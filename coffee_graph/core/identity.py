"""
Natural-key identities for shared graph nodes.

Pure functions from raw source strings to node ids. Ids are built from
alphanumeric parts joined by "-", so re-normalizing an id returns it
unchanged and no id is ever empty or carries a dangling separator.
"""

import re
from typing import List, Optional

from coffee_graph.utils.unicode_handler import clean_unicode_text, normalize_match_text, strip_to_alnum

MULTI_VALUE_DELIMITERS = re.compile(r'[/,]')
ID_SEPARATOR = "-"

ROAST_LEVELS = ("Light", "Medium-Light", "Medium", "Medium-Dark", "Dark", "Omni")

_ROAST_ALIASES = {
    "light": "Light",
    "light roast": "Light",
    "filter": "Light",
    "medium light": "Medium-Light",
    "light medium": "Medium-Light",
    "medium": "Medium",
    "medium roast": "Medium",
    "medium dark": "Medium-Dark",
    "dark medium": "Medium-Dark",
    "dark": "Dark",
    "dark roast": "Dark",
    "espresso": "Dark",
    "omni": "Omni",
    "omniroast": "Omni",
    "omni roast": "Omni",
}


def split_multi_value(value: Optional[str]) -> List[str]:
    """
    Split a delimiter-joined source field into distinct trimmed values.

    "Costa Rica / Ethiopia" -> ["Costa Rica", "Ethiopia"]. Order of first
    appearance is kept; blanks and repeats are dropped.
    """
    if not value or not isinstance(value, str):
        return []

    values = []
    for part in MULTI_VALUE_DELIMITERS.split(value):
        part = clean_unicode_text(part)
        if part and part not in values:
            values.append(part)
    return values


def _id_part(text: str) -> str:
    words = (strip_to_alnum(word) for word in text.split())
    return "".join(word[0].upper() + word[1:] for word in words if word)


def node_id(*components: Optional[str]) -> Optional[str]:
    """
    Build a natural-key id from one or more raw components.

    Each component (and each "-" separated part inside it) keeps only its
    letters and digits, with the first letter of every word upper-cased.
    Blank parts are dropped. Returns None when nothing usable remains.
    """
    parts = []
    for component in components:
        if not component:
            continue
        for piece in clean_unicode_text(str(component)).split(ID_SEPARATOR):
            part = _id_part(piece)
            if part:
                parts.append(part)

    if not parts:
        return None
    return ID_SEPARATOR.join(parts)


def origin_id(country: Optional[str], region: Optional[str] = None) -> Optional[str]:
    """Origin id: the core country, or country plus region when region is set."""
    country_part = node_id(country)
    if country_part is None:
        return None
    region_part = node_id(region)
    if region_part is None:
        return country_part
    return f"{country_part}{ID_SEPARATOR}{region_part}"


def note_id(raw_text: Optional[str]) -> Optional[str]:
    """TastingNote id: the lower-cased, whitespace-normalized note text."""
    text = normalize_match_text(raw_text)
    return text or None


def canonical_roast_level(value: Optional[str]) -> Optional[str]:
    """Map a roast classification onto the closed roast level set, else None."""
    key = normalize_match_text(value)
    if not key:
        return None
    return _ROAST_ALIASES.get(key)


def infer_roast_level(name: Optional[str], description: Optional[str] = None) -> Optional[str]:
    """
    Guess a roast level from product copy when the source gives none.

    Keywords are checked over name and description together, in order:
    light/filter, medium, dark/espresso, omni.
    """
    text = f"{normalize_match_text(name)} {normalize_match_text(description)}"
    if re.search(r'\b(light|filter)\b', text):
        return "Light"
    if re.search(r'\bmedium\b', text):
        return "Medium"
    if re.search(r'\b(dark|espresso)\b', text):
        return "Dark"
    if re.search(r'\bomni', text):
        return "Omni"
    return None


def repair_origin_id(legacy_id: Optional[str]) -> Optional[str]:
    """
    Canonical form of a possibly malformed legacy origin id.

    "Brazil-" -> "Brazil", "Ethiopia--Guji" -> "Ethiopia-Guji".
    """
    return node_id(legacy_id)
