"""
Taxonomy Module

Immutable SCA flavor-wheel registry (Category -> Subcategory -> Attribute)
and the keyword-driven tasting-note classifier built on it.
"""

import re
import logging
from collections import Counter
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import yaml

from coffee_graph.core.errors import InvalidArgumentError, TaxonomyError
from coffee_graph.utils.unicode_handler import normalize_match_text

logger = logging.getLogger(__name__)

DEFAULT_LEXICON_PATH = Path(__file__).resolve().parent.parent / "config" / "sca_lexicon.yaml"

# Index order of the flavor profile vector
CATEGORY_ORDER = (
    "fruity", "floral", "sweet", "nutty", "spices",
    "roasted", "green", "sour", "other",
)

OTHER_CATEGORY = "other"
OTHER_SUBCATEGORY = "unclassified"
OTHER_ATTRIBUTE = "other"


@dataclass(frozen=True)
class Category:
    """Tier 1: one of the nine SCA categories."""
    id: str
    index: int
    display_name: str
    subcategory_ids: Tuple[str, ...]


@dataclass(frozen=True)
class Subcategory:
    """Tier 2: a subcategory such as "berry" or "brown_sugar"."""
    id: str
    category_id: str
    display_name: str
    attribute_ids: Tuple[str, ...]


@dataclass(frozen=True)
class Attribute:
    """Tier 3: a lexicon attribute with the keywords that select it."""
    id: str
    subcategory_id: str
    category_id: str
    display_name: str
    keywords: Tuple[str, ...]


@dataclass(frozen=True)
class Classification:
    """Full taxonomy path resolved for one raw tasting note."""
    attribute_id: str
    subcategory_id: str
    category_id: str
    matched_keyword: Optional[str] = None

    @property
    def is_unclassified(self) -> bool:
        return self.attribute_id == OTHER_ATTRIBUTE


def _display_name(identifier: str) -> str:
    return identifier.replace("_", " ").title()


def _keyword_pattern(keyword: str):
    # Whole-word match with an optional plural suffix
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword) + r"(?:s|es)?(?![a-z0-9])")


class TaxonomyRegistry:
    """Read-only flavor lexicon shared by reference across the process."""

    def __init__(self, categories: Iterable[Category], subcategories: Iterable[Subcategory],
                 attributes: Iterable[Attribute], version: str = "unknown"):
        self._categories = MappingProxyType({c.id: c for c in categories})
        self._subcategories = MappingProxyType({s.id: s for s in subcategories})
        self._attributes = MappingProxyType({a.id: a for a in attributes})
        self._version = version

        self._validate()

        keyword_index = {}
        for attribute in self._attributes.values():
            for keyword in attribute.keywords:
                owner = keyword_index.get(keyword)
                if owner is not None and owner != attribute.id:
                    raise TaxonomyError(
                        f"Keyword '{keyword}' is claimed by both '{owner}' and '{attribute.id}'"
                    )
                keyword_index[keyword] = attribute.id
        self._keyword_index = MappingProxyType(keyword_index)

        # Longest keyword first so specific descriptors win over generic buckets
        self._patterns = tuple(
            (keyword, _keyword_pattern(keyword), attribute_id)
            for keyword, attribute_id in sorted(
                keyword_index.items(), key=lambda item: (-len(item[0]), item[0])
            )
        )

        logger.info(
            f"Initialized flavor lexicon v{version}: {len(self._categories)} categories, "
            f"{len(self._subcategories)} subcategories, {len(self._attributes)} attributes, "
            f"{len(self._keyword_index)} keywords"
        )

    def _validate(self):
        if tuple(sorted(self._categories, key=lambda c: self._categories[c].index)) != CATEGORY_ORDER:
            raise TaxonomyError(
                f"Lexicon must define exactly the categories {list(CATEGORY_ORDER)}, "
                f"got {sorted(self._categories)}"
            )

        for category in self._categories.values():
            for subcategory_id in category.subcategory_ids:
                subcategory = self._subcategories.get(subcategory_id)
                if subcategory is None or subcategory.category_id != category.id:
                    raise TaxonomyError(f"Subcategory '{subcategory_id}' is not owned by '{category.id}'")

        for subcategory in self._subcategories.values():
            if subcategory.category_id not in self._categories:
                raise TaxonomyError(f"Subcategory '{subcategory.id}' has unknown category")
            for attribute_id in subcategory.attribute_ids:
                attribute = self._attributes.get(attribute_id)
                if attribute is None or attribute.subcategory_id != subcategory.id:
                    raise TaxonomyError(f"Attribute '{attribute_id}' is not owned by '{subcategory.id}'")

        other = self._attributes.get(OTHER_ATTRIBUTE)
        if other is None or other.category_id != OTHER_CATEGORY:
            raise TaxonomyError("Lexicon is missing the reserved 'other' attribute")

    # Classification

    def classify(self, raw_text: Optional[str]) -> str:
        """Map raw tasting-note text to an attribute id. Never fails."""
        return self.classify_note(raw_text).attribute_id

    def classify_note(self, raw_text: Optional[str]) -> Classification:
        """Map raw tasting-note text to its full taxonomy path."""
        text = normalize_match_text(raw_text)
        attribute_id = None
        matched = None

        if text:
            attribute_id = self._keyword_index.get(text)
            if attribute_id is not None:
                matched = text
            else:
                for keyword, pattern, candidate in self._patterns:
                    if pattern.search(text):
                        attribute_id, matched = candidate, keyword
                        break

        if attribute_id is None:
            logger.debug(f"Could not classify tasting note: {raw_text!r}")
            attribute_id = OTHER_ATTRIBUTE

        attribute = self._attributes[attribute_id]
        return Classification(
            attribute_id=attribute.id,
            subcategory_id=attribute.subcategory_id,
            category_id=attribute.category_id,
            matched_keyword=matched,
        )

    def category_for_note(self, raw_text: Optional[str]) -> str:
        return self.classify_note(raw_text).category_id

    def dominant_category(self, notes: Iterable[str]) -> str:
        """Most frequent category among notes; ties resolve in category order."""
        counts = Counter(self.category_for_note(note) for note in notes)
        if not counts:
            return OTHER_CATEGORY
        return max(CATEGORY_ORDER, key=lambda name: (counts.get(name, 0), -self.category_index(name)))

    # Lookups

    @property
    def version(self) -> str:
        return self._version

    @property
    def categories(self) -> Mapping[str, Category]:
        return self._categories

    @property
    def subcategories(self) -> Mapping[str, Subcategory]:
        return self._subcategories

    @property
    def attributes(self) -> Mapping[str, Attribute]:
        return self._attributes

    def category_names(self) -> Tuple[str, ...]:
        return CATEGORY_ORDER

    def category_index(self, name: str) -> int:
        """Position of a category in the flavor profile vector."""
        key = (name or "").strip().lower()
        category = self._categories.get(key)
        if category is None:
            raise InvalidArgumentError(
                f"Unknown SCA category '{name}'. Expected one of: {', '.join(CATEGORY_ORDER)}"
            )
        return category.index

    def attribute(self, attribute_id: str) -> Attribute:
        try:
            return self._attributes[attribute_id]
        except KeyError:
            raise InvalidArgumentError(f"Unknown attribute '{attribute_id}'")

    def subcategory(self, subcategory_id: str) -> Subcategory:
        try:
            return self._subcategories[subcategory_id]
        except KeyError:
            raise InvalidArgumentError(f"Unknown subcategory '{subcategory_id}'")

    def attributes_in_subcategory(self, subcategory_id: str) -> List[Attribute]:
        return [self._attributes[a] for a in self.subcategory(subcategory_id).attribute_ids]

    def hierarchy(self) -> Dict[str, Dict[str, List[str]]]:
        """Nested category -> subcategory -> attribute ids, in category order."""
        return {
            name: {
                sub_id: list(self._subcategories[sub_id].attribute_ids)
                for sub_id in self._categories[name].subcategory_ids
            }
            for name in CATEGORY_ORDER
        }


def parse_lexicon(data: Dict) -> TaxonomyRegistry:
    """
    Build a registry from the parsed lexicon YAML.

    Args:
        data: Mapping with a 'categories' section and optional 'metadata'

    Returns:
        TaxonomyRegistry
    """
    if not isinstance(data, dict) or not isinstance(data.get("categories"), dict):
        raise TaxonomyError("Invalid lexicon structure: missing 'categories' section")

    categories, subcategories, attributes = [], [], []
    seen_subcategories, seen_attributes = set(), set()

    for category_id, category_data in data["categories"].items():
        if category_id not in CATEGORY_ORDER:
            raise TaxonomyError(f"Unknown category '{category_id}' in lexicon")
        sub_section = (category_data or {}).get("subcategories")
        if not isinstance(sub_section, dict) or not sub_section:
            raise TaxonomyError(f"Category '{category_id}' has no subcategories")

        for subcategory_id, subcategory_data in sub_section.items():
            if subcategory_id in seen_subcategories:
                raise TaxonomyError(f"Duplicate subcategory '{subcategory_id}'")
            seen_subcategories.add(subcategory_id)

            attr_section = (subcategory_data or {}).get("attributes")
            if not isinstance(attr_section, dict) or not attr_section:
                raise TaxonomyError(f"Subcategory '{subcategory_id}' has no attributes")

            for attribute_id, keywords in attr_section.items():
                if attribute_id in seen_attributes:
                    raise TaxonomyError(f"Duplicate attribute '{attribute_id}'")
                seen_attributes.add(attribute_id)
                normalized = tuple(dict.fromkeys(
                    k for k in (normalize_match_text(str(kw)) for kw in (keywords or [])) if k
                ))
                attributes.append(Attribute(
                    id=attribute_id,
                    subcategory_id=subcategory_id,
                    category_id=category_id,
                    display_name=_display_name(attribute_id),
                    keywords=normalized,
                ))

            subcategories.append(Subcategory(
                id=subcategory_id,
                category_id=category_id,
                display_name=_display_name(subcategory_id),
                attribute_ids=tuple(attr_section),
            ))

        categories.append(Category(
            id=category_id,
            index=CATEGORY_ORDER.index(category_id),
            display_name=_display_name(category_id),
            subcategory_ids=tuple(sub_section),
        ))

    version = str((data.get("metadata") or {}).get("version", "unknown"))
    return TaxonomyRegistry(categories, subcategories, attributes, version=version)


def load_registry(path: Optional[Path] = None) -> TaxonomyRegistry:
    """Load the flavor lexicon YAML into an immutable registry."""
    lexicon_file = Path(path) if path else DEFAULT_LEXICON_PATH
    if not lexicon_file.exists():
        raise TaxonomyError(f"Lexicon file not found: {lexicon_file}")

    with open(lexicon_file, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)

    return parse_lexicon(data)


@lru_cache(maxsize=1)
def default_registry() -> TaxonomyRegistry:
    """Process-wide registry built from the packaged lexicon."""
    return load_registry()
