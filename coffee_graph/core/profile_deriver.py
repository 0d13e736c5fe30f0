"""
Profile Deriver Module

Projects a product's classified facts into the two fixed-length vectors used
for similarity math: a 9-dimension flavor profile (one component per SCA
category, each in [0, 1]) and 4 character axes (acidity, body, roast,
complexity, each in [-1, 1]).
"""

import math
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from coffee_graph.core.errors import InvalidArgumentError
from coffee_graph.core.identity import (
    canonical_roast_level, infer_roast_level, note_id, split_multi_value
)
from coffee_graph.core.taxonomy import CATEGORY_ORDER, TaxonomyRegistry, default_registry
from coffee_graph.utils.unicode_handler import normalize_match_text

logger = logging.getLogger(__name__)

AXIS_NAMES = ("acidity", "body", "roast", "complexity")
FLAVOR_DIMENSIONS = len(CATEGORY_ORDER)
AXIS_DIMENSIONS = len(AXIS_NAMES)

# Intensity by number of notes in a category: 0, 1, 2, 3+
COUNT_INTENSITY = (0.0, 0.4, 0.6, 0.8)

# (substrings, {axis: delta})
ORIGIN_RULES = [
    (("ethiopia", "kenya"), {"acidity": 0.4, "complexity": 0.2}),
    (("brazil", "sumatra", "indonesia"), {"body": 0.3, "acidity": -0.2}),
    (("colombia", "guatemala"), {"acidity": 0.1}),
]

PROCESS_RULES = [
    (("natural", "dry"), {"body": 0.3, "complexity": 0.3}),
    (("washed", "wet"), {"acidity": 0.2, "complexity": -0.1}),
    (("honey", "pulped natural"), {"body": 0.2, "complexity": 0.1}),
    (("anaerobic", "fermented", "carbonic"), {"complexity": 0.4}),
]

# roast level -> (roast axis value, {axis: delta})
ROAST_RULES = {
    "Light": (-0.5, {"acidity": 0.2}),
    "Medium-Light": (-0.25, {"acidity": 0.1}),
    "Medium": (0.0, {}),
    "Medium-Dark": (0.25, {"body": 0.1}),
    "Dark": (0.5, {"body": 0.2, "acidity": -0.2}),
}

FERMENTED_SUBCATEGORY = "alcohol_fermented"


@dataclass(frozen=True)
class DerivedProfile:
    """Vectors derived for one product."""
    flavor_profile: Tuple[float, ...]
    character_axes: Tuple[float, ...]

    def combined_vector(self) -> Tuple[float, ...]:
        return tuple(self.flavor_profile) + tuple(self.character_axes)

    def to_dict(self) -> Dict:
        return {
            "flavor_profile": dict(zip(CATEGORY_ORDER, self.flavor_profile)),
            "character_axes": dict(zip(AXIS_NAMES, self.character_axes)),
        }


def zero_profile() -> DerivedProfile:
    return DerivedProfile((0.0,) * FLAVOR_DIMENSIONS, (0.0,) * AXIS_DIMENSIONS)


def _bounded(value: float, low: float, high: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return round(max(low, min(high, value)), 4)


def axis_index(name: str) -> int:
    """Position of a character axis in the axes vector."""
    key = (name or "").strip().lower()
    if key not in AXIS_NAMES:
        raise InvalidArgumentError(
            f"Unknown character axis '{name}'. Expected one of: {', '.join(AXIS_NAMES)}"
        )
    return AXIS_NAMES.index(key)


class ProfileDeriver:
    """Pure, deterministic derivation of flavor profiles and character axes."""

    def __init__(self, registry: Optional[TaxonomyRegistry] = None):
        self.registry = registry or default_registry()

    def derive(self, record) -> DerivedProfile:
        """
        Derive both vectors for a canonical product record.

        Args:
            record: Object with tasting_notes, origin, process, roast_level
                and optionally name/description

        Returns:
            DerivedProfile
        """
        roast_level = canonical_roast_level(getattr(record, "roast_level", None)) or infer_roast_level(
            getattr(record, "name", None), getattr(record, "description", None)
        )
        return self.derive_from(
            tasting_notes=getattr(record, "tasting_notes", None) or [],
            origin=getattr(record, "origin", None),
            process=getattr(record, "process", None),
            roast_level=roast_level,
        )

    def derive_from(self, tasting_notes: Iterable[str], origin: Optional[str] = None,
                    process: Optional[str] = None, roast_level: Optional[str] = None) -> DerivedProfile:
        classifications = self._classify_distinct(tasting_notes)
        flavor_profile = self.flavor_profile(classifications)
        character_axes = self.character_axes(classifications, origin, process, roast_level)
        return DerivedProfile(flavor_profile, character_axes)

    def _classify_distinct(self, tasting_notes: Iterable[str]) -> List:
        seen = set()
        classifications = []
        for raw in tasting_notes:
            key = note_id(raw)
            if key is None or key in seen:
                continue
            seen.add(key)
            classifications.append(self.registry.classify_note(raw))
        return classifications

    def flavor_profile(self, classifications: List) -> Tuple[float, ...]:
        """
        Category coverage of the product's distinct notes.

        Each component blends the category's share of the notes with an
        intensity that grows with the number of notes in that category.
        """
        if not classifications:
            return (0.0,) * FLAVOR_DIMENSIONS

        counts = Counter(c.category_id for c in classifications)
        total = len(classifications)

        profile = []
        for category in CATEGORY_ORDER:
            count = counts.get(category, 0)
            share = count / total
            intensity = COUNT_INTENSITY[min(count, len(COUNT_INTENSITY) - 1)]
            profile.append(_bounded(0.5 * share + 0.5 * intensity, 0.0, 1.0))
        return tuple(profile)

    def character_axes(self, classifications: List, origin: Optional[str],
                       process: Optional[str], roast_level: Optional[str]) -> Tuple[float, ...]:
        axes = dict.fromkeys(AXIS_NAMES, 0.0)

        self._apply_text_rules(axes, origin, ORIGIN_RULES)
        self._apply_text_rules(axes, process, PROCESS_RULES)

        rule = ROAST_RULES.get(roast_level)
        if rule is not None:
            roast_value, deltas = rule
            axes["roast"] = roast_value
            for axis, delta in deltas.items():
                axes[axis] += delta

        if classifications:
            self._apply_note_mix(axes, classifications)

        return tuple(_bounded(axes[name], -1.0, 1.0) for name in AXIS_NAMES)

    @staticmethod
    def _apply_text_rules(axes: Dict[str, float], raw_value: Optional[str], rules):
        values = [normalize_match_text(v) for v in split_multi_value(raw_value)]
        if not values:
            return
        text = " | ".join(values)
        for keywords, deltas in rules:
            if any(keyword in text for keyword in keywords):
                for axis, delta in deltas.items():
                    axes[axis] += delta

    @staticmethod
    def _apply_note_mix(axes: Dict[str, float], classifications: List):
        total = len(classifications)
        shares = Counter(c.category_id for c in classifications)
        share = {category: shares.get(category, 0) / total for category in CATEGORY_ORDER}
        fermented = sum(1 for c in classifications if c.subcategory_id == FERMENTED_SUBCATEGORY) / total

        axes["acidity"] += 0.3 * (share["fruity"] + share["sour"]) - 0.2 * share["roasted"]
        axes["body"] += 0.3 * (share["nutty"] + share["sweet"] + share["roasted"]) - 0.1 * share["floral"]
        axes["roast"] += 0.3 * share["roasted"] - 0.1 * (share["fruity"] + share["floral"])

        distinct_categories = len([c for c in shares if c != "other"])
        axes["complexity"] += min(0.4, 0.1 * max(0, distinct_categories - 1)) + 0.2 * fermented
