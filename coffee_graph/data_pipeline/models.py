"""
Data models for the coffee knowledge graph

Canonical source records coming from the extraction pipeline, and the
product, node and edge shapes persisted by the graph stores.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from coffee_graph.core.profile_deriver import AXIS_DIMENSIONS, FLAVOR_DIMENSIONS


class NodeLabel(str, Enum):
    """Labels of shared (non-product) graph nodes."""
    ORIGIN = "Origin"
    PROCESS = "Process"
    PRODUCER = "Producer"
    VARIETY = "Variety"
    ROAST_LEVEL = "RoastLevel"
    BRAND = "Brand"
    TASTING_NOTE = "TastingNote"
    ATTRIBUTE = "Attribute"
    SUBCATEGORY = "Subcategory"
    SCA_CATEGORY = "SCACategory"


class RelType(str, Enum):
    """Product-centric relationship types."""
    FROM_ORIGIN = "FROM_ORIGIN"
    HAS_PROCESS = "HAS_PROCESS"
    PRODUCED_BY = "PRODUCED_BY"
    HAS_VARIETY = "HAS_VARIETY"
    HAS_TASTING_NOTE = "HAS_TASTING_NOTE"
    ROASTED_AT = "ROASTED_AT"
    SOLD_BY = "SOLD_BY"


# Never deleted by maintenance
PERMANENT_LABELS = frozenset({NodeLabel.ATTRIBUTE, NodeLabel.SUBCATEGORY, NodeLabel.SCA_CATEGORY})

# Candidates for the orphan sweep
SWEEPABLE_LABELS = (NodeLabel.ORIGIN, NodeLabel.PROCESS, NodeLabel.PRODUCER, NodeLabel.VARIETY)

REL_TARGET_LABEL = {
    RelType.FROM_ORIGIN: NodeLabel.ORIGIN,
    RelType.HAS_PROCESS: NodeLabel.PROCESS,
    RelType.PRODUCED_BY: NodeLabel.PRODUCER,
    RelType.HAS_VARIETY: NodeLabel.VARIETY,
    RelType.HAS_TASTING_NOTE: NodeLabel.TASTING_NOTE,
    RelType.ROASTED_AT: NodeLabel.ROAST_LEVEL,
    RelType.SOLD_BY: NodeLabel.BRAND,
}


@dataclass
class ProductRecord:
    """Canonical product record handed over by the extraction pipeline."""
    id: str
    name: str
    brand: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    in_stock: Optional[bool] = None
    origin: Optional[str] = None  # "Costa Rica / Ethiopia"
    region: Optional[str] = None
    process: Optional[str] = None
    producer: Optional[str] = None
    variety: Optional[str] = None
    altitude: Optional[str] = None
    tasting_notes: List[str] = field(default_factory=list)
    roast_level: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProductRecord':
        notes = data.get("tasting_notes") or []
        if isinstance(notes, str):
            notes = [n.strip() for n in notes.replace(";", ",").split(",") if n.strip()]

        price = data.get("price")
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            brand=data.get("brand"),
            price=float(price) if price not in (None, "") else None,
            currency=data.get("currency"),
            in_stock=data.get("in_stock"),
            origin=data.get("origin"),
            region=data.get("region"),
            process=data.get("process"),
            producer=data.get("producer"),
            variety=data.get("variety"),
            altitude=data.get("altitude"),
            tasting_notes=list(notes),
            roast_level=data.get("roast_level"),
            description=data.get("description"),
        )


@dataclass
class ProductNode:
    """Product as persisted in the graph, with its derived vectors."""
    id: str
    name: str
    brand: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    in_stock: Optional[bool] = None
    flavor_profile: Tuple[float, ...] = (0.0,) * FLAVOR_DIMENSIONS
    character_axes: Tuple[float, ...] = (0.0,) * AXIS_DIMENSIONS
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["flavor_profile"] = list(self.flavor_profile)
        data["character_axes"] = list(self.character_axes)
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data


@dataclass
class GraphNode:
    """A shared node identified by (label, id)."""
    label: NodeLabel
    id: str
    props: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[NodeLabel, str]:
        return (self.label, self.id)


@dataclass(frozen=True)
class Edge:
    """A product-centric relationship; unique per (product, type, target)."""
    product_id: str
    rel_type: RelType
    target_label: NodeLabel
    target_id: str

    @property
    def target(self) -> Tuple[NodeLabel, str]:
        return (self.target_label, self.target_id)
