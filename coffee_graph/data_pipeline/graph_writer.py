"""
Graph Writer Module

Turns canonical product records into normalized nodes and idempotent edge
writes. Every ingest replaces the product's edge set inside one transaction,
so re-ingesting the same record leaves the graph unchanged.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from coffee_graph.core.identity import (
    canonical_roast_level, infer_roast_level, node_id, note_id, origin_id, split_multi_value
)
from coffee_graph.core.profile_deriver import DerivedProfile, ProfileDeriver
from coffee_graph.core.taxonomy import OTHER_ATTRIBUTE, TaxonomyRegistry, default_registry
from coffee_graph.data_pipeline.graph_store import GraphStore
from coffee_graph.data_pipeline.models import (
    Edge, GraphNode, NodeLabel, ProductNode, ProductRecord, RelType
)
from coffee_graph.utils.unicode_handler import clean_unicode_text

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Summary of one product ingest."""
    product_id: str
    created: bool
    edge_count: int
    nodes_created: int
    profile: DerivedProfile
    unclassified_notes: List[str] = field(default_factory=list)


class GraphWriter:
    """Writes products and their relationships into a graph store."""

    def __init__(self, store: GraphStore, registry: Optional[TaxonomyRegistry] = None,
                 deriver: Optional[ProfileDeriver] = None):
        """
        Initialize the writer.

        Args:
            store: Target graph store
            registry: Flavor lexicon (defaults to the packaged one)
            deriver: Profile deriver sharing the same registry
        """
        self.store = store
        self.registry = registry or default_registry()
        self.deriver = deriver or ProfileDeriver(self.registry)

    def seed_taxonomy(self) -> int:
        """
        Create the SCACategory, Subcategory and Attribute nodes if absent.

        Returns:
            Number of nodes created
        """
        created = 0
        with self.store.transaction():
            for category in self.registry.categories.values():
                created += self.store.upsert_node(GraphNode(
                    NodeLabel.SCA_CATEGORY, category.id,
                    {"name": category.display_name, "index": category.index}
                ))
            for subcategory in self.registry.subcategories.values():
                created += self.store.upsert_node(GraphNode(
                    NodeLabel.SUBCATEGORY, subcategory.id,
                    {"name": subcategory.display_name, "category": subcategory.category_id}
                ))
            for attribute in self.registry.attributes.values():
                created += self.store.upsert_node(GraphNode(
                    NodeLabel.ATTRIBUTE, attribute.id,
                    {
                        "name": attribute.display_name,
                        "subcategory_id": attribute.subcategory_id,
                        "category": attribute.category_id,
                    }
                ))

        logger.info(f"Seeded flavor taxonomy v{self.registry.version}: {created} nodes created")
        return created

    def resolve_roast_level(self, record: ProductRecord) -> Optional[str]:
        return canonical_roast_level(record.roast_level) or infer_roast_level(record.name, record.description)

    def plan_edges(self, record: ProductRecord) -> List[Tuple[RelType, GraphNode]]:
        """
        Target nodes and relationship types for a record, de-duplicated.

        Args:
            record: Canonical product record

        Returns:
            List of (relationship type, target node) in a stable order
        """
        planned: List[Tuple[RelType, GraphNode]] = []
        seen = set()

        def add(rel_type: RelType, label: NodeLabel, identity: Optional[str], props: Dict):
            if identity is None:
                return
            key = (rel_type, label, identity)
            if key in seen:
                return
            seen.add(key)
            planned.append((rel_type, GraphNode(label, identity, props)))

        brand = clean_unicode_text(record.brand)
        add(RelType.SOLD_BY, NodeLabel.BRAND, node_id(brand), {"name": brand})

        countries = split_multi_value(record.origin)
        regions = split_multi_value(record.region)
        for position, country in enumerate(countries):
            add(RelType.FROM_ORIGIN, NodeLabel.ORIGIN, origin_id(country),
                {"country": country, "region": None, "display_name": country})
            # The region field belongs to the first listed country
            if position > 0:
                continue
            for region in regions:
                add(RelType.FROM_ORIGIN, NodeLabel.ORIGIN, origin_id(country, region), {
                    "country": country,
                    "region": region,
                    "altitude": clean_unicode_text(record.altitude) or None,
                    "display_name": f"{region}, {country}",
                })
        if regions and not countries:
            logger.debug(f"Product {record.id} has region '{record.region}' but no origin country")

        for process in split_multi_value(record.process):
            add(RelType.HAS_PROCESS, NodeLabel.PROCESS, node_id(process), {"name": process})

        first_country = countries[0] if countries else None
        for producer in split_multi_value(record.producer):
            add(RelType.PRODUCED_BY, NodeLabel.PRODUCER, node_id(producer, first_country),
                {"name": producer, "country": first_country})

        for variety in split_multi_value(record.variety):
            add(RelType.HAS_VARIETY, NodeLabel.VARIETY, node_id(variety), {"name": variety})

        roast_level = self.resolve_roast_level(record)
        if roast_level:
            add(RelType.ROASTED_AT, NodeLabel.ROAST_LEVEL, node_id(roast_level), {"level": roast_level})

        for raw in record.tasting_notes or []:
            identity = note_id(raw)
            if identity is None:
                continue
            classification = self.registry.classify_note(raw)
            add(RelType.HAS_TASTING_NOTE, NodeLabel.TASTING_NOTE, identity, {
                "raw_text": clean_unicode_text(raw),
                "attribute_id": classification.attribute_id,
                "subcategory_id": classification.subcategory_id,
                "category": classification.category_id,
            })

        return planned

    def ingest(self, record: ProductRecord) -> IngestResult:
        """
        Upsert a product and replace its edge set from the record.

        Args:
            record: Canonical product record

        Returns:
            IngestResult
        """
        profile = self.deriver.derive(record)
        planned = self.plan_edges(record)

        product = ProductNode(
            id=record.id,
            name=clean_unicode_text(record.name),
            brand=clean_unicode_text(record.brand) or None,
            price=record.price,
            currency=record.currency,
            in_stock=record.in_stock,
            flavor_profile=profile.flavor_profile,
            character_axes=profile.character_axes,
            updated_at=datetime.now(),
        )

        nodes_created = 0
        with self.store.transaction():
            created = self.store.upsert_product(product)
            self.store.detach_edges(record.id)
            for rel_type, node in planned:
                if self.store.upsert_node(node):
                    nodes_created += 1
                self.store.attach_edge(Edge(record.id, rel_type, node.label, node.id))

        unclassified = [
            node.props["raw_text"] for rel_type, node in planned
            if rel_type == RelType.HAS_TASTING_NOTE and node.props["attribute_id"] == OTHER_ATTRIBUTE
        ]
        if unclassified:
            logger.debug(f"Product {record.id}: unclassified notes {unclassified}")

        logger.debug(
            f"Ingested product {record.id} ({'created' if created else 'updated'}): "
            f"{len(planned)} edges, {nodes_created} new nodes"
        )
        return IngestResult(
            product_id=record.id,
            created=created,
            edge_count=len(planned),
            nodes_created=nodes_created,
            profile=profile,
            unclassified_notes=unclassified,
        )

    def ingest_many(self, records: Iterable[ProductRecord]) -> Dict:
        """
        Ingest records one transaction per product.

        A failed product is logged and counted; the rest still commit.

        Returns:
            Summary dict with ingested/failed counts and failed ids
        """
        summary = {"ingested": 0, "created": 0, "failed": 0, "failed_ids": [], "nodes_created": 0}

        for record in records:
            try:
                result = self.ingest(record)
            except Exception as e:
                logger.error(f"Failed to ingest product {record.id}: {e}")
                summary["failed"] += 1
                summary["failed_ids"].append(record.id)
                continue
            summary["ingested"] += 1
            summary["created"] += int(result.created)
            summary["nodes_created"] += result.nodes_created

        logger.info(
            f"Ingest complete: {summary['ingested']} ingested "
            f"({summary['created']} new), {summary['failed']} failed"
        )
        return summary

    def remove_product(self, product_id: str) -> bool:
        """Delete a product and its edges; shared nodes are left for the orphan sweep."""
        with self.store.transaction():
            removed = self.store.delete_product(product_id)
        if removed:
            logger.info(f"Removed product {product_id} from graph")
        return removed
