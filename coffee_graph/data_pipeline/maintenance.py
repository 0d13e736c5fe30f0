"""
Graph Consistency Maintainer

Administrator-triggered batch jobs over the persisted graph: orphan sweep,
malformed-origin repair, core-country backfill and full resync. Every job
is idempotent, and each unit of work (one node, one product) commits in its
own transaction so an interrupted run leaves only a resumable remainder.
"""

import time
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from coffee_graph.core.errors import CoffeeGraphError
from coffee_graph.core.identity import origin_id, repair_origin_id
from coffee_graph.data_pipeline.graph_store import GraphStore
from coffee_graph.data_pipeline.graph_writer import GraphWriter
from coffee_graph.data_pipeline.models import SWEEPABLE_LABELS, Edge, GraphNode, NodeLabel, RelType

logger = logging.getLogger(__name__)


@dataclass
class MaintenanceReport:
    """Counts produced by one maintenance run."""
    operation: str
    processed: int = 0
    changed: int = 0
    failed: int = 0
    details: Dict[str, Any] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class GraphMaintainer:
    """Runs consistency jobs against a graph store."""

    def __init__(self, store: GraphStore, writer: Optional[GraphWriter] = None, records=None):
        """
        Initialize the maintainer.

        Args:
            store: Graph store to maintain
            writer: Writer used for resync (built on the same store if omitted)
            records: Source of truth for resync, e.g. a RecordCatalog
        """
        self.store = store
        self.writer = writer or GraphWriter(store)
        self.records = records

    def _finish(self, report: MaintenanceReport, started: float) -> MaintenanceReport:
        report.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            f"{report.operation}: processed {report.processed}, changed {report.changed}, "
            f"failed {report.failed} in {report.duration_seconds}s"
        )
        return report

    def sweep_orphans(self) -> MaintenanceReport:
        """
        Delete Origin, Process, Producer and Variety nodes with no product edges.

        Taxonomy and TastingNote nodes are never candidates.
        """
        started = time.monotonic()
        report = MaintenanceReport("sweep_orphans")
        deleted: Dict[str, List[str]] = {}

        for label in SWEEPABLE_LABELS:
            for node in self.store.list_nodes(label):
                report.processed += 1
                try:
                    with self.store.transaction():
                        if self.store.count_target_edges(label, node.id) > 0:
                            continue
                        if self.store.delete_node(label, node.id):
                            report.changed += 1
                            deleted.setdefault(label.value, []).append(node.id)
                            logger.debug(f"Deleted orphan {label.value} node {node.id}")
                except Exception as e:
                    report.failed += 1
                    logger.error(f"Failed to sweep {label.value} node {node.id}: {e}")

        report.details["deleted"] = deleted
        return self._finish(report, started)

    def repair_malformed_origins(self) -> MaintenanceReport:
        """
        Merge Origin nodes with legacy malformed ids into their canonical form.

        Legacy ids with stray separators or a different letter case are
        grouped under one canonical id: the id built from the node's country
        and region props when those agree with it, else the cleaned id.
        Edges are re-pointed so each product ends up linked to the canonical
        node exactly once, then the malformed node is deleted.
        """
        started = time.monotonic()
        report = MaintenanceReport("repair_malformed_origins")
        merged: Dict[str, str] = {}
        unrepairable: List[str] = []

        nodes = self.store.list_nodes(NodeLabel.ORIGIN)
        targets = {node.id: self._origin_target(node) for node in nodes}

        # Ids equal up to case collapse onto one target. Prop-derived ids win
        # over cleaned ids, then ids that already exist win over new ones.
        preferred: Dict[str, Tuple[int, str]] = {}
        for node in nodes:
            target, derived = targets[node.id]
            if target is None:
                continue
            rank = (0 if derived else 2) + (0 if target == node.id else 1)
            key = target.casefold()
            if key not in preferred or rank < preferred[key][0]:
                preferred[key] = (rank, target)

        for node in nodes:
            canonical = targets[node.id][0]
            if canonical is not None:
                canonical = preferred[canonical.casefold()][1]
            blank_region = isinstance(node.props.get("region"), str) and not node.props["region"].strip()
            if canonical == node.id and not blank_region:
                continue

            report.processed += 1
            if canonical is None:
                unrepairable.append(node.id)
                logger.warning(f"Origin node '{node.id}' has no usable identity; resync its products")
                continue

            try:
                with self.store.transaction():
                    if canonical == node.id:
                        # Empty region string on an otherwise canonical id
                        self.store.upsert_node(GraphNode(NodeLabel.ORIGIN, node.id, {"region": None}))
                    else:
                        if self.store.get_node(NodeLabel.ORIGIN, canonical) is None:
                            self.store.upsert_node(GraphNode(
                                NodeLabel.ORIGIN, canonical, self._canonical_origin_props(node)
                            ))
                        moved = self.store.repoint_edges(NodeLabel.ORIGIN, node.id, canonical)
                        self.store.delete_node(NodeLabel.ORIGIN, node.id)
                        merged[node.id] = canonical
                        logger.debug(f"Merged origin '{node.id}' into '{canonical}' ({moved} edges moved)")
                report.changed += 1
            except Exception as e:
                report.failed += 1
                logger.error(f"Failed to repair origin node {node.id}: {e}")

        report.details["merged"] = merged
        report.details["unrepairable"] = unrepairable
        return self._finish(report, started)

    @staticmethod
    def _origin_target(node: GraphNode) -> Tuple[Optional[str], bool]:
        """Canonical id for an Origin node, and whether its props produced it."""
        cleaned = repair_origin_id(node.id)
        if cleaned is None:
            return None, False
        from_props = origin_id(node.props.get("country"), node.props.get("region"))
        if from_props and from_props.casefold() == cleaned.casefold():
            return from_props, True
        return cleaned, False

    @staticmethod
    def _canonical_origin_props(node: GraphNode) -> Dict[str, Any]:
        props = dict(node.props)
        region = (props.get("region") or "").strip() or None
        country = (props.get("country") or "").strip() or None
        props["region"] = region
        if country:
            props["country"] = country
            props["display_name"] = f"{region}, {country}" if region else country
        return props

    def backfill_core_country_nodes(self) -> MaintenanceReport:
        """
        Give every region-qualified Origin a core-country sibling.

        Products holding the region node are linked to the core node too.
        Nodes without both country and region props are skipped.
        """
        started = time.monotonic()
        report = MaintenanceReport("backfill_core_country_nodes")
        created_nodes: List[str] = []
        links_added = 0

        for node in self.store.list_nodes(NodeLabel.ORIGIN):
            country = node.props.get("country")
            if not country or not node.props.get("region"):
                continue
            core_id = origin_id(country)
            if not core_id or core_id == node.id:
                continue

            report.processed += 1
            try:
                with self.store.transaction():
                    changed = False
                    if self.store.get_node(NodeLabel.ORIGIN, core_id) is None:
                        self.store.upsert_node(GraphNode(
                            NodeLabel.ORIGIN, core_id,
                            {"country": country, "region": None, "display_name": country}
                        ))
                        created_nodes.append(core_id)
                        changed = True
                    for edge in self.store.edges_to(NodeLabel.ORIGIN, node.id):
                        if self.store.attach_edge(
                            Edge(edge.product_id, RelType.FROM_ORIGIN, NodeLabel.ORIGIN, core_id)
                        ):
                            links_added += 1
                            changed = True
                if changed:
                    report.changed += 1
            except Exception as e:
                report.failed += 1
                logger.error(f"Failed to backfill core country for {node.id}: {e}")

        report.details["created_nodes"] = created_nodes
        report.details["links_added"] = links_added
        return self._finish(report, started)

    def resync(self, product_id: Optional[str] = None, brand: Optional[str] = None) -> MaintenanceReport:
        """
        Rebuild product edges from the source records.

        Args:
            product_id: Resync only this product
            brand: Resync every product of this brand

        With neither argument every product is resynced. A product that no
        longer has a source record is removed from the graph.
        """
        if self.records is None:
            raise CoffeeGraphError("Resync needs a record source")

        started = time.monotonic()
        scope = f"product {product_id}" if product_id else f"brand {brand}" if brand else "all products"
        report = MaintenanceReport("resync", details={"scope": scope, "removed": []})
        logger.info(f"Starting resync of {scope}")

        for pid in self._resync_ids(product_id, brand):
            report.processed += 1
            try:
                before = set(self.store.product_edges(pid))
                record = self.records.get(pid)
                if record is None:
                    if self.writer.remove_product(pid):
                        report.changed += 1
                        report.details["removed"].append(pid)
                    continue
                self.writer.ingest(record)
                if set(self.store.product_edges(pid)) != before:
                    report.changed += 1
            except Exception as e:
                report.failed += 1
                logger.error(f"Failed to resync product {pid}: {e}")

        return self._finish(report, started)

    def _resync_ids(self, product_id: Optional[str], brand: Optional[str]) -> List[str]:
        if product_id:
            return [product_id]

        if brand:
            needle = brand.strip().lower()
            ids = {r.id for r in self.records.by_brand(brand)}
            ids |= {p.id for p in self.store.list_products() if (p.brand or "").strip().lower() == needle}
        else:
            ids = {r.id for r in self.records.all()}
            ids |= {p.id for p in self.store.list_products()}
        return sorted(ids)

    def cleanup_and_rebuild(self) -> MaintenanceReport:
        """Resync every product, then sweep the orphans the resync left behind."""
        started = time.monotonic()
        resync_report = self.resync()
        sweep_report = self.sweep_orphans()

        report = MaintenanceReport(
            "cleanup_and_rebuild",
            processed=resync_report.processed + sweep_report.processed,
            changed=resync_report.changed + sweep_report.changed,
            failed=resync_report.failed + sweep_report.failed,
            details={"resync": resync_report.to_dict(), "sweep_orphans": sweep_report.to_dict()},
        )
        return self._finish(report, started)
