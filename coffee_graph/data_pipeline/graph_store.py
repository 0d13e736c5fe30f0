"""
Graph store abstraction for the coffee knowledge graph

Defines the primitives the writer, maintainer and query planner rely on,
and a thread-safe in-memory implementation used for tests and small
local runs. PostgreSQL lives in database.py.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from coffee_graph.core.errors import InvalidArgumentError
from coffee_graph.data_pipeline.models import (
    PERMANENT_LABELS, Edge, GraphNode, NodeLabel, ProductNode, RelType
)

logger = logging.getLogger(__name__)

# Note-overlap tiers, from most to least specific
OVERLAP_LEVELS = ("note", "attribute", "subcategory")

LEVEL_PROPERTY = {"attribute": "attribute_id", "subcategory": "subcategory_id"}

# Flavor wheel tiers and the TastingNote prop holding each
WHEEL_LEVELS = ("category", "subcategory", "attribute")

WHEEL_PROPERTY = {"category": "category", **LEVEL_PROPERTY}


def as_label(value: Union[NodeLabel, str]) -> NodeLabel:
    return value if isinstance(value, NodeLabel) else NodeLabel(value)


def as_rel_type(value: Union[RelType, str]) -> RelType:
    return value if isinstance(value, RelType) else RelType(value)


class GraphStore(ABC):
    """
    Graph persistence primitives.

    Every write goes through an upsert or an attach-if-absent, so repeating
    a write never duplicates nodes or edges. `transaction()` groups writes
    into one unit of work that commits or rolls back as a whole.
    """

    @abstractmethod
    def transaction(self):
        """Context manager for one unit of write work."""

    # Shared nodes

    @abstractmethod
    def upsert_node(self, node: GraphNode) -> bool:
        """Create the node if absent, else merge its props. Returns True if created."""

    @abstractmethod
    def get_node(self, label: NodeLabel, node_id: str) -> Optional[GraphNode]:
        pass

    @abstractmethod
    def list_nodes(self, label: NodeLabel) -> List[GraphNode]:
        pass

    @abstractmethod
    def _delete_node(self, label: NodeLabel, node_id: str) -> bool:
        pass

    def delete_node(self, label: NodeLabel, node_id: str) -> bool:
        """Delete a shared node and any edges pointing at it. Taxonomy nodes are refused."""
        label = as_label(label)
        if label in PERMANENT_LABELS:
            raise InvalidArgumentError(f"{label.value} nodes are permanent and cannot be deleted")
        return self._delete_node(label, node_id)

    # Products

    @abstractmethod
    def upsert_product(self, product: ProductNode) -> bool:
        pass

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[ProductNode]:
        pass

    @abstractmethod
    def list_products(self) -> List[ProductNode]:
        pass

    @abstractmethod
    def delete_product(self, product_id: str) -> bool:
        """Delete a product and all of its edges; shared nodes stay."""

    # Edges

    @abstractmethod
    def attach_edge(self, edge: Edge) -> bool:
        """Attach the edge if absent. Returns True if it was created."""

    @abstractmethod
    def detach_edges(self, product_id: str, rel_type: Optional[RelType] = None) -> int:
        pass

    @abstractmethod
    def product_edges(self, product_id: str) -> List[Edge]:
        pass

    @abstractmethod
    def edges_to(self, label: NodeLabel, node_id: str) -> List[Edge]:
        pass

    def count_target_edges(self, label: NodeLabel, node_id: str) -> int:
        return len(self.edges_to(label, node_id))

    def repoint_edges(self, label: NodeLabel, from_id: str, to_id: str) -> int:
        """
        Move every edge targeting (label, from_id) onto (label, to_id).

        Products already linked to the target keep a single edge.

        Returns:
            Number of edges newly attached to the target
        """
        label = as_label(label)
        moved = 0
        with self.transaction():
            for edge in self.edges_to(label, from_id):
                replacement = Edge(edge.product_id, edge.rel_type, label, to_id)
                if self.attach_edge(replacement):
                    moved += 1
                self._detach_edge(edge)
        return moved

    @abstractmethod
    def _detach_edge(self, edge: Edge) -> bool:
        pass

    # Aggregate reads

    def product_targets(self, product_id: str, rel_type: RelType) -> List[str]:
        rel_type = as_rel_type(rel_type)
        return sorted(e.target_id for e in self.product_edges(product_id) if e.rel_type == rel_type)

    def products_with_target(self, label: NodeLabel, node_id: str,
                             rel_type: Optional[RelType] = None) -> Set[str]:
        return {
            e.product_id for e in self.edges_to(label, node_id)
            if rel_type is None or e.rel_type == as_rel_type(rel_type)
        }

    def tier_keys(self, product_id: str, level: str) -> Set[str]:
        """
        Keys a product's tasting notes carry at one overlap tier.

        "note" gives TastingNote ids, "attribute" and "subcategory" give the
        taxonomy ids the notes were classified into.
        """
        if level not in OVERLAP_LEVELS:
            raise InvalidArgumentError(f"Unknown overlap level '{level}'")

        note_ids = self.product_targets(product_id, RelType.HAS_TASTING_NOTE)
        if level == "note":
            return set(note_ids)

        prop = LEVEL_PROPERTY[level]
        keys = set()
        for note_id in note_ids:
            node = self.get_node(NodeLabel.TASTING_NOTE, note_id)
            if node is not None and node.props.get(prop):
                keys.add(node.props[prop])
        return keys

    def overlap_counts(self, product_id: str, level: str) -> Dict[str, int]:
        """
        Other products sharing at least one tier key with the product.

        Returns:
            {candidate product id: number of distinct shared keys}
        """
        reference_keys = self.tier_keys(product_id, level)
        if not reference_keys:
            return {}

        candidates = set()
        if level == "note":
            for note_id in reference_keys:
                candidates |= self.products_with_target(
                    NodeLabel.TASTING_NOTE, note_id, RelType.HAS_TASTING_NOTE
                )
        else:
            prop = LEVEL_PROPERTY[level]
            for node in self.list_nodes(NodeLabel.TASTING_NOTE):
                if node.props.get(prop) in reference_keys:
                    candidates |= self.products_with_target(
                        NodeLabel.TASTING_NOTE, node.id, RelType.HAS_TASTING_NOTE
                    )
        candidates.discard(product_id)

        counts = {}
        for candidate in candidates:
            shared = len(reference_keys & self.tier_keys(candidate, level))
            if shared:
                counts[candidate] = shared
        return counts

    def products_by_name(self, text: str) -> List[ProductNode]:
        needle = (text or "").strip().lower()
        if not needle:
            return []
        return [p for p in self.list_products() if needle in (p.name or "").lower()]

    def products_by_brand(self, text: str) -> List[ProductNode]:
        needle = (text or "").strip().lower()
        if not needle:
            return []
        return [p for p in self.list_products() if needle in (p.brand or "").lower()]

    @abstractmethod
    def stats(self) -> Dict[str, Any]:
        """Product, node and edge totals, with node counts per label."""

    def taxonomy_product_counts(self) -> Dict[str, Dict[str, int]]:
        """
        Distinct products reaching each taxonomy key through their tasting notes.

        Returns:
            {"category" | "subcategory" | "attribute": {taxonomy id: product count}}
        """
        reached: Dict[str, Dict[str, Set[str]]] = {level: defaultdict(set) for level in WHEEL_LEVELS}
        for node in self.list_nodes(NodeLabel.TASTING_NOTE):
            linked = self.products_with_target(NodeLabel.TASTING_NOTE, node.id, RelType.HAS_TASTING_NOTE)
            if not linked:
                continue
            for level in WHEEL_LEVELS:
                key = node.props.get(WHEEL_PROPERTY[level])
                if key:
                    reached[level][key] |= linked
        return {level: {key: len(ids) for key, ids in keyed.items()} for level, keyed in reached.items()}

    def products_in_subcategory(self, subcategory_id: str) -> Dict[str, List[str]]:
        """Products with notes classified into the subcategory, mapped to those note ids."""
        matches: Dict[str, Set[str]] = defaultdict(set)
        for node in self.list_nodes(NodeLabel.TASTING_NOTE):
            if node.props.get("subcategory_id") != subcategory_id:
                continue
            for product_id in self.products_with_target(
                NodeLabel.TASTING_NOTE, node.id, RelType.HAS_TASTING_NOTE
            ):
                matches[product_id].add(node.id)
        return {product_id: sorted(notes) for product_id, notes in sorted(matches.items())}

    def close(self):
        pass


class InMemoryGraphStore(GraphStore):
    """Dictionary-backed graph store with undo-log rollback per transaction."""

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self._undo: Optional[List[Callable[[], None]]] = None
        self._products: Dict[str, ProductNode] = {}
        self._nodes: Dict[Tuple[NodeLabel, str], GraphNode] = {}
        self._by_product: Dict[str, Set[Edge]] = defaultdict(set)
        self._by_target: Dict[Tuple[NodeLabel, str], Set[Edge]] = defaultdict(set)

    def _record(self, undo: Callable[[], None]):
        # Only writes inside a transaction are journaled
        if self._undo is not None:
            self._undo.append(undo)

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self._depth = 1
            self._undo = []
            try:
                yield self
            except Exception:
                undo, self._undo = self._undo, None
                for step in reversed(undo):
                    step()
                logger.debug(f"In-memory transaction rolled back ({len(undo)} writes undone)")
                raise
            finally:
                self._undo = None
                self._depth = 0

    # Shared nodes

    def upsert_node(self, node: GraphNode) -> bool:
        key = (as_label(node.label), node.id)
        with self._lock:
            existing = self._nodes.get(key)
            if existing is None:
                self._nodes[key] = GraphNode(key[0], node.id, dict(node.props))
                self._record(lambda: self._nodes.pop(key, None))
                return True
            previous = dict(existing.props)
            existing.props.update(node.props)
            self._record(lambda: setattr(existing, "props", previous))
            return False

    def get_node(self, label: NodeLabel, node_id: str) -> Optional[GraphNode]:
        with self._lock:
            node = self._nodes.get((as_label(label), node_id))
            return copy.deepcopy(node) if node else None

    def list_nodes(self, label: NodeLabel) -> List[GraphNode]:
        label = as_label(label)
        with self._lock:
            nodes = [copy.deepcopy(n) for (lbl, _), n in self._nodes.items() if lbl == label]
        return sorted(nodes, key=lambda n: n.id)

    def _delete_node(self, label: NodeLabel, node_id: str) -> bool:
        key = (label, node_id)
        with self._lock:
            node = self._nodes.get(key)
            if node is None:
                return False
            for edge in list(self._by_target.get(key, ())):
                self._detach_edge(edge)
            del self._nodes[key]
            self._by_target.pop(key, None)
            self._record(lambda: self._nodes.__setitem__(key, node))
            return True

    # Products

    def upsert_product(self, product: ProductNode) -> bool:
        with self._lock:
            previous = self._products.get(product.id)
            self._products[product.id] = copy.deepcopy(product)
            self._record(lambda: self._restore_product(product.id, previous))
            return previous is None

    def _restore_product(self, product_id: str, product: Optional[ProductNode]):
        if product is None:
            self._products.pop(product_id, None)
        else:
            self._products[product_id] = product

    def get_product(self, product_id: str) -> Optional[ProductNode]:
        with self._lock:
            product = self._products.get(product_id)
            return copy.deepcopy(product) if product else None

    def list_products(self) -> List[ProductNode]:
        with self._lock:
            return [copy.deepcopy(self._products[pid]) for pid in sorted(self._products)]

    def delete_product(self, product_id: str) -> bool:
        with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return False
            self.detach_edges(product_id)
            del self._products[product_id]
            self._by_product.pop(product_id, None)
            self._record(lambda: self._restore_product(product_id, product))
            return True

    # Edges

    def attach_edge(self, edge: Edge) -> bool:
        edge = Edge(edge.product_id, as_rel_type(edge.rel_type), as_label(edge.target_label), edge.target_id)
        with self._lock:
            if edge.product_id not in self._products:
                raise InvalidArgumentError(f"Cannot link unknown product '{edge.product_id}'")
            if edge.target not in self._nodes:
                raise InvalidArgumentError(
                    f"Cannot link to missing node {edge.target_label.value}:{edge.target_id}"
                )
            if edge in self._by_product[edge.product_id]:
                return False
            self._link(edge)
            self._record(lambda: self._unlink(edge))
            return True

    def _detach_edge(self, edge: Edge) -> bool:
        with self._lock:
            if edge not in self._by_product.get(edge.product_id, ()):
                return False
            self._unlink(edge)
            self._record(lambda: self._link(edge))
            return True

    def _link(self, edge: Edge):
        self._by_product[edge.product_id].add(edge)
        self._by_target[edge.target].add(edge)

    def _unlink(self, edge: Edge):
        self._by_product[edge.product_id].discard(edge)
        self._by_target[edge.target].discard(edge)

    def detach_edges(self, product_id: str, rel_type: Optional[RelType] = None) -> int:
        with self._lock:
            edges = [
                e for e in self._by_product.get(product_id, ())
                if rel_type is None or e.rel_type == as_rel_type(rel_type)
            ]
            for edge in edges:
                self._detach_edge(edge)
            return len(edges)

    def product_edges(self, product_id: str) -> List[Edge]:
        with self._lock:
            edges = list(self._by_product.get(product_id, ()))
        return sorted(edges, key=lambda e: (e.rel_type.value, e.target_label.value, e.target_id))

    def edges_to(self, label: NodeLabel, node_id: str) -> List[Edge]:
        with self._lock:
            edges = list(self._by_target.get((as_label(label), node_id), ()))
        return sorted(edges, key=lambda e: (e.product_id, e.rel_type.value))

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            nodes_by_label = {label.value: 0 for label in NodeLabel}
            for label, _ in self._nodes:
                nodes_by_label[label.value] += 1
            return {
                "products": len(self._products),
                "nodes": len(self._nodes),
                "nodes_by_label": nodes_by_label,
                "edges": sum(len(edges) for edges in self._by_product.values()),
            }
