"""
Query Planner Module

Executes the closed set of comparative coffee queries against a graph store
and ranks the results with hybrid scoring: shared tasting-note overlap in the
graph combined with cosine similarity over each product's 13-dimension
profile vector (9 flavor categories + 4 character axes).
"""

import time
import logging
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from coffee_graph.core.errors import (
    CoffeeGraphError, InvalidArgumentError, NotFoundError, QueryTimeoutError
)
from coffee_graph.core.identity import canonical_roast_level, node_id, origin_id
from coffee_graph.core.profile_deriver import AXIS_NAMES, FLAVOR_DIMENSIONS, axis_index
from coffee_graph.core.similarity import combined_vector, cosine_similarity, is_zero_vector
from coffee_graph.core.taxonomy import TaxonomyRegistry, default_registry
from coffee_graph.data_pipeline.models import NodeLabel, ProductNode, RelType
from coffee_graph.settings import QuerySettings

logger = logging.getLogger(__name__)


class QueryType(str, Enum):
    """Closed vocabulary of query types."""
    SEARCH_BY_NAME = "search_by_name"
    SEARCH_BY_BRAND = "search_by_brand"
    SAME_ORIGIN = "same_origin"
    SAME_ROAST = "same_roast"
    SAME_PROCESS = "same_process"
    MORE_CATEGORY = "more_category"
    LESS_CATEGORY = "less_category"
    SAME_ORIGIN_MORE_CATEGORY = "same_origin_more_category"
    SAME_ORIGIN_DIFFERENT_ROAST = "same_origin_different_roast"
    MORE_CHARACTER = "more_character"
    LESS_CHARACTER = "less_character"
    SIMILAR_PROFILE = "similar_profile"
    SIMILAR_FLAVORS = "similar_flavors"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value) -> 'QueryType':
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise InvalidArgumentError(
                f"Unknown query type '{value}'. Expected one of: {', '.join(t.value for t in cls)}"
            )


# Overlap tiers of the fallback ladder and their score band floor
LADDER_RUNGS = (("note", 2), ("attribute", 1), ("subcategory", 0))

# Relationship queries: share of the reference's targets, then profile similarity
RELATIONSHIP_WEIGHT = 0.7
RELATIONSHIP_SIMILARITY_WEIGHT = 0.3


@dataclass(frozen=True)
class QueryFilters:
    """Optional filter parameters of a query."""
    product_name: Optional[str] = None
    brand_name: Optional[str] = None
    sca_category: Optional[str] = None
    roast_level: Optional[str] = None
    origin: Optional[str] = None
    process: Optional[str] = None
    character_axis: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'QueryFilters':
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise InvalidArgumentError(f"Query filters must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidArgumentError(f"Unknown filter keys: {sorted(unknown)}")

        values = {}
        for key, value in data.items():
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            if key in ('min_price', 'max_price'):
                try:
                    value = float(value)
                except (TypeError, ValueError):
                    raise InvalidArgumentError(f"Invalid {key}: {value!r}")
                if value < 0:
                    raise InvalidArgumentError(f"{key} must not be negative")
            else:
                value = str(value).strip()
            values[key] = value

        filters = cls(**values)
        if filters.min_price is not None and filters.max_price is not None \
                and filters.min_price > filters.max_price:
            raise InvalidArgumentError("min_price is greater than max_price")
        return filters

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))


@dataclass(frozen=True)
class QueryRequest:
    """A structured query from the decision layer."""
    query_type: QueryType
    reference_product_id: Optional[str] = None
    filters: QueryFilters = field(default_factory=QueryFilters)
    limit: int = 10
    timeout_seconds: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any], settings: Optional[QuerySettings] = None) -> 'QueryRequest':
        """
        Build and validate a request.

        Args:
            data: {"query_type", "reference_product_id", "filters", "limit", "timeout_seconds"}
            settings: Supplies default and maximum limit

        Returns:
            QueryRequest
        """
        settings = settings or QuerySettings()
        if not isinstance(data, dict):
            raise InvalidArgumentError("Query request must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidArgumentError(f"Unknown request keys: {sorted(unknown)}")

        limit = data.get('limit')
        if limit is None:
            limit = settings.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int):
            raise InvalidArgumentError(f"limit must be an integer, got {limit!r}")
        if limit <= 0:
            raise InvalidArgumentError(f"limit must be positive, got {limit}")
        if limit > settings.max_limit:
            raise InvalidArgumentError(f"limit {limit} exceeds the maximum of {settings.max_limit}")

        timeout = data.get('timeout_seconds', settings.default_timeout_seconds)
        if timeout is not None:
            if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
                raise InvalidArgumentError(f"timeout_seconds must be positive, got {timeout!r}")

        filters = data.get('filters')
        if not isinstance(filters, QueryFilters):
            filters = QueryFilters.from_dict(filters)

        reference = data.get('reference_product_id')
        return cls(
            query_type=QueryType.parse(data.get('query_type')),
            reference_product_id=str(reference).strip() if reference not in (None, "") else None,
            filters=filters,
            limit=limit,
            timeout_seconds=timeout,
        )


@dataclass
class RankedProduct:
    """One ranked result with the facts shown to the user."""
    product_id: str
    name: str
    brand: Optional[str]
    price: Optional[float]
    currency: Optional[str]
    score: float
    origins: List[str] = field(default_factory=list)
    processes: List[str] = field(default_factory=list)
    varieties: List[str] = field(default_factory=list)
    roast_level: Optional[str] = None
    matched_notes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class _QueryContext:
    """Per-call state: deadline, product cache and eligibility rules."""

    def __init__(self, store, request: QueryRequest, reference: Optional[ProductNode]):
        self.store = store
        self.request = request
        self.filters = request.filters
        self.reference = reference
        self.deadline = (time.monotonic() + request.timeout_seconds) if request.timeout_seconds else None
        self._products: Dict[str, Optional[ProductNode]] = {}
        self._all_loaded = False

    def check_deadline(self):
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise QueryTimeoutError(
                f"{self.request.query_type.value} query exceeded {self.request.timeout_seconds}s"
            )

    def product(self, product_id: str) -> Optional[ProductNode]:
        if product_id not in self._products:
            self._products[product_id] = self.store.get_product(product_id)
        return self._products[product_id]

    def all_products(self) -> List[ProductNode]:
        if not self._all_loaded:
            for product in self.store.list_products():
                self._products[product.id] = product
            self._all_loaded = True
        return [p for _, p in sorted(self._products.items()) if p is not None]

    def products(self, product_ids: Iterable[str]) -> List[ProductNode]:
        result = []
        for pid in sorted(set(product_ids)):
            self.check_deadline()
            product = self.product(pid)
            if product is not None:
                result.append(product)
        return result

    def eligible(self, product: Optional[ProductNode]) -> bool:
        if product is None:
            return False
        if (self.reference is not None and product.id == self.reference.id
                and self.request.query_type != QueryType.SEARCH_BY_NAME):
            return False
        if self.filters.min_price is not None or self.filters.max_price is not None:
            if product.price is None:
                return False
            if self.filters.min_price is not None and product.price < self.filters.min_price:
                return False
            if self.filters.max_price is not None and product.price > self.filters.max_price:
                return False
        return True


Scored = Dict[str, float]


class QueryPlanner:
    """Read-only dispatch of structured queries to ranking strategies."""

    def __init__(self, store, registry: Optional[TaxonomyRegistry] = None,
                 settings: Optional[QuerySettings] = None):
        """
        Initialize the planner.

        Args:
            store: Graph store to read from
            registry: Flavor lexicon for category names
            settings: Limits, weights and ladder cap
        """
        self.store = store
        self.registry = registry or default_registry()
        self.settings = settings or QuerySettings()

        self._handlers: Dict[QueryType, Callable[[_QueryContext], Scored]] = {
            QueryType.SEARCH_BY_NAME: self._search_by_name,
            QueryType.SEARCH_BY_BRAND: self._search_by_brand,
            QueryType.SAME_ORIGIN: self._same_origin,
            QueryType.SAME_ROAST: self._same_roast,
            QueryType.SAME_PROCESS: self._same_process,
            QueryType.MORE_CATEGORY: lambda ctx: self._category_direction(ctx, more=True),
            QueryType.LESS_CATEGORY: lambda ctx: self._category_direction(ctx, more=False),
            QueryType.SAME_ORIGIN_MORE_CATEGORY: self._same_origin_more_category,
            QueryType.SAME_ORIGIN_DIFFERENT_ROAST: self._same_origin_different_roast,
            QueryType.MORE_CHARACTER: lambda ctx: self._character_direction(ctx, more=True),
            QueryType.LESS_CHARACTER: lambda ctx: self._character_direction(ctx, more=False),
            QueryType.SIMILAR_PROFILE: self._similar_profile,
            QueryType.SIMILAR_FLAVORS: self._similar_flavors,
            QueryType.CUSTOM: self._custom,
        }
        missing = set(QueryType) - set(self._handlers)
        if missing:
            raise CoffeeGraphError(f"No query strategy for: {sorted(t.value for t in missing)}")

    def query(self, query_type, reference_product_id: Optional[str] = None,
              limit: Optional[int] = None, timeout_seconds: Optional[float] = None,
              **filters) -> List[RankedProduct]:
        """Convenience wrapper building a validated request from keyword arguments."""
        data = {'query_type': query_type, 'reference_product_id': reference_product_id, 'filters': filters}
        if limit is not None:
            data['limit'] = limit
        if timeout_seconds is not None:
            data['timeout_seconds'] = timeout_seconds
        return self.execute(QueryRequest.from_dict(data, self.settings))

    def execute(self, request: QueryRequest) -> List[RankedProduct]:
        """
        Run a query and return ranked products.

        Args:
            request: Validated query request

        Returns:
            Results ordered by descending score, then product id
        """
        query_type = QueryType.parse(request.query_type)
        if request.limit <= 0 or request.limit > self.settings.max_limit:
            raise InvalidArgumentError(f"limit must be in 1..{self.settings.max_limit}, got {request.limit}")

        reference = None
        if request.reference_product_id:
            reference = self.store.get_product(request.reference_product_id)
            if reference is None:
                raise NotFoundError(f"Reference product '{request.reference_product_id}' not found")

        ctx = _QueryContext(self.store, request, reference)
        started = time.monotonic()
        scored = self._handlers[query_type](ctx)

        ranked = []
        for pid, score in scored.items():
            product = ctx.product(pid)
            if ctx.eligible(product):
                ranked.append((product, score))
        ranked.sort(key=lambda item: (-item[1], item[0].id))
        ranked = ranked[:request.limit]

        results = [self._describe(product, score, reference) for product, score in ranked]
        logger.info(
            f"Query {query_type.value} (reference={request.reference_product_id}) returned "
            f"{len(results)} results in {time.monotonic() - started:.3f}s"
        )
        return results

    # Search

    def _search_by_name(self, ctx: _QueryContext) -> Scored:
        needle = (ctx.filters.product_name or "").lower()
        if not needle:
            return {}
        return {p.id: self._text_match_score(needle, p.name) for p in self.store.products_by_name(needle)}

    def _search_by_brand(self, ctx: _QueryContext) -> Scored:
        needle = (ctx.filters.brand_name or (ctx.reference.brand if ctx.reference else None) or "").lower()
        if not needle:
            return {}
        return {p.id: self._text_match_score(needle, p.brand) for p in self.store.products_by_brand(needle)}

    @staticmethod
    def _text_match_score(needle: str, text: Optional[str]) -> float:
        text = (text or "").lower()
        if text == needle:
            return 1.0
        if text.startswith(needle):
            return 0.8
        return 0.6

    # Relationship queries

    def _same_origin(self, ctx: _QueryContext) -> Scored:
        return self._shared_relationship(ctx, RelType.FROM_ORIGIN, NodeLabel.ORIGIN,
                                         self._origin_filter_ids(ctx.filters.origin))

    def _same_roast(self, ctx: _QueryContext) -> Scored:
        return self._shared_relationship(ctx, RelType.ROASTED_AT, NodeLabel.ROAST_LEVEL,
                                         self._roast_filter_ids(ctx.filters.roast_level))

    def _same_process(self, ctx: _QueryContext) -> Scored:
        return self._shared_relationship(ctx, RelType.HAS_PROCESS, NodeLabel.PROCESS,
                                         self._text_filter_ids(NodeLabel.PROCESS, ctx.filters.process))

    def _shared_relationship(self, ctx: _QueryContext, rel_type: RelType, label: NodeLabel,
                             filter_ids: Optional[Set[str]]) -> Scored:
        """
        Products linked to the reference's targets, or to the filter's when
        there is no reference. Neither gives an empty result.
        """
        targets = set(self.store.product_targets(ctx.reference.id, rel_type)) if ctx.reference else set()
        if not targets:
            if ctx.reference is not None:
                logger.debug(f"Reference {ctx.reference.id} has no {rel_type.value} links; using filters")
            targets = filter_ids or set()
        if not targets:
            return {}

        shared: Dict[str, int] = {}
        for target in targets:
            for pid in self.store.products_with_target(label, target, rel_type):
                shared[pid] = shared.get(pid, 0) + 1

        return {
            product.id: self._relationship_score(ctx, shared[product.id] / len(targets), product)
            for product in ctx.products(shared)
        }

    def _relationship_score(self, ctx: _QueryContext, fraction: float, product: ProductNode) -> float:
        if ctx.reference is None:
            return round(fraction, 6)
        similarity = max(0.0, cosine_similarity(combined_vector(ctx.reference), combined_vector(product)))
        return round(RELATIONSHIP_WEIGHT * fraction + RELATIONSHIP_SIMILARITY_WEIGHT * similarity, 6)

    def _origin_filter_ids(self, text: Optional[str]) -> Optional[Set[str]]:
        if not text:
            return None
        exact = origin_id(text)
        needle = text.strip().lower()
        matches = set()
        for node in self.store.list_nodes(NodeLabel.ORIGIN):
            names = [node.props.get('country'), node.props.get('region'), node.props.get('display_name')]
            if node.id == exact or any(needle == (n or "").strip().lower() for n in names):
                matches.add(node.id)
        return matches

    def _roast_filter_ids(self, text: Optional[str]) -> Optional[Set[str]]:
        if not text:
            return None
        level = canonical_roast_level(text)
        if level is None:
            raise InvalidArgumentError(f"Unknown roast level '{text}'")
        return {node_id(level)}

    def _text_filter_ids(self, label: NodeLabel, text: Optional[str]) -> Optional[Set[str]]:
        if not text:
            return None
        exact = node_id(text)
        needle = text.strip().lower()
        return {
            node.id for node in self.store.list_nodes(label)
            if node.id == exact or needle in (node.props.get('name') or "").lower()
        }

    # Directional queries

    def _category_direction(self, ctx: _QueryContext, more: bool) -> Scored:
        dimension = self._category_dimension(ctx.filters.sca_category)
        return self._directional(ctx, dimension, more)

    def _character_direction(self, ctx: _QueryContext, more: bool) -> Scored:
        if not ctx.filters.character_axis:
            raise InvalidArgumentError(
                f"character_axis filter is required. Expected one of: {', '.join(AXIS_NAMES)}"
            )
        dimension = FLAVOR_DIMENSIONS + axis_index(ctx.filters.character_axis)
        return self._directional(ctx, dimension, more)

    def _category_dimension(self, category: Optional[str]) -> int:
        if not category:
            raise InvalidArgumentError(
                f"sca_category filter is required. Expected one of: {', '.join(self.registry.category_names())}"
            )
        return self.registry.category_index(category)

    def _directional(self, ctx: _QueryContext, dimension: int, more: bool,
                     pool: Optional[Set[str]] = None) -> Scored:
        """
        Rank candidates whose target component is strictly above (more) or
        below (less) the reference's.

        Candidates sharing an exact tasting note with the reference are
        preferred; pure vector ranking is used only when none qualify.
        """
        low, high = (0.0, 1.0) if dimension < FLAVOR_DIMENSIONS else (-1.0, 1.0)
        value_range = high - low

        candidates = ctx.products(pool) if pool is not None else ctx.all_products()

        if ctx.reference is None:
            # No reference: rank by the target component alone
            scored = {}
            for product in candidates:
                value = combined_vector(product)[dimension]
                scored[product.id] = round(((value - low) if more else (high - value)) / value_range, 6)
            return scored

        reference_vector = combined_vector(ctx.reference)
        reference_value = reference_vector[dimension]

        passing = []
        for product in candidates:
            if not ctx.eligible(product):
                continue
            value = combined_vector(product)[dimension]
            if (more and value > reference_value) or (not more and value < reference_value):
                passing.append(product)

        overlapping = set(self.store.overlap_counts(ctx.reference.id, "note"))
        preferred = [p for p in passing if p.id in overlapping]
        if passing and not preferred:
            logger.debug(f"No candidate shares a tasting note with {ctx.reference.id}; ranking by vectors only")

        scored = {}
        for product in preferred or passing:
            vector = combined_vector(product)
            similarity = cosine_similarity(reference_vector, vector)
            delta = abs(vector[dimension] - reference_value) / value_range
            scored[product.id] = round(
                self.settings.similarity_weight * similarity + self.settings.delta_weight * delta, 6
            )
        return scored

    # Combined queries

    def _same_origin_more_category(self, ctx: _QueryContext) -> Scored:
        dimension = self._category_dimension(ctx.filters.sca_category)
        pool = self._same_origin(ctx)
        if not pool:
            return {}
        return self._directional(ctx, dimension, more=True, pool=set(pool))

    def _same_origin_different_roast(self, ctx: _QueryContext) -> Scored:
        same_origin = self._same_origin(ctx)
        if not same_origin:
            return {}

        if ctx.reference is not None:
            excluded = set(self.store.product_targets(ctx.reference.id, RelType.ROASTED_AT))
        else:
            excluded = self._roast_filter_ids(ctx.filters.roast_level) or set()

        scored = {}
        for pid, score in same_origin.items():
            roasts = set(self.store.product_targets(pid, RelType.ROASTED_AT))
            # Unknown roast is not a different roast
            if roasts and not roasts & excluded:
                scored[pid] = score
        return scored

    # Similarity queries

    def _similar_profile(self, ctx: _QueryContext) -> Scored:
        if ctx.reference is None:
            return {}

        reference_vector = combined_vector(ctx.reference)
        scored = {}
        if not is_zero_vector(reference_vector):
            for product in ctx.all_products():
                ctx.check_deadline()
                vector = combined_vector(product)
                if not ctx.eligible(product) or is_zero_vector(vector):
                    continue
                scored[product.id] = round(cosine_similarity(reference_vector, vector), 6)

        if not scored:
            logger.warning(f"No usable profile vectors for {ctx.reference.id}; falling back to note overlap")
            return self._similar_flavors(ctx)
        return scored

    def _similar_flavors(self, ctx: _QueryContext) -> Scored:
        """
        Semantic fallback ladder: shared notes, then shared attributes, then
        shared subcategories, until the limit is filled.

        Scores are banded so an earlier rung always outranks a later one.
        """
        if ctx.reference is None:
            return {}

        limit = ctx.request.limit
        scored: Scored = {}
        for level, band in LADDER_RUNGS:
            ctx.check_deadline()
            reference_keys = self.store.tier_keys(ctx.reference.id, level)
            if not reference_keys:
                continue

            counts = self.store.overlap_counts(ctx.reference.id, level)
            fresh = {pid: shared for pid, shared in counts.items() if pid not in scored}
            if level != "note" and len(fresh) > self.settings.max_broadened_candidates:
                logger.warning(
                    f"Broadening to {level} level would touch {len(fresh)} candidates "
                    f"(cap {self.settings.max_broadened_candidates}); stopping at {len(scored)} results"
                )
                break

            for product in ctx.products(fresh):
                if not ctx.eligible(product):
                    continue
                fraction = min(1.0, fresh[product.id] / len(reference_keys))
                scored[product.id] = round((band + fraction) / len(LADDER_RUNGS), 6)

            if len(scored) >= limit:
                break
            logger.debug(f"{level} overlap gave {len(scored)} of {limit} results; broadening")

        return scored

    def _custom(self, ctx: _QueryContext) -> Scored:
        """Intersection of every relationship filter given; no filter gives no results."""
        filters = ctx.filters
        candidate_sets: List[Set[str]] = []

        origin_ids = self._origin_filter_ids(filters.origin)
        if origin_ids is not None:
            candidate_sets.append(self._linked_products(NodeLabel.ORIGIN, RelType.FROM_ORIGIN, origin_ids))
        process_ids = self._text_filter_ids(NodeLabel.PROCESS, filters.process)
        if process_ids is not None:
            candidate_sets.append(self._linked_products(NodeLabel.PROCESS, RelType.HAS_PROCESS, process_ids))
        roast_ids = self._roast_filter_ids(filters.roast_level)
        if roast_ids is not None:
            candidate_sets.append(self._linked_products(NodeLabel.ROAST_LEVEL, RelType.ROASTED_AT, roast_ids))
        if filters.brand_name:
            candidate_sets.append({p.id for p in self.store.products_by_brand(filters.brand_name)})
        if filters.product_name:
            candidate_sets.append({p.id for p in self.store.products_by_name(filters.product_name)})
        if filters.sca_category:
            dimension = self._category_dimension(filters.sca_category)
            candidate_sets.append({p.id for p in ctx.all_products() if p.flavor_profile[dimension] > 0})

        if not candidate_sets:
            return {}

        matched = set.intersection(*candidate_sets)
        if ctx.reference is None:
            return {pid: 1.0 for pid in matched}

        reference_vector = combined_vector(ctx.reference)
        return {
            product.id: round(max(0.0, cosine_similarity(reference_vector, combined_vector(product))), 6)
            for product in ctx.products(matched)
        }

    def _linked_products(self, label: NodeLabel, rel_type: RelType, target_ids: Set[str]) -> Set[str]:
        linked = set()
        for target in target_ids:
            linked |= self.store.products_with_target(label, target, rel_type)
        return linked

    # Display

    def _describe(self, product: ProductNode, score: float,
                  reference: Optional[ProductNode]) -> RankedProduct:
        nodes: Dict[RelType, List] = {}
        for edge in self.store.product_edges(product.id):
            node = self.store.get_node(edge.target_label, edge.target_id)
            if node is not None:
                nodes.setdefault(edge.rel_type, []).append(node)

        origins = nodes.get(RelType.FROM_ORIGIN, [])
        regional_countries = {n.props.get('country') for n in origins if n.props.get('region')}
        origin_names = []
        for node in origins:
            if not node.props.get('region') and node.props.get('country') in regional_countries:
                continue
            name = node.props.get('display_name') or node.id
            if name not in origin_names:
                origin_names.append(name)

        matched_notes = []
        if reference is not None and reference.id != product.id:
            reference_notes = set(self.store.product_targets(reference.id, RelType.HAS_TASTING_NOTE))
            matched_notes = sorted(
                n.props.get('raw_text') or n.id
                for n in nodes.get(RelType.HAS_TASTING_NOTE, []) if n.id in reference_notes
            )

        roasts = nodes.get(RelType.ROASTED_AT, [])
        return RankedProduct(
            product_id=product.id,
            name=product.name,
            brand=product.brand,
            price=product.price,
            currency=product.currency,
            score=score,
            origins=sorted(origin_names),
            processes=sorted(n.props.get('name') or n.id for n in nodes.get(RelType.HAS_PROCESS, [])),
            varieties=sorted(n.props.get('name') or n.id for n in nodes.get(RelType.HAS_VARIETY, [])),
            roast_level=roasts[0].props.get('level') if roasts else None,
            matched_notes=matched_notes,
        )
