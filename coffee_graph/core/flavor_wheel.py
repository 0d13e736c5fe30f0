"""
Flavor wheel aggregation over the coffee graph

Walks the SCA taxonomy hierarchy and attaches the number of distinct
products reaching each category, subcategory and attribute through their
tasting notes. Also answers "which products sit in this subcategory".
"""

import logging
from typing import Any, Dict, List, Optional

from coffee_graph.core.errors import InvalidArgumentError
from coffee_graph.core.taxonomy import TaxonomyRegistry, default_registry
from coffee_graph.data_pipeline.models import RelType
from coffee_graph.utils.unicode_handler import normalize_match_text

logger = logging.getLogger(__name__)


class FlavorWheel:
    """Product counts laid over the taxonomy for visualization."""

    def __init__(self, store, registry: Optional[TaxonomyRegistry] = None):
        """
        Initialize the flavor wheel.

        Args:
            store: GraphStore to aggregate over
            registry: Taxonomy registry (packaged lexicon if omitted)
        """
        self.store = store
        self.registry = registry or default_registry()

    def build(self, include_empty: bool = False) -> Dict[str, Any]:
        """
        Nested category -> subcategory -> attribute tree with product counts.

        Every category is listed in wheel order. Subcategories and attributes
        no product reaches are left out unless include_empty is set.

        Returns:
            {"version", "categories", "total_categories", "total_flavors"}
        """
        counts = self.store.taxonomy_product_counts()
        category_counts = counts.get("category", {})
        subcategory_counts = counts.get("subcategory", {})
        attribute_counts = counts.get("attribute", {})

        categories = []
        for category_id, subcategories in self.registry.hierarchy().items():
            subcategory_entries = []
            for subcategory_id, attribute_ids in subcategories.items():
                attribute_entries = []
                for attribute_id in attribute_ids:
                    product_count = attribute_counts.get(attribute_id, 0)
                    if product_count or include_empty:
                        attribute_entries.append({
                            "id": attribute_id,
                            "name": self.registry.attribute(attribute_id).display_name,
                            "product_count": product_count,
                        })

                product_count = subcategory_counts.get(subcategory_id, 0)
                if product_count or include_empty:
                    subcategory_entries.append({
                        "id": subcategory_id,
                        "name": self.registry.subcategory(subcategory_id).display_name,
                        "product_count": product_count,
                        "attributes": attribute_entries,
                    })

            categories.append({
                "id": category_id,
                "name": self.registry.categories[category_id].display_name,
                "product_count": category_counts.get(category_id, 0),
                "subcategories": subcategory_entries,
            })

        return {
            "version": self.registry.version,
            "categories": categories,
            "total_categories": sum(1 for c in categories if c["product_count"]),
            "total_flavors": sum(1 for count in attribute_counts.values() if count),
        }

    def products_by_subcategory(self, subcategory: str) -> Dict[str, Any]:
        """
        Products whose tasting notes were classified into a subcategory.

        Args:
            subcategory: Subcategory id or display name ("dried fruit" works)

        Returns:
            Subcategory path, its attribute ids and the matching products,
            each with the notes that matched and its dominant category
        """
        key = normalize_match_text(subcategory).replace(" ", "_")
        if not key:
            raise InvalidArgumentError("A subcategory is required")
        found = self.registry.subcategory(key)

        products: List[Dict[str, Any]] = []
        for product_id, note_ids in self.store.products_in_subcategory(found.id).items():
            product = self.store.get_product(product_id)
            if product is None:
                continue
            all_notes = self.store.product_targets(product_id, RelType.HAS_TASTING_NOTE)
            products.append({
                "product_id": product.id,
                "name": product.name,
                "brand": product.brand,
                "matched_notes": note_ids,
                "dominant_category": self.registry.dominant_category(all_notes),
            })

        logger.debug(f"{len(products)} products in subcategory {found.id}")
        return {
            "category": found.category_id,
            "subcategory": found.id,
            "attributes": [a.id for a in self.registry.attributes_in_subcategory(found.id)],
            "product_count": len(products),
            "products": products,
        }
