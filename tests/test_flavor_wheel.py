"""
Tests for flavor wheel aggregation
"""

import unittest

# Add parent directory to path
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coffee_graph.core.errors import InvalidArgumentError
from coffee_graph.core.flavor_wheel import FlavorWheel
from coffee_graph.data_pipeline.graph_store import InMemoryGraphStore
from coffee_graph.data_pipeline.graph_writer import GraphWriter
from coffee_graph.data_pipeline.models import ProductRecord


class TestFlavorWheel(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryGraphStore()
        writer = GraphWriter(self.store)
        writer.ingest_many([
            ProductRecord(id="p1", name="Guji", brand="Onyx", tasting_notes=["blackberry", "jasmine"]),
            ProductRecord(id="p2", name="Huila", brand="Sey", tasting_notes=["Blackberry", "caramel"]),
            ProductRecord(id="p3", name="Nyeri", brand="Sey", tasting_notes=["raspberry"]),
            ProductRecord(id="p4", name="Mystery", brand="Sey"),
        ])
        self.wheel = FlavorWheel(self.store, writer.registry)

    def category(self, data, category_id):
        return next(c for c in data["categories"] if c["id"] == category_id)

    def test_store_counts_distinct_products(self):
        counts = self.store.taxonomy_product_counts()
        self.assertEqual(counts["category"], {"fruity": 3, "floral": 1, "sweet": 1})
        self.assertEqual(counts["subcategory"], {"berry": 3, "floral": 1, "brown_sugar": 1})
        self.assertEqual(counts["attribute"], {"blackberry": 2, "raspberry": 1, "jasmine": 1, "caramel": 1})

    def test_wheel_follows_category_order(self):
        data = self.wheel.build()
        self.assertEqual(
            [c["id"] for c in data["categories"]],
            ["fruity", "floral", "sweet", "nutty", "spices", "roasted", "green", "sour", "other"],
        )
        self.assertEqual(data["total_categories"], 3)
        self.assertEqual(data["total_flavors"], 4)

    def test_wheel_nests_counts(self):
        fruity = self.category(self.wheel.build(), "fruity")
        self.assertEqual(fruity["product_count"], 3)
        self.assertEqual(fruity["name"], "Fruity")
        self.assertEqual([s["id"] for s in fruity["subcategories"]], ["berry"])
        berry = fruity["subcategories"][0]
        self.assertEqual(berry["product_count"], 3)
        self.assertEqual(berry["attributes"], [
            {"id": "blackberry", "name": "Blackberry", "product_count": 2},
            {"id": "raspberry", "name": "Raspberry", "product_count": 1},
        ])

    def test_empty_branches(self):
        data = self.wheel.build()
        self.assertEqual(self.category(data, "nutty"), {
            "id": "nutty", "name": "Nutty", "product_count": 0, "subcategories": [],
        })

        full = self.wheel.build(include_empty=True)
        fruity = self.category(full, "fruity")
        registry = self.wheel.registry
        self.assertEqual(len(fruity["subcategories"]), len(registry.categories["fruity"].subcategory_ids))
        dried = next(s for s in fruity["subcategories"] if s["id"] == "dried_fruit")
        self.assertEqual(dried["name"], "Dried Fruit")
        self.assertEqual(dried["product_count"], 0)
        self.assertTrue(dried["attributes"])

    def test_products_by_subcategory(self):
        data = self.wheel.products_by_subcategory("berry")
        self.assertEqual(data["category"], "fruity")
        self.assertEqual(data["attributes"][:3], ["berry", "blackberry", "raspberry"])
        self.assertEqual(data["product_count"], 3)
        by_id = {p["product_id"]: p for p in data["products"]}
        self.assertEqual(sorted(by_id), ["p1", "p2", "p3"])
        self.assertEqual(by_id["p3"]["matched_notes"], ["raspberry"])
        # blackberry and jasmine tie, fruity comes first in category order
        self.assertEqual(by_id["p1"]["dominant_category"], "fruity")

    def test_subcategory_given_by_name(self):
        data = self.wheel.products_by_subcategory("Brown Sugar")
        self.assertEqual(data["subcategory"], "brown_sugar")
        self.assertEqual([p["product_id"] for p in data["products"]], ["p2"])
        self.assertEqual(data["products"][0]["matched_notes"], ["caramel"])

    def test_subcategory_without_products(self):
        data = self.wheel.products_by_subcategory("dried_fruit")
        self.assertEqual(data["product_count"], 0)
        self.assertEqual(data["products"], [])

    def test_unknown_subcategory_rejected(self):
        for bad in ["umami", "", None]:
            with self.assertRaises(InvalidArgumentError):
                self.wheel.products_by_subcategory(bad)


class TestGraphStats(unittest.TestCase):

    def test_stats_per_label(self):
        store = InMemoryGraphStore()
        GraphWriter(store).ingest(ProductRecord(
            id="p1", name="Guji Natural", brand="Onyx", origin="Ethiopia", region="Guji",
            process="Natural", variety="Heirloom, 74110", tasting_notes=["blackberry"],
            roast_level="Light",
        ))

        stats = store.stats()

        self.assertEqual(stats["products"], 1)
        self.assertEqual(stats["edges"], 8)
        self.assertEqual(stats["nodes"], 8)
        self.assertEqual(stats["nodes_by_label"]["Origin"], 2)
        self.assertEqual(stats["nodes_by_label"]["Variety"], 2)
        self.assertEqual(stats["nodes_by_label"]["SCACategory"], 0)
        self.assertEqual(sum(stats["nodes_by_label"].values()), stats["nodes"])


if __name__ == '__main__':
    unittest.main()
