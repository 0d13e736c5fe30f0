"""
Tests for the comparative query planner
"""

import itertools
import unittest
from unittest.mock import patch

# Add parent directory to path
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coffee_graph.core.errors import InvalidArgumentError, NotFoundError, QueryTimeoutError
from coffee_graph.core.query_planner import (
    QueryFilters, QueryPlanner, QueryRequest, QueryType
)
from coffee_graph.data_pipeline.graph_store import InMemoryGraphStore
from coffee_graph.data_pipeline.graph_writer import GraphWriter
from coffee_graph.data_pipeline.models import (
    Edge, GraphNode, NodeLabel, ProductNode, ProductRecord, RelType
)
from coffee_graph.settings import QuerySettings


def catalog_records():
    return [
        ProductRecord(id="e1", name="Guji Natural", brand="Onyx", price=22.0, origin="Ethiopia", region="Guji",
                      process="Natural", roast_level="Light", tasting_notes=["blackberry", "jasmine"]),
        ProductRecord(id="e2", name="Yirgacheffe Washed", brand="Sey", price=25.0, origin="Ethiopia",
                      region="Yirgacheffe", process="Washed", roast_level="Light",
                      tasting_notes=["blackberry", "caramel"]),
        ProductRecord(id="e3", name="Sidamo Espresso", brand="Onyx", price=18.0, origin="Ethiopia",
                      process="Natural", roast_level="Dark", tasting_notes=["dark chocolate", "smoky"]),
        ProductRecord(id="b1", name="Cerrado", brand="Onyx", price=15.0, origin="Brazil",
                      process="Natural", roast_level="Medium", tasting_notes=["chocolate", "hazelnut"]),
        ProductRecord(id="k1", name="Kenya Nyeri", brand="Sey", price=30.0, origin="Kenya",
                      process="Washed", roast_level="Light", tasting_notes=["raspberry", "grapefruit"]),
        ProductRecord(id="n1", name="Mystery Lot", brand="Sey", origin="Colombia"),
    ]


def ids(results):
    return [r.product_id for r in results]


class PlannerTestCase(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryGraphStore()
        writer = GraphWriter(self.store)
        writer.seed_taxonomy()
        writer.ingest_many(catalog_records())
        self.planner = QueryPlanner(self.store)


class TestRequestValidation(PlannerTestCase):

    def test_every_query_type_has_a_strategy(self):
        self.assertEqual(set(self.planner._handlers), set(QueryType))

    def test_query_type_parsing(self):
        self.assertEqual(QueryType.parse("Similar-Flavors"), QueryType.SIMILAR_FLAVORS)
        with self.assertRaises(InvalidArgumentError):
            QueryType.parse("cheapest")
        with self.assertRaises(InvalidArgumentError):
            self.planner.query("cheapest")

    def test_limit_defaults_and_bounds(self):
        request = QueryRequest.from_dict({"query_type": "custom"})
        self.assertEqual(request.limit, 10)
        self.assertEqual(QueryRequest.from_dict({"query_type": "custom", "limit": 50}).limit, 50)
        for bad in [0, -1, 51, "5", 2.5, True]:
            with self.assertRaises(InvalidArgumentError):
                QueryRequest.from_dict({"query_type": "custom", "limit": bad})

    def test_limit_bounds_follow_settings(self):
        settings = QuerySettings(default_limit=3, max_limit=5)
        self.assertEqual(QueryRequest.from_dict({"query_type": "custom"}, settings).limit, 3)
        with self.assertRaises(InvalidArgumentError):
            QueryRequest.from_dict({"query_type": "custom", "limit": 6}, settings)

    def test_unknown_keys_rejected(self):
        with self.assertRaises(InvalidArgumentError):
            QueryRequest.from_dict({"query_type": "custom", "sort": "price"})
        with self.assertRaises(InvalidArgumentError):
            self.planner.query("custom", flavor="fruity")

    def test_filter_validation(self):
        with self.assertRaises(InvalidArgumentError):
            QueryFilters.from_dict({"min_price": 20, "max_price": 10})
        with self.assertRaises(InvalidArgumentError):
            QueryFilters.from_dict({"min_price": -1})
        with self.assertRaises(InvalidArgumentError):
            QueryFilters.from_dict({"max_price": "cheap"})
        filters = QueryFilters.from_dict({"origin": "  ", "process": " Natural ", "max_price": "20"})
        self.assertIsNone(filters.origin)
        self.assertEqual(filters.process, "Natural")
        self.assertEqual(filters.max_price, 20.0)
        self.assertTrue(QueryFilters.from_dict(None).is_empty())
        self.assertTrue(QueryFilters.from_dict({}).is_empty())

    def test_non_mapping_filters_rejected(self):
        for bad in [["origin"], "origin=Ethiopia", 3]:
            with self.subTest(filters=bad):
                with self.assertRaises(InvalidArgumentError):
                    QueryRequest.from_dict({"query_type": "custom", "filters": bad})

    def test_bad_timeout_rejected(self):
        for bad in [0, -2, "soon"]:
            with self.assertRaises(InvalidArgumentError):
                QueryRequest.from_dict({"query_type": "custom", "timeout_seconds": bad})

    def test_missing_reference_is_not_found(self):
        with self.assertRaises(NotFoundError):
            self.planner.query("similar_profile", reference_product_id="nope")

    def test_unknown_category_and_axis_rejected(self):
        with self.assertRaises(InvalidArgumentError):
            self.planner.query("more_category", reference_product_id="e1")
        with self.assertRaises(InvalidArgumentError):
            self.planner.query("more_category", reference_product_id="e1", sca_category="bitter")
        with self.assertRaises(InvalidArgumentError):
            self.planner.query("less_character", reference_product_id="e1", character_axis="sweetness")
        with self.assertRaises(InvalidArgumentError):
            self.planner.query("same_roast", roast_level="charcoal")

    def test_timeout(self):
        with patch("coffee_graph.core.query_planner.time") as mock_time:
            mock_time.monotonic.side_effect = itertools.count(0, 100)
            with self.assertRaises(QueryTimeoutError):
                self.planner.query("similar_flavors", reference_product_id="e1", timeout_seconds=1)


class TestSearch(PlannerTestCase):

    def test_search_by_name_scores(self):
        results = self.planner.query("search_by_name", product_name="cerrado")
        self.assertEqual(ids(results), ["b1"])
        self.assertEqual(results[0].score, 1.0)

        results = self.planner.query("search_by_name", product_name="guji")
        self.assertEqual(results[0].score, 0.8)
        self.assertEqual(self.planner.query("search_by_name", product_name="natural")[0].score, 0.6)

    def test_search_by_name_keeps_reference(self):
        results = self.planner.query("search_by_name", reference_product_id="e1", product_name="guji")
        self.assertEqual(ids(results), ["e1"])

    def test_search_by_brand_uses_reference_brand(self):
        results = self.planner.query("search_by_brand", reference_product_id="e1")
        self.assertEqual(ids(results), ["b1", "e3"])

    def test_products_without_price_fail_price_filters(self):
        self.assertEqual(ids(self.planner.query("search_by_brand", brand_name="Sey")), ["e2", "k1", "n1"])
        self.assertEqual(ids(self.planner.query("search_by_brand", brand_name="Sey", min_price=0)), ["e2", "k1"])

    def test_empty_search(self):
        self.assertEqual(self.planner.query("search_by_name"), [])


class TestRelationshipQueries(PlannerTestCase):

    def test_same_origin_with_reference(self):
        results = self.planner.query("same_origin", reference_product_id="e1")
        self.assertEqual(set(ids(results)), {"e2", "e3"})
        for result in results:
            self.assertGreater(result.score, 0.0)
            self.assertLessEqual(result.score, 1.0)

    def test_same_origin_from_filter(self):
        results = self.planner.query("same_origin", origin="Ethiopia")
        self.assertEqual(ids(results), ["e1", "e2", "e3"])
        self.assertAlmostEqual(results[0].score, 0.666667)
        self.assertAlmostEqual(results[2].score, 0.333333)

    def test_same_roast_from_filter(self):
        results = self.planner.query("same_roast", roast_level="light")
        self.assertEqual(ids(results), ["e1", "e2", "k1"])

    def test_same_process(self):
        self.assertEqual(set(ids(self.planner.query("same_process", reference_product_id="b1"))), {"e1", "e3"})

    def test_no_reference_no_filter_is_empty(self):
        self.assertEqual(self.planner.query("same_origin"), [])

    def test_same_origin_different_roast(self):
        self.assertEqual(ids(self.planner.query("same_origin_different_roast", reference_product_id="e1")), ["e3"])
        results = self.planner.query("same_origin_different_roast", origin="Ethiopia", roast_level="Light")
        self.assertEqual(ids(results), ["e3"])

    def test_same_origin_more_category(self):
        results = self.planner.query("same_origin_more_category", reference_product_id="e1", sca_category="sweet")
        self.assertEqual(ids(results), ["e2"])

    def test_results_describe_products(self):
        results = self.planner.query("same_origin", reference_product_id="e1")
        e2 = next(r for r in results if r.product_id == "e2")
        self.assertEqual(e2.origins, ["Yirgacheffe, Ethiopia"])
        self.assertEqual(e2.processes, ["Washed"])
        self.assertEqual(e2.roast_level, "Light")
        self.assertEqual(e2.matched_notes, ["blackberry"])
        self.assertEqual(e2.to_dict()["brand"], "Sey")

        e3 = next(r for r in results if r.product_id == "e3")
        self.assertEqual(e3.origins, ["Ethiopia"])
        self.assertEqual(e3.matched_notes, [])


class TestSimilarity(PlannerTestCase):

    def test_similar_flavors_ladder(self):
        """Exact note overlap outranks subcategory overlap; no overlap is never returned."""
        results = self.planner.query("similar_flavors", reference_product_id="e1", limit=5)
        self.assertEqual(ids(results), ["e2", "k1"])
        self.assertAlmostEqual(results[0].score, 0.833333)
        self.assertAlmostEqual(results[1].score, 0.166667)
        self.assertEqual(results[0].matched_notes, ["blackberry"])

    def test_similar_flavors_stops_when_filled(self):
        self.assertEqual(ids(self.planner.query("similar_flavors", reference_product_id="e1", limit=1)), ["e2"])

    def test_similar_flavors_broadening_cap(self):
        planner = QueryPlanner(self.store, settings=QuerySettings(max_broadened_candidates=0))
        with self.assertLogs("coffee_graph.core.query_planner", level="WARNING"):
            results = planner.query("similar_flavors", reference_product_id="e1", limit=5)
        self.assertEqual(ids(results), ["e2"])

    def test_similar_flavors_needs_reference(self):
        self.assertEqual(self.planner.query("similar_flavors"), [])

    def test_similar_profile(self):
        self.store.upsert_product(ProductNode(id="z1", name="Blank"))
        results = self.planner.query("similar_profile", reference_product_id="e1")
        result_ids = ids(results)
        self.assertNotIn("e1", result_ids)
        self.assertNotIn("z1", result_ids)
        self.assertLess(result_ids.index("e2"), result_ids.index("b1"))
        scores = [r.score for r in results]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_zero_vector_reference_falls_back_to_note_overlap(self):
        self.store.upsert_product(ProductNode(id="z2", name="Unprofiled"))
        self.store.attach_edge(Edge("z2", RelType.HAS_TASTING_NOTE, NodeLabel.TASTING_NOTE, "blackberry"))

        with self.assertLogs("coffee_graph.core.query_planner", level="WARNING"):
            results = self.planner.query("similar_profile", reference_product_id="z2")

        self.assertEqual(ids(results), ["e1", "e2", "k1"])
        self.assertEqual(results[0].score, 1.0)


class TestCustomQuery(PlannerTestCase):

    def test_filters_intersect(self):
        results = self.planner.query("custom", origin="Ethiopia", process="Natural")
        self.assertEqual(ids(results), ["e1", "e3"])
        self.assertEqual(results[0].score, 1.0)

    def test_price_filter_applies(self):
        results = self.planner.query("custom", origin="Ethiopia", process="Natural", max_price=20)
        self.assertEqual(ids(results), ["e3"])

    def test_category_and_brand(self):
        results = self.planner.query("custom", sca_category="nutty", brand_name="onyx")
        self.assertEqual(ids(results), ["b1", "e3"])

    def test_no_relationship_filter_is_empty(self):
        self.assertEqual(self.planner.query("custom"), [])
        self.assertEqual(self.planner.query("custom", max_price=100), [])

    def test_reference_scores_by_similarity(self):
        results = self.planner.query("custom", reference_product_id="e1", origin="Ethiopia")
        self.assertEqual(set(ids(results)), {"e2", "e3"})
        self.assertEqual(ids(results)[0], "e2")


class TestDirectionalQueries(unittest.TestCase):
    """Directional ranking over explicitly built profile vectors."""

    def setUp(self):
        self.store = InMemoryGraphStore()
        self.planner = QueryPlanner(self.store)
        self.add("ref", roasted=0.2, acidity=0.5)
        self.add("x", roasted=0.5, acidity=0.8)
        self.add("y", roasted=0.2, acidity=0.5)
        self.add("z", roasted=0.1, acidity=-0.5)
        self.add("w", roasted=0.9, acidity=0.5)

    def add(self, product_id, roasted, acidity):
        flavor = [0.0] * 9
        flavor[0] = 0.4
        flavor[5] = roasted
        self.store.upsert_product(ProductNode(
            id=product_id, name=product_id.upper(), price=10.0,
            flavor_profile=tuple(flavor), character_axes=(acidity, 0.1, 0.0, 0.2)
        ))

    def test_more_category_excludes_not_greater(self):
        results = self.planner.query("more_category", reference_product_id="ref", sca_category="roasted")
        self.assertEqual(set(ids(results)), {"x", "w"})
        for result in results:
            self.assertGreater(result.score, 0.0)

    def test_less_category(self):
        results = self.planner.query("less_category", reference_product_id="ref", sca_category="Roasted")
        self.assertEqual(ids(results), ["z"])

    def test_shared_notes_preferred(self):
        self.store.upsert_node(GraphNode(NodeLabel.TASTING_NOTE, "smoke", {"raw_text": "smoke"}))
        self.store.attach_edge(Edge("ref", RelType.HAS_TASTING_NOTE, NodeLabel.TASTING_NOTE, "smoke"))
        self.store.attach_edge(Edge("x", RelType.HAS_TASTING_NOTE, NodeLabel.TASTING_NOTE, "smoke"))

        results = self.planner.query("more_category", reference_product_id="ref", sca_category="roasted")

        self.assertEqual(ids(results), ["x"])
        self.assertEqual(results[0].matched_notes, ["smoke"])

    def test_character_axes(self):
        self.assertEqual(
            ids(self.planner.query("less_character", reference_product_id="ref", character_axis="acidity")), ["z"]
        )
        self.assertEqual(
            ids(self.planner.query("more_character", reference_product_id="ref", character_axis="acidity")), ["x"]
        )

    def test_without_reference_ranks_by_component(self):
        results = self.planner.query("more_category", sca_category="roasted", limit=2)
        self.assertEqual(ids(results), ["w", "x"])
        self.assertAlmostEqual(results[0].score, 0.9)

    def test_price_filter(self):
        results = self.planner.query("more_category", reference_product_id="ref",
                                     sca_category="roasted", min_price=11)
        self.assertEqual(results, [])


if __name__ == '__main__':
    unittest.main()
