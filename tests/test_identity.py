"""
Tests for natural-key node identities
"""

import unittest

# Add parent directory to path
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coffee_graph.core.identity import (
    ROAST_LEVELS, canonical_roast_level, infer_roast_level, node_id,
    note_id, origin_id, repair_origin_id, split_multi_value
)


class TestNodeIds(unittest.TestCase):
    """Test id construction rules."""

    def test_words_are_joined_and_capitalized(self):
        self.assertEqual(node_id("costa rica"), "CostaRica")
        self.assertEqual(node_id("Washed"), "Washed")
        self.assertEqual(node_id("pink bourbon"), "PinkBourbon")

    def test_components_joined_with_separator(self):
        self.assertEqual(node_id("Ethiopia", "Yirgacheffe"), "Ethiopia-Yirgacheffe")
        self.assertEqual(origin_id("Colombia", "Huila"), "Colombia-Huila")
        self.assertEqual(origin_id("Colombia"), "Colombia")
        self.assertEqual(origin_id("Colombia", "  "), "Colombia")

    def test_accents_and_punctuation_removed(self):
        self.assertEqual(node_id("São Paulo"), "SaoPaulo")
        self.assertEqual(node_id("Café (Lot #7)"), "CafeLot7")

    def test_blank_input_has_no_id(self):
        for value in [None, "", "   ", "-", "--", "!!!"]:
            self.assertIsNone(node_id(value))
        self.assertIsNone(origin_id(None, "Huila"))
        self.assertIsNone(origin_id("", "Huila"))

    def test_idempotent(self):
        samples = ["costa rica", "Ethiopia - Guji", "Brazil-", "-Kenya-", "São Paulo", "El Salvador--Santa Ana"]
        for sample in samples:
            once = node_id(sample)
            self.assertEqual(node_id(once), once)

    def test_no_dangling_or_doubled_separators(self):
        samples = ["Brazil-", "-Brazil", "Ethiopia--Guji", " - Kenya - Nyeri - ", "a-b"]
        for sample in samples:
            value = node_id(sample)
            self.assertTrue(value)
            self.assertFalse(value.startswith("-"))
            self.assertFalse(value.endswith("-"))
            self.assertNotIn("--", value)

    def test_repair_legacy_origin_ids(self):
        self.assertEqual(repair_origin_id("Brazil-"), "Brazil")
        self.assertEqual(repair_origin_id("Ethiopia--Guji"), "Ethiopia-Guji")
        self.assertEqual(repair_origin_id("Kenya"), "Kenya")
        self.assertIsNone(repair_origin_id("-"))

    def test_note_id(self):
        self.assertEqual(note_id("  Dark   Chocolate "), "dark chocolate")
        self.assertEqual(note_id("Tea-like"), "tea like")
        self.assertIsNone(note_id(""))
        self.assertIsNone(note_id(None))


class TestMultiValueFields(unittest.TestCase):
    """Test splitting of delimiter-joined source fields."""

    def test_split(self):
        self.assertEqual(split_multi_value("Costa Rica / Ethiopia"), ["Costa Rica", "Ethiopia"])
        self.assertEqual(split_multi_value("Caturra, Castillo,Bourbon"), ["Caturra", "Castillo", "Bourbon"])

    def test_split_drops_blanks_and_repeats(self):
        self.assertEqual(split_multi_value("Washed, , Washed / Natural"), ["Washed", "Natural"])
        self.assertEqual(split_multi_value(""), [])
        self.assertEqual(split_multi_value(None), [])
        self.assertEqual(split_multi_value(" / , "), [])


class TestRoastLevels(unittest.TestCase):
    """Test roast classification."""

    def test_canonical_levels_map_to_themselves(self):
        for level in ROAST_LEVELS:
            self.assertEqual(canonical_roast_level(level), level)

    def test_aliases(self):
        self.assertEqual(canonical_roast_level("medium light"), "Medium-Light")
        self.assertEqual(canonical_roast_level("MEDIUM-DARK"), "Medium-Dark")
        self.assertEqual(canonical_roast_level("Filter"), "Light")
        self.assertEqual(canonical_roast_level("espresso"), "Dark")
        self.assertEqual(canonical_roast_level("Dark Roast"), "Dark")

    def test_unknown_roast(self):
        self.assertIsNone(canonical_roast_level("charcoal"))
        self.assertIsNone(canonical_roast_level(""))
        self.assertIsNone(canonical_roast_level(None))

    def test_infer_from_product_copy(self):
        self.assertEqual(infer_roast_level("Kenya AA Filter"), "Light")
        self.assertEqual(infer_roast_level("House Espresso"), "Dark")
        self.assertEqual(infer_roast_level("Guatemala", "A medium roast with cocoa"), "Medium")
        self.assertEqual(infer_roast_level("Omniroast Blend"), "Omni")
        self.assertIsNone(infer_roast_level("Ethiopia Guji", "Bright and floral"))
        self.assertIsNone(infer_roast_level(None, None))


if __name__ == '__main__':
    unittest.main()
