"""
Tests for settings loading and validation
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coffee_graph.settings import QuerySettings, Settings, load_settings

REPO_ROOT = Path(__file__).resolve().parent.parent


class TestLoadSettings(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmpdir)

    def write(self, content):
        path = os.path.join(self.tmpdir, 'graph.yaml')
        with open(path, 'w', encoding='utf-8') as f:
            f.write(content)
        return path

    def test_shipped_config(self):
        settings = load_settings(REPO_ROOT / 'config' / 'graph.yaml')
        self.assertEqual(settings.query.default_limit, 10)
        self.assertEqual(settings.query.max_limit, 50)
        self.assertEqual(settings.query.default_timeout_seconds, 5)
        self.assertIsNone(settings.lexicon_path)

    def test_missing_default_file_gives_defaults(self):
        with patch('coffee_graph.settings.DEFAULT_CONFIG_PATH', Path(self.tmpdir) / 'absent.yaml'):
            self.assertEqual(load_settings(), Settings())

    def test_missing_explicit_file_raises(self):
        with self.assertRaises(FileNotFoundError):
            load_settings(os.path.join(self.tmpdir, 'absent.yaml'))

    def test_partial_section(self):
        settings = load_settings(self.write("query:\n  max_limit: 20\n"))
        self.assertEqual(settings.query, QuerySettings(max_limit=20))

    def test_empty_file(self):
        self.assertEqual(load_settings(self.write("")), Settings())

    def test_lexicon_override(self):
        settings = load_settings(self.write("taxonomy:\n  lexicon_path: custom/lexicon.yaml\n"))
        self.assertEqual(settings.lexicon_path, Path('custom/lexicon.yaml'))

    def test_invalid_values(self):
        bad_configs = [
            "- just\n- a list\n",
            "query: [1, 2]\n",
            "query:\n  page_size: 5\n",
            "query:\n  max_limit: 0\n",
            "query:\n  default_limit: ten\n",
            "query:\n  default_limit: 60\n",
            "query:\n  default_timeout_seconds: -1\n",
            "query:\n  similarity_weight: 1.5\n",
            "query:\n  similarity_weight: 0.5\n",
            "taxonomy:\n  lexicon_path: 3\n",
        ]
        for content in bad_configs:
            with self.subTest(content=content):
                with self.assertRaises(ValueError):
                    load_settings(self.write(content))


if __name__ == '__main__':
    unittest.main()
