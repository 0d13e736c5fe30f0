"""
Tests for loading product record exports
"""

import json
import os
import shutil
import tempfile
import unittest

# Add parent directory to path
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from coffee_graph.data_pipeline.models import ProductRecord
from coffee_graph.data_pipeline.record_catalog import RecordCatalog


CSV_EXPORT = """id,name,brand,price,currency,in_stock,origin,region,process,tasting_notes,roast_level
001,Guji Natural,Onyx,22.00,USD,true,Ethiopia,Guji,Natural,"blackberry | jasmine",Light
002,Cerrado,Onyx,,USD,sold out,Brazil,,Pulped Natural,"chocolate; hazelnut",
003,Huila  Washed ,Sey,n/a,USD,,Colombia,Huila,Washed,"[""red apple"", ""panela""]",Light
"""


class TestRecordCatalog(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.tmpdir)

    def write(self, name, content, encoding='utf-8'):
        path = os.path.join(self.tmpdir, name)
        with open(path, 'w', encoding=encoding) as f:
            f.write(content)
        return path

    def test_from_csv(self):
        catalog = RecordCatalog.from_file(self.write('records.csv', CSV_EXPORT))

        self.assertEqual(len(catalog), 3)
        self.assertEqual(catalog.ids(), ['001', '002', '003'])

        guji = catalog.get('001')
        self.assertEqual(guji.price, 22.0)
        self.assertTrue(guji.in_stock)
        self.assertEqual(guji.tasting_notes, ['blackberry', 'jasmine'])
        self.assertEqual(guji.region, 'Guji')

        cerrado = catalog.get('002')
        self.assertIsNone(cerrado.price)
        self.assertFalse(cerrado.in_stock)
        self.assertIsNone(cerrado.region)
        self.assertIsNone(cerrado.roast_level)
        self.assertEqual(cerrado.tasting_notes, ['chocolate', 'hazelnut'])

        huila = catalog.get('003')
        self.assertEqual(huila.name, 'Huila Washed')
        self.assertIsNone(huila.price)
        self.assertIsNone(huila.in_stock)
        self.assertEqual(huila.tasting_notes, ['red apple', 'panela'])

    def test_from_latin1_csv(self):
        content = "id,name,origin\n1,Café de Altura,Perú\n"
        catalog = RecordCatalog.from_csv(self.write('records.csv', content, encoding='latin-1'))
        self.assertEqual(catalog.get('1').name, 'Cafe de Altura')

    def test_from_json(self):
        records = [
            {"id": "a1", "name": "Guji", "brand": "Onyx", "price": 22, "tasting_notes": ["blueberry", "jasmine"]},
            {"id": "a2", "name": "Cerrado", "tasting_notes": None},
        ]
        catalog = RecordCatalog.from_file(self.write('records.json', json.dumps(records)))
        self.assertEqual(catalog.get('a1').tasting_notes, ['blueberry', 'jasmine'])
        self.assertEqual(catalog.get('a2').tasting_notes, [])
        self.assertIsNone(catalog.get('a2').brand)

    def test_from_jsonl(self):
        lines = "\n".join(json.dumps({"id": f"p{i}", "name": f"Coffee {i}"}) for i in range(3))
        catalog = RecordCatalog.from_file(self.write('records.jsonl', lines))
        self.assertEqual(catalog.ids(), ['p0', 'p1', 'p2'])

    def test_missing_required_columns(self):
        with self.assertRaises(ValueError):
            RecordCatalog.from_dataframe(pd.DataFrame([{"name": "No id"}]))

    def test_rows_without_id_dropped(self):
        df = pd.DataFrame([{"id": "1", "name": "A"}, {"id": None, "name": "B"}, {"id": " ", "name": "C"}])
        self.assertEqual(RecordCatalog.from_dataframe(df).ids(), ['1'])

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            RecordCatalog.from_file(os.path.join(self.tmpdir, 'missing.csv'))

    def test_duplicate_ids_keep_last(self):
        with self.assertLogs('coffee_graph.data_pipeline.record_catalog', level='WARNING'):
            catalog = RecordCatalog([
                ProductRecord(id="p1", name="Old"),
                ProductRecord(id="p1", name="New"),
            ])
        self.assertEqual(catalog.get("p1").name, "New")

    def test_by_brand(self):
        catalog = RecordCatalog([
            ProductRecord(id="b", name="B", brand="Onyx"),
            ProductRecord(id="a", name="A", brand=" onyx "),
            ProductRecord(id="c", name="C", brand="Sey"),
        ])
        self.assertEqual([r.id for r in catalog.by_brand("ONYX")], ["a", "b"])
        self.assertIn("c", catalog)
        self.assertNotIn("z", catalog)


class TestProductRecord(unittest.TestCase):

    def test_from_dict_splits_note_string(self):
        record = ProductRecord.from_dict({"id": 7, "name": "X", "tasting_notes": "cherry, cocoa; honey", "price": "12.5"})
        self.assertEqual(record.id, "7")
        self.assertEqual(record.tasting_notes, ["cherry", "cocoa", "honey"])
        self.assertEqual(record.price, 12.5)


if __name__ == '__main__':
    unittest.main()
