"""
Record Catalog - loads canonical product records exported by the extraction pipeline
"""

import re
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from coffee_graph.data_pipeline.models import ProductRecord
from coffee_graph.utils.unicode_handler import clean_unicode_text

logger = logging.getLogger(__name__)

_NOTE_DELIMITERS = re.compile(r'[|;,]')

_TRUE_VALUES = {"true", "yes", "y", "1", "in stock", "available"}
_FALSE_VALUES = {"false", "no", "n", "0", "out of stock", "sold out"}


def _is_missing(value) -> bool:
    if isinstance(value, (list, tuple)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _parse_notes(value) -> List[str]:
    if _is_missing(value) or value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = value
    else:
        text = str(value).strip()
        if text.startswith("["):
            try:
                items = json.loads(text)
            except json.JSONDecodeError:
                items = _NOTE_DELIMITERS.split(text.strip("[]"))
        else:
            items = _NOTE_DELIMITERS.split(text)
    return [clean_unicode_text(str(item)) for item in items if clean_unicode_text(str(item))]


def _parse_bool(value) -> Optional[bool]:
    if _is_missing(value) or value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return None


class RecordCatalog:
    """In-memory index of product records, keyed by product id."""

    REQUIRED_COLUMNS = ['id', 'name']
    TEXT_COLUMNS = [
        'name', 'brand', 'currency', 'origin', 'region', 'process', 'producer',
        'variety', 'altitude', 'roast_level', 'description'
    ]

    def __init__(self, records: Iterable[ProductRecord] = ()):
        self._records: Dict[str, ProductRecord] = {}
        for record in records:
            if record.id in self._records:
                logger.warning(f"Duplicate record for product {record.id}; keeping the last one")
            self._records[record.id] = record

    @classmethod
    def from_file(cls, path) -> 'RecordCatalog':
        """Load a CSV or JSON export, chosen by file extension."""
        path = Path(path)
        if path.suffix.lower() in ('.json', '.jsonl'):
            return cls.from_json(path)
        return cls.from_csv(path)

    @classmethod
    def from_csv(cls, path) -> 'RecordCatalog':
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Product records not found: {path}")

        # Try different encodings with BOM handling
        for encoding in ('utf-8-sig', 'utf-8', 'latin-1', 'cp1252'):
            try:
                df = pd.read_csv(path, encoding=encoding, dtype={'id': str})
                logger.info(f"Successfully read CSV with {encoding} encoding")
                return cls.from_dataframe(df)
            except (UnicodeDecodeError, UnicodeError) as e:
                logger.debug(f"Failed to read with {encoding}: {e}")
                continue

        raise ValueError("Could not read CSV file with any supported encoding")

    @classmethod
    def from_json(cls, path) -> 'RecordCatalog':
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Product records not found: {path}")
        lines = path.suffix.lower() == '.jsonl'
        df = pd.read_json(path, orient='records', lines=lines, dtype={'id': str})
        return cls.from_dataframe(df)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> 'RecordCatalog':
        """Clean a raw export frame and build records from its rows."""
        missing_columns = [col for col in cls.REQUIRED_COLUMNS if col not in df.columns]
        if missing_columns:
            raise ValueError(f"Missing required columns: {missing_columns}")

        df = df[df['id'].notna()].copy()
        df['id'] = df['id'].astype(str).str.strip()
        df = df[df['id'] != '']

        for col in cls.TEXT_COLUMNS:
            if col in df.columns:
                df[col] = df[col].map(lambda v: None if _is_missing(v) else clean_unicode_text(str(v)) or None)

        if 'price' in df.columns:
            df['price'] = pd.to_numeric(df['price'], errors='coerce')

        records = []
        for row in df.to_dict(orient='records'):
            data = {key: (None if _is_missing(value) else value) for key, value in row.items()}
            data['tasting_notes'] = _parse_notes(row.get('tasting_notes'))
            data['in_stock'] = _parse_bool(row.get('in_stock'))
            records.append(ProductRecord.from_dict(data))

        logger.info(f"Loaded {len(records)} product records")
        return cls(records)

    def get(self, product_id: str) -> Optional[ProductRecord]:
        return self._records.get(product_id)

    def all(self) -> List[ProductRecord]:
        return [self._records[pid] for pid in sorted(self._records)]

    def by_brand(self, brand: str) -> List[ProductRecord]:
        needle = (brand or "").strip().lower()
        return [r for r in self.all() if (r.brand or "").strip().lower() == needle]

    def ids(self) -> List[str]:
        return sorted(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, product_id) -> bool:
        return product_id in self._records
