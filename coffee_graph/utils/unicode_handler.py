"""
Unicode handling utilities for consistent text and identity processing
"""

import unicodedata
import re
from typing import Optional

_WHITESPACE = re.compile(r'\s+')
_NON_ALNUM = re.compile(r'[^A-Za-z0-9]')


def clean_unicode_text(text: Optional[str]) -> str:
    """Clean and normalize Unicode text"""
    if not text or not isinstance(text, str):
        return ""

    # Normalize Unicode (NFKD = compatibility decomposition)
    text = unicodedata.normalize('NFKD', text)

    # Drop combining marks so accented letters fold to their base letter
    text = ''.join(char for char in text if not unicodedata.combining(char))

    # Remove non-printable characters
    text = ''.join(char for char in text if unicodedata.category(char)[0] != 'C' or char in '\n\t')

    # Replace multiple spaces with single space
    text = _WHITESPACE.sub(' ', text)

    return text.strip()


def normalize_match_text(text: Optional[str]) -> str:
    """Lower-case text for keyword matching; hyphens and underscores become spaces"""
    text = clean_unicode_text(text).lower()
    text = text.replace('-', ' ').replace('_', ' ')
    return _WHITESPACE.sub(' ', text).strip()


def strip_to_alnum(text: Optional[str]) -> str:
    """Remove every character that is not an ASCII letter or digit"""
    return _NON_ALNUM.sub('', clean_unicode_text(text))
