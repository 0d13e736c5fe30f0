"""
Settings - query defaults and lexicon location loaded from config/graph.yaml
"""

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/graph.yaml")


@dataclass(frozen=True)
class QuerySettings:
    """Limits and weights used by the query planner."""
    default_limit: int = 10
    max_limit: int = 50
    default_timeout_seconds: Optional[float] = None
    max_broadened_candidates: int = 500
    similarity_weight: float = 0.7
    delta_weight: float = 0.3


@dataclass(frozen=True)
class Settings:
    query: QuerySettings = field(default_factory=QuerySettings)
    lexicon_path: Optional[Path] = None


def _validate_query(section: dict) -> QuerySettings:
    known = {f.name for f in fields(QuerySettings)}
    unknown = set(section) - known
    if unknown:
        raise ValueError(f"Unknown keys in 'query' section: {sorted(unknown)}")

    for key in ('default_limit', 'max_limit', 'max_broadened_candidates'):
        if key in section and (not isinstance(section[key], int) or isinstance(section[key], bool)
                               or section[key] <= 0):
            raise ValueError(f"Invalid '{key}': expected positive integer, got {section[key]!r}")

    timeout = section.get('default_timeout_seconds')
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ValueError(f"Invalid 'default_timeout_seconds': expected positive number, got {timeout!r}")

    for key in ('similarity_weight', 'delta_weight'):
        value = section.get(key)
        if value is not None and (not isinstance(value, (int, float)) or not 0 <= value <= 1):
            raise ValueError(f"Invalid '{key}': expected number in [0, 1], got {value!r}")

    settings = QuerySettings(**section)
    if settings.default_limit > settings.max_limit:
        raise ValueError(
            f"default_limit ({settings.default_limit}) exceeds max_limit ({settings.max_limit})"
        )
    if abs(settings.similarity_weight + settings.delta_weight - 1.0) > 1e-9:
        raise ValueError("similarity_weight and delta_weight must sum to 1")
    return settings


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Load settings from YAML.

    Args:
        path: Config file; defaults to config/graph.yaml. A missing file
            yields built-in defaults.

    Returns:
        Settings
    """
    config_file = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_file.exists():
        if path:
            raise FileNotFoundError(f"Config file not found: {config_file}")
        logger.debug(f"No config at {config_file}; using defaults")
        return Settings()

    with open(config_file, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    # Validate structure
    if not isinstance(data, dict):
        raise ValueError(f"Invalid graph.yaml format: expected dictionary, got {type(data).__name__}")

    query = data.get('query', {}) or {}
    if not isinstance(query, dict):
        raise ValueError(f"Invalid 'query' section: expected dictionary, got {type(query).__name__}")

    taxonomy = data.get('taxonomy', {}) or {}
    if not isinstance(taxonomy, dict):
        raise ValueError(f"Invalid 'taxonomy' section: expected dictionary, got {type(taxonomy).__name__}")

    lexicon = taxonomy.get('lexicon_path')
    if lexicon is not None and not isinstance(lexicon, str):
        raise ValueError(f"Invalid 'lexicon_path': expected string, got {type(lexicon).__name__}")

    return Settings(query=_validate_query(query), lexicon_path=Path(lexicon) if lexicon else None)
