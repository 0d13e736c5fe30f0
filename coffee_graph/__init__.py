"""
Coffee Graph System

This package provides the knowledge graph core for:
- SCA flavor taxonomy and tasting-note classification
- Multi-value normalization and idempotent graph ingestion
- Flavor profile and character axis derivation
- Graph consistency maintenance
- Comparative and similarity queries over coffee products
"""

__version__ = "1.0.0"
