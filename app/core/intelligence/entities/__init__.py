"""Entity extraction module."""

from .types import ExtractedEntities
from .extractor import (
    EntityExtractor,
    extract_email,
    is_valid_email,
    resolve_day,
    get_entity_extractor,
    extract_entities,
)

__all__ = [
    "ExtractedEntities",
    "EntityExtractor",
    "extract_email",
    "is_valid_email",
    "resolve_day",
    "get_entity_extractor",
    "extract_entities",
]
