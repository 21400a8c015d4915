"""Extraction strategies for certificate announcements."""

from .announcement import AnnouncementExtractor
from .base import ExtractionResult, Extractor
from .heuristic_list import ListExtractor
from .heuristic_table import TableExtractor
from .key_value import KeyValueExtractor
from .llm import LLMExtractor, parse_model_output
from .pipeline import ExtractionPipeline, default_extractors

__all__ = [
    "AnnouncementExtractor",
    "ExtractionPipeline",
    "ExtractionResult",
    "Extractor",
    "KeyValueExtractor",
    "LLMExtractor",
    "ListExtractor",
    "TableExtractor",
    "default_extractors",
    "parse_model_output",
]
