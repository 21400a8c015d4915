"""
Extraction pipeline for stacking multiple extraction strategies.

Tries the announcement pattern, table heuristics, list heuristics and
key/value lines in order, then the model extractor when configured.
"""

from __future__ import annotations

import logging

from ..config.models import ExtractionConfig, ExtractionMode
from ..errors import ExtractionError
from ..normalize.canonical import ExtractionCandidate
from .announcement import AnnouncementExtractor
from .base import ExtractionResult, Extractor
from .heuristic_list import ListExtractor
from .heuristic_table import TableExtractor
from .key_value import KeyValueExtractor
from .llm import LLMExtractor

logger = logging.getLogger(__name__)


def default_extractors(fuzzy_threshold: int = 80) -> list[Extractor]:
    return [
        AnnouncementExtractor(),
        TableExtractor(fuzzy_threshold),
        ListExtractor(fuzzy_threshold),
        KeyValueExtractor(fuzzy_threshold),
    ]


class ExtractionPipeline:
    """Pipeline of extraction strategies with fallback logic."""

    def __init__(
        self,
        extractors: list[Extractor] | None = None,
        llm: LLMExtractor | None = None,
        config: ExtractionConfig | None = None,
    ) -> None:
        """Initialize the extraction pipeline.

        Args:
            extractors: Deterministic strategies in order (default chain if None)
            llm: Model extractor; required for LLM mode
            config: Extraction configuration
        """
        self.config = config or ExtractionConfig()
        self.extractors = extractors or default_extractors(self.config.fuzzy_header_threshold)
        self.llm = llm

        if self.config.mode == ExtractionMode.LLM and llm is None:
            raise ValueError("LLM extraction mode requires an LLM extractor")

    def is_relevant(self, text: str) -> bool:
        """Check whether content mentions green certificates at all."""
        keywords = self.config.relevance_keywords
        if not keywords:
            return True
        lowered = text.lower()
        return any(keyword.lower() in lowered for keyword in keywords)

    def run_deterministic(self, content: str, url: str | None = None) -> ExtractionResult:
        """Try deterministic extractors in order until one succeeds."""
        all_warnings: list[str] = []
        all_errors: list[str] = []

        for extractor in self.extractors:
            result = extractor.extract(content, url)
            all_warnings.extend(result.warnings)
            all_errors.extend(result.errors)

            if result.ok:
                result.warnings = all_warnings
                result.errors = all_errors
                return result

        return ExtractionResult(
            extraction_method="pipeline_failed",
            warnings=all_warnings,
            errors=["All extraction strategies failed", *all_errors],
        )

    async def extract_result(self, content: str, url: str | None = None) -> ExtractionResult:
        """Run the configured strategy chain.

        Args:
            content: Normalized page content
            url: Page URL (default detail link)

        Returns:
            ExtractionResult; ``irrelevant`` is set when the relevance
            gate rejected the content

        Raises:
            ExtractionError: When no strategy produced candidates, or the
                model extractor failed
        """
        if not self.is_relevant(content):
            logger.info("Content at %s does not mention green certificates", url)
            return ExtractionResult(irrelevant=True, extraction_method="relevance_gate")

        mode = self.config.mode

        if mode == ExtractionMode.LLM:
            return await self.llm.extract(content, url)

        result = self.run_deterministic(content, url)
        if result.ok:
            logger.debug("Extracted %d candidates with %s", len(result.candidates), result.extraction_method)
            return result

        if mode == ExtractionMode.AUTO and self.llm is not None:
            logger.info("Deterministic strategies found nothing at %s; asking the model", url)
            return await self.llm.extract(content, url)

        raise ExtractionError(
            "No extraction strategy produced candidates",
            context={"url": url, "errors": result.errors, "warnings": result.warnings},
        )

    async def extract(
        self,
        normalized_text: str,
        source_id: int | None = None,
        owner_id: str | None = None,
        detail_url: str | None = None,
    ) -> list[ExtractionCandidate]:
        """Extract candidates for one page of a source.

        Irrelevant content yields an empty list rather than an error.

        Raises:
            ExtractionError: See extract_result
        """
        try:
            result = await self.extract_result(normalized_text, detail_url)
        except ExtractionError as e:
            e.context.setdefault("source_id", source_id)
            raise
        return result.candidates

    async def close(self) -> None:
        if self.llm is not None:
            await self.llm.close()
