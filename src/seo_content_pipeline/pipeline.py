"""
Post-processing pipeline orchestration.

Raw model text -> RecoveringJSONParser -> ContentRecord -> TermInjector ->
LinkInjector -> SectionLifecycleManager -> final ContentRecord.

Every stage works on a copy of the record. Injection shortfalls are
reported in the result, never raised.
"""

import logging
import random
from typing import Iterable, Optional

from .config import PipelineConfig
from .html_tree import plain_text
from .json_recovery import RecoveringJSONParser
from .link_injector import LinkInjector
from .llm_client import ARTICLE_SYSTEM_PROMPT, ContentProvider, build_article_prompt
from .models import (
    ContentRecord,
    LinkTarget,
    PipelineResult,
    Reference,
    SectionKind,
    VocabularyTerm,
)
from .section_templates import Clock, IdFactory
from .sections import SectionLifecycleManager
from .term_injector import TermInjector
from .text_repair import count_words

logger = logging.getLogger(__name__)


class ContentPipeline:
    """
    Turn model output into a publishable record.

    Args:
        config: Pipeline configuration.
        rng: Random source for term phrasing (seed it for reproducible runs).
        id_factory: Unique token source for rendered section ids.
        clock: Current-time source for rendered sections.

    Example:
        >>> pipeline = ContentPipeline(rng=random.Random(42))
        >>> result = pipeline.process(raw_text, terms=terms, keyword="protein timing")
        >>> result.record.html_body
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        rng: Optional[random.Random] = None,
        id_factory: Optional[IdFactory] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or PipelineConfig()
        self.parser = RecoveringJSONParser(self.config.parser)
        self.term_injector = TermInjector(self.config.terms, rng=rng)
        self.link_injector = LinkInjector(self.config.links)
        self.sections = SectionLifecycleManager(id_factory=id_factory, clock=clock)

    def process(
        self,
        raw_text: str,
        terms: Iterable[VocabularyTerm] = (),
        targets: Iterable[LinkTarget] = (),
        references: Iterable[Reference] = (),
        keyword: str = "",
    ) -> PipelineResult:
        """
        Parse raw model output and run every post-processing stage.

        Raises:
            ParseFailure: The response could not be recovered.
        """
        record = self.parser.parse(raw_text)
        if not record.structure_verified:
            logger.warning("Body was recovered from damaged output; structure not verified")
        return self.process_record(record, terms, targets, references, keyword)

    def process_record(
        self,
        record: ContentRecord,
        terms: Iterable[VocabularyTerm] = (),
        targets: Iterable[LinkTarget] = (),
        references: Iterable[Reference] = (),
        keyword: str = "",
    ) -> PipelineResult:
        """
        Run the post-processing stages on an already parsed record.

        Args:
            record: Parsed record (left untouched; a copy is returned).
            terms: Vocabulary for term injection.
            targets: Internal pages for link injection.
            references: Sources for the references block.
            keyword: Keyword context for link relevance (defaults to the title).

        Returns:
            PipelineResult with the final record and per-pass reports.
        """
        record = record.copy()
        result = PipelineResult(record=record)
        events: list[str] = []
        html = record.html_body

        if self.config.strip_h1:
            html = self.sections.remove_h1_tags(html, events)

        terms = list(terms)
        if self.config.inject_terms and terms:
            result.term_result = self.term_injector.inject(html, terms)
            html = result.term_result.html

        targets = list(targets)
        if self.config.inject_links and targets:
            result.link_result = self.link_injector.inject(html, targets, keyword or record.title)
            html = result.link_result.html

        if self.config.canonicalize_faq:
            html = self.sections.deduplicate(html, SectionKind.FAQ, events)
            html = self.sections.canonicalize_faq(html, record.faqs, events)

        references = list(references)
        if self.config.canonicalize_references:
            html = self.sections.deduplicate(html, SectionKind.REFERENCES, events)
            html = self.sections.canonicalize_references(html, references, events)

        record.html_body = html
        record.word_count = count_words(plain_text(html))
        result.sections_log = events

        logger.info(
            f"Pipeline complete: {record.word_count} words, "
            f"{self.sections.count_sections(html, SectionKind.FAQ)} FAQ block(s), "
            f"{self.sections.count_sections(html, SectionKind.REFERENCES)} references block(s)"
        )
        return result

    def generate(
        self,
        provider: ContentProvider,
        keyword: str,
        terms: Iterable[VocabularyTerm] = (),
        targets: Iterable[LinkTarget] = (),
        references: Iterable[Reference] = (),
        temperature: Optional[float] = None,
    ) -> PipelineResult:
        """
        Ask the provider for an article, then post-process it.

        Raises:
            ProviderError: The provider failed after its retries.
            ParseFailure: The response could not be recovered.
        """
        terms = list(terms)
        targets = list(targets)
        prompt = build_article_prompt(keyword, terms, targets)
        if temperature is None:
            temperature = self.config.provider.temperature

        logger.info(f"Requesting article for '{keyword}'")
        raw_text = provider.send(ARTICLE_SYSTEM_PROMPT, prompt, temperature)
        return self.process(raw_text, terms, targets, references, keyword)
