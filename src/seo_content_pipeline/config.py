# -*- coding: utf-8 -*-
"""
Centralized configuration for the SEO Content Pipeline.

This module provides the dataclasses that control parsing thresholds,
term and link injection limits, and provider timeouts/retries. Each
dataclass validates itself on construction.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ParserConfig:
    """
    Thresholds for the recovering JSON parser.

    Attributes:
        min_response_length: Responses shorter than this (after stripping code
            fences) are rejected as truncated or empty.
        min_last_resort_body: Minimum body length the last-resort regex
            extraction must capture before a record is synthesized.
        trim_threshold: Healing only trims to the last complete entry when
            that entry ends beyond this fraction of the text.
        preview_chars: Characters kept from each end of the input in a
            ParseFailure preview.
    """
    min_response_length: int = 100
    min_last_resort_body: int = 1000
    trim_threshold: float = 0.5
    preview_chars: int = 200

    def __post_init__(self):
        if self.min_response_length < 0:
            raise ValueError(
                f"min_response_length must be >= 0, got {self.min_response_length}"
            )
        if not 0.0 <= self.trim_threshold <= 1.0:
            raise ValueError(
                f"trim_threshold must be between 0 and 1, got {self.trim_threshold}"
            )
        if self.preview_chars < 1:
            raise ValueError(f"preview_chars must be >= 1, got {self.preview_chars}")


@dataclass
class TermInjectionConfig:
    """
    Controls vocabulary term injection.

    Attributes:
        target_coverage: Stop once the raw coverage score reaches this (0-100).
        max_insertions: Hard budget of insertions per pass.
        max_per_element: Maximum insertions into a single element.
        min_element_chars / max_element_chars: Plain-text length window an
            element must fall in to receive an insertion.
        min_context_score: Candidates scoring below this are discarded.
        prioritize_critical: Process critical (importance >= 80) terms first.
    """
    target_coverage: int = 85
    max_insertions: int = 30
    max_per_element: int = 2
    min_element_chars: int = 80
    max_element_chars: int = 600
    min_context_score: float = 10.0
    prioritize_critical: bool = True

    def __post_init__(self):
        if not 0 <= self.target_coverage <= 100:
            raise ValueError(
                f"target_coverage must be between 0 and 100, got {self.target_coverage}"
            )
        if self.max_insertions < 0:
            raise ValueError(f"max_insertions must be >= 0, got {self.max_insertions}")
        if self.max_per_element < 1:
            raise ValueError(f"max_per_element must be >= 1, got {self.max_per_element}")
        if self.min_element_chars > self.max_element_chars:
            raise ValueError(
                f"min_element_chars ({self.min_element_chars}) must be <= "
                f"max_element_chars ({self.max_element_chars})"
            )


@dataclass
class LinkInjectionConfig:
    """
    Controls internal link injection.

    Attributes:
        min_links: Below this many links in the document the fallback pass runs.
        max_links: Ceiling on links in the document, existing ones included.
        min_relevance: Targets scoring below this are never linked.
        min_link_distance: Minimum plain-text characters between two links
            placed in the same pass.
        max_links_per_section: Cap per heading-delimited section.
        min_element_chars / max_element_chars: Plain-text length window for
            candidate elements.
        min_title_overlap: Fraction of the target's meaningful title words an
            element must mention to be a candidate.
    """
    min_links: int = 12
    max_links: int = 25
    min_relevance: float = 0.55
    min_link_distance: int = 450
    max_links_per_section: int = 2
    min_element_chars: int = 40
    max_element_chars: int = 2000
    min_title_overlap: float = 0.5

    def __post_init__(self):
        if self.min_links < 0 or self.max_links < 0:
            raise ValueError("min_links and max_links must be >= 0")
        if self.min_links > self.max_links:
            raise ValueError(
                f"min_links ({self.min_links}) must be <= max_links ({self.max_links})"
            )
        if not 0.0 <= self.min_relevance <= 1.0:
            raise ValueError(
                f"min_relevance must be between 0 and 1, got {self.min_relevance}"
            )
        if self.min_link_distance < 0:
            raise ValueError(
                f"min_link_distance must be >= 0, got {self.min_link_distance}"
            )
        if self.max_links_per_section < 1:
            raise ValueError(
                f"max_links_per_section must be >= 1, got {self.max_links_per_section}"
            )


@dataclass
class ProviderConfig:
    """
    Provider call settings.

    The per-attempt timeout is proportional to the requested output length,
    clamped to [min_timeout, max_timeout] and extended by
    ``timeout_growth`` for each retry.
    """
    api_key: Optional[str] = None
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 16000
    temperature: float = 0.85
    tokens_per_second: float = 50.0
    min_timeout: float = 180.0
    max_timeout: float = 600.0
    timeout_growth: float = 0.5
    max_attempts: int = 4
    backoff_base: float = 3.0
    backoff_max: float = 60.0
    jitter: float = 1.0

    def __post_init__(self):
        if self.api_key is None:
            self.api_key = os.environ.get("ANTHROPIC_API_KEY")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.min_timeout <= 0 or self.max_timeout < self.min_timeout:
            raise ValueError(
                f"timeouts must satisfy 0 < min_timeout <= max_timeout, "
                f"got {self.min_timeout}/{self.max_timeout}"
            )
        if self.tokens_per_second <= 0:
            raise ValueError(
                f"tokens_per_second must be > 0, got {self.tokens_per_second}"
            )

    def timeout_for_attempt(self, attempt: int) -> float:
        """
        Timeout in seconds for a 1-based attempt number.

        Args:
            attempt: Attempt number (1 for the first call).

        Returns:
            Base timeout (output-proportional, clamped) extended per retry.
        """
        base = (self.max_tokens / self.tokens_per_second) * 1.5
        base = max(self.min_timeout, min(base, self.max_timeout))
        return base * (1 + (attempt - 1) * self.timeout_growth)


@dataclass
class PipelineConfig:
    """
    Top-level configuration for the post-processing pipeline.

    Attributes:
        parser: JSON recovery thresholds.
        terms: Term injection settings.
        links: Link injection settings.
        provider: Provider call settings (only used when generating).
        inject_terms / inject_links: Switch the injection passes on/off.
        canonicalize_faq / canonicalize_references: Switch section passes.
        strip_h1: Remove H1 headings from the body (the title is rendered
            by the host page).
    """
    parser: ParserConfig = field(default_factory=ParserConfig)
    terms: TermInjectionConfig = field(default_factory=TermInjectionConfig)
    links: LinkInjectionConfig = field(default_factory=LinkInjectionConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    inject_terms: bool = True
    inject_links: bool = True
    canonicalize_faq: bool = True
    canonicalize_references: bool = True
    strip_h1: bool = True

    @classmethod
    def conservative(cls, **overrides) -> "PipelineConfig":
        """Create config with low insertion budgets.

        Conservative mode:
        - Lower coverage target (70%) and at most 10 term insertions
        - At most one link per section, 8 links total, no forced minimum

        Args:
            **overrides: Override any top-level config values

        Returns:
            PipelineConfig with conservative defaults
        """
        defaults = {
            "terms": TermInjectionConfig(target_coverage=70, max_insertions=10),
            "links": LinkInjectionConfig(
                min_links=0, max_links=8, max_links_per_section=1, min_relevance=0.6
            ),
        }
        defaults.update(overrides)
        return cls(**defaults)

    @classmethod
    def aggressive(cls, **overrides) -> "PipelineConfig":
        """Create config that pushes coverage and link counts.

        Aggressive mode:
        - Coverage target 95% with a 40 insertion budget
        - Up to 30 links with a shorter minimum distance

        Args:
            **overrides: Override any top-level config values

        Returns:
            PipelineConfig with aggressive defaults
        """
        defaults = {
            "terms": TermInjectionConfig(target_coverage=95, max_insertions=40),
            "links": LinkInjectionConfig(
                min_links=15, max_links=30, min_link_distance=300
            ),
        }
        defaults.update(overrides)
        return cls(**defaults)
