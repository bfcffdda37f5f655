"""
SEO Content Pipeline

Resilient post-processing for LLM-generated article payloads:
- Recovers JSON that was truncated or damaged mid-generation
- Injects missing vocabulary terms into eligible body text
- Adds relevant internal links with synthesized anchor text
- Keeps exactly one canonical FAQ and references section in place
"""

__version__ = "1.0.0"
__author__ = "SEO Content Pipeline Team"

from .config import (
    LinkInjectionConfig,
    ParserConfig,
    PipelineConfig,
    ProviderConfig,
    TermInjectionConfig,
)

from .models import (
    ContentRecord,
    CoverageReport,
    FAQItem,
    InjectionResult,
    InjectionShortfall,
    InsertionRecord,
    LinkTarget,
    PipelineResult,
    Reference,
    SectionDescriptor,
    SectionKind,
    TermKind,
    VocabularyTerm,
)

# JSON recovery
from .json_recovery import (
    ContentTooShort,
    InputContractError,
    MissingRequiredField,
    ParseFailure,
    RecoveringJSONParser,
    parse_model_output,
)

# Coverage and injection
from .coverage import CoverageAnalyzer, analyze_coverage
from .term_injector import TermInjector
from .link_injector import LinkInjector, calculate_relevance, synthesize_anchor_text

# Section lifecycle
from .sections import SectionLifecycleManager, deduplicate_sections
from .section_templates import render_faq_section, render_references_section

# Provider boundary
from .llm_client import (
    AnthropicProvider,
    ProviderError,
    RetryingProvider,
    create_provider,
)

from .pipeline import ContentPipeline

__all__ = [
    # Configuration
    "LinkInjectionConfig",
    "ParserConfig",
    "PipelineConfig",
    "ProviderConfig",
    "TermInjectionConfig",
    # Models
    "ContentRecord",
    "CoverageReport",
    "FAQItem",
    "InjectionResult",
    "InjectionShortfall",
    "InsertionRecord",
    "LinkTarget",
    "PipelineResult",
    "Reference",
    "SectionDescriptor",
    "SectionKind",
    "TermKind",
    "VocabularyTerm",
    # JSON recovery
    "ContentTooShort",
    "InputContractError",
    "MissingRequiredField",
    "ParseFailure",
    "RecoveringJSONParser",
    "parse_model_output",
    # Coverage and injection
    "CoverageAnalyzer",
    "analyze_coverage",
    "TermInjector",
    "LinkInjector",
    "calculate_relevance",
    "synthesize_anchor_text",
    # Section lifecycle
    "SectionLifecycleManager",
    "deduplicate_sections",
    "render_faq_section",
    "render_references_section",
    # Provider boundary
    "AnthropicProvider",
    "ProviderError",
    "RetryingProvider",
    "create_provider",
    # Pipeline
    "ContentPipeline",
]
