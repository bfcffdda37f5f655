"""
Data models for the SEO Content Pipeline.

This module defines the records that flow through the post-processing
pipeline: the parsed content record, vocabulary terms, link targets,
references, and the derived reports each stage returns.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional


InsertionPosition = Literal["start", "middle", "end"]

# Keys a provider may use for the HTML body, in order of preference
BODY_FIELD_ALIASES = ("htmlContent", "html_body", "htmlBody", "body", "content")

DEFAULT_TERM_WEIGHT = 50
CRITICAL_IMPORTANCE = 80


class TermKind(Enum):
    """Where a vocabulary term is expected to appear."""
    HEADER = "header"
    BASIC = "basic"
    EXTENDED = "extended"
    TITLE = "title"

    @property
    def is_heading_kind(self) -> bool:
        return self in (TermKind.HEADER, TermKind.TITLE)


class SectionKind(Enum):
    """Named structural blocks managed inside the document."""
    FAQ = "faq"
    REFERENCES = "references"


@dataclass
class FAQItem:
    """A single question/answer pair."""
    question: str
    answer: str

    @classmethod
    def from_dict(cls, data: dict) -> "FAQItem":
        return cls(
            question=str(data.get("question", "")).strip(),
            answer=str(data.get("answer", "")).strip(),
        )

    def to_dict(self) -> dict[str, str]:
        return {"question": self.question, "answer": self.answer}


@dataclass
class ContentRecord:
    """
    The structured article produced by the model and refined by the pipeline.

    Records are treated as immutable by convention: every pipeline stage
    works on ``record.copy()`` and returns the copy.
    """
    title: str = ""
    excerpt: str = ""
    meta_description: str = ""
    slug: str = ""
    html_body: str = ""
    faqs: list[FAQItem] = field(default_factory=list)
    schema: dict = field(default_factory=dict)
    word_count: int = 0
    structure_verified: bool = True
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "ContentRecord":
        """
        Build a record from a deserialized model payload.

        Args:
            payload: Dict decoded from the model's JSON output.

        Returns:
            ContentRecord with known fields mapped and the rest kept in ``extra``.
        """
        body = ""
        for key in BODY_FIELD_ALIASES:
            if isinstance(payload.get(key), str):
                body = payload[key]
                break

        faqs = []
        raw_faqs = payload.get("faqs")
        for item in raw_faqs if isinstance(raw_faqs, list) else []:
            if isinstance(item, dict) and item.get("question"):
                faqs.append(FAQItem.from_dict(item))

        known = {
            "title", "excerpt", "metaDescription", "slug", "faqs",
            "schema", "wordCount", "structureVerified", *BODY_FIELD_ALIASES,
        }
        schema = payload.get("schema")

        return cls(
            title=str(payload.get("title") or ""),
            excerpt=str(payload.get("excerpt") or ""),
            meta_description=str(payload.get("metaDescription") or ""),
            slug=str(payload.get("slug") or ""),
            html_body=body,
            faqs=faqs,
            schema=schema if isinstance(schema, dict) else {},
            word_count=_coerce_int(payload.get("wordCount")),
            structure_verified=payload.get("structureVerified") is not False,
            extra={k: v for k, v in payload.items() if k not in known},
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize back to the camelCase payload shape."""
        payload = dict(self.extra)
        payload.update({
            "title": self.title,
            "excerpt": self.excerpt,
            "metaDescription": self.meta_description,
            "slug": self.slug,
            "htmlContent": self.html_body,
            "faqs": [faq.to_dict() for faq in self.faqs],
            "schema": self.schema,
            "wordCount": self.word_count,
            "structureVerified": self.structure_verified,
        })
        return payload

    def copy(self) -> "ContentRecord":
        """Return an independent deep copy."""
        return copy.deepcopy(self)


@dataclass(frozen=True)
class VocabularyTerm:
    """A weighted keyword/phrase the body text should contain."""
    text: str
    kind: TermKind = TermKind.BASIC
    recommended_count: int = 1
    importance: Optional[int] = None

    @property
    def weight(self) -> int:
        """Importance used for weighting; unspecified terms sit mid-range."""
        return self.importance if self.importance is not None else DEFAULT_TERM_WEIGHT

    @property
    def is_critical(self) -> bool:
        return self.weight >= CRITICAL_IMPORTANCE

    @classmethod
    def from_dict(cls, data: dict) -> "VocabularyTerm":
        kind = data.get("kind") or data.get("type") or "basic"
        return cls(
            text=str(data.get("text") or data.get("term") or "").strip(),
            kind=TermKind(kind),
            recommended_count=_coerce_int(
                data.get("recommended_count", data.get("recommended")), default=1
            ),
            importance=data.get("importance"),
        )


@dataclass(frozen=True)
class LinkTarget:
    """An internal page that may be linked from the body."""
    url: str
    title: str
    slug: str = ""
    relevance_hint: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> "LinkTarget":
        return cls(
            url=str(data["url"]),
            title=str(data.get("title", "")),
            slug=str(data.get("slug", "")),
            relevance_hint=data.get("relevance_hint", data.get("relevanceScore")),
        )


@dataclass(frozen=True)
class Reference:
    """A validated external source listed in the references block."""
    url: str
    title: str = ""
    source: str = ""
    year: str = ""
    domain: str = ""
    is_valid: bool = True
    is_authority: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Reference":
        return cls(
            url=str(data.get("url", "")),
            title=str(data.get("title", "")),
            source=str(data.get("source", "")),
            year=str(data.get("year", "")),
            domain=str(data.get("domain", "")),
            is_valid=data.get("is_valid", data.get("isValid", True)) is not False,
            is_authority=bool(data.get("is_authority", data.get("isAuthority", False))),
        )


@dataclass
class InsertionCandidate:
    """A scored, constraint-passing location for one insertion. Transient."""
    element: Any  # html_tree.Element
    score: float
    position: InsertionPosition = "end"
    order: int = 0  # document order, used as tie-breaker


@dataclass
class TermUsage:
    """A vocabulary term found in the text."""
    term: VocabularyTerm
    count: int
    positions: list[int] = field(default_factory=list)


@dataclass
class CoverageReport:
    """
    How well a vocabulary is represented in a text body.

    Derived data: re-run the analyzer after every mutation rather than
    holding on to an old report.
    """
    raw_score: int
    weighted_score: int
    used_terms: list[TermUsage] = field(default_factory=list)
    missing_terms: list[VocabularyTerm] = field(default_factory=list)
    critical_missing: list[VocabularyTerm] = field(default_factory=list)
    header_missing: list[VocabularyTerm] = field(default_factory=list)
    body_missing: list[VocabularyTerm] = field(default_factory=list)

    @property
    def used_texts(self) -> list[str]:
        return [usage.term.text for usage in self.used_terms]


@dataclass
class SectionDescriptor:
    """A detected FAQ/references block: kind, half-open span, quality."""
    kind: SectionKind
    span: tuple[int, int]
    is_canonical_quality: bool = False
    matcher: str = ""

    @property
    def start(self) -> int:
        return self.span[0]

    @property
    def end(self) -> int:
        return self.span[1]

    def text(self, html: str) -> str:
        return html[self.start:self.end]


@dataclass
class InsertionRecord:
    """One successful insertion made by an injection pass."""
    unit: str
    location: str  # "paragraph", "list", "cell"
    score: float
    detail: str = ""  # template used, or the anchor text -> url


@dataclass
class InjectionShortfall:
    """Non-fatal report that an injection pass fell short of its target."""
    targeted: float
    achieved: float
    failed: list[str] = field(default_factory=list)


@dataclass
class InjectionResult:
    """Outcome of one term or link injection pass."""
    html: str
    added: list[InsertionRecord] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    before_score: float = 0.0
    after_score: float = 0.0
    target: Optional[float] = None

    @property
    def added_count(self) -> int:
        return len(self.added)

    @property
    def shortfall(self) -> Optional[InjectionShortfall]:
        """Shortfall details when the pass ended below its target."""
        if self.target is None or self.after_score >= self.target:
            return None
        return InjectionShortfall(
            targeted=self.target,
            achieved=self.after_score,
            failed=list(self.failed),
        )


@dataclass
class PipelineResult:
    """Final record plus the reports of each injection pass."""
    record: ContentRecord
    term_result: Optional[InjectionResult] = None
    link_result: Optional[InjectionResult] = None
    sections_log: list[str] = field(default_factory=list)


def _coerce_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
