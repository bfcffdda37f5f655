"""
Vocabulary coverage analysis.

Measures how many of the target vocabulary terms appear in an HTML body:
- Plain text is extracted with BeautifulSoup (script/style removed)
- Each term is matched case-insensitively on word boundaries
- Raw score: share of terms used; weighted score: share of importance used
- Missing terms are bucketed as critical, heading-kind and body-kind

Reports are derived data. Re-run the analyzer after every change to the
body instead of keeping an old report around.
"""

import logging
import re
from functools import lru_cache
from typing import Iterable

from bs4 import BeautifulSoup

from .models import CoverageReport, TermUsage, VocabularyTerm
from .text_repair import normalize_for_matching

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


@lru_cache(maxsize=1024)
def term_pattern(term_text: str) -> re.Pattern:
    """
    Compile the matcher for a term: case-insensitive, word-bounded, and
    tolerant of any whitespace run between the term's words.
    """
    normalized = normalize_for_matching(term_text).strip().lower()
    words = [re.escape(word) for word in normalized.split()]
    return re.compile(r"(?<!\w)" + r"\s+".join(words) + r"(?!\w)", re.IGNORECASE)


def extract_plain_text(html: str) -> str:
    """
    Visible text of an HTML body, lowercased and normalized for matching.

    Args:
        html: HTML fragment or document.

    Returns:
        Single-spaced lowercase text with typographic quotes/dashes folded.
    """
    if not html or not html.strip():
        return ""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup.find_all(["script", "style", "noscript", "template"]):
        tag.decompose()
    text = soup.get_text(separator=" ")
    text = normalize_for_matching(text)
    return _WHITESPACE_RE.sub(" ", text).strip().lower()


def text_contains_term(text: str, term_text: str) -> bool:
    """Check whether plain text already mentions a term."""
    if not text or not term_text.strip():
        return False
    return term_pattern(term_text).search(normalize_for_matching(text)) is not None


def analyze_coverage(html: str, terms: Iterable[VocabularyTerm]) -> CoverageReport:
    """
    Analyze vocabulary coverage of an HTML body.

    Args:
        html: The HTML body.
        terms: Vocabulary terms to look for.

    Returns:
        CoverageReport. Empty html or no terms yields 100/100 with empty lists.
    """
    terms = [term for term in terms if term.text.strip()]
    if not terms or not html or not html.strip():
        return CoverageReport(raw_score=100, weighted_score=100)

    text = extract_plain_text(html)

    used: list[TermUsage] = []
    missing: list[VocabularyTerm] = []
    for term in terms:
        positions = [match.start() for match in term_pattern(term.text).finditer(text)]
        if positions:
            used.append(TermUsage(term=term, count=len(positions), positions=positions))
        else:
            missing.append(term)

    total_weight = sum(term.weight for term in terms)
    used_weight = sum(usage.term.weight for usage in used)

    raw_score = round(len(used) / len(terms) * 100)
    weighted_score = round(used_weight / total_weight * 100) if total_weight else 100

    report = CoverageReport(
        raw_score=raw_score,
        weighted_score=weighted_score,
        used_terms=used,
        missing_terms=missing,
        critical_missing=[term for term in missing if term.is_critical],
        header_missing=[term for term in missing if term.kind.is_heading_kind],
        body_missing=[term for term in missing if not term.kind.is_heading_kind],
    )
    logger.debug(
        f"Coverage: raw={raw_score}% weighted={weighted_score}% "
        f"({len(used)}/{len(terms)} terms, {len(report.critical_missing)} critical missing)"
    )
    return report


class CoverageAnalyzer:
    """
    Coverage analysis bound to a fixed vocabulary.

    Example:
        >>> analyzer = CoverageAnalyzer(terms)
        >>> analyzer.analyze(html).raw_score
        30
    """

    def __init__(self, terms: Iterable[VocabularyTerm]):
        self.terms = list(terms)

    def analyze(self, html: str) -> CoverageReport:
        return analyze_coverage(html, self.terms)
