"""
Vocabulary term injection.

Raises coverage of missing vocabulary terms by splicing one short sentence
that mentions the term (in <strong>) into a related paragraph, list item or
table cell. Missing terms are handled critical-first, then by importance;
coverage is re-measured after every insertion and the pass stops once the
target is reached or the insertion budget is spent.

Phrasing is chosen through an injectable random.Random so runs can be
reproduced with a seed.
"""

import logging
import random
import re
from typing import Iterable, Optional

from .config import TermInjectionConfig
from .coverage import analyze_coverage, text_contains_term
from .html_tree import Element, Fragment, Text, escape_text, parse_fragment, parse_nodes
from .insertion import LOCATION_NAMES, InsertionEngine
from .models import (
    InjectionResult,
    InsertionCandidate,
    InsertionPosition,
    InsertionRecord,
    VocabularyTerm,
)
from .text_repair import SENTENCE_BOUNDARY_RE, meaningful_words, tokenize_words

logger = logging.getLogger(__name__)

# Topic clusters: a term that shares a word with a cluster makes every
# word of that cluster "related" when scoring locations.
TERM_CLUSTERS = {
    "seo": ["ranking", "search", "google", "keyword", "optimization", "serp", "traffic"],
    "content": ["writing", "article", "blog", "post", "copy", "text", "words"],
    "marketing": ["strategy", "campaign", "audience", "conversion", "leads", "funnel"],
    "health": ["wellness", "fitness", "nutrition", "medical", "treatment", "symptoms"],
    "business": ["company", "revenue", "profit", "growth", "market", "industry"],
    "finance": ["money", "investment", "budget", "cost", "price", "savings", "roi"],
}

RELATED_WORD_SCORE = 15

# Complete sentences; {term} is replaced by the bolded term
INJECTION_TEMPLATES = {
    "definition": [
        "Understanding {term} is essential to getting this right.",
        "{term} plays a central role here.",
        "The concept of {term} ties these points together.",
    ],
    "importance": [
        "{term} is particularly important in this context.",
        "Many experts single out {term} as a deciding factor.",
        "Focusing on {term} helps keep results consistent.",
    ],
    "example": [
        "A practical example of this is {term}.",
        "{term} is a clear illustration of this point.",
        "Consider how {term} applies to your own situation.",
    ],
    "transition": [
        "This relates directly to {term}.",
        "Building on this, {term} deserves attention as well.",
        "Beyond that, keep {term} in mind.",
    ],
    "expert": [
        "Industry experts recommend paying close attention to {term}.",
        "Research supports giving real weight to {term}.",
        "Practitioners often point to {term} as a key consideration.",
    ],
}

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


def related_words(term_text: str) -> set[str]:
    """
    Words whose presence suggests a location is on-topic for a term.

    Includes the term's own meaningful words plus every member of each
    topic cluster the term overlaps (by name or by member).
    """
    term_lower = term_text.lower()
    related = set(meaningful_words(term_text))
    for cluster, members in TERM_CLUSTERS.items():
        if cluster in term_lower or any(
            member in term_lower or term_lower in member for member in members
        ):
            related.update(members)
    return related


def count_sentences(text: str) -> int:
    """Sentences longer than 20 characters."""
    return len([s for s in _SENTENCE_SPLIT_RE.split(text) if len(s.strip()) > 20])


def render_term_sentence(template: str, term_text: str) -> str:
    """Fill a template with the bolded term, capitalized at sentence start."""
    display = term_text
    if template.startswith("{term}") and display:
        display = display[0].upper() + display[1:]
    return template.format(term=f"<strong>{escape_text(display)}</strong>")


class TermInjector(InsertionEngine):
    """
    Inject missing vocabulary terms into related text blocks.

    Example:
        >>> injector = TermInjector(rng=random.Random(7))
        >>> result = injector.inject(html, terms)
        >>> result.after_score >= result.before_score
        True
    """

    def __init__(
        self,
        config: Optional[TermInjectionConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or TermInjectionConfig()
        super().__init__(
            max_per_element=self.config.max_per_element,
            min_chars=self.config.min_element_chars,
            max_chars=self.config.max_element_chars,
            min_score=self.config.min_context_score,
        )
        self.rng = rng or random.Random()

    # -- InsertionEngine hooks ---------------------------------------------

    def already_contains(self, element: Element, text: str, unit: VocabularyTerm) -> bool:
        return text_contains_term(text, unit.text)

    def score(self, element: Element, text: str, unit: VocabularyTerm) -> Optional[float]:
        words = set(tokenize_words(text))
        related = related_words(unit.text)
        return float(RELATED_WORD_SCORE * len(words & related))

    def choose_position(self, text: str) -> InsertionPosition:
        sentences = count_sentences(text)
        if sentences >= 3:
            return "middle"
        if sentences == 2:
            return "end"
        return "start"

    def apply(
        self, fragment: Fragment, candidate: InsertionCandidate, unit: VocabularyTerm
    ) -> Optional[InsertionRecord]:
        category = self.rng.choice(sorted(INJECTION_TEMPLATES))
        template = self.rng.choice(INJECTION_TEMPLATES[category])
        sentence = render_term_sentence(template, unit.text)

        element = candidate.element
        position = candidate.position
        if position == "middle" and not self._insert_middle(element, sentence):
            position = "end"
        if position == "start":
            element.insert(0, parse_nodes(sentence) + [Text(" ")])
        elif position == "end":
            self._insert_end(element, sentence)

        return InsertionRecord(
            unit=unit.text,
            location=LOCATION_NAMES.get(element.tag, "paragraph"),
            score=candidate.score,
            detail=f"{category}/{position}: {template}",
        )

    # -- splicing ----------------------------------------------------------

    def _insert_end(self, element: Element, sentence: str) -> None:
        index = len(element.children)
        # keep trailing whitespace after the new sentence
        trailing = ""
        if element.children and isinstance(element.children[-1], Text):
            last = element.children[-1]
            stripped = last.data.rstrip()
            trailing = last.data[len(stripped):]
            last.data = stripped
        element.insert(index, [Text(" ")] + parse_nodes(sentence))
        if trailing:
            element.append(Text(trailing))

    def _insert_middle(self, element: Element, sentence: str) -> bool:
        """
        Insert after the sentence boundary closest to the middle of the
        element's text. Only boundaries in direct text children are used.
        """
        total = len(element.text_content())
        if not total:
            return False

        best = None
        offset = 0
        for child in element.children:
            if isinstance(child, Text):
                for match in SENTENCE_BOUNDARY_RE.finditer(child.data):
                    if match.end() >= len(child.data):
                        continue
                    distance = abs(offset + match.end() - total / 2)
                    if best is None or distance < best[0]:
                        best = (distance, child, match.end())
            offset += len(child.text_content())

        if best is None:
            return False

        _, text_node, cut = best
        before, after = text_node.data[:cut], text_node.data[cut:]
        replacement = [Text(before)] + parse_nodes(sentence) + [Text(" " + after)]
        element.replace_child(text_node, replacement)
        return True

    # -- pass --------------------------------------------------------------

    def ordered_terms(self, terms: Iterable[VocabularyTerm]) -> list[VocabularyTerm]:
        """Critical terms first, then by importance (stable)."""
        terms = list(terms)
        if not self.config.prioritize_critical:
            return terms
        return sorted(terms, key=lambda term: (not term.is_critical, -term.weight))

    def inject(self, html: str, terms: Iterable[VocabularyTerm]) -> InjectionResult:
        """
        Inject missing terms until the coverage target or budget is reached.

        Args:
            html: The HTML body.
            terms: Full vocabulary (used and missing).

        Returns:
            InjectionResult with raw coverage before/after and the terms
            that found no location in ``failed``.
        """
        terms = list(terms)
        target = self.config.target_coverage
        initial = analyze_coverage(html, terms)
        result = InjectionResult(
            html=html,
            before_score=initial.raw_score,
            after_score=initial.raw_score,
            target=target,
        )
        if not html or not terms or initial.raw_score >= target:
            return result

        fragment = parse_fragment(html)
        counts: dict[int, int] = {}
        for term in self.ordered_terms(initial.missing_terms):
            if result.added_count >= self.config.max_insertions:
                break
            current = analyze_coverage(fragment.serialize(), terms)
            if current.raw_score >= target:
                break

            record = self.insert(fragment, term, counts)
            if record is None:
                logger.debug(f"No location found for term '{term.text}'")
                result.failed.append(term.text)
            else:
                result.added.append(record)

        result.html = fragment.serialize()
        result.after_score = analyze_coverage(result.html, terms).raw_score

        logger.info(
            f"Term injection: coverage {result.before_score}% -> {result.after_score}% "
            f"({result.added_count} inserted, {len(result.failed)} without a location)"
        )
        if result.shortfall:
            logger.warning(
                f"Coverage target {target}% not reached ({result.after_score}%)"
            )
        return result
