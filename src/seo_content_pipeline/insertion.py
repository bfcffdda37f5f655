"""
Shared machinery for constrained insertions into an HTML body.

Both injection passes (vocabulary terms and internal links) pick a text
block, check the same placement rules, score what is left and apply the
best candidate. This module holds that common part:

- eligible elements: p, li, td, th
- never inside a, h1-h6, blockquote, code or pre
- a per-element insertion cap, keyed by element identity
- a plain-text length window
- rejection of elements that already carry the unit
- a scoring hook and a minimum score
- ranking by score, then document order
"""

import logging
from typing import Any, Optional

from .html_tree import Element, Fragment
from .models import InsertionCandidate, InsertionPosition, InsertionRecord
from .text_repair import normalize_for_matching

logger = logging.getLogger(__name__)

TEXT_BLOCK_TAGS = ("p", "li", "td", "th")

FORBIDDEN_ANCESTORS = frozenset({
    "a", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "code", "pre",
})

LOCATION_NAMES = {
    "p": "paragraph",
    "li": "list",
    "td": "cell",
    "th": "cell",
}


def element_text(element: Element) -> str:
    """Normalized, whitespace-collapsed visible text of an element."""
    return " ".join(normalize_for_matching(element.text_content()).split())


class InsertionEngine:
    """
    Base class for injection passes.

    Subclasses implement ``already_contains``, ``score`` and ``apply``;
    ``accepts`` and ``choose_position`` are optional hooks.
    """

    eligible_tags = TEXT_BLOCK_TAGS
    forbidden_ancestors = FORBIDDEN_ANCESTORS

    def __init__(
        self,
        max_per_element: int = 2,
        min_chars: int = 80,
        max_chars: int = 600,
        min_score: float = 0.0,
    ):
        self.max_per_element = max_per_element
        self.min_chars = min_chars
        self.max_chars = max_chars
        self.min_score = min_score

    # -- hooks -------------------------------------------------------------

    def accepts(self, element: Element, text: str, unit: Any) -> bool:
        """Extra placement rules for a subclass."""
        return True

    def already_contains(self, element: Element, text: str, unit: Any) -> bool:
        raise NotImplementedError

    def score(self, element: Element, text: str, unit: Any) -> Optional[float]:
        """Score a location; None rejects it outright."""
        raise NotImplementedError

    def choose_position(self, text: str) -> InsertionPosition:
        return "end"

    def apply(
        self, fragment: Fragment, candidate: InsertionCandidate, unit: Any
    ) -> Optional[InsertionRecord]:
        """Perform the insertion; None when this candidate cannot take it."""
        raise NotImplementedError

    # -- candidate search --------------------------------------------------

    def eligible_elements(self, fragment: Fragment) -> list[Element]:
        """Text blocks outside forbidden ancestors, innermost blocks only."""
        eligible = []
        for element in fragment.iter_elements(self.eligible_tags):
            if element.has_ancestor(self.forbidden_ancestors):
                continue
            if any(True for _ in element.iter_elements(self.eligible_tags)):
                continue
            eligible.append(element)
        return eligible

    def candidates(
        self, fragment: Fragment, unit: Any, counts: dict[int, int]
    ) -> list[InsertionCandidate]:
        """
        Collect and rank the locations that may receive ``unit``.

        Args:
            fragment: Parsed document.
            unit: The thing to insert (term, link target, ...).
            counts: Insertions made so far, keyed by ``id(element)``.

        Returns:
            Candidates sorted by score (descending), then document order.
        """
        found: list[InsertionCandidate] = []
        for order, element in enumerate(self.eligible_elements(fragment)):
            if counts.get(id(element), 0) >= self.max_per_element:
                continue
            text = element_text(element)
            if not self.min_chars <= len(text) <= self.max_chars:
                continue
            if self.already_contains(element, text, unit):
                continue
            if not self.accepts(element, text, unit):
                continue
            score = self.score(element, text, unit)
            if score is None or score < self.min_score:
                continue
            found.append(InsertionCandidate(
                element=element,
                score=score,
                position=self.choose_position(text),
                order=order,
            ))

        found.sort(key=lambda candidate: (-candidate.score, candidate.order))
        return found

    def insert(
        self, fragment: Fragment, unit: Any, counts: dict[int, int]
    ) -> Optional[InsertionRecord]:
        """
        Try ranked candidates until one accepts the unit.

        Returns:
            The InsertionRecord, or None when no candidate worked.
        """
        for candidate in self.candidates(fragment, unit, counts):
            record = self.apply(fragment, candidate, unit)
            if record is not None:
                key = id(candidate.element)
                counts[key] = counts.get(key, 0) + 1
                return record
            logger.debug(
                f"Candidate <{candidate.element.tag}> (score {candidate.score:.2f}) "
                f"rejected the insertion"
            )
        return None
