"""
Internal link injection.

Scores link targets against the article's keyword context, synthesizes a
descriptive anchor from each target's title and wraps a verbatim occurrence
of that anchor in the body. Placement rules on top of the shared insertion
rules:

- an element that already holds a link is skipped
- at most ``max_links_per_section`` links per heading-delimited section
- at least ``min_link_distance`` plain-text characters between links
  placed in the same pass
- targets whose URL is already linked are skipped, so a second pass over
  its own output changes nothing

When fewer than ``min_links`` links were placed, a fallback pass looks for
paragraphs that mention the leading words of a target's title.
"""

import html as html_lib
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional
from urllib.parse import urlparse

from .config import LinkInjectionConfig
from .html_tree import HEADING_TAGS, Element, Fragment, Node, Text, parse_fragment
from .insertion import FORBIDDEN_ANCESTORS, LOCATION_NAMES, InsertionEngine, element_text
from .models import InjectionResult, InsertionCandidate, InsertionRecord, LinkTarget
from .text_repair import STOP_WORDS, meaningful_words, normalize_for_matching, tokenize_words

logger = logging.getLogger(__name__)

# A title word matching one of these keys counts as on-topic when the
# context mentions the key or any of its synonyms.
SYNONYM_MAP = {
    "guide": ["tutorial", "how-to", "resource", "handbook", "manual"],
    "seo": ["search", "optimization", "ranking", "serp"],
    "content": ["article", "post", "page", "writing", "copy"],
    "wordpress": ["wp", "blog", "site", "website"],
    "marketing": ["promotion", "campaign", "strategy", "advertising"],
    "development": ["development", "code", "programming", "engineer"],
    "performance": ["speed", "optimization", "fast", "efficient"],
    "security": ["protection", "safety", "secure", "encryption"],
}

GENERIC_SLUGS = ("uncategorized", "misc", "untitled", "sample-page", "hello-world")

SEMANTIC_WEIGHT = 0.4
AUTHORITY_WEIGHT = 0.3
QUALITY_WEIGHT = 0.3

MIN_ANCHOR_WORDS = 3
MAX_ANCHOR_WORDS = 6
FALLBACK_LEAD_WORDS = 3


@dataclass
class ScoredTarget:
    """A link target with its relevance and synthesized anchor."""
    target: LinkTarget
    relevance: float
    anchor: Optional[str]


def _title_words(title: str) -> list[str]:
    """Lowercased title words with punctuation removed."""
    return tokenize_words(html_lib.unescape(re.sub(r"<[^>]*>", " ", title or "")))


def _is_synonym(word: str, context: str) -> bool:
    for key, synonyms in SYNONYM_MAP.items():
        if key in word and (key in context or any(s in context for s in synonyms)):
            return True
    return False


def _target_slug(target: LinkTarget) -> str:
    if target.slug:
        return target.slug.lower()
    path = urlparse(target.url).path.rstrip("/")
    return path.rsplit("/", 1)[-1].lower()


def calculate_relevance(target: LinkTarget, context: str) -> float:
    """
    Relevance of a link target to the article's keyword context (0-1).

    relevance = 0.4 * semantic overlap + 0.3 * topic authority
                + 0.3 * link quality

    Args:
        target: The candidate link target.
        context: Keyword context of the article (primary keyword, topic).

    Returns:
        Relevance clamped to [0, 1].
    """
    title_words = meaningful_words(target.title)
    context_lower = normalize_for_matching(context or "").lower()
    context_words = set(meaningful_words(context_lower))

    common = [word for word in title_words if word in context_words]
    semantic = min(len(common) / max(len(title_words), 1), 1.0)

    on_topic = bool(common) or any(_is_synonym(word, context_lower) for word in title_words)
    authority = 0.85 if on_topic else 0.3

    title_length = min(len(title_words) / 6, 1.0)
    slug = _target_slug(target)
    generic = len(slug) <= 3 or any(marker in slug for marker in GENERIC_SLUGS)
    slug_quality = 0.4 if generic else 0.9
    quality = (title_length + slug_quality) / 2

    score = SEMANTIC_WEIGHT * semantic + AUTHORITY_WEIGHT * authority + QUALITY_WEIGHT * quality
    return max(0.0, min(score, 1.0))


def synthesize_anchor_text(title: str) -> Optional[str]:
    """
    Build a descriptive anchor from a target title.

    The anchor is a contiguous span of the title that starts and ends on
    meaningful words (up to 3 of them when there are 3 or fewer, 4 when
    there are 4-5, 5 otherwise), keeps the stop words between them and is
    at most 6 words long.

    Example:
        >>> synthesize_anchor_text("The Complete Guide to Protein Timing for Athletes")
        'complete guide to protein timing'

    Returns:
        Lowercase anchor text, or None when no anchor of at least 3 words
        with meaningful content can be built.
    """
    words = _title_words(title)
    meaningful_idx = [
        index for index, word in enumerate(words)
        if len(word) >= 3 and word not in STOP_WORDS
    ]
    if not meaningful_idx:
        return None

    count = len(meaningful_idx)
    if count <= 3:
        keep = count
    elif count <= 5:
        keep = 4
    else:
        keep = 5

    # shrink until the span fits the word limit
    while keep > 0:
        start = meaningful_idx[0]
        end = meaningful_idx[keep - 1]
        if end - start + 1 <= MAX_ANCHOR_WORDS:
            break
        keep -= 1

    span = words[meaningful_idx[0]:meaningful_idx[keep - 1] + 1]
    if len(span) < MIN_ANCHOR_WORDS:
        return None
    return " ".join(span)


def is_valid_anchor(anchor: str) -> bool:
    """3-6 words, not made only of stop words."""
    words = anchor.split()
    if not MIN_ANCHOR_WORDS <= len(words) <= MAX_ANCHOR_WORDS:
        return False
    return any(word.lower() not in STOP_WORDS for word in words)


def _phrase_pattern(phrase: str) -> re.Pattern:
    words = [re.escape(word) for word in phrase.split()]
    return re.compile(r"(?<!\w)" + r"\s+".join(words) + r"(?!\w)", re.IGNORECASE)


def _walk_text(node: Node, offset: int, forbidden: bool) -> Iterator[tuple[Text, int, bool]]:
    """Yield (text node, plain-text offset, inside forbidden ancestor)."""
    if isinstance(node, Text):
        yield node, offset, forbidden
        return
    if not isinstance(node, Element) or node.tag in ("script", "style", "template"):
        return
    inner_forbidden = forbidden or node.tag in FORBIDDEN_ANCESTORS
    position = offset
    for child in node.children:
        yield from _walk_text(child, position, inner_forbidden)
        position += len(child.text_content())


def section_index(fragment: Fragment) -> dict[int, int]:
    """Map each element (by id) to its heading-delimited section number."""
    sections: dict[int, int] = {}
    current = 0
    for element in fragment.iter_elements():
        if element.tag in HEADING_TAGS:
            current += 1
        sections[id(element)] = current
    return sections


def count_links(html: str) -> int:
    """Number of <a href> elements in an HTML body."""
    return len(parse_fragment(html).find_links())


@dataclass
class LinkPass:
    """
    Bookkeeping for one injection pass.

    Created fresh by every ``inject`` call, so one LinkInjector can serve
    concurrent callers.
    """
    offsets: dict[int, int] = field(default_factory=dict)
    sections: dict[int, int] = field(default_factory=dict)
    section_counts: dict[int, int] = field(default_factory=dict)
    placed: list[int] = field(default_factory=list)
    link_count: int = 0

    def refresh(self, fragment: Fragment) -> None:
        """Re-index text offsets and sections after the tree changed."""
        self.offsets = fragment.text_offsets()
        self.sections = section_index(fragment)

    def section_of(self, element: Element) -> int:
        return self.sections.get(id(element), 0)

    def distance_ok(self, position: int, min_distance: int) -> bool:
        return all(abs(position - placed) >= min_distance for placed in self.placed)

    def record(self, element: Element, position: int) -> None:
        self.placed.append(position)
        section = self.section_of(element)
        self.section_counts[section] = self.section_counts.get(section, 0) + 1
        self.link_count += 1


@dataclass
class _Placement:
    """Unit handed to the insertion engine: a target plus its pass."""
    item: ScoredTarget
    state: LinkPass


class LinkInjector(InsertionEngine):
    """
    Place internal links under density and distribution rules.

    The injector holds configuration only; each ``inject`` call keeps its
    own LinkPass.

    Example:
        >>> injector = LinkInjector()
        >>> result = injector.inject(html, targets, "protein timing")
        >>> [record.detail for record in result.added]
        ['complete guide to protein timing -> https://example.com/protein-timing']
    """

    def __init__(self, config: Optional[LinkInjectionConfig] = None):
        self.config = config or LinkInjectionConfig()
        super().__init__(
            max_per_element=1,
            min_chars=self.config.min_element_chars,
            max_chars=self.config.max_element_chars,
            min_score=0.0,
        )

    # -- InsertionEngine hooks ---------------------------------------------

    def already_contains(self, element: Element, text: str, unit: _Placement) -> bool:
        return element.contains_tag("a")

    def accepts(self, element: Element, text: str, unit: _Placement) -> bool:
        section = unit.state.section_of(element)
        return unit.state.section_counts.get(section, 0) < self.config.max_links_per_section

    def score(self, element: Element, text: str, unit: _Placement) -> Optional[float]:
        title_words = set(meaningful_words(unit.item.target.title))
        if not title_words:
            return None
        overlap = len(title_words & set(tokenize_words(text))) / len(title_words)
        if overlap < self.config.min_title_overlap:
            return None
        return unit.item.relevance * overlap

    def apply(
        self, fragment: Fragment, candidate: InsertionCandidate, unit: _Placement
    ) -> Optional[InsertionRecord]:
        item = unit.item
        if not item.anchor or not self.wrap_phrase(
            candidate.element, item.anchor, item.target, unit.state
        ):
            return None
        return InsertionRecord(
            unit=item.target.url,
            location=LOCATION_NAMES.get(candidate.element.tag, "paragraph"),
            score=round(candidate.score, 4),
            detail=f"{item.anchor} -> {item.target.url}",
        )

    # -- wrapping ----------------------------------------------------------

    def wrap_phrase(
        self, element: Element, phrase: str, target: LinkTarget, state: LinkPass
    ) -> bool:
        """
        Wrap the first acceptable occurrence of ``phrase`` inside ``element``
        in a link to ``target``, keeping the text's original case.

        Occurrences inside forbidden ancestors or too close to a link placed
        in this pass are passed over.
        """
        pattern = _phrase_pattern(phrase)
        base = state.offsets.get(id(element), 0)
        for text_node, offset, forbidden in _walk_text(element, base, False):
            if forbidden:
                continue
            for match in pattern.finditer(text_node.data):
                position = offset + len(html_lib.unescape(text_node.data[:match.start()]))
                if not state.distance_ok(position, self.config.min_link_distance):
                    continue
                self._wrap(text_node, match.start(), match.end(), target, phrase)
                state.record(element, position)
                return True
        return False

    def _wrap(self, text_node: Text, start: int, end: int, target: LinkTarget, phrase: str) -> None:
        data = text_node.data
        link = Element("a", {"href": target.url, "title": f"Learn more: {phrase}"})
        link.append(Text(data[start:end]))
        replacement: list[Node] = []
        if start:
            replacement.append(Text(data[:start]))
        replacement.append(link)
        if end < len(data):
            replacement.append(Text(data[end:]))
        text_node.parent.replace_child(text_node, replacement)

    # -- pass --------------------------------------------------------------

    def score_targets(self, targets: Iterable[LinkTarget], context: str) -> list[ScoredTarget]:
        """Relevance-filtered targets, most relevant first."""
        scored = []
        for target in targets:
            relevance = calculate_relevance(target, context)
            if relevance < self.config.min_relevance:
                logger.debug(f"Target {target.url} below relevance floor ({relevance:.2f})")
                continue
            scored.append(ScoredTarget(target, relevance, synthesize_anchor_text(target.title)))
        scored.sort(key=lambda item: -item.relevance)
        return scored

    def inject(
        self, html: str, targets: Iterable[LinkTarget], context: str
    ) -> InjectionResult:
        """
        Inject internal links into an HTML body.

        Args:
            html: The HTML body.
            targets: Candidate internal pages.
            context: Keyword context used for relevance scoring.

        Returns:
            InjectionResult whose ``before_score``/``after_score`` are the
            document's link counts before and after the pass, measured
            against ``min_links``; target URLs that could not be placed are
            in ``failed``.
        """
        scored = self.score_targets(targets, context)
        fragment = parse_fragment(html or "")
        existing = len(fragment.find_links())
        result = InjectionResult(
            html=html,
            before_score=float(existing),
            after_score=float(existing),
            target=float(self.config.min_links) if scored else None,
        )
        if not html or not scored:
            return result

        state = LinkPass(link_count=existing)
        linked_urls = {a.get("href") for a in fragment.find_links()}
        counts: dict[int, int] = {}
        pending: list[ScoredTarget] = []

        for item in scored:
            if state.link_count >= self.config.max_links:
                pending.append(item)
                continue
            if item.target.url in linked_urls:
                logger.debug(f"Already linked: {item.target.url}")
                continue
            if item.anchor is None:
                result.failed.append(item.target.url)
                continue
            state.refresh(fragment)
            record = self.insert(fragment, _Placement(item, state), counts)
            if record is None:
                pending.append(item)
            else:
                result.added.append(record)
                linked_urls.add(item.target.url)

        if state.link_count < self.config.min_links and pending:
            pending = self._fallback(fragment, pending, result, state)

        result.failed.extend(item.target.url for item in pending)
        result.html = fragment.serialize() if result.added else html
        result.after_score = float(state.link_count)

        logger.info(
            f"Link injection: {result.added_count} links placed "
            f"({state.link_count} in document), {len(result.failed)} targets unplaced"
        )
        if result.shortfall:
            logger.warning(
                f"Only {state.link_count} of {self.config.min_links} minimum links in document"
            )
        return result

    def _fallback(
        self,
        fragment: Fragment,
        pending: list[ScoredTarget],
        result: InjectionResult,
        state: LinkPass,
    ) -> list[ScoredTarget]:
        """
        Place remaining targets in paragraphs that mention the leading words
        of their title. Returns the targets still unplaced.
        """
        remaining = []
        for item in pending:
            if (
                state.link_count >= self.config.max_links
                or state.link_count >= self.config.min_links
                or item.anchor is None
            ):
                remaining.append(item)
                continue

            lead = " ".join(_title_words(item.target.title)[:FALLBACK_LEAD_WORDS])
            phrases = [item.anchor]
            if lead and lead != item.anchor and is_valid_anchor(lead):
                phrases.append(lead)

            state.refresh(fragment)
            record = self._fallback_place(fragment, _Placement(item, state), lead, phrases)
            if record is None:
                remaining.append(item)
            else:
                result.added.append(record)
        return remaining

    def _fallback_place(
        self, fragment: Fragment, unit: _Placement, lead: str, phrases: list[str]
    ) -> Optional[InsertionRecord]:
        if not lead:
            return None
        item = unit.item
        lead_pattern = _phrase_pattern(lead)
        for paragraph in self.eligible_elements(fragment):
            if paragraph.tag != "p" or paragraph.contains_tag("a"):
                continue
            if not self.accepts(paragraph, "", unit):
                continue
            if not lead_pattern.search(element_text(paragraph)):
                continue
            for phrase in phrases:
                if self.wrap_phrase(paragraph, phrase, item.target, unit.state):
                    logger.debug(f"Fallback link '{phrase}' -> {item.target.url}")
                    return InsertionRecord(
                        unit=item.target.url,
                        location="paragraph",
                        score=round(item.relevance, 4),
                        detail=f"{phrase.lower()} -> {item.target.url} (fallback)",
                    )
        return None
