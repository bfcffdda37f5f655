"""
Lifecycle management for the FAQ and references sections.

Model output often carries its own FAQ (sometimes two), a stray
"References" heading, or the remains of a previous run. This module:

- detects section blocks with an ordered list of named matchers
- replaces them with one canonical, freshly rendered block
- places the FAQ before the conclusion and the references at the very end
- removes duplicate blocks, keeping the last one

Canonicalizing a document that already holds exactly one canonical block
returns it unchanged, so each operation can be run repeatedly.
"""

import logging
import re
import uuid
from datetime import datetime
from typing import Iterable, Optional

from .html_tree import Element, Fragment, HEADING_TAGS, parse_fragment
from .models import FAQItem, Reference, SectionDescriptor, SectionKind
from .section_templates import (
    Clock,
    IdFactory,
    render_faq_section,
    render_references_section,
    valid_references,
)

_WHITESPACE = " \t\r\n"

# Share of the expected items a block must carry to count as canonical
CANONICAL_ITEM_RATIO = 0.7

_CONCLUSION_RE = re.compile(r"conclusion|summary|final\s+thoughts|wrapping\s+up", re.IGNORECASE)
_FAQ_ITEM_RE = re.compile(r'class="faq-question"')
_REFERENCE_ITEM_RE = re.compile(r'class="ref-card"')


class ParsedDocument:
    """An HTML string with its tree and the source span of every element."""

    def __init__(self, html: str):
        self.html = html
        self.fragment: Fragment = parse_fragment(html)
        self.spans = self.fragment.source_spans()

    def span(self, element: Element) -> tuple[int, int]:
        return self.spans[id(element)]

    def inner_end(self, element: Element) -> int:
        """Offset just before the element's end tag."""
        return self.span(element)[1] - len(element.end_tag or "")


# -- matchers ---------------------------------------------------------------


class SectionMatcher:
    """A named strategy that finds candidate spans of one section kind."""

    is_style = False

    def __init__(self, name: str, kind: SectionKind):
        self.name = name
        self.kind = kind

    def find(self, document: ParsedDocument) -> list[tuple[int, int]]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class ElementMatcher(SectionMatcher):
    """
    Whole elements carrying a structural marker (class, id, schema type).

    Args:
        name: Strategy name reported in SectionDescriptor.matcher.
        kind: Section kind.
        tags: Element tags to consider (None for any).
        attribute: Attribute to test.
        pattern: Regex searched in the attribute value.
    """

    def __init__(
        self,
        name: str,
        kind: SectionKind,
        attribute: str,
        pattern: str,
        tags: Optional[Iterable[str]] = None,
    ):
        super().__init__(name, kind)
        self.attribute = attribute
        self.pattern = re.compile(pattern, re.IGNORECASE)
        self.tags = tuple(tags) if tags else None

    def find(self, document: ParsedDocument) -> list[tuple[int, int]]:
        spans = []
        for element in document.fragment.iter_elements(self.tags):
            value = element.get(self.attribute)
            if value and self.pattern.search(value):
                spans.append(document.span(element))
        return spans


class StyleMatcher(SectionMatcher):
    """<style> blocks whose rules target a rendered section's classes."""

    is_style = True

    def __init__(self, name: str, kind: SectionKind, markers: Iterable[str]):
        super().__init__(name, kind)
        self.markers = tuple(markers)

    def find(self, document: ParsedDocument) -> list[tuple[int, int]]:
        spans = []
        for element in document.fragment.iter_elements(["style"]):
            css = element.inner_html
            if any(marker in css for marker in self.markers):
                spans.append(document.span(element))
        return spans


class HeadingMatcher(SectionMatcher):
    """
    A heading with a controlled phrase plus the content that follows it.

    The span runs from the heading to the next sibling heading of the same
    or a higher level (or a <section>), else to the end of the parent.
    """

    def __init__(
        self,
        name: str,
        kind: SectionKind,
        pattern: str,
        tags: Iterable[str] = ("h2", "h3"),
    ):
        super().__init__(name, kind)
        self.pattern = re.compile(pattern, re.IGNORECASE)
        self.tags = tuple(tags)

    def _heading_text(self, element: Element) -> str:
        text = re.sub(r"[^\w\s&]", " ", element.text_content())
        return " ".join(text.split())

    def find(self, document: ParsedDocument) -> list[tuple[int, int]]:
        spans = []
        for heading in document.fragment.iter_elements(self.tags):
            if not self.pattern.search(self._heading_text(heading)):
                continue
            start = document.span(heading)[0]
            parent = heading.parent
            level = int(heading.tag[1])
            end = document.inner_end(parent) if not isinstance(parent, Fragment) else len(document.html)

            siblings = parent.children
            for sibling in siblings[siblings.index(heading) + 1:]:
                if not isinstance(sibling, Element):
                    continue
                if sibling.tag == "section" or (
                    sibling.tag in HEADING_TAGS and int(sibling.tag[1]) <= level
                ):
                    end = document.span(sibling)[0]
                    break
            spans.append((start, end))
        return spans


FAQ_MATCHERS: tuple[SectionMatcher, ...] = (
    ElementMatcher("faq-section-class", SectionKind.FAQ, "class", r"faq", tags=["section"]),
    ElementMatcher("faq-section-id", SectionKind.FAQ, "id", r"faq", tags=["section"]),
    ElementMatcher(
        "faq-container", SectionKind.FAQ, "class",
        r"faq-(?:section|accordion|container)", tags=["div"],
    ),
    ElementMatcher("faq-schema", SectionKind.FAQ, "itemtype", r"^https?://schema\.org/FAQPage$"),
    StyleMatcher("faq-style", SectionKind.FAQ, ["faq-section-", "wp-opt-faq-"]),
    HeadingMatcher("faq-heading", SectionKind.FAQ, r"frequently\s+asked|\bfaqs?\b"),
)

REFERENCE_MATCHERS: tuple[SectionMatcher, ...] = (
    ElementMatcher(
        "references-accordion", SectionKind.REFERENCES, "class",
        r"ref-accordion|\breferences\b", tags=["section", "div"],
    ),
    StyleMatcher("references-style", SectionKind.REFERENCES, ["ref-accordion-"]),
    HeadingMatcher(
        "references-heading", SectionKind.REFERENCES,
        r"^(?:(?:sources|references|citations)\s+(?:(?:&|and)\s+)?)?"
        r"(?:references|sources|citations|works\s+cited|further\s+reading|bibliography)$",
    ),
)

MATCHERS = {
    SectionKind.FAQ: FAQ_MATCHERS,
    SectionKind.REFERENCES: REFERENCE_MATCHERS,
}


def _merge_spans(hits: list[tuple[int, int, SectionMatcher]]) -> list[tuple[int, int, SectionMatcher]]:
    """Merge overlapping or nested spans; the outermost hit names the block."""
    merged: list[list] = []
    for start, end, matcher in sorted(hits, key=lambda hit: (hit[0], -hit[1])):
        if merged and start < merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], end)
            continue
        merged.append([start, end, matcher])
    return [(start, end, matcher) for start, end, matcher in merged]


def _is_canonical(kind: SectionKind, block: str, expected_items: Optional[int]) -> bool:
    if kind is SectionKind.FAQ:
        styled = "linear-gradient" in block and "border-radius" in block
        items = len(_FAQ_ITEM_RE.findall(block))
    else:
        styled = "ref-accordion" in block
        items = len(_REFERENCE_ITEM_RE.findall(block))
    if not styled:
        return False
    if expected_items is None:
        return items > 0
    return items >= expected_items * CANONICAL_ITEM_RATIO


def _remove_spans(html: str, spans: list[tuple[int, int]]) -> str:
    """
    Cut spans out of ``html`` together with the whitespace that follows
    each one (or precedes it, for a span at the very end). Everything else
    is kept byte for byte.
    """
    result = html
    for start, end in sorted(spans, reverse=True):
        while end < len(result) and result[end] in _WHITESPACE:
            end += 1
        if end == len(result):
            while start > 0 and result[start - 1] in _WHITESPACE:
                start -= 1
        result = result[:start] + result[end:]
    return result


def _append_block(html: str, block: str) -> str:
    if not html:
        return block
    if html[-1] in _WHITESPACE:
        return html + block
    return f"{html}\n\n{block}"


def _default_id() -> str:
    return uuid.uuid4().hex[:12]


class SectionLifecycleManager:
    """
    Detect, deduplicate and reposition the FAQ and references blocks.

    Args:
        id_factory: Returns unique tokens for rendered section ids.
        clock: Returns the current datetime (year fallback for references).
        logger: Logger for lifecycle decisions (module logger by default).

    The manager keeps no per-document state. Each operation logs its
    decisions and, when given an ``events`` list, appends them to it.
    """

    def __init__(
        self,
        id_factory: Optional[IdFactory] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.id_factory = id_factory or _default_id
        self.clock = clock or datetime.now
        self.logger = logger or logging.getLogger(__name__)

    def _log(self, message: str, events: Optional[list[str]]) -> None:
        if events is not None:
            events.append(message)
        self.logger.info(message)

    # -- detection ---------------------------------------------------------

    def detect(
        self, html: str, kind: SectionKind, expected_items: Optional[int] = None
    ) -> list[SectionDescriptor]:
        """
        Find the blocks of one kind, in document order.

        A style block followed (whitespace aside) by a block joins it; an
        orphaned style block is reported on its own.

        Args:
            html: Document HTML.
            kind: Section kind to look for.
            expected_items: Size of the canonical list, for the quality check.

        Returns:
            SectionDescriptor per block, spans half-open into ``html``.
        """
        if not html:
            return []
        document = ParsedDocument(html)
        hits = []
        for matcher in MATCHERS[kind]:
            for start, end in matcher.find(document):
                hits.append((start, end, matcher))
        merged = _merge_spans(hits)

        blocks: list[tuple[int, int, SectionMatcher]] = []
        index = 0
        while index < len(merged):
            start, end, matcher = merged[index]
            if matcher.is_style and index + 1 < len(merged):
                next_start, next_end, next_matcher = merged[index + 1]
                if not html[end:next_start].strip():
                    blocks.append((start, next_end, next_matcher))
                    index += 2
                    continue
            blocks.append((start, end, matcher))
            index += 1

        return [
            SectionDescriptor(
                kind=kind,
                span=(start, end),
                is_canonical_quality=_is_canonical(kind, html[start:end], expected_items),
                matcher=matcher.name,
            )
            for start, end, matcher in blocks
        ]

    def count_sections(self, html: str, kind: SectionKind) -> int:
        """Number of blocks of a kind, orphaned style blocks excluded."""
        return len([d for d in self.detect(html, kind) if not d.matcher.endswith("-style")])

    # -- operations --------------------------------------------------------

    def deduplicate(
        self, html: str, kind: SectionKind, events: Optional[list[str]] = None
    ) -> str:
        """
        Keep only the last block of a kind; earlier blocks and orphaned
        style blocks are removed. The kept block and all other content stay
        byte for byte as they were.
        """
        descriptors = self.detect(html, kind)
        keep = [d for d in descriptors if not d.matcher.endswith("-style")]
        if len(descriptors) <= 1 or not keep:
            return html
        last = keep[-1]
        doomed = [d.span for d in descriptors if d is not last]
        self._log(f"Removed {len(doomed)} duplicate {kind.value} block(s)", events)
        return _remove_spans(html, doomed)

    def canonicalize_faq(
        self, html: str, faqs: Iterable[FAQItem], events: Optional[list[str]] = None
    ) -> str:
        """
        Ensure the document holds exactly one canonical FAQ block.

        Existing FAQ blocks are replaced by a freshly rendered accordion,
        placed where the first old block was; without an old block it goes
        before the conclusion, else before the references, else before the
        last h2 (when there are at least two), else at the end.
        """
        faqs = [item for item in faqs if item.question.strip()]
        if not html:
            return html
        if not faqs:
            self._log("No FAQs provided; FAQ section left as is", events)
            return html

        descriptors = self.detect(html, SectionKind.FAQ, expected_items=len(faqs))
        if len(descriptors) == 1 and descriptors[0].is_canonical_quality:
            self._log("Canonical FAQ section already present", events)
            return html

        rendered = render_faq_section(faqs, self.id_factory)
        if descriptors:
            # later blocks go first so the first block's span stays valid
            start, end = descriptors[0].span
            cleaned = _remove_spans(html, [d.span for d in descriptors[1:]])
            self._log(
                f"Replaced {len(descriptors)} FAQ block(s) with the canonical accordion", events
            )
            return cleaned[:start] + rendered + cleaned[end:]

        position, where = self._faq_position(html)
        self._log(f"Inserted FAQ section {where}", events)
        if position is None:
            return _append_block(html, rendered)
        return f"{html[:position]}{rendered}\n\n{html[position:]}"

    def _faq_position(self, html: str) -> tuple[Optional[int], str]:
        document = ParsedDocument(html)

        for element in document.fragment.iter_elements():
            if element.tag == "h2" and _CONCLUSION_RE.search(element.text_content()):
                return document.span(element)[0], "before the conclusion"
            if element.tag == "div" and "conclusion" in (element.get("class") or "").lower():
                return document.span(element)[0], "before the conclusion"

        references = self.detect(html, SectionKind.REFERENCES)
        if references:
            return references[0].start, "before the references"

        headings = list(document.fragment.iter_elements(["h2"]))
        if len(headings) >= 2:
            return document.span(headings[-1])[0], "before the final h2"

        return None, "at the end"

    def canonicalize_references(
        self, html: str, references: Iterable[Reference], events: Optional[list[str]] = None
    ) -> str:
        """
        Ensure exactly one canonical references block, at the very end.

        Without valid references an existing single block is kept as
        written and only moved to the end.
        """
        refs = valid_references(references)
        html = html or ""
        if not refs:
            return self._move_references_last(html, events)

        descriptors = self.detect(html, SectionKind.REFERENCES, expected_items=len(refs))
        if (
            len(descriptors) == 1
            and descriptors[0].is_canonical_quality
            and not html[descriptors[0].end:].strip()
        ):
            self._log("Canonical references section already last", events)
            return html

        cleaned = _remove_spans(html, [d.span for d in descriptors])
        rendered = render_references_section(refs, self.id_factory, self.clock)
        if descriptors:
            self._log(
                f"Replaced {len(descriptors)} references block(s); references moved to the end",
                events,
            )
        else:
            self._log("Appended references section", events)
        return _append_block(cleaned, rendered)

    def _move_references_last(self, html: str, events: Optional[list[str]]) -> str:
        blocks = [
            d for d in self.detect(html, SectionKind.REFERENCES)
            if not d.matcher.endswith("-style")
        ]
        if len(blocks) != 1 or not html[blocks[0].end:].strip():
            self._log("No valid references; references section left as is", events)
            return html
        block = blocks[0].text(html)
        self._log("No valid references; existing references section moved to the end", events)
        return _append_block(_remove_spans(html, [blocks[0].span]), block)

    def remove_h1_tags(self, html: str, events: Optional[list[str]] = None) -> str:
        """Remove every h1 element; the host page renders the title."""
        if not html:
            return html
        document = ParsedDocument(html)
        headings = [
            document.span(element) for element in document.fragment.iter_elements(["h1"])
            if not element.has_ancestor(["h1"])
        ]
        if not headings:
            return html
        self._log(f"Removed {len(headings)} h1 tag(s)", events)
        return _remove_spans(html, headings)


def deduplicate_sections(html: str, kind: SectionKind) -> str:
    """Module-level shortcut for SectionLifecycleManager().deduplicate."""
    return SectionLifecycleManager().deduplicate(html, kind)
