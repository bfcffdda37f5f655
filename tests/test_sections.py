"""Tests for FAQ and references section lifecycle management."""

import pytest

from seo_content_pipeline.models import FAQItem, Reference, SectionKind
from seo_content_pipeline.section_templates import (
    render_faq_section,
    render_references_section,
    valid_references,
)
from seo_content_pipeline.sections import SectionLifecycleManager, deduplicate_sections

MODEL_FAQ = (
    "<h2>Intro</h2>\n<p>Opening text.</p>\n"
    "<h2>Frequently Asked Questions</h2>\n<h3>Is timing important?</h3>\n<p>Somewhat.</p>\n"
    "<h2>Conclusion</h2>\n<p>End.</p>"
)


@pytest.fixture
def manager(id_factory, fixed_clock) -> SectionLifecycleManager:
    return SectionLifecycleManager(id_factory=id_factory, clock=fixed_clock)


class TestRenderers:
    """Tests for the section renderers."""

    def test_faq_markup(self, sample_faqs, id_factory):
        """Test the accordion structure and schema.org markup."""
        html = render_faq_section(sample_faqs, id_factory)

        assert html.startswith("<style>")
        assert '<section class="wp-opt-faq-id1" itemscope itemtype="https://schema.org/FAQPage">' in html
        assert html.count('class="faq-question"') == 3
        assert 'id="faq-id1-q0"' in html
        assert "3 questions answered" in html
        assert "Frequently Asked Questions" in html

    def test_faq_escapes_content(self, id_factory):
        """Test that question and answer text is escaped."""
        html = render_faq_section([FAQItem("Is <b>this</b> safe?", "Yes & no.")], id_factory)

        assert "Is &lt;b&gt;this&lt;/b&gt; safe?" in html
        assert "Yes &amp; no." in html

    def test_faq_empty(self, id_factory):
        """Test that no questions render nothing."""
        assert render_faq_section([FAQItem("  ", "a")], id_factory) == ""

    def test_references_markup(self, sample_references, id_factory, fixed_clock):
        """Test reference cards, authority badge and year fallback."""
        html = render_references_section(sample_references, id_factory, fixed_clock)

        assert '<section class="ref-accordion ref-accordion-id1"' in html
        assert html.count('class="ref-card"') == 2
        assert 'target="_blank" rel="noopener noreferrer"' in html
        assert "Authority" in html
        assert ">2021<" in html
        # undated source falls back to the clock's year
        assert ">2025<" in html
        assert ">example.org<" in html

    def test_valid_references_filter(self):
        """Test that invalid and non-http references are dropped."""
        refs = [
            Reference(url="https://ok.example/a"),
            Reference(url="ftp://files.example/b"),
            Reference(url="https://bad.example/c", is_valid=False),
            Reference(url=""),
        ]
        assert [ref.url for ref in valid_references(refs)] == ["https://ok.example/a"]


class TestDetection:
    """Tests for section detection."""

    def test_heading_block_runs_to_next_heading(self, manager):
        """Test that a heading block ends at the next same-level heading."""
        descriptors = manager.detect(MODEL_FAQ, SectionKind.FAQ)

        assert len(descriptors) == 1
        block = descriptors[0].text(MODEL_FAQ)
        assert block.startswith("<h2>Frequently Asked Questions</h2>")
        assert block.rstrip().endswith("<p>Somewhat.</p>")
        assert descriptors[0].matcher == "faq-heading"
        assert descriptors[0].is_canonical_quality is False

    def test_heading_block_bounded_by_parent(self, manager):
        """Test that a heading block does not leave its parent element."""
        html = '<div class="content"><h2>FAQ</h2><p>a</p></div><p>after</p>'
        descriptor = manager.detect(html, SectionKind.FAQ)[0]
        assert descriptor.text(html) == "<h2>FAQ</h2><p>a</p>"

    def test_nested_matches_merge(self, manager):
        """Test that a section and the heading inside it are one block."""
        html = '<section class="faq-section"><h2>FAQs</h2><p>a</p></section>'
        descriptors = manager.detect(html, SectionKind.FAQ)

        assert len(descriptors) == 1
        assert descriptors[0].span == (0, len(html))

    def test_rendered_block_is_canonical(self, manager, sample_faqs, id_factory):
        """Test that a rendered accordion (style + section) is one canonical block."""
        html = "<p>Body.</p>\n" + render_faq_section(sample_faqs, id_factory)
        descriptors = manager.detect(html, SectionKind.FAQ, expected_items=3)

        assert len(descriptors) == 1
        assert descriptors[0].is_canonical_quality is True
        assert descriptors[0].text(html).startswith("<style>")

    def test_references_heading_variants(self, manager):
        """Test the controlled heading phrases for references."""
        for heading in ("References", "Sources & References", "Works Cited", "Further Reading"):
            html = f"<h2>{heading}</h2><ul><li>x</li></ul>"
            assert manager.count_sections(html, SectionKind.REFERENCES) == 1, heading

        html = "<h2>References to protein in the literature</h2><p>x</p>"
        assert manager.count_sections(html, SectionKind.REFERENCES) == 0


class TestDeduplicate:
    """Tests for duplicate removal."""

    def test_keeps_last_block(self, manager):
        """Test that only the last of several blocks survives."""
        html = (
            '<section class="faq-section"><h2>FAQ</h2><p>old</p></section>'
            "<p>middle</p>"
            '<section class="faq-section"><h2>FAQ</h2><p>new</p></section>'
        )
        events = []
        result = manager.deduplicate(html, SectionKind.FAQ, events)

        assert result == '<p>middle</p><section class="faq-section"><h2>FAQ</h2><p>new</p></section>'
        assert events == ["Removed 1 duplicate faq block(s)"]

    def test_preformatted_text_untouched(self, manager):
        """Test that blank lines inside pre blocks survive duplicate removal."""
        kept = '<section class="faq-section"><pre>a\n\n\n\nb</pre></section>'
        trailing = "<pre>x\n\n\n\ny</pre>"
        html = f'<section class="faq-section"><p>old</p></section>\n{kept}\n{trailing}'

        result = manager.deduplicate(html, SectionKind.FAQ)

        assert result == f"{kept}\n{trailing}"

    def test_removes_orphan_style(self, manager):
        """Test that a style block without its section is removed."""
        html = (
            "<style>.wp-opt-faq-old { color: red; }</style><p>text</p>"
            '<section class="faq-section"><p>kept</p></section>'
        )
        result = manager.deduplicate(html, SectionKind.FAQ)

        assert "<style>" not in result
        assert "kept" in result

    def test_single_block_untouched(self, manager):
        """Test that a single block is left alone."""
        html = '<p>a</p><section class="faq-section"><p>b</p></section>'
        assert manager.deduplicate(html, SectionKind.FAQ) == html

    def test_module_shortcut(self):
        """Test the module-level helper."""
        html = '<div class="faq-container">1</div><div class="faq-container">2</div>'
        assert deduplicate_sections(html, SectionKind.FAQ) == '<div class="faq-container">2</div>'


class TestCanonicalizeFaq:
    """Tests for FAQ canonicalization and placement."""

    def test_replaces_model_faq_in_place(self, manager, sample_faqs):
        """Test that a model-written FAQ is replaced where it stood."""
        result = manager.canonicalize_faq(MODEL_FAQ, sample_faqs)

        assert "Is timing important?" not in result
        assert manager.count_sections(result, SectionKind.FAQ) == 1
        assert result.index("Opening text.") < result.index("wp-opt-faq-id1")
        assert result.index("wp-opt-faq-id1") < result.index("<h2>Conclusion</h2>")

    def test_idempotent(self, manager, sample_faqs):
        """Test that a second run returns the document unchanged."""
        once = manager.canonicalize_faq(MODEL_FAQ, sample_faqs)
        events = []
        twice = manager.canonicalize_faq(once, sample_faqs, events)

        assert twice == once
        assert "Canonical FAQ section already present" in events

    def test_multiple_blocks_collapse_to_one(self, manager, sample_faqs):
        """Test that several FAQ blocks become one, at the first position."""
        html = (
            '<section class="faq-section"><p>old</p></section>'
            "<p>middle</p>"
            '<div class="faq-accordion"><p>older</p></div>'
        )
        result = manager.canonicalize_faq(html, sample_faqs)

        assert manager.count_sections(result, SectionKind.FAQ) == 1
        assert "<p>old</p>" not in result
        assert "<p>older</p>" not in result
        assert result.index("wp-opt-faq-id1") < result.index("<p>middle</p>")

    def test_incomplete_rendered_block_is_replaced(self, manager, sample_faqs, id_factory):
        """Test that a rendered block with too few items is re-rendered."""
        stale = render_faq_section(sample_faqs[:1], lambda: "stale")
        result = manager.canonicalize_faq(f"<p>Body.</p>\n{stale}", sample_faqs)

        assert "wp-opt-faq-stale" not in result
        assert result.count('class="faq-question"') == 3

    def test_inserted_before_conclusion(self, manager, sample_faqs):
        """Test placement before a conclusion heading."""
        html = "<h2>Intro</h2><p>a</p><h2>Conclusion</h2><p>End.</p>"
        result = manager.canonicalize_faq(html, sample_faqs)
        assert result.index("wp-opt-faq-id1") < result.index("<h2>Conclusion</h2>")

    def test_inserted_before_references(self, manager, sample_faqs):
        """Test placement before the references when there is no conclusion."""
        html = "<h2>Intro</h2><p>a</p><h2>References</h2><ul><li>x</li></ul>"
        result = manager.canonicalize_faq(html, sample_faqs)
        assert result.index("wp-opt-faq-id1") < result.index("<h2>References</h2>")

    def test_inserted_before_last_h2(self, manager, sample_faqs):
        """Test placement before the final h2 of a multi-section article."""
        html = "<h2>One</h2><p>a</p><h2>Two</h2><p>b</p>"
        result = manager.canonicalize_faq(html, sample_faqs)

        assert result.index("<p>a</p>") < result.index("wp-opt-faq-id1")
        assert result.index("wp-opt-faq-id1") < result.index("<h2>Two</h2>")

    def test_appended_otherwise(self, manager, sample_faqs):
        """Test that short documents get the FAQ at the end."""
        result = manager.canonicalize_faq("<p>Only text.</p>", sample_faqs)

        assert result.startswith("<p>Only text.</p>")
        assert result.endswith("</section>")

    def test_no_faqs_leaves_document(self, manager):
        """Test that an empty FAQ list changes nothing."""
        assert manager.canonicalize_faq(MODEL_FAQ, []) == MODEL_FAQ

    def test_faq_replacement_keeps_surrounding_bytes(self, manager, sample_faqs):
        """Test that replacing a FAQ block leaves pre text elsewhere intact."""
        head = "<pre>a\n\n\n\nb</pre>\n"
        tail = "\n<pre>x\n\n\n\ny</pre>"
        html = f'{head}<section class="faq-section"><p>old</p></section>{tail}'

        result = manager.canonicalize_faq(html, sample_faqs)

        assert result.startswith(head)
        assert result.endswith(tail)
        assert "<p>old</p>" not in result


class TestCanonicalizeReferences:
    """Tests for references canonicalization."""

    def test_moved_to_end(self, manager, sample_references):
        """Test that a mid-document references block ends up last."""
        html = "<h2>Sources</h2><ul><li>old</li></ul><h2>Conclusion</h2><p>End.</p>"
        result = manager.canonicalize_references(html, sample_references)

        assert "<h2>Sources</h2>" not in result
        assert result.startswith("<h2>Conclusion</h2>")
        assert result.endswith("</section>")
        assert manager.count_sections(result, SectionKind.REFERENCES) == 1

    def test_idempotent(self, manager, sample_references):
        """Test that a canonical block already at the end is kept."""
        once = manager.canonicalize_references("<p>Body.</p>", sample_references)
        twice = manager.canonicalize_references(once, sample_references)
        assert twice == once

    def test_no_valid_references(self, manager):
        """Test that invalid references leave the document unchanged."""
        html = "<h2>References</h2><p>x</p>"
        refs = [Reference(url="https://bad.example", is_valid=False)]
        assert manager.canonicalize_references(html, refs) == html

    def test_existing_block_moved_last_without_references(self, manager):
        """Test that a lone model references block is moved to the end as written."""
        sources = "<h2>Sources</h2><ul><li>b</li></ul>"
        html = f"<h2>Intro</h2><p>x</p>{sources}<h2>Conclusion</h2><p>End.</p>"
        events = []

        result = manager.canonicalize_references(html, [], events)

        assert result == f"<h2>Intro</h2><p>x</p><h2>Conclusion</h2><p>End.</p>\n\n{sources}"
        assert events == ["No valid references; existing references section moved to the end"]


class TestRemoveH1:
    """Tests for H1 removal."""

    def test_removes_all_h1(self, manager):
        """Test that every h1 element is removed."""
        html = '<h1>Title</h1>\n<p>Body</p>\n<h1 class="x">Again</h1>'
        assert manager.remove_h1_tags(html) == "<p>Body</p>"

    def test_no_h1(self, manager):
        """Test that documents without h1 are returned as is."""
        events = []
        assert manager.remove_h1_tags("<p>Body</p>", events) == "<p>Body</p>"
        assert events == []
