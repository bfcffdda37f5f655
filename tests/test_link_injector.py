"""Tests for internal link injection."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from seo_content_pipeline.config import LinkInjectionConfig
from seo_content_pipeline.link_injector import (
    LinkInjector,
    calculate_relevance,
    count_links,
    is_valid_anchor,
    synthesize_anchor_text,
)
from seo_content_pipeline.models import LinkTarget

GUIDE_URL = "https://example.com/protein-timing-guide"
MISTAKES_URL = "https://example.com/protein-timing-mistakes"

PARAGRAPH_GUIDE = (
    "<p>Read our complete guide to protein timing for athletes before you change your diet.</p>"
)
PARAGRAPH_MISTAKES = (
    "<p>Here are common protein timing mistakes athletes make when they rush meals.</p>"
)


@pytest.fixture
def mistakes_target() -> LinkTarget:
    return LinkTarget(
        url=MISTAKES_URL,
        title="Protein Timing Mistakes Athletes Should Avoid",
        slug="protein-timing-mistakes",
    )


class TestRelevance:
    """Tests for calculate_relevance."""

    def test_shared_words_score_high(self, protein_target):
        """Test that a target sharing keyword words clears the relevance floor."""
        relevance = calculate_relevance(protein_target, "protein timing")

        assert relevance >= 0.55
        assert relevance == pytest.approx(0.675, abs=1e-3)

    def test_unrelated_generic_target_scores_low(self):
        """Test that an off-topic target with a generic slug scores low."""
        target = LinkTarget(url="https://example.com/misc", title="Hello World", slug="misc")
        assert calculate_relevance(target, "protein timing") < 0.55

    def test_slug_falls_back_to_url(self):
        """Test that a missing slug is read from the URL path."""
        with_slug = LinkTarget(url=GUIDE_URL, title="Protein Timing Guide", slug="protein-timing-guide")
        without_slug = LinkTarget(url=GUIDE_URL + "/", title="Protein Timing Guide")

        assert calculate_relevance(with_slug, "protein") == calculate_relevance(without_slug, "protein")

    def test_synonyms_count_as_on_topic(self):
        """Test that a synonym in the context lifts the authority component."""
        target = LinkTarget(url="https://example.com/seo-basics", title="SEO Basics Explained")
        assert calculate_relevance(target, "search ranking tips") > calculate_relevance(
            target, "gardening tips"
        )


class TestAnchorText:
    """Tests for anchor synthesis and validation."""

    def test_descriptive_anchor_from_title(self, protein_target):
        """Test the anchor built for a typical guide title."""
        anchor = synthesize_anchor_text(protein_target.title)

        assert anchor == "complete guide to protein timing"
        assert 4 <= len(anchor.split()) <= 5

    def test_short_title(self):
        """Test that a three-word title is used whole."""
        assert synthesize_anchor_text("Best Running Shoes") == "best running shoes"

    def test_long_title_capped_at_six_words(self):
        """Test that long titles give at most six words."""
        anchor = synthesize_anchor_text(
            "Beginner Strength Training Program With Progressive Overload Explained Clearly"
        )
        assert anchor == "beginner strength training program with progressive"

    @pytest.mark.parametrize("title", ["SEO", "How to Do It", "", "Protein Tips"])
    def test_no_anchor_for_thin_titles(self, title):
        """Test that titles without enough meaningful words give no anchor."""
        assert synthesize_anchor_text(title) is None

    def test_is_valid_anchor(self):
        """Test the 3-6 word, not-all-stop-words rule."""
        assert is_valid_anchor("protein timing guide")
        assert not is_valid_anchor("the and of")
        assert not is_valid_anchor("protein timing")
        assert not is_valid_anchor("one two three four five six seven")


class TestInjection:
    """Tests for placing links in the body."""

    def test_wraps_anchor_in_best_paragraph(self, protein_target):
        """Test that the anchor phrase is wrapped where the title fits best."""
        html = f"<h2>Protein Timing</h2>\n{PARAGRAPH_GUIDE}"
        injector = LinkInjector(LinkInjectionConfig(min_links=1))

        result = injector.inject(html, [protein_target], "protein timing")

        assert result.added_count == 1
        assert result.html == (
            "<h2>Protein Timing</h2>\n<p>Read our "
            f'<a href="{GUIDE_URL}" title="Learn more: complete guide to protein timing">'
            "complete guide to protein timing</a> for athletes before you change your diet.</p>"
        )
        assert result.shortfall is None

    def test_keeps_original_case(self, protein_target):
        """Test that the linked text keeps the body's capitalization."""
        html = "<p>Start with The Complete Guide to Protein Timing for Athletes on our site.</p>"
        result = LinkInjector(LinkInjectionConfig(min_links=1)).inject(
            html, [protein_target], "protein timing"
        )
        assert ">Complete Guide to Protein Timing</a>" in result.html

    def test_second_pass_changes_nothing(self, protein_target):
        """Test that targets already linked are skipped."""
        injector = LinkInjector(LinkInjectionConfig(min_links=1))
        first = injector.inject(PARAGRAPH_GUIDE, [protein_target], "protein timing")
        second = injector.inject(first.html, [protein_target], "protein timing")

        assert second.added == []
        assert second.html == first.html
        assert count_links(second.html) == 1

    def test_irrelevant_targets_are_ignored(self):
        """Test that targets below the relevance floor are never linked."""
        target = LinkTarget(url="https://example.com/misc", title="Hello World", slug="misc")
        result = LinkInjector().inject(PARAGRAPH_GUIDE, [target], "protein timing")

        assert result.added == []
        assert result.target is None
        assert result.html == PARAGRAPH_GUIDE

    def test_never_links_inside_headings(self, protein_target):
        """Test that a heading mentioning the anchor is not linked."""
        html = "<h2>A complete guide to protein timing for athletes</h2>"
        result = LinkInjector().inject(html, [protein_target], "protein timing")

        assert result.added == []
        assert result.failed == [GUIDE_URL]

    def test_skips_elements_with_links(self, protein_target):
        """Test that an element already holding a link gets no second one."""
        html = (
            '<p>See <a href="/other">this page</a> and the complete guide to protein '
            "timing for athletes.</p>"
        )
        result = LinkInjector().inject(html, [protein_target], "protein timing")
        assert result.added == []

    def test_shortfall_reported(self, protein_target):
        """Test that fewer links than min_links is reported, not raised."""
        result = LinkInjector().inject(PARAGRAPH_GUIDE, [protein_target], "protein timing")

        assert result.added_count == 1
        assert result.shortfall.targeted == 12
        assert result.shortfall.achieved == 1

    def test_scores_count_existing_links(self, protein_target):
        """Test that before and after scores are the document's link counts."""
        html = f'<p>See <a href="/other">this page</a> first.</p>\n{PARAGRAPH_GUIDE}'
        result = LinkInjector(LinkInjectionConfig(min_links=2)).inject(
            html, [protein_target], "protein timing"
        )

        assert result.before_score == 1
        assert result.after_score == 2
        assert result.added_count == 1
        assert result.shortfall is None

    def test_existing_links_count_toward_maximum(self, protein_target):
        """Test that a document already at max_links gets no new link."""
        html = f'<p><a href="/a">a</a> and <a href="/b">b</a></p>\n{PARAGRAPH_GUIDE}'
        result = LinkInjector(LinkInjectionConfig(min_links=0, max_links=2)).inject(
            html, [protein_target], "protein timing"
        )

        assert result.added == []
        assert result.html == html
        assert result.after_score == 2

    def test_shared_injector_across_threads(self, protein_target):
        """Test that concurrent passes on one injector stay independent."""
        injector = LinkInjector(LinkInjectionConfig(min_links=1, min_link_distance=0))
        html = f"<h2>Protein Timing</h2>\n{PARAGRAPH_GUIDE}\n{PARAGRAPH_GUIDE}"
        expected = injector.inject(html, [protein_target], "protein timing")

        def run(_):
            return injector.inject(html, [protein_target], "protein timing")

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(run, range(200)))

        assert expected.added_count == 1
        assert all(result.added_count == 1 for result in results)
        assert all(result.html == expected.html for result in results)
        assert all(result.after_score == 1 for result in results)


class TestDistribution:
    """Tests for link distance and per-section caps."""

    def test_minimum_distance(self, protein_target, mistakes_target):
        """Test that a second link too close to the first is not placed."""
        html = f"{PARAGRAPH_GUIDE}\n{PARAGRAPH_MISTAKES}"
        result = LinkInjector().inject(html, [protein_target, mistakes_target], "protein timing")

        assert [record.unit for record in result.added] == [GUIDE_URL]
        assert result.failed == [MISTAKES_URL]

    def test_distance_zero_allows_neighbours(self, protein_target, mistakes_target):
        """Test that neighbouring links are fine without a distance rule."""
        html = f"{PARAGRAPH_GUIDE}\n{PARAGRAPH_MISTAKES}"
        config = LinkInjectionConfig(min_link_distance=0)
        result = LinkInjector(config).inject(html, [protein_target, mistakes_target], "protein timing")

        assert result.added_count == 2
        assert count_links(result.html) == 2

    def test_section_cap(self, protein_target, mistakes_target):
        """Test that a section takes at most max_links_per_section links."""
        html = f"{PARAGRAPH_GUIDE}\n{PARAGRAPH_MISTAKES}"
        config = LinkInjectionConfig(min_link_distance=0, max_links_per_section=1)
        result = LinkInjector(config).inject(html, [protein_target, mistakes_target], "protein timing")

        assert result.added_count == 1

    def test_sections_are_delimited_by_headings(self, protein_target, mistakes_target):
        """Test that a heading between paragraphs starts a new section."""
        html = f"{PARAGRAPH_GUIDE}\n<h2>Mistakes</h2>\n{PARAGRAPH_MISTAKES}"
        config = LinkInjectionConfig(min_link_distance=0, max_links_per_section=1)
        result = LinkInjector(config).inject(html, [protein_target, mistakes_target], "protein timing")

        assert result.added_count == 2


class TestFallback:
    """Tests for the lead-words fallback pass."""

    def test_lead_phrase_used_when_anchor_missing(self, mistakes_target):
        """Test that the leading title words are linked when the anchor is absent."""
        html = "<p>Protein timing mistakes are common, so plan every meal around training.</p>"
        result = LinkInjector().inject(html, [mistakes_target], "protein timing")

        assert result.added_count == 1
        assert result.added[0].detail.endswith("(fallback)")
        assert f'<a href="{MISTAKES_URL}"' in result.html
        assert ">Protein timing mistakes</a>" in result.html

    def test_no_fallback_without_lead_words(self, mistakes_target):
        """Test that paragraphs without the lead words are left alone."""
        html = "<p>Athletes often make mistakes with protein and with timing of meals.</p>"
        result = LinkInjector().inject(html, [mistakes_target], "protein timing")

        assert result.added == []
        assert result.failed == [MISTAKES_URL]
