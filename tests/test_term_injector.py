"""Tests for vocabulary term injection."""

import random

import pytest

from seo_content_pipeline.config import TermInjectionConfig
from seo_content_pipeline.coverage import analyze_coverage
from seo_content_pipeline.models import VocabularyTerm
from seo_content_pipeline.term_injector import (
    TermInjector,
    count_sentences,
    related_words,
    render_term_sentence,
)

DEFINITION = "Understanding <strong>leucine threshold</strong> is essential to getting this right."


class FirstChoice:
    """Random stand-in that always picks the first option."""

    def choice(self, options):
        return options[0]


@pytest.fixture
def ten_terms() -> list[VocabularyTerm]:
    return [
        VocabularyTerm("protein timing", importance=90),
        VocabularyTerm("muscle repair", importance=85),
        VocabularyTerm("recovery", importance=40),
        VocabularyTerm("protein synthesis", importance=95),
        VocabularyTerm("leucine threshold", importance=80),
        VocabularyTerm("casein", importance=20),
        VocabularyTerm("whey isolate", importance=20),
        VocabularyTerm("meal frequency", importance=20),
        VocabularyTerm("anabolic window", importance=20),
        VocabularyTerm("nitrogen balance", importance=20),
    ]


@pytest.fixture
def body_html() -> str:
    return (
        "<h2>Protein Timing Basics</h2>\n"
        "<p>Protein timing describes when you eat protein across the day. "
        "Athletes often ask whether the window after training matters for muscle repair and recovery. "
        "Spreading intake evenly is a sound approach for most people.</p>\n"
        "<p>Leucine is an amino acid found in dairy, meat and eggs. "
        "It helps start the process of building new tissue after hard exercise sessions.</p>"
    )


def _leucine_injector() -> TermInjector:
    return TermInjector(TermInjectionConfig(target_coverage=100), rng=FirstChoice())


class TestHelpers:
    """Tests for the phrasing helpers."""

    def test_render_capitalizes_leading_term(self):
        """Test that a template starting with the term capitalizes it."""
        sentence = render_term_sentence("{term} plays a central role here.", "protein synthesis")
        assert sentence == "<strong>Protein synthesis</strong> plays a central role here."

    def test_render_escapes_term(self):
        """Test that the term is HTML-escaped."""
        sentence = render_term_sentence("This relates directly to {term}.", "salt & water")
        assert "<strong>salt &amp; water</strong>" in sentence

    def test_related_words_include_cluster(self):
        """Test that a cluster match adds the cluster's words."""
        related = related_words("seo content")
        assert {"seo", "content", "ranking", "writing"} <= related

    def test_related_words_without_cluster(self):
        """Test that unclustered terms relate through their own words."""
        assert related_words("leucine threshold") == {"leucine", "threshold"}

    def test_count_sentences_ignores_fragments(self):
        """Test that short fragments are not counted as sentences."""
        assert count_sentences("Yes. This one is a full sentence for sure. Ok.") == 1


class TestCoverageTarget:
    """Tests for the coverage-driven injection loop."""

    def test_injects_critical_terms_until_target(self, ten_terms, body_html, rng):
        """Test that two critical insertions take coverage from 30 to 50."""
        injector = TermInjector(TermInjectionConfig(target_coverage=50), rng=rng)

        result = injector.inject(body_html, ten_terms)

        assert result.before_score == 30
        assert result.after_score == 50
        assert result.added_count == 2
        assert [record.unit for record in result.added] == ["protein synthesis", "leucine threshold"]
        assert analyze_coverage(result.html, ten_terms).critical_missing == []
        assert result.shortfall is None

    def test_same_seed_same_output(self, ten_terms, body_html):
        """Test that a seeded random source makes phrasing reproducible."""
        config = TermInjectionConfig(target_coverage=50)
        first = TermInjector(config, rng=random.Random(7)).inject(body_html, ten_terms)
        second = TermInjector(config, rng=random.Random(7)).inject(body_html, ten_terms)

        assert first.html == second.html

    def test_target_already_met(self, body_html):
        """Test that nothing changes when coverage is already at target."""
        terms = [VocabularyTerm("protein timing"), VocabularyTerm("recovery")]
        result = TermInjector().inject(body_html, terms)

        assert result.html == body_html
        assert result.added == []
        assert result.before_score == result.after_score == 100

    def test_insertion_budget(self, ten_terms, body_html, rng):
        """Test that the pass stops at max_insertions."""
        config = TermInjectionConfig(target_coverage=100, max_insertions=1)
        result = TermInjector(config, rng=rng).inject(body_html, ten_terms)

        assert result.added_count == 1
        assert result.shortfall is not None
        assert result.shortfall.targeted == 100

    def test_unrelated_terms_fail(self, body_html, rng):
        """Test that terms with no related location are reported as failed."""
        terms = [VocabularyTerm("nitrogen balance")]
        result = TermInjector(TermInjectionConfig(target_coverage=100), rng=rng).inject(body_html, terms)

        assert result.failed == ["nitrogen balance"]
        assert result.html == body_html
        assert result.after_score == 0


class TestPlacementRules:
    """Tests for where terms may and may not go."""

    def test_skips_forbidden_ancestors(self):
        """Test that blocks inside blockquotes are never used."""
        html = (
            "<blockquote><p>Leucine is an amino acid found in dairy, meat and eggs. "
            "It helps start the process of building new tissue.</p></blockquote>"
        )
        result = _leucine_injector().inject(html, [VocabularyTerm("leucine threshold")])

        assert result.failed == ["leucine threshold"]
        assert result.html == html

    def test_skips_short_elements(self):
        """Test that elements below the length window are skipped."""
        html = "<p>Leucine matters.</p>"
        result = _leucine_injector().inject(html, [VocabularyTerm("leucine threshold")])
        assert result.added == []

    def test_per_element_cap(self):
        """Test that one element takes at most max_per_element insertions."""
        html = (
            "<p>Protein is found in dairy, meat, eggs and legumes, and most "
            "people eat enough of it without much planning.</p>"
        )
        terms = [VocabularyTerm("protein synthesis"), VocabularyTerm("protein quality")]
        config = TermInjectionConfig(target_coverage=100, max_per_element=1)

        result = TermInjector(config, rng=FirstChoice()).inject(html, terms)

        assert [record.unit for record in result.added] == ["protein synthesis"]
        assert result.failed == ["protein quality"]

    def test_list_items_report_list_location(self):
        """Test that list items are eligible and reported as list insertions."""
        html = (
            "<ul><li>Leucine is an amino acid found in dairy, meat and eggs that helps "
            "start building new tissue</li></ul>"
        )
        result = _leucine_injector().inject(html, [VocabularyTerm("leucine threshold")])
        assert result.added[0].location == "list"


class TestPositions:
    """Tests for start/middle/end splicing."""

    def test_single_sentence_inserts_at_start(self):
        """Test that a one-sentence block gets the clause at the start."""
        text = (
            "Leucine is an amino acid found in dairy, meat and eggs that helps "
            "start building new tissue."
        )
        result = _leucine_injector().inject(f"<p>{text}</p>", [VocabularyTerm("leucine threshold")])
        assert result.html == f"<p>{DEFINITION} {text}</p>"

    def test_two_sentences_insert_at_end(self):
        """Test that a two-sentence block gets the clause at the end."""
        text = (
            "Leucine is an amino acid found in dairy and meat. "
            "It helps start the process of building new tissue after exercise."
        )
        result = _leucine_injector().inject(f"<p>{text}</p>\n", [VocabularyTerm("leucine threshold")])
        assert result.html == f"<p>{text} {DEFINITION}</p>\n"

    def test_three_sentences_insert_in_middle(self):
        """Test that longer blocks get the clause at the middle sentence boundary."""
        html = (
            "<p>Leucine is an amino acid found in dairy. It is common in meat and in eggs. "
            "Most athletes get plenty of it from ordinary food.</p>"
        )
        result = _leucine_injector().inject(html, [VocabularyTerm("leucine threshold")])

        assert result.html == (
            "<p>Leucine is an amino acid found in dairy. It is common in meat and in eggs. "
            f"{DEFINITION} Most athletes get plenty of it from ordinary food.</p>"
        )

    def test_trailing_whitespace_kept(self):
        """Test that whitespace before the end tag stays after the new clause."""
        text = (
            "Leucine is an amino acid found in dairy and meat. "
            "It helps start the process of building new tissue after exercise."
        )
        result = _leucine_injector().inject(f"<p>{text}\n</p>", [VocabularyTerm("leucine threshold")])
        assert result.html == f"<p>{text} {DEFINITION}\n</p>"
