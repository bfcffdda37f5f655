"""
Pytest fixtures and configuration for SEO Content Pipeline tests.
"""

import itertools
import json
import random
from datetime import datetime

import pytest

from seo_content_pipeline.models import FAQItem, LinkTarget, Reference, TermKind, VocabularyTerm


@pytest.fixture
def rng() -> random.Random:
    """Seeded random source for reproducible phrasing."""
    return random.Random(42)


@pytest.fixture
def fixed_clock():
    """Clock frozen at 2025-01-01."""
    return lambda: datetime(2025, 1, 1)


@pytest.fixture
def id_factory():
    """Sequential section ids: id1, id2, ..."""
    counter = itertools.count(1)
    return lambda: f"id{next(counter)}"


@pytest.fixture
def article_html() -> str:
    """A model-style article body about protein timing."""
    return """<h2>Why Protein Timing Matters</h2>
<p>Protein timing describes when you eat protein across the day. Athletes often ask whether the window after training really matters for recovery. Research on muscle repair suggests spreading intake evenly is a sound approach for most people.</p>
<p>Total daily intake still matters more than the exact hour of each meal. A balanced plan with whole foods covers most needs without supplements.</p>
<h2>Building a Daily Routine</h2>
<p>Start with a breakfast that includes eggs, yogurt or another protein source. Lunch and dinner can follow the same pattern with lean meat, fish or legumes.</p>
<ul>
<li>Eat a protein-rich meal within a few hours of training to support recovery and muscle growth.</li>
<li>Spread intake over three or four meals so every meal contributes to your daily total.</li>
</ul>
<h2>Conclusion</h2>
<p>Consistency with nutrition beats perfect timing for nearly everyone who trains regularly.</p>"""


@pytest.fixture
def article_payload(article_html) -> dict:
    """A complete, well-formed model payload."""
    return {
        "title": "Protein Timing: A Practical Guide",
        "excerpt": "When to eat protein for better recovery.",
        "metaDescription": "Learn how protein timing affects recovery and muscle growth.",
        "slug": "protein-timing-practical-guide",
        "htmlContent": article_html,
        "faqs": [
            {"question": "Does protein timing matter?", "answer": "Total intake matters most."},
            {"question": "How much protein per meal?", "answer": "Around 20-40 grams."},
        ],
        "schema": {"@context": "https://schema.org", "@type": "Article"},
    }


@pytest.fixture
def article_json(article_payload) -> str:
    """The payload serialized as the model would return it."""
    return json.dumps(article_payload)


@pytest.fixture
def sample_faqs() -> list[FAQItem]:
    return [
        FAQItem("Does protein timing matter?", "Total intake matters most."),
        FAQItem("How much protein per meal?", "Around 20-40 grams."),
        FAQItem("Should I use shakes?", "Only when whole food is impractical."),
    ]


@pytest.fixture
def sample_references() -> list[Reference]:
    return [
        Reference(
            url="https://pubmed.ncbi.nlm.nih.gov/12345/",
            title="Protein timing and muscle protein synthesis",
            source="PubMed",
            year="2021",
            is_authority=True,
        ),
        Reference(url="https://www.example.org/protein-guide", title="Protein guide"),
    ]


@pytest.fixture
def sample_terms() -> list[VocabularyTerm]:
    """Vocabulary with a mix of used/missing and critical/regular terms."""
    return [
        VocabularyTerm("protein timing", importance=90),
        VocabularyTerm("muscle repair", importance=85),
        VocabularyTerm("recovery", importance=40),
        VocabularyTerm("protein synthesis", importance=95),
        VocabularyTerm("leucine threshold", importance=80),
        VocabularyTerm("anabolic window", kind=TermKind.HEADER, importance=30),
    ]


@pytest.fixture
def protein_target() -> LinkTarget:
    return LinkTarget(
        url="https://example.com/protein-timing-guide",
        title="The Complete Guide to Protein Timing for Athletes",
        slug="protein-timing-guide",
    )
