# -*- coding: utf-8 -*-
"""
HTML renderers for the managed document sections.

- render_faq_section: CSS-only accordion (checkbox + label), schema.org
  FAQPage microdata, works without JavaScript
- render_references_section: collapsible list of link cards

All user content is HTML-escaped. Section ids come from the caller's id
factory and the references year fallback from the caller's clock, so the
output is deterministic under test.
"""

import html
from datetime import datetime
from typing import Callable, Iterable
from urllib.parse import urlparse

from .models import FAQItem, Reference

IdFactory = Callable[[], str]
Clock = Callable[[], datetime]

FAQ_CLASS_PREFIX = "wp-opt-faq-"
REFERENCES_CLASS_PREFIX = "ref-accordion-"

# Accent colours cycled through the question badges
FAQ_PALETTE = (
    ("#6366f1", "#eef2ff"),
    ("#8b5cf6", "#f5f3ff"),
    ("#06b6d4", "#ecfeff"),
    ("#10b981", "#ecfdf5"),
    ("#f59e0b", "#fffbeb"),
    ("#ec4899", "#fdf2f8"),
)


def _escape(text: str) -> str:
    return html.escape(text or "", quote=True)


def _faq_css(scope: str) -> str:
    return f"""<style>
.{scope} {{ background: #ffffff !important; border-radius: 12px !important; margin: 48px 0 !important; border: 1px solid rgba(0,0,0,0.08) !important; overflow: hidden !important; }}
.{scope} .faq-header {{ padding: 28px 32px !important; background: linear-gradient(135deg, #f8fafc 0%, #f1f5f9 100%) !important; }}
.{scope} .faq-item {{ border-bottom: 1px solid rgba(0,0,0,0.06) !important; }}
.{scope} .faq-item:last-child {{ border-bottom: none !important; }}
.{scope} .faq-checkbox {{ position: absolute !important; opacity: 0 !important; pointer-events: none !important; }}
.{scope} .faq-question {{ display: flex !important; align-items: center !important; gap: 16px !important; padding: 20px 24px !important; cursor: pointer !important; }}
.{scope} .faq-answer {{ max-height: 0 !important; overflow: hidden !important; transition: max-height 0.4s ease !important; }}
.{scope} .faq-checkbox:checked + .faq-question + .faq-answer {{ max-height: 800px !important; }}
.{scope} .faq-chevron {{ transition: transform 0.3s ease !important; display: inline-block !important; }}
.{scope} .faq-checkbox:checked + .faq-question .faq-chevron {{ transform: rotate(180deg) !important; }}
</style>"""


def _faq_item(item: FAQItem, index: int, item_id: str) -> str:
    accent, background = FAQ_PALETTE[index % len(FAQ_PALETTE)]
    return f"""
    <div class="faq-item" itemscope itemprop="mainEntity" itemtype="https://schema.org/Question">
        <input type="checkbox" id="{item_id}" class="faq-checkbox" aria-hidden="true" />
        <label for="{item_id}" class="faq-question">
            <span style="min-width: 36px !important; height: 36px !important; background: {background} !important; border-radius: 10px !important; color: {accent} !important; font-weight: 700 !important;">{index + 1}</span>
            <span itemprop="name" style="flex: 1 !important; color: #1e293b !important; font-weight: 600 !important;">{_escape(item.question)}</span>
            <span class="faq-chevron">▼</span>
        </label>
        <div class="faq-answer" itemscope itemprop="acceptedAnswer" itemtype="https://schema.org/Answer">
            <div itemprop="text" style="padding: 0 24px 24px 76px !important;">
                <p style="color: #475569 !important; line-height: 1.75 !important; margin: 0 !important;">{_escape(item.answer)}</p>
            </div>
        </div>
    </div>"""


def render_faq_section(faqs: Iterable[FAQItem], id_factory: IdFactory) -> str:
    """
    Render the canonical FAQ accordion.

    Args:
        faqs: Question/answer pairs (empty questions are dropped).
        id_factory: Returns a unique token for the section id.

    Returns:
        HTML (style block + section), or "" when there are no questions.
    """
    items = [item for item in faqs if item.question.strip()]
    if not items:
        return ""

    section_id = id_factory()
    scope = f"{FAQ_CLASS_PREFIX}{section_id}"
    body = "\n".join(
        _faq_item(item, index, f"faq-{section_id}-q{index}")
        for index, item in enumerate(items)
    )
    return f"""{_faq_css(scope)}
<section class="{scope}" itemscope itemtype="https://schema.org/FAQPage">
    <div class="faq-header">
        <div style="width: 48px !important; height: 48px !important; background: linear-gradient(135deg, #6366f1 0%, #8b5cf6 100%) !important; border-radius: 12px !important;"><span>❓</span></div>
        <h2 style="color: #1e293b !important; margin: 0 !important;">Frequently Asked Questions</h2>
        <p style="color: #64748b !important; margin: 4px 0 0 0 !important;">{len(items)} questions answered • Click to expand</p>
    </div>
{body}
</section>"""


def valid_references(references: Iterable[Reference]) -> list[Reference]:
    """References with an http(s) URL that were not marked invalid."""
    return [
        ref for ref in references
        if ref.url and ref.url.startswith("http") and ref.is_valid
    ]


def _reference_domain(ref: Reference) -> str:
    if ref.domain:
        return ref.domain
    host = urlparse(ref.url).hostname or ""
    return host[4:] if host.startswith("www.") else (host or "Source")


def _reference_card(ref: Reference, year_fallback: int) -> str:
    domain = _reference_domain(ref)
    badge = ""
    if ref.is_authority:
        badge = '<span class="ref-badge" style="background: #dcfce7 !important; color: #166534 !important; border-radius: 4px !important;">Authority</span>'
    return f"""
        <a href="{_escape(ref.url)}" class="ref-card" target="_blank" rel="noopener noreferrer" style="display: block !important; text-decoration: none !important; margin-bottom: 12px !important;">
            <div style="background: #ffffff !important; border-radius: 12px !important; padding: 16px 20px !important; border: 1px solid rgba(0,0,0,0.08) !important;">
                <div style="color: #1e293b !important; font-weight: 600 !important;">{_escape(ref.title or "Untitled Source")}</div>
                <div style="margin-top: 4px !important;">
                    <span style="color: #3b82f6 !important; font-size: 12px !important;">{_escape(ref.source or domain)}</span>
                    <span style="color: #cbd5e1 !important;">•</span>
                    <span style="color: #94a3b8 !important; font-size: 12px !important;">{_escape(ref.year or str(year_fallback))}</span>
                    {badge}
                </div>
            </div>
        </a>"""


def render_references_section(
    references: Iterable[Reference], id_factory: IdFactory, clock: Clock
) -> str:
    """
    Render the references accordion of link cards.

    Args:
        references: Sources to list; invalid or non-http entries are skipped.
        id_factory: Returns a unique token for the section id.
        clock: Current time; its year is shown for undated sources.

    Returns:
        HTML (style block + section), or "" when nothing is listable.
    """
    refs = valid_references(references)
    if not refs:
        return ""

    section_id = id_factory()
    scope = f"{REFERENCES_CLASS_PREFIX}{section_id}"
    year = clock().year
    cards = "\n".join(_reference_card(ref, year) for ref in refs)
    return f"""<style>
.{scope} input {{ display: none !important; }}
.{scope} .ref-content {{ max-height: 0 !important; overflow: hidden !important; transition: max-height 0.4s ease !important; }}
.{scope} input:checked + label + .ref-content {{ max-height: 2000px !important; }}
.{scope} input:checked + label .ref-chevron {{ transform: rotate(180deg) !important; }}
</style>
<section class="ref-accordion {scope}" style="background: #f8fafc !important; border-radius: 12px !important; margin: 64px 0 32px 0 !important;">
    <input type="checkbox" id="ref-toggle-{section_id}" />
    <label for="ref-toggle-{section_id}" style="display: flex !important; justify-content: space-between !important; padding: 20px 24px !important; cursor: pointer !important;">
        <span style="color: #1e293b !important; font-weight: 700 !important;">📚 Sources &amp; References</span>
        <span style="color: #64748b !important; font-size: 12px !important;">{len(refs)} authoritative sources cited</span>
        <span class="ref-chevron">▼</span>
    </label>
    <div class="ref-content">
        <div style="padding: 20px 0 !important;">
{cards}
        </div>
    </div>
</section>"""
