# -*- coding: utf-8 -*-
"""
Text normalization helpers.

Handles:
- Smart quote / dash normalization so term matching is not defeated by
  typographic characters
- Whitespace normalization (non-breaking spaces, zero-width characters)
- JSON string fragment unescaping
- Sentence boundaries and word tokenization shared by the injectors
"""

import re
import unicodedata

# Smart quotes to normalize (using Unicode code points)
SMART_QUOTE_MAP = {
    '\u2018': "'",   # Left single quotation mark
    '\u2019': "'",   # Right single quotation mark
    '\u201a': "'",   # Single low-9 quotation mark
    '\u201b': "'",   # Single high-reversed-9 quotation mark
    '\u201c': '"',   # Left double quotation mark
    '\u201d': '"',   # Right double quotation mark
    '\u201e': '"',   # Double low-9 quotation mark
    '\u201f': '"',   # Double high-reversed-9 quotation mark
    '\u00ab': '"',   # Left-pointing double angle quotation mark
    '\u00bb': '"',   # Right-pointing double angle quotation mark
}

# Dash variants to normalize. Lengths are preserved so character
# offsets computed on normalized text stay valid.
DASH_MAP = {
    '\u2014': "-",  # Em dash
    '\u2013': "-",  # En dash
    '\u2212': "-",  # Minus sign
}

# Same-length replacements for whitespace variants
SPACE_MAP = {
    '\u00a0': ' ',  # Non-breaking space
    '\u2002': ' ',  # En space
    '\u2003': ' ',  # Em space
    '\u2009': ' ',  # Thin space
    '\u200a': ' ',  # Hair space
    '\u2028': '\n',  # Line separator
    '\u2029': '\n',  # Paragraph separator
}

SENTENCE_BOUNDARY_RE = re.compile(r'(?<=[.!?])\s+')
WORD_RE = re.compile(r"[a-z0-9][a-z0-9'-]*")

STOP_WORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of',
    'with', 'is', 'are', 'was', 'were', 'this', 'that', 'these', 'those', 'be',
    'been', 'being', 'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would',
    'could', 'should', 'may', 'might', 'can', 'must', 'shall', 'by', 'from',
    'up', 'about', 'into', 'through', 'during', 'before', 'after', 'above',
    'below', 'as', 'per', 'between', 'among', 'out', 'off', 'over', 'under',
    'again', 'further', 'then', 'once', 'here', 'there', 'when', 'where', 'why',
    'how', 'all', 'both', 'each', 'few', 'more', 'most', 'other', 'some',
    'such', 'no', 'nor', 'not', 'only', 'own', 'same', 'so', 'than', 'too',
    'very', 'just', 'your', 'you', 'our', 'its', 'it', 'what', 'which', 'who',
    # generic call-to-action words never make good anchors
    'click', 'read', 'view', 'see',
})


def normalize_quotes(text: str) -> str:
    """
    Convert smart quotes and dash variants to ASCII.

    Args:
        text: Text to normalize.

    Returns:
        Normalized text (same length as the input).
    """
    if not text:
        return text

    result = text
    for smart, ascii_char in SMART_QUOTE_MAP.items():
        result = result.replace(smart, ascii_char)
    for fancy, simple in DASH_MAP.items():
        result = result.replace(fancy, simple)
    return result


def normalize_spaces(text: str) -> str:
    """Replace whitespace variants with plain spaces, keeping offsets stable."""
    if not text:
        return text
    result = text
    for variant, plain in SPACE_MAP.items():
        result = result.replace(variant, plain)
    return result


def normalize_for_matching(text: str) -> str:
    """
    Normalize visible text before term or anchor matching.

    Applies quote, dash and space normalization plus NFC composition.
    Character offsets into the result line up with the input for all the
    mappings above.
    """
    if not text:
        return ""
    result = normalize_spaces(normalize_quotes(text))
    return unicodedata.normalize('NFC', result)


def unescape_json_fragment(text: str) -> str:
    """
    Decode the escapes of a JSON string body captured by a regex.

    Used when the surrounding JSON is too damaged to decode as a whole.
    """
    if not text:
        return text
    result = text.replace('\\n', '\n').replace('\\r', '\r').replace('\\t', '\t')
    result = result.replace('\\"', '"').replace('\\/', '/')
    result = re.sub(r'\\u([0-9a-fA-F]{4})', lambda m: chr(int(m.group(1), 16)), result)
    return result.replace('\\\\', '\\')


def tokenize_words(text: str) -> list[str]:
    """Lowercase word tokens with punctuation stripped."""
    return WORD_RE.findall(normalize_for_matching(text).lower())


def meaningful_words(text: str, min_length: int = 3) -> list[str]:
    """Tokens that are not stop words and have at least ``min_length`` chars."""
    return [
        word for word in tokenize_words(text)
        if len(word) >= min_length and word not in STOP_WORDS
    ]


def count_words(text: str) -> int:
    """Count whitespace-separated words in text."""
    if not text:
        return 0
    return len(text.split())
