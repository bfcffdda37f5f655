"""
Recovering JSON parser for model output.

Model responses are supposed to be a single JSON object carrying the article
(title, htmlContent, faqs, schema, ...). In practice they arrive wrapped in
code fences, followed by chatter, or cut off mid-string when the output
budget runs out. This module recovers a ContentRecord from such text in
increasingly tolerant stages:

1. strip code fences, reject near-empty responses
2. direct json.loads
3. balanced-brace extraction of the first object (string-aware)
4. healing: trim, truncate the body at a safe tag, quote keys, escape
   control characters, close open strings/brackets
5. last-resort regex extraction of the body and a few scalar fields

Known limitation: truncating the body at a safe tag assumes the body field
precedes the FAQ/schema fields in the object.
"""

import json
import logging
import re
from typing import Optional

from .config import ParserConfig
from .html_tree import plain_text
from .models import BODY_FIELD_ALIASES, ContentRecord
from .text_repair import count_words, unescape_json_fragment

logger = logging.getLogger(__name__)


class ParseFailure(Exception):
    """Raised when no recovery stage produced a usable record."""

    def __init__(self, message: str, preview: str = ""):
        super().__init__(message)
        self.preview = preview


class InputContractError(ParseFailure):
    """The response was readable but violates the input contract."""
    pass


class ContentTooShort(InputContractError):
    """Raised when the response is too short to hold an article."""
    pass


class MissingRequiredField(InputContractError):
    """Raised when the payload decodes but has no body field."""
    pass


FENCE_START_RE = re.compile(r"^\s*```[a-zA-Z]*\s*")
FENCE_END_RE = re.compile(r"\s*```\s*$")

# Closing tags after which an HTML body can be cut without leaving a
# half-open block behind
SAFE_CLOSING_TAGS = (
    "</p>", "</div>", "</section>", "</h2>", "</h3>", "</ul>", "</ol>", "</table>",
)

SAFE_TAIL = (
    '"faqs":[],'
    '"schema":{"@context":"https://schema.org","@graph":[]},'
    '"structureVerified":false}'
)

_BODY_KEY_RE = re.compile(
    r'"(?:' + "|".join(re.escape(key) for key in BODY_FIELD_ALIASES) + r')"\s*:\s*"'
)
_UNQUOTED_KEY_RE = re.compile(r'([{,]\s*)([A-Za-z_$][\w$-]*)(\s*:)')
_TRAILING_COMMA_RE = re.compile(r',(\s*[}\]])')
_DANGLING_KEY_RE = re.compile(r'[{,]\s*"(?:[^"\\]|\\.)*"\s*$')

_LAST_RESORT_BODY_RE = re.compile(
    r'"htmlContent"\s*:\s*"([\s\S]*?)(?:"\s*,\s*"faqs"|"\s*,\s*"schema"|"\s*})'
)
_LAST_RESORT_FIELD_RE = {
    "title": re.compile(r'"title"\s*:\s*"((?:[^"\\]|\\.)*)"'),
    "excerpt": re.compile(r'"excerpt"\s*:\s*"((?:[^"\\]|\\.)*)"'),
    "metaDescription": re.compile(r'"metaDescription"\s*:\s*"((?:[^"\\]|\\.)*)"'),
    "slug": re.compile(r'"slug"\s*:\s*"((?:[^"\\]|\\.)*)"'),
}


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json fence and a trailing ``` fence."""
    text = (text or "").strip()
    text = FENCE_START_RE.sub("", text, count=1)
    return FENCE_END_RE.sub("", text, count=1).strip()


def extract_balanced_object(text: str, start: int) -> Optional[str]:
    """
    Return the object starting at ``text[start]`` up to its matching brace.

    Braces inside string literals are ignored; escapes inside strings are
    consumed one character at a time.

    Returns:
        The candidate object text, or None when the braces never balance.
    """
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def split_string_literals(text: str) -> list[tuple[bool, str]]:
    """
    Split JSON-ish text into (is_string, chunk) pieces.

    String chunks include their quotes. A string left open at the end of the
    text is returned as a final string chunk without a closing quote.
    """
    chunks: list[tuple[bool, str]] = []
    in_string = False
    escaped = False
    chunk_start = 0
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                chunks.append((True, text[chunk_start:index + 1]))
                chunk_start = index + 1
                in_string = False
        elif char == '"':
            if index > chunk_start:
                chunks.append((False, text[chunk_start:index]))
            chunk_start = index
            in_string = True
    if chunk_start < len(text):
        chunks.append((in_string, text[chunk_start:]))
    return chunks


def _string_end(text: str, open_quote: int) -> Optional[int]:
    """Index of the quote closing the string opened at ``open_quote``."""
    escaped = False
    for index in range(open_quote + 1, len(text)):
        char = text[index]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            return index
    return None


def _last_complete_entry(text: str) -> int:
    """
    Position of the comma in the last ``",``, ``},`` or ``],`` sequence that
    lies outside string literals, or -1.
    """
    last = -1
    offset = 0
    for is_string, chunk in split_string_literals(text):
        end = offset + len(chunk)
        if is_string:
            if chunk.endswith('"') and len(chunk) > 1 and end < len(text) and text[end] == ",":
                last = end
        else:
            for match in re.finditer(r"[}\]],", chunk):
                last = offset + match.end() - 1
        offset = end
    return last


def _escape_control_chars(literal: str) -> str:
    result = []
    for char in literal:
        if char == "\n":
            result.append("\\n")
        elif char == "\r":
            result.append("\\r")
        elif char == "\t":
            result.append("\\t")
        elif ord(char) < 0x20:
            continue
        else:
            result.append(char)
    return "".join(result)


def _close_open_structures(text: str) -> str:
    """Close an open string, then any open arrays/objects in nesting order."""
    stack: list[str] = []
    chunks = split_string_literals(text)
    for is_string, chunk in chunks:
        if is_string:
            continue
        for char in chunk:
            if char in "{[":
                stack.append("}" if char == "{" else "]")
            elif char in "}]" and stack:
                stack.pop()

    if chunks and chunks[-1][0] and _string_end(chunks[-1][1], 0) is None:
        literal = chunks[-1][1]
        # drop a dangling escape before closing
        if re.search(r'(?<!\\)(?:\\\\)*\\$', literal):
            text = text[:-1]
        text += '"'

    text = text.rstrip()
    while text.endswith(","):
        text = text[:-1].rstrip()
    if text.endswith(":"):
        text += "null"
    elif stack and stack[-1] == "}" and _DANGLING_KEY_RE.search(text):
        text += ":null"

    return text + "".join(reversed(stack))


class RecoveringJSONParser:
    """
    Parse model output into a ContentRecord, healing damage where possible.

    Example:
        >>> parser = RecoveringJSONParser()
        >>> record = parser.parse(raw_text)
        >>> record.structure_verified
        True
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        self.config = config or ParserConfig()

    def parse(self, raw_text: str) -> ContentRecord:
        """
        Recover a ContentRecord from raw model text.

        Args:
            raw_text: The model's response.

        Returns:
            ContentRecord; ``structure_verified`` is False when the body was
            truncated or only recovered by regex extraction.

        Raises:
            ContentTooShort: Response shorter than ``min_response_length``.
            MissingRequiredField: JSON decoded but never carried a body.
            ParseFailure: No stage produced a record.
        """
        text = strip_code_fences(raw_text)
        if len(text) < self.config.min_response_length:
            raise ContentTooShort(
                f"Response too short ({len(text)} chars, minimum "
                f"{self.config.min_response_length})",
                preview=self._preview(text),
            )

        bodyless: list[dict] = []

        payload = self._load(text, bodyless)
        if payload is not None:
            return ContentRecord.from_payload(payload)

        start = text.find("{")
        if start == -1:
            raise ParseFailure("No JSON object found in response", preview=self._preview(text))

        candidate = extract_balanced_object(text, start)
        if candidate is not None:
            payload = self._load(candidate, bodyless)
            if payload is not None:
                logger.info("Recovered JSON object from surrounding text")
                return ContentRecord.from_payload(payload)

        healed, truncated = self.heal(candidate if candidate is not None else text[start:])
        payload = self._load(healed, bodyless)
        if payload is not None:
            record = ContentRecord.from_payload(payload)
            if truncated:
                record.structure_verified = False
                logger.warning(
                    f"Healed truncated JSON; body cut at a safe closing tag "
                    f"({len(record.html_body)} chars kept)"
                )
            else:
                logger.info("Healed malformed JSON")
            return record

        record = self._last_resort(text)
        if record is not None:
            return record

        if bodyless:
            raise MissingRequiredField(
                "Response JSON has no htmlContent field", preview=self._preview(text)
            )
        raise ParseFailure(
            "Could not recover JSON from response", preview=self._preview(text)
        )

    def heal(self, text: str) -> tuple[str, bool]:
        """
        Repair truncated or malformed JSON object text.

        Args:
            text: Text starting at the object's opening brace.

        Returns:
            Tuple of (healed text, whether the body value was truncated).
        """
        truncated = False
        body_match = _BODY_KEY_RE.search(text)
        body_terminated = (
            body_match is not None and _string_end(text, body_match.end() - 1) is not None
        )

        if body_match is None or body_terminated:
            # Cut an unbalanced object back to its last complete entry
            if extract_balanced_object(text, 0) is None:
                last = _last_complete_entry(text)
                if last > len(text) * self.config.trim_threshold:
                    text = text[:last]
        else:
            truncated = True
            body_start = body_match.end()
            cut = -1
            for tag in SAFE_CLOSING_TAGS:
                position = text.rfind(tag, body_start)
                if position != -1:
                    cut = max(cut, position + len(tag))
            if cut != -1:
                text = text[:cut] + '",' + SAFE_TAIL

        pieces = []
        for is_string, chunk in split_string_literals(text):
            if is_string:
                pieces.append(_escape_control_chars(chunk))
            else:
                chunk = _UNQUOTED_KEY_RE.sub(r'\1"\2"\3', chunk)
                pieces.append(_TRAILING_COMMA_RE.sub(r"\1", chunk))
        text = "".join(pieces)

        return _close_open_structures(text), truncated

    def _load(self, text: str, bodyless: list) -> Optional[dict]:
        """Decode an object with a body; objects without one land in ``bodyless``."""
        try:
            payload = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return None
        if not isinstance(payload, dict):
            return None
        if not any(isinstance(payload.get(key), str) for key in BODY_FIELD_ALIASES):
            bodyless.append(payload)
            return None
        return payload

    def _last_resort(self, text: str) -> Optional[ContentRecord]:
        match = _LAST_RESORT_BODY_RE.search(text)
        if not match or len(match.group(1)) < self.config.min_last_resort_body:
            return None

        body = unescape_json_fragment(match.group(1))
        fields = {}
        for name, pattern in _LAST_RESORT_FIELD_RE.items():
            field_match = pattern.search(text)
            fields[name] = unescape_json_fragment(field_match.group(1)) if field_match else ""

        logger.warning(
            f"Fell back to regex extraction ({len(body)} chars of body recovered)"
        )
        return ContentRecord(
            title=fields["title"] or "Untitled",
            excerpt=fields["excerpt"],
            meta_description=fields["metaDescription"],
            slug=fields["slug"] or "untitled",
            html_body=body,
            word_count=count_words(plain_text(body)),
            structure_verified=False,
        )

    def _preview(self, text: str) -> str:
        size = self.config.preview_chars
        if len(text) <= size * 2:
            return text
        return f"{text[:size]} ... {text[-size:]}"


def parse_model_output(raw_text: str, config: Optional[ParserConfig] = None) -> ContentRecord:
    """Convenience wrapper around RecoveringJSONParser.parse."""
    return RecoveringJSONParser(config).parse(raw_text)
