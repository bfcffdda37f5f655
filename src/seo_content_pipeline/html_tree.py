"""
Minimal HTML tokenizer and tree model.

The pipeline edits model-generated article HTML in place: wrapping a phrase
in a link, splicing a sentence into a paragraph. Those edits must leave the
rest of the markup byte-for-byte untouched, so this module keeps the raw text
of every token and serializes it back verbatim. Only the nodes an edit
creates are rendered fresh.

Node kinds:
- Text: raw character data (entities kept as written)
- Element: tag, attributes, raw start/end tags, children
- RawNode: comments, declarations and stray end tags
"""

import html
import re
from typing import Iterable, Iterator, Optional

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})

# Elements whose content is not markup
RAW_TEXT_ELEMENTS = frozenset({"script", "style", "textarea", "title"})

# Elements whose text never counts as visible document text
NON_TEXT_ELEMENTS = frozenset({"script", "style", "template"})

# An open element of the key tag is closed implicitly by a new sibling
# of any tag in the value set.
IMPLIED_END = {
    "p": {"p"},
    "li": {"li"},
    "td": {"td", "th"},
    "th": {"td", "th"},
    "tr": {"tr"},
    "option": {"option"},
}

HEADING_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})

_MARKUP_RE = re.compile(
    r"""
    (?P<comment><!--.*?(?:-->|\Z))
  | (?P<decl><![^>]*>|<\?[^>]*>)
  | (?P<end></(?P<end_name>[a-zA-Z][\w:.-]*)\s*>)
  | (?P<start><(?P<start_name>[a-zA-Z][\w:.-]*)
        (?P<attrs>(?:\s+[^\s/>"'=]+(?:\s*=\s*(?:"[^"]*"|'[^']*'|[^\s"'>]+))?)*)
        \s*(?P<slash>/)?>)
    """,
    re.DOTALL | re.VERBOSE,
)

_ATTR_RE = re.compile(
    r"""([^\s/>"'=]+)(?:\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s"'>]+)))?"""
)

# Default for Element(end_tag=...): render "</tag>" instead of copying one
_GENERATED = "</#generated>"


class Node:
    """Base class for tree nodes."""

    parent: Optional["Element"] = None

    def serialize(self) -> str:
        raise NotImplementedError

    def text_content(self) -> str:
        return ""

    def ancestors(self) -> Iterator["Element"]:
        """Yield enclosing elements, innermost first (fragment root excluded)."""
        node = self.parent
        while node is not None and not isinstance(node, Fragment):
            yield node
            node = node.parent

    def has_ancestor(self, tags: Iterable[str]) -> bool:
        tag_set = set(tags)
        return any(el.tag in tag_set for el in self.ancestors())


class Text(Node):
    """Character data, stored exactly as written in the source."""

    def __init__(self, data: str):
        self.data = data
        self.parent = None

    def serialize(self) -> str:
        return self.data

    def text_content(self) -> str:
        return html.unescape(self.data)

    def __repr__(self) -> str:
        return f"Text({self.data[:30]!r})"


class RawNode(Node):
    """Markup kept verbatim: comments, doctype, stray end tags."""

    def __init__(self, raw: str):
        self.raw = raw
        self.parent = None

    def serialize(self) -> str:
        return self.raw

    def __repr__(self) -> str:
        return f"RawNode({self.raw[:30]!r})"


class Element(Node):
    """An element with attributes and children."""

    def __init__(
        self,
        tag: str,
        attrs: Optional[dict[str, Optional[str]]] = None,
        start_tag: Optional[str] = None,
        end_tag: Optional[str] = _GENERATED,
        self_closing: bool = False,
    ):
        self.tag = tag.lower()
        self.attrs = dict(attrs or {})
        self.start_tag = start_tag if start_tag is not None else build_start_tag(self.tag, self.attrs)
        self.self_closing = self_closing or self.tag in VOID_ELEMENTS
        if end_tag is _GENERATED:
            end_tag = None if self.self_closing else f"</{self.tag}>"
        # None means the element was never closed in the source
        self.end_tag = end_tag
        self.children: list[Node] = []
        self.parent = None

    def __repr__(self) -> str:
        return f"Element(<{self.tag}>, children={len(self.children)})"

    # -- serialization -----------------------------------------------------

    @property
    def inner_html(self) -> str:
        return "".join(child.serialize() for child in self.children)

    def serialize(self) -> str:
        if self.self_closing:
            return self.start_tag
        return f"{self.start_tag}{self.inner_html}{self.end_tag or ''}"

    def text_content(self) -> str:
        if self.tag in NON_TEXT_ELEMENTS:
            return ""
        return "".join(child.text_content() for child in self.children)

    # -- attributes --------------------------------------------------------

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self.attrs.get(name.lower(), default)
        return default if value is None else value

    @property
    def classes(self) -> list[str]:
        return (self.get("class") or "").split()

    # -- traversal ---------------------------------------------------------

    def iter_nodes(self) -> Iterator[Node]:
        """Yield every descendant node in document order."""
        for child in self.children:
            yield child
            if isinstance(child, Element):
                yield from child.iter_nodes()

    def iter_elements(self, tags: Optional[Iterable[str]] = None) -> Iterator["Element"]:
        """Yield descendant elements in document order, optionally filtered by tag."""
        tag_set = set(tags) if tags is not None else None
        for node in self.iter_nodes():
            if isinstance(node, Element) and (tag_set is None or node.tag in tag_set):
                yield node

    def iter_text_nodes(self, skip_tags: Iterable[str] = ()) -> Iterator[Text]:
        """Yield Text descendants that are not inside any of ``skip_tags``."""
        skip = set(skip_tags) | NON_TEXT_ELEMENTS
        for child in self.children:
            if isinstance(child, Text):
                yield child
            elif isinstance(child, Element) and child.tag not in skip:
                yield from child.iter_text_nodes(skip)

    def contains_tag(self, tag: str) -> bool:
        return any(True for _ in self.iter_elements([tag]))

    def find_links(self) -> list["Element"]:
        """Descendant <a> elements carrying an href."""
        return [a for a in self.iter_elements(["a"]) if a.get("href")]

    # -- mutation ----------------------------------------------------------

    def append(self, node: Node) -> None:
        node.parent = self
        self.children.append(node)

    def insert(self, index: int, nodes: list[Node]) -> None:
        for offset, node in enumerate(nodes):
            node.parent = self
            self.children.insert(index + offset, node)

    def replace_child(self, old: Node, new_nodes: list[Node]) -> None:
        index = self.children.index(old)
        self.children.pop(index)
        old.parent = None
        self.insert(index, new_nodes)


class Fragment(Element):
    """Root container for a parsed HTML fragment."""

    def __init__(self):
        super().__init__("#fragment", start_tag="", end_tag="")

    def serialize(self) -> str:
        return self.inner_html

    def text_offsets(self) -> dict[int, int]:
        """
        Map each element (by id) to the offset of its first character in
        the fragment's plain text.
        """
        offsets: dict[int, int] = {}
        self._collect_offsets(self, 0, offsets)
        return offsets

    def _collect_offsets(self, element: Element, position: int, offsets: dict[int, int]) -> int:
        for child in element.children:
            if isinstance(child, Text):
                position += len(child.text_content())
            elif isinstance(child, Element):
                offsets[id(child)] = position
                if child.tag not in NON_TEXT_ELEMENTS:
                    position = self._collect_offsets(child, position, offsets)
        return position

    def source_spans(self) -> dict[int, tuple[int, int]]:
        """
        Map each element (by id) to the half-open span of its markup in
        ``self.serialize()``. For a freshly parsed fragment that is the
        span in the source string.
        """
        spans: dict[int, tuple[int, int]] = {}
        self._collect_spans(self, 0, spans)
        return spans

    def _collect_spans(self, element: Element, position: int, spans: dict[int, tuple[int, int]]) -> int:
        for child in element.children:
            if isinstance(child, Element):
                start = position
                position += len(child.start_tag)
                if not child.self_closing:
                    position = self._collect_spans(child, position, spans)
                    position += len(child.end_tag or "")
                spans[id(child)] = (start, position)
            else:
                position += len(child.serialize())
        return position


def build_start_tag(tag: str, attrs: dict[str, Optional[str]]) -> str:
    """Render a start tag for a newly created element."""
    parts = [tag]
    for name, value in attrs.items():
        if value is None:
            parts.append(name)
        else:
            parts.append(f'{name}="{html.escape(value, quote=True)}"')
    return "<" + " ".join(parts) + ">"


def parse_attrs(raw: str) -> dict[str, Optional[str]]:
    attrs: dict[str, Optional[str]] = {}
    for match in _ATTR_RE.finditer(raw or ""):
        name = match.group(1).lower()
        if match.group(2) is not None:
            value = match.group(2)
        elif match.group(3) is not None:
            value = match.group(3)
        else:
            value = match.group(4)
        attrs.setdefault(name, html.unescape(value) if value is not None else None)
    return attrs


def _tokenize(source: str) -> Iterator[tuple]:
    """
    Split source into ("text", raw), ("raw", raw), ("start", raw, tag, attrs,
    self_closing) and ("end", raw, tag) tokens.
    """
    pos = 0
    length = len(source)
    while pos < length:
        lt = source.find("<", pos)
        if lt == -1:
            yield ("text", source[pos:])
            return
        if lt > pos:
            yield ("text", source[pos:lt])

        match = _MARKUP_RE.match(source, lt)
        if match is None:
            # A bare "<" is just text
            yield ("text", "<")
            pos = lt + 1
            continue

        raw = match.group(0)
        pos = match.end()
        if match.group("comment") or match.group("decl"):
            yield ("raw", raw)
        elif match.group("end"):
            yield ("end", raw, match.group("end_name").lower())
        else:
            tag = match.group("start_name").lower()
            self_closing = bool(match.group("slash"))
            yield ("start", raw, tag, parse_attrs(match.group("attrs")), self_closing)

            if tag in RAW_TEXT_ELEMENTS and not self_closing:
                close = re.compile(rf"</{tag}\s*>", re.IGNORECASE).search(source, pos)
                end = close.start() if close else length
                if end > pos:
                    yield ("text", source[pos:end])
                if close:
                    yield ("end", close.group(0), tag)
                    pos = close.end()
                else:
                    pos = length


def parse_fragment(source: str) -> Fragment:
    """
    Parse an HTML fragment into a tree that serializes back to ``source``.

    Args:
        source: HTML markup (need not be a full document).

    Returns:
        Fragment root holding the parsed nodes.
    """
    root = Fragment()
    stack: list[Element] = [root]

    def add_text(raw: str) -> None:
        current = stack[-1]
        if current.children and isinstance(current.children[-1], Text):
            current.children[-1].data += raw
        else:
            current.append(Text(raw))

    for token in _tokenize(source or ""):
        kind = token[0]
        if kind == "text":
            add_text(token[1])
        elif kind == "raw":
            stack[-1].append(RawNode(token[1]))
        elif kind == "start":
            _, raw, tag, attrs, self_closing = token
            current = stack[-1]
            if tag in IMPLIED_END.get(current.tag, ()) and len(stack) > 1:
                current.end_tag = None
                stack.pop()
            element = Element(tag, attrs, start_tag=raw, end_tag=None, self_closing=self_closing)
            stack[-1].append(element)
            if not element.self_closing:
                stack.append(element)
        else:
            _, raw, tag = token
            for depth in range(len(stack) - 1, 0, -1):
                if stack[depth].tag == tag:
                    stack[depth].end_tag = raw
                    del stack[depth:]
                    break
            else:
                stack[-1].append(RawNode(raw))

    return root


def parse_nodes(source: str) -> list[Node]:
    """Parse markup and return its top-level nodes, detached from the root."""
    fragment = parse_fragment(source)
    nodes = list(fragment.children)
    for node in nodes:
        node.parent = None
    return nodes


def escape_text(text: str) -> str:
    """Escape text for use as HTML character data."""
    return html.escape(text, quote=False)


def plain_text(source: str) -> str:
    """Visible text of an HTML string."""
    return parse_fragment(source).text_content()
