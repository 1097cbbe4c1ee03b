"""
Parser and renderer for text/gemini ("gemtext") documents.

Each line of a gemtext document maps to exactly one node, except for
preformatted blocks, which collapse everything between two toggle lines
into a single node. The only state the parser keeps is whether it is
currently inside a preformatted block.
"""

import io
import re
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Iterator, List, Optional, Union


LINK_PREFIX = "=>"
PREFORMATTED_TOGGLE = "```"
HEADING_PREFIX = "#"
LIST_ITEM_PREFIX = "*"
QUOTE_PREFIX = ">"

# Text lines starting with any of these would be reclassified on re-parse.
RESERVED_PREFIXES = (
    LINK_PREFIX,
    PREFORMATTED_TOGGLE,
    HEADING_PREFIX,
    LIST_ITEM_PREFIX,
    QUOTE_PREFIX,
)

MAX_HEADING_LEVEL = 3

# Link fields are separated by ASCII whitespace only; other Unicode
# whitespace belongs to the target or the name.
_LINK_SEPARATOR = re.compile(r"[ \t\n\r\f]+")


@dataclass(frozen=True)
class Text:
    """Any line which does not match another line type."""
    body: str


@dataclass(frozen=True)
class Link:
    """A "=>" line: a target URL, absolute or relative, and an optional name."""
    to: str
    name: Optional[str] = None


@dataclass(frozen=True)
class Preformatted:
    """The body of a block between two "```" toggle lines."""
    body: str


@dataclass(frozen=True)
class Heading:
    """A "#", "##" or "###" line."""
    level: int
    body: str

    def __post_init__(self):
        if self.level not in range(1, MAX_HEADING_LEVEL + 1):
            raise ValueError(f"Heading level must be 1, 2 or 3, got {self.level!r}")


@dataclass(frozen=True)
class ListItem:
    """A "*" line."""
    body: str


@dataclass(frozen=True)
class Quote:
    """A ">" line."""
    body: str


Node = Union[Text, Link, Preformatted, Heading, ListItem, Quote]


def blank() -> Text:
    """Return an empty text line."""
    return Text("")


class Builder:
    """Build a gemtext document up from a series of nodes."""

    def __init__(self):
        self._nodes: List[Node] = []

    def text(self, body: str) -> 'Builder':
        self._nodes.append(Text(body))
        return self

    def link(self, to: str, name: Optional[str] = None) -> 'Builder':
        self._nodes.append(Link(to, name))
        return self

    def preformatted(self, body: str) -> 'Builder':
        self._nodes.append(Preformatted(body))
        return self

    def heading(self, level: int, body: str) -> 'Builder':
        self._nodes.append(Heading(level, body))
        return self

    def list_item(self, body: str) -> 'Builder':
        self._nodes.append(ListItem(body))
        return self

    def quote(self, body: str) -> 'Builder':
        self._nodes.append(Quote(body))
        return self

    def build(self) -> List[Node]:
        return list(self._nodes)


def _physical_lines(document: str) -> Iterator[str]:
    """
    Split a document on LF, dropping a trailing CR from each line.

    A final newline does not start an extra empty line.
    """
    if not document:
        return
    lines = document.split("\n")
    if document.endswith("\n"):
        lines.pop()
    for line in lines:
        if line.endswith("\r"):
            line = line[:-1]
        yield line


def _parse_link(remainder: str) -> Optional[Link]:
    parts = [part for part in _LINK_SEPARATOR.split(remainder) if part]
    if not parts:
        return None
    if len(parts) == 1:
        return Link(parts[0])
    return Link(parts[0], " ".join(parts[1:]).strip())


def parse(document: str) -> List[Node]:
    """
    Parse a gemtext document into a list of nodes.

    Parsing never fails: anything unrecognized becomes a Text node. A
    preformatted block that is still open at the end of the document is
    discarded.
    """
    nodes: List[Node] = []
    in_preformatted = False
    buffer: List[str] = []

    for line in _physical_lines(document):
        if line.startswith(PREFORMATTED_TOGGLE):
            in_preformatted = not in_preformatted
            if not in_preformatted:
                nodes.append(Preformatted("".join(buffer).rstrip()))
                buffer = []
            continue

        if in_preformatted:
            buffer.append(line + "\n")
            continue

        if line.startswith(QUOTE_PREFIX):
            nodes.append(Quote(line[1:].strip()))
        elif line.startswith(LIST_ITEM_PREFIX):
            nodes.append(ListItem(line[1:].strip()))
        elif line.startswith(HEADING_PREFIX):
            level = 1
            while level < MAX_HEADING_LEVEL and line.startswith(HEADING_PREFIX * (level + 1)):
                level += 1
            nodes.append(Heading(level, line[level:].strip()))
        elif line.startswith(LINK_PREFIX):
            link = _parse_link(line[len(LINK_PREFIX):])
            if link is not None:
                nodes.append(link)
        else:
            nodes.append(Text(line))

    return nodes


def links(nodes: Iterable[Node]) -> List[Link]:
    """Return the link nodes of a document in source order."""
    return [node for node in nodes if isinstance(node, Link)]


def _render_node(node: Node) -> str:
    if isinstance(node, Text):
        if node.body.startswith(RESERVED_PREFIXES):
            return f" {node.body}\n"
        return f"{node.body}\n"
    if isinstance(node, Link):
        if node.name is not None:
            return f"{LINK_PREFIX} {node.to} {node.name}\n"
        return f"{LINK_PREFIX} {node.to}\n"
    if isinstance(node, Preformatted):
        return f"{PREFORMATTED_TOGGLE}\n{node.body}\n{PREFORMATTED_TOGGLE}\n"
    if isinstance(node, Heading):
        return f"{HEADING_PREFIX * node.level} {node.body}\n"
    if isinstance(node, ListItem):
        return f"{LIST_ITEM_PREFIX} {node.body}\n"
    if isinstance(node, Quote):
        return f"{QUOTE_PREFIX} {node.body}\n"
    raise TypeError(f"Not a gemtext node: {node!r}")


def write(nodes: Iterable[Node], out: BinaryIO):
    """Render nodes as UTF-8 encoded gemtext to a binary stream."""
    for node in nodes:
        out.write(_render_node(node).encode('utf-8'))


def render(nodes: Iterable[Node]) -> bytes:
    """Render nodes as a UTF-8 encoded gemtext document."""
    out = io.BytesIO()
    write(nodes, out)
    return out.getvalue()
