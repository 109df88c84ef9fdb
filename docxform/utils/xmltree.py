"""
Order-preserving XML tree used by every transform.

lxml does the parsing; the result is converted into plain dataclasses so that
child order, attribute order and namespace declarations survive editing and
are written back the way they were read. Names keep their source prefix
("w:p", "xml:space"); namespace declarations are ordinary attributes.
"""

import re
from dataclasses import dataclass, field
from io import BytesIO
from typing import Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from lxml import etree

from docxform.errors import MalformedXmlError

XML_NS = "http://www.w3.org/XML/1998/namespace"
XML_SPACE = "xml:space"
DEFAULT_DECLARATION = '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'

_XML_SPACE_CLARK = f"{{{XML_NS}}}space"
_DECLARATION_RE = re.compile(r"^﻿?\s*(<\?xml\s[^>]*?\?>)")
_DECLARATION_BYTES_RE = re.compile(rb"^(?:\xef\xbb\xbf)?\s*(<\?xml\s[^>]*?\?>)")
_ENCODING_RE = re.compile(r"""encoding\s*=\s*["']([A-Za-z0-9._-]+)["']""")


class Attributes:
    """
    Attribute list that keeps insertion order.

    Setting a name that already exists overwrites its value in place, so
    editing never moves an attribute.
    """

    __slots__ = ("_pairs",)

    def __init__(self, pairs: Union[Mapping[str, str], Iterable[Tuple[str, str]]] = ()):
        self._pairs: List[Tuple[str, str]] = []
        if isinstance(pairs, Mapping):
            pairs = pairs.items()
        for name, value in pairs:
            self.set(name, value)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        for key, value in self._pairs:
            if key == name:
                return value
        return default

    def set(self, name: str, value: str) -> None:
        for i, (key, _) in enumerate(self._pairs):
            if key == name:
                self._pairs[i] = (name, value)
                return
        self._pairs.append((name, value))

    def remove(self, name: str) -> bool:
        before = len(self._pairs)
        self._pairs = [(key, value) for key, value in self._pairs if key != name]
        return len(self._pairs) != before

    def items(self) -> List[Tuple[str, str]]:
        return list(self._pairs)

    def names(self) -> List[str]:
        return [key for key, _ in self._pairs]

    def __contains__(self, name: object) -> bool:
        return any(key == name for key, _ in self._pairs)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._pairs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Attributes):
            return NotImplemented
        return self._pairs == other._pairs

    def __repr__(self) -> str:
        return f"Attributes({self._pairs!r})"

    def __deepcopy__(self, memo) -> "Attributes":
        return Attributes(self._pairs)


@dataclass
class Text:
    content: str
    preserve_whitespace: bool = False


@dataclass
class Comment:
    content: str


@dataclass
class Instruction:
    target: str
    content: str = ""


@dataclass
class Element:
    name: str
    attributes: Attributes = field(default_factory=Attributes)
    children: List["Node"] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.attributes, Attributes):
            self.attributes = Attributes(self.attributes)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(name, default)

    def set(self, name: str, value: str) -> None:
        self.attributes.set(name, value)

    @property
    def element_children(self) -> List["Element"]:
        return [child for child in self.children if isinstance(child, Element)]

    def find(self, name: str) -> Optional["Element"]:
        """First direct child element called `name`."""
        for child in self.children:
            if isinstance(child, Element) and child.name == name:
                return child
        return None

    def findall(self, name: str) -> List["Element"]:
        return [child for child in self.children if isinstance(child, Element) and child.name == name]

    def iter(self, name: Optional[str] = None) -> Iterator["Element"]:
        """Depth-first, document-order walk over this element and its descendants."""
        if name is None or self.name == name:
            yield self
        for child in self.children:
            if isinstance(child, Element):
                yield from child.iter(name)

    def iter_text(self) -> Iterator[Text]:
        for child in self.children:
            if isinstance(child, Text):
                yield child
            elif isinstance(child, Element):
                yield from child.iter_text()

    def text_content(self) -> str:
        return "".join(node.content for node in self.iter_text())

    def index(self, child: "Node") -> int:
        # Identity, not equality: two empty paragraphs compare equal.
        for i, candidate in enumerate(self.children):
            if candidate is child:
                return i
        raise ValueError(f"{child!r} is not a child of <{self.name}>")

    def insert(self, index: int, child: "Node") -> None:
        self.children.insert(index, child)

    def append(self, child: "Node") -> None:
        self.children.append(child)

    def remove(self, child: "Node") -> None:
        del self.children[self.index(child)]


Node = Union[Element, Text, Comment, Instruction]


@dataclass
class Document:
    root: Element
    declaration: Optional[str] = None
    prolog: List[Node] = field(default_factory=list)
    epilog: List[Node] = field(default_factory=list)

    @property
    def encoding(self) -> str:
        if self.declaration:
            match = _ENCODING_RE.search(self.declaration)
            if match:
                return match.group(1)
        return "UTF-8"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse(data: Union[str, bytes], part: Optional[str] = None) -> Document:
    """
    Parse an XML document into the tree model.

    `part` only labels the error raised for malformed input. The XML
    declaration is captured verbatim; namespace declarations are recorded in
    source order through lxml's start-ns events.
    """
    if isinstance(data, str):
        match = _DECLARATION_RE.match(data)
        declaration = match.group(1) if match else None
        # lxml refuses str input that carries an encoding declaration.
        body = data[match.end():] if match else data.lstrip("﻿")
        source = body.encode("utf-8")
    else:
        match = _DECLARATION_BYTES_RE.match(data)
        declaration = match.group(1).decode("latin-1") if match else None
        source = data

    declared = {}
    pending = []
    try:
        events = etree.iterparse(
            BytesIO(source),
            events=("start-ns", "start"),
            resolve_entities=False,
            no_network=True,
            huge_tree=True,
            remove_blank_text=False,
            remove_comments=False,
            remove_pis=False,
        )
        for event, payload in events:
            if event == "start-ns":
                pending.append(payload)
            else:
                declared[payload] = pending
                pending = []
        root = events.root
    except etree.ParseError as e:
        raise MalformedXmlError(str(e), part=part) from e

    if root is None:
        raise MalformedXmlError("document has no root element", part=part)

    document = Document(root=_convert(root, declared, False, part), declaration=declaration)
    document.prolog = [_convert(node, declared, False, part) for node in reversed(list(root.itersiblings(preceding=True)))]
    document.epilog = [_convert(node, declared, False, part) for node in root.itersiblings()]
    return document


def _convert(node, declared: dict, preserve: bool, part: Optional[str]) -> Node:
    if isinstance(node, etree._Comment):
        return Comment(node.text or "")
    if isinstance(node, etree._ProcessingInstruction):
        return Instruction(node.target, node.text or "")
    if isinstance(node, etree._Entity):
        raise MalformedXmlError(f"unresolved entity reference {node.text}", part=part)

    pairs = [(f"xmlns:{prefix}" if prefix else "xmlns", uri) for prefix, uri in declared.get(node, ())]
    nsmap = None
    for key, value in node.attrib.items():
        if key.startswith("{"):
            if nsmap is None:
                nsmap = node.nsmap
            key = _qualify(key, nsmap)
        pairs.append((key, value))

    space = node.get(_XML_SPACE_CLARK)
    if space is not None:
        preserve = space == "preserve"

    element = Element(_element_name(node), Attributes(pairs))
    if node.text:
        element.children.append(Text(node.text, preserve))
    for child in node:
        element.children.append(_convert(child, declared, preserve, part))
        if child.tail:
            element.children.append(Text(child.tail, preserve))
    return element


def _element_name(node) -> str:
    local = etree.QName(node).localname
    return f"{node.prefix}:{local}" if node.prefix else local


def _qualify(clark: str, nsmap: dict) -> str:
    uri, local = clark[1:].split("}", 1)
    if uri == XML_NS:
        return f"xml:{local}"
    for prefix, namespace in nsmap.items():
        if prefix and namespace == uri:
            return f"{prefix}:{local}"
    return clark


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def serialize(document: Document) -> str:
    """Write the document back to text; the declaration is always emitted."""
    out = [document.declaration or DEFAULT_DECLARATION, "\n"]
    for node in document.prolog:
        _write(node, out)
    _write(document.root, out)
    for node in document.epilog:
        _write(node, out)
    return "".join(out)


def serialize_bytes(document: Document) -> bytes:
    return serialize(document).encode(document.encoding)


def tostring(node: Node) -> str:
    """Serialize a single node (no declaration)."""
    out: List[str] = []
    _write(node, out)
    return "".join(out)


def _write(node: Node, out: List[str]) -> None:
    if isinstance(node, Text):
        out.append(_escape_text(node.content))
    elif isinstance(node, Element):
        out.append("<" + node.name)
        for name, value in node.attributes.items():
            out.append(f' {name}="{_escape_attribute(value)}"')
        if not node.children:
            out.append("/>")
            return
        out.append(">")
        for child in node.children:
            _write(child, out)
        out.append(f"</{node.name}>")
    elif isinstance(node, Comment):
        out.append(f"<!--{node.content}-->")
    elif isinstance(node, Instruction):
        out.append(f"<?{node.target} {node.content}?>" if node.content else f"<?{node.target}?>")
    else:
        raise TypeError(f"Cannot serialize {type(node).__name__}")


def _escape_text(value: str) -> str:
    return value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace("\r", "&#13;")


def _escape_attribute(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("\t", "&#9;")
        .replace("\n", "&#10;")
        .replace("\r", "&#13;")
    )
