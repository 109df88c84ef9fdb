"""
Low-level helpers for WordprocessingML structures on the xmltree model.
"""

from typing import Optional

from docxform.utils.properties import PARAGRAPH_ORDER, get_or_create_child
from docxform.utils.xmltree import XML_SPACE, Element, Text

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"

# --- Tags ---
W_BODY = "w:body"
W_P = "w:p"
W_PPR = "w:pPr"
W_R = "w:r"
W_RPR = "w:rPr"
W_T = "w:t"
W_BR = "w:br"
W_CR = "w:cr"
W_NUMPR = "w:numPr"


def create_paragraph() -> Element:
    """An empty paragraph with an empty property block: <w:p><w:pPr/></w:p>."""
    return Element(W_P, children=[Element(W_PPR)])


def get_body(root: Element) -> Optional[Element]:
    return root.find(W_BODY)


def get_paragraph_properties(paragraph: Element) -> Element:
    return get_or_create_child(paragraph, W_PPR, PARAGRAPH_ORDER)


def get_paragraph_text(paragraph: Element) -> str:
    """Plain text of a paragraph: every w:t it contains, in order."""
    return "".join(t.text_content() for t in paragraph.iter(W_T))


def is_blank_paragraph(paragraph: Element) -> bool:
    """True when no run carries a w:t with visible (non-whitespace) text."""
    for run in paragraph.iter(W_R):
        for t in run.iter(W_T):
            if t.text_content().strip():
                return False
    return True


def set_preserve(t: Element) -> None:
    """Mark a w:t as whitespace-significant, in the attribute and its text nodes."""
    t.set(XML_SPACE, "preserve")
    for node in t.children:
        if isinstance(node, Text):
            node.preserve_whitespace = True


def prepend_text(t: Element, prefix: str) -> None:
    """Put `prefix` in front of the text of a w:t."""
    set_preserve(t)
    for node in t.children:
        if isinstance(node, Text):
            node.content = prefix + node.content
            return
    t.insert(0, Text(prefix, preserve_whitespace=True))


def previous_element(parent: Element, child: Element) -> Optional[Element]:
    siblings = parent.element_children
    for i, candidate in enumerate(siblings):
        if candidate is child:
            return siblings[i - 1] if i > 0 else None
    return None


def next_element(parent: Element, child: Element) -> Optional[Element]:
    siblings = parent.element_children
    for i, candidate in enumerate(siblings):
        if candidate is child:
            return siblings[i + 1] if i + 1 < len(siblings) else None
    return None
