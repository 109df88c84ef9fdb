"""
Turns manual line breaks into real paragraphs.

A run like  <w:r><w:t>A</w:t><w:br/><w:t>B</w:t></w:r>  inside one paragraph
becomes two paragraphs, each carrying a copy of the paragraph properties and
each holding a run with a copy of the run properties.
"""

import copy
from typing import List, Mapping, Optional

import structlog

from docxform.utils.docx import W_BR, W_CR, W_P, W_PPR, W_R, W_RPR, W_T
from docxform.utils.xmltree import Attributes, Element, Node, Text

logger = structlog.get_logger(__name__)

DEFAULT_SUBSTITUTIONS = {"–": "-"}

# Break types that stay inside their run.
_LAYOUT_BREAKS = ("page", "column")

# Paragraph identity attributes must stay unique across the document.
_PARAGRAPH_ID_ATTRIBUTES = ("w14:paraId", "w14:textId")


def is_line_break(node: Node) -> bool:
    if not isinstance(node, Element):
        return False
    if node.name == W_CR:
        return True
    return node.name == W_BR and node.get("w:type") not in _LAYOUT_BREAKS


class ParagraphSplitter:
    """
    Splits paragraphs at line breaks after applying character substitutions.

    Args:
        substitutions: Mapping of text to replace inside every w:t before
            splitting. Defaults to en dash -> hyphen.
    """

    def __init__(self, substitutions: Optional[Mapping[str, str]] = None):
        self.substitutions = dict(DEFAULT_SUBSTITUTIONS if substitutions is None else substitutions)

    def substitute(self, paragraph: Element) -> int:
        """Apply the substitutions to every w:t; returns how many w:t changed."""
        changed = 0
        for t in paragraph.iter(W_T):
            touched = False
            for node in t.children:
                if not isinstance(node, Text):
                    continue
                content = node.content
                for old, new in self.substitutions.items():
                    content = content.replace(old, new)
                if content != node.content:
                    node.content = content
                    touched = True
            changed += touched
        return changed

    def split(self, paragraph: Element) -> List[Element]:
        """
        Split one paragraph at its line breaks.

        Only runs that are direct children of the paragraph are scanned.
        N breaks always give N+1 paragraphs; a paragraph without breaks is
        returned as is (same object).
        """
        self.substitute(paragraph)

        if not any(self._has_break(child) for child in paragraph.children):
            return [paragraph]

        ppr = paragraph.find(W_PPR)
        fragments: List[List[Node]] = []
        current: List[Node] = []

        for child in paragraph.children:
            if child is ppr:
                continue
            if not self._has_break(child):
                current.append(child)
                continue

            rpr = child.find(W_RPR)
            segment: List[Node] = []
            for node in child.children:
                if node is rpr:
                    continue
                if is_line_break(node):
                    if any(isinstance(n, Element) for n in segment):
                        current.append(self._partial_run(child, rpr, segment))
                    fragments.append(current)
                    current, segment = [], []
                else:
                    segment.append(node)
            if any(isinstance(n, Element) for n in segment):
                current.append(self._partial_run(child, rpr, segment))

        fragments.append(current)

        paragraphs = []
        for i, content in enumerate(fragments):
            if i == 0:
                target = paragraph
                properties = ppr
            else:
                target = Element(W_P, Attributes(
                    (name, value) for name, value in paragraph.attributes.items()
                    if name not in _PARAGRAPH_ID_ATTRIBUTES
                ))
                properties = copy.deepcopy(ppr) if ppr is not None else None
            target.children = ([properties] if properties is not None else []) + content
            paragraphs.append(target)

        logger.debug("Split paragraph at line breaks", fragments=len(paragraphs))
        return paragraphs

    def split_document(self, root: Element) -> int:
        """Split every paragraph under `root` in place; returns paragraphs added."""
        added = 0
        for container in list(root.iter()):
            if container.find(W_P) is None:
                continue
            children: List[Node] = []
            for child in container.children:
                if isinstance(child, Element) and child.name == W_P:
                    pieces = self.split(child)
                    added += len(pieces) - 1
                    children.extend(pieces)
                else:
                    children.append(child)
            container.children[:] = children
        if added:
            logger.info("Split paragraphs at line breaks", paragraphs_added=added)
        return added

    def _has_break(self, node: Node) -> bool:
        return (
            isinstance(node, Element)
            and node.name == W_R
            and any(is_line_break(child) for child in node.children)
        )

    def _partial_run(self, run: Element, rpr: Optional[Element], content: List[Node]) -> Element:
        children: List[Node] = [copy.deepcopy(rpr)] if rpr is not None else []
        return Element(W_R, Attributes(run.attributes.items()), children + content)
