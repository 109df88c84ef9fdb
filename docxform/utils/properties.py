"""
Editing of OOXML property blocks (w:pPr, w:rPr and friends).

Children are inserted at the slot the schema sequence gives them, so a block
written by us validates the same way Word's own output does.
"""

from typing import Iterable, Mapping, Sequence, Tuple, Union

from docxform.utils.xmltree import Element

AttributeValues = Union[Mapping[str, str], Iterable[Tuple[str, str]]]

PARAGRAPH_ORDER = ("w:pPr",)
RUN_ORDER = ("w:rPr",)
STYLES_ORDER = ("w:docDefaults", "w:latentStyles", "w:style")
DOC_DEFAULTS_ORDER = ("w:rPrDefault", "w:pPrDefault")
RPR_DEFAULT_ORDER = ("w:rPr",)

PARAGRAPH_PROPERTIES_ORDER = tuple(
    "w:" + name
    for name in (
        "pStyle", "keepNext", "keepLines", "pageBreakBefore", "framePr",
        "widowControl", "numPr", "suppressLineNumbers", "pBdr", "shd", "tabs",
        "suppressAutoHyphens", "kinsoku", "wordWrap", "overflowPunct",
        "topLinePunct", "autoSpaceDE", "autoSpaceDN", "bidi", "adjustRightInd",
        "snapToGrid", "spacing", "ind", "contextualSpacing", "mirrorIndents",
        "suppressOverlap", "jc", "textDirection", "textAlignment",
        "textboxTightWrap", "outlineLvl", "divId", "cnfStyle", "rPr", "sectPr",
        "pPrChange",
    )
)

RUN_PROPERTIES_ORDER = tuple(
    "w:" + name
    for name in (
        "rStyle", "rFonts", "b", "bCs", "i", "iCs", "caps", "smallCaps",
        "strike", "dstrike", "outline", "shadow", "emboss", "imprint",
        "noProof", "snapToGrid", "vanish", "webHidden", "color", "spacing",
        "w", "kern", "position", "sz", "szCs", "highlight", "u", "effect",
        "bdr", "shd", "fitText", "vertAlign", "rtl", "cs", "em", "lang",
        "eastAsianLayout", "specVanish", "oMath", "rPrChange",
    )
)


def _slot_for(block: Element, tag: str, order: Sequence[str]) -> int:
    """Index right after the last known child that sorts at or before `tag`."""
    rank = order.index(tag) if tag in order else len(order)
    slot = 0
    for i, child in enumerate(block.children):
        if isinstance(child, Element) and child.name in order and order.index(child.name) <= rank:
            slot = i + 1
    return slot


def get_or_create_child(block: Element, tag: str, order: Sequence[str]) -> Element:
    existing = block.find(tag)
    if existing is not None:
        return existing
    child = Element(tag)
    block.insert(_slot_for(block, tag, order), child)
    return child


def upsert_attributes(block: Element, tag: str, attributes: AttributeValues, order: Sequence[str]) -> Element:
    """Set attributes on the `tag` child, creating it in schema order if absent."""
    child = get_or_create_child(block, tag, order)
    if isinstance(attributes, Mapping):
        attributes = attributes.items()
    for name, value in attributes:
        child.set(name, str(value))
    return child


def remove_child(block: Element, tag: str) -> int:
    """Drop every direct child called `tag`; returns how many were removed."""
    before = len(block.children)
    block.children[:] = [
        child for child in block.children
        if not (isinstance(child, Element) and child.name == tag)
    ]
    return before - len(block.children)


def replace_child(block: Element, tag: str, attributes: AttributeValues, order: Sequence[str]) -> Element:
    """Replace `tag` outright so no stale attribute from the source survives."""
    remove_child(block, tag)
    return upsert_attributes(block, tag, attributes, order)
