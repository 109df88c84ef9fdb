"""
Converts automatic list numbering into literal text.

numbering.xml stores list formats in two hops:
- w:abstractNum: per-level format (w:numFmt) and template (w:lvlText, e.g. "%1.%2.")
- w:num: maps the numId a paragraph references to an abstractNum

The resolver walks document.xml in order, computes the marker a renderer
would show for every numbered paragraph, removes the w:numPr reference and
writes the marker into the paragraph's first text.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

import structlog

from docxform.utils.docx import W_NUMPR, W_P, W_PPR, W_R, W_RPR, W_T, prepend_text
from docxform.utils.properties import remove_child
from docxform.utils.xmltree import Document, Element, Text

logger = structlog.get_logger(__name__)

MC_ALTERNATE_CONTENT = "mc:AlternateContent"
MC_FALLBACK = "mc:Fallback"

DASH_BULLET = "- "
PLUS_BULLET = "+ "
DASH_GLYPHS = ("", "-", "–", "—")

_PLACEHOLDER = re.compile(r"%(\d+)")

_ROMAN = (
    (1000, "M"), (900, "CM"), (500, "D"), (400, "CD"),
    (100, "C"), (90, "XC"), (50, "L"), (40, "XL"),
    (10, "X"), (9, "IX"), (5, "V"), (4, "IV"), (1, "I"),
)


class NumberFormat(str, Enum):
    DECIMAL = "decimal"
    LOWER_LETTER = "lowerLetter"
    UPPER_LETTER = "upperLetter"
    LOWER_ROMAN = "lowerRoman"
    UPPER_ROMAN = "upperRoman"
    BULLET = "bullet"


@dataclass(frozen=True)
class LevelSpec:
    # Raw w:numFmt value; formats outside NumberFormat are kept so they can be reported.
    format: str = NumberFormat.DECIMAL.value
    text: str = ""

    @property
    def number_format(self) -> Optional[NumberFormat]:
        try:
            return NumberFormat(self.format)
        except ValueError:
            return None


def to_roman(value: int) -> str:
    result = []
    for number, numeral in _ROMAN:
        while value >= number:
            result.append(numeral)
            value -= number
    return "".join(result)


def format_number(value: int, number_format: NumberFormat) -> str:
    """Render a counter value; letters wrap every 26 (27 -> a)."""
    if number_format is NumberFormat.LOWER_LETTER:
        return chr(ord("a") + (value - 1) % 26)
    if number_format is NumberFormat.UPPER_LETTER:
        return chr(ord("A") + (value - 1) % 26)
    if number_format is NumberFormat.LOWER_ROMAN:
        return to_roman(value).lower()
    if number_format is NumberFormat.UPPER_ROMAN:
        return to_roman(value)
    return str(value)


def bullet_marker(glyph: str) -> str:
    return DASH_BULLET if glyph in DASH_GLYPHS else PLUS_BULLET


class NumberingDefinitions:
    """The two lookup tables of numbering.xml, read-only once built."""

    def __init__(self, abstract_levels: Optional[Dict[str, Dict[int, LevelSpec]]] = None,
                 instance_to_abstract: Optional[Dict[str, str]] = None):
        self.abstract_levels = abstract_levels or {}
        self.instance_to_abstract = instance_to_abstract or {}

    @classmethod
    def from_document(cls, numbering: Optional[Document]) -> "NumberingDefinitions":
        if numbering is None:
            return cls()

        abstract_levels: Dict[str, Dict[int, LevelSpec]] = {}
        instance_to_abstract: Dict[str, str] = {}

        for abstract in numbering.root.iter("w:abstractNum"):
            abstract_id = abstract.get("w:abstractNumId")
            if abstract_id is None:
                continue
            levels = {}
            for lvl in abstract.findall("w:lvl"):
                try:
                    ilvl = int(lvl.get("w:ilvl", "0"))
                except ValueError:
                    continue
                num_fmt = lvl.find("w:numFmt")
                lvl_text = lvl.find("w:lvlText")
                levels[ilvl] = LevelSpec(
                    format=(num_fmt.get("w:val") if num_fmt is not None else None) or NumberFormat.DECIMAL.value,
                    text=(lvl_text.get("w:val") if lvl_text is not None else None) or "",
                )
            abstract_levels[abstract_id] = levels

        for num in numbering.root.iter("w:num"):
            num_id = num.get("w:numId")
            ref = num.find("w:abstractNumId")
            if num_id is not None and ref is not None and ref.get("w:val") is not None:
                instance_to_abstract[num_id] = ref.get("w:val")

        logger.debug(
            "Loaded numbering definitions",
            abstract_count=len(abstract_levels),
            instance_count=len(instance_to_abstract),
        )
        return cls(abstract_levels, instance_to_abstract)

    def lookup(self, num_id: str, level: int) -> Optional[LevelSpec]:
        abstract_id = self.instance_to_abstract.get(num_id)
        if abstract_id is None:
            return None
        return self.abstract_levels.get(abstract_id, {}).get(level)

    def levels_for(self, num_id: str) -> Dict[int, LevelSpec]:
        abstract_id = self.instance_to_abstract.get(num_id)
        return self.abstract_levels.get(abstract_id, {}) if abstract_id is not None else {}


class ResolverState(Enum):
    IDLE = "idle"
    DEFINITIONS_LOADED = "definitions_loaded"
    RENDERING = "rendering"
    DONE = "done"


class NumberingResolver:
    """
    One-shot resolver for a single document.

    Usage:
        resolver = NumberingResolver()
        resolver.load(numbering_doc)      # None when the package has no numbering.xml
        converted = resolver.render(document_doc)
    """

    def __init__(self):
        self.state = ResolverState.IDLE
        self.definitions = NumberingDefinitions()
        self.counters: Dict[Tuple[str, int], int] = {}
        self.unresolved: List[Tuple[str, int]] = []

    def load(self, numbering: Optional[Document]) -> "NumberingResolver":
        if self.state is not ResolverState.IDLE:
            raise RuntimeError(f"load() called in state {self.state.name}")
        self.definitions = NumberingDefinitions.from_document(numbering)
        self.state = ResolverState.DEFINITIONS_LOADED
        return self

    def render(self, document: Document) -> int:
        """Convert every numbered paragraph; returns how many were converted."""
        if self.state is not ResolverState.DEFINITIONS_LOADED:
            raise RuntimeError(f"render() called in state {self.state.name}")
        self.state = ResolverState.RENDERING

        converted = self._render_tree(document.root)

        self.state = ResolverState.DONE
        if converted:
            logger.info("Converted list numbering to text", paragraphs=converted, unresolved=len(self.unresolved))
        return converted

    def _render_tree(self, element: Element) -> int:
        converted = 0
        if element.name == W_P and self._render_paragraph(element):
            converted += 1
        for child in element.element_children:
            if child.name == MC_ALTERNATE_CONTENT:
                converted += self._render_alternate_content(child)
            else:
                converted += self._render_tree(child)
        return converted

    def _render_alternate_content(self, alternate: Element) -> int:
        # mc:Fallback repeats the content of mc:Choice; it gets the same
        # markers without advancing the counters a second time.
        before = dict(self.counters)
        converted = 0
        for branch in alternate.element_children:
            if branch.name == MC_FALLBACK:
                after = self.counters
                self.counters = dict(before)
                converted += self._render_tree(branch)
                self.counters = after
            else:
                converted += self._render_tree(branch)
        return converted

    # =========================================================================
    # MARKERS
    # =========================================================================

    def marker_for(self, num_id: str, level: int) -> Optional[str]:
        """
        Marker text for the next paragraph of (num_id, level).

        Returns None when the paragraph must lose its numbering without a
        marker (a format such as "none").
        """
        spec = self.definitions.lookup(num_id, level)
        if spec is None:
            self.unresolved.append((num_id, level))
            logger.warning("Unresolved numbering reference, using dash bullet", num_id=num_id, level=level)
            return DASH_BULLET

        number_format = spec.number_format
        if number_format is None:
            logger.debug("Unsupported numbering format dropped", num_id=num_id, level=level, format=spec.format)
            return None
        if number_format is NumberFormat.BULLET:
            return bullet_marker(spec.text)

        key = (num_id, level)
        self.counters[key] = self.counters.get(key, 0) + 1
        value = format_number(self.counters[key], number_format)

        if not spec.text:
            return f"{value}. "
        return self._fill_template(num_id, level, spec.text, value) + " "

    def _fill_template(self, num_id: str, level: int, template: str, value: str) -> str:
        own = str(level + 1)
        placeholders = _PLACEHOLDER.findall(template)
        if own not in placeholders:
            # Template does not name its own level: the first placeholder takes the value.
            return _PLACEHOLDER.sub(value, template, count=1)

        levels = self.definitions.levels_for(num_id)

        def substitute(match):
            if match.group(1) == own:
                return value
            other = int(match.group(1)) - 1
            other_spec = levels.get(other)
            other_format = (other_spec.number_format if other_spec else None) or NumberFormat.DECIMAL
            if other_format is NumberFormat.BULLET:
                other_format = NumberFormat.DECIMAL
            return format_number(max(self.counters.get((num_id, other), 0), 1), other_format)

        return _PLACEHOLDER.sub(substitute, template)

    # =========================================================================
    # PARAGRAPH EDITS
    # =========================================================================

    def _render_paragraph(self, paragraph: Element) -> bool:
        ppr = paragraph.find(W_PPR)
        if ppr is None:
            return False
        numpr = ppr.find(W_NUMPR)
        if numpr is None:
            return False
        num_id_el = numpr.find("w:numId")
        num_id = num_id_el.get("w:val") if num_id_el is not None else None
        if num_id is None:
            return False

        ilvl_el = numpr.find("w:ilvl")
        try:
            level = int(ilvl_el.get("w:val", "0")) if ilvl_el is not None else 0
        except ValueError:
            level = 0

        marker = self.marker_for(num_id, level)
        remove_child(ppr, W_NUMPR)
        if marker:
            self._inject_marker(paragraph, ppr, marker)
        return True

    def _inject_marker(self, paragraph: Element, ppr: Element, marker: str) -> None:
        runs = paragraph.findall(W_R)
        for run in runs:
            t = run.find(W_T)
            if t is not None:
                prepend_text(t, marker)
                return

        t = Element(W_T, [("xml:space", "preserve")], [Text(marker, preserve_whitespace=True)])
        if runs:
            run = runs[0]
            rpr = run.find(W_RPR)
            run.insert(run.index(rpr) + 1 if rpr is not None else 0, t)
            return

        run = Element(W_R, children=[t])
        paragraph.insert(paragraph.index(ppr) + 1, run)
