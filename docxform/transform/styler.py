"""
STYLER - document-wide paragraph and run formatting.

Three passes over document.xml, then the defaults in styles.xml:
1. LAYOUT PASS - blank paragraphs after the title and before section markers
2. FORMAT PASS - justification, indentation, spacing on every paragraph;
   font and size on every run
3. TITLE PASS  - centered, unindented first paragraph

Every edit goes through the property block editor, so running the styler on
its own output changes nothing.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from docxform.config import DEFAULT_CONFIG, FormattingConfig
from docxform.utils.docx import (
    W_P,
    W_PPR,
    W_R,
    W_RPR,
    create_paragraph,
    get_body,
    get_paragraph_properties,
    get_paragraph_text,
    is_blank_paragraph,
    next_element,
    previous_element,
)
from docxform.utils.properties import (
    DOC_DEFAULTS_ORDER,
    PARAGRAPH_PROPERTIES_ORDER,
    RPR_DEFAULT_ORDER,
    RUN_ORDER,
    RUN_PROPERTIES_ORDER,
    STYLES_ORDER,
    get_or_create_child,
    remove_child,
    replace_child,
    upsert_attributes,
)
from docxform.utils.xmltree import Document, Element

logger = structlog.get_logger(__name__)


@dataclass
class StylerResult:
    """Result of styler processing."""
    paragraphs_formatted: int = 0
    runs_formatted: int = 0
    blank_paragraphs_inserted: int = 0
    title_formatted: bool = False
    fixes_applied: List[str] = field(default_factory=list)

    @property
    def fix_count(self) -> int:
        return len(self.fixes_applied)


class DocumentStyler:
    """Applies the configured formatting to a parsed document.xml."""

    def __init__(self, config: Optional[FormattingConfig] = None):
        self.config = config or DEFAULT_CONFIG

    # =========================================================================
    # LAYOUT PASS
    # =========================================================================

    def insert_blank_paragraphs(self, body: Element) -> List[str]:
        fixes = []
        paragraphs = body.findall(W_P)
        if not paragraphs:
            return fixes

        if self.config.title.enabled and self.config.title.blank_after:
            title = paragraphs[0]
            following = next_element(body, title)
            if following is None or not self._is_blank(following):
                body.insert(body.index(title) + 1, create_paragraph())
                fixes.append("Inserted blank paragraph after title")

        for marker in self.config.section_markers:
            target = self._find_marker(body, marker)
            if target is None:
                continue
            preceding = previous_element(body, target)
            if preceding is None or self._is_blank(preceding):
                continue
            body.insert(body.index(target), create_paragraph())
            fixes.append(f"Inserted blank paragraph before '{marker}'")
        return fixes

    def _find_marker(self, body: Element, marker: str) -> Optional[Element]:
        for paragraph in body.findall(W_P):
            if marker in get_paragraph_text(paragraph):
                return paragraph
        return None

    def _is_blank(self, element: Element) -> bool:
        return element.name == W_P and is_blank_paragraph(element)

    # =========================================================================
    # FORMAT PASS
    # =========================================================================

    def format_paragraph(self, paragraph: Element) -> None:
        fmt = self.config.paragraph
        ppr = get_paragraph_properties(paragraph)
        replace_child(ppr, "w:spacing", [
            ("w:before", fmt.before),
            ("w:after", fmt.after),
            ("w:line", fmt.line),
            ("w:lineRule", fmt.line_rule),
        ], PARAGRAPH_PROPERTIES_ORDER)
        replace_child(ppr, "w:ind", [
            ("w:left", fmt.left),
            ("w:right", fmt.right),
            ("w:firstLine", fmt.first_line),
        ], PARAGRAPH_PROPERTIES_ORDER)
        replace_child(ppr, "w:jc", [("w:val", fmt.justification)], PARAGRAPH_PROPERTIES_ORDER)

        # Paragraph mark properties follow the run format.
        mark = ppr.find(W_RPR)
        if mark is not None:
            self.format_run_properties(mark)

    def format_run(self, run: Element) -> None:
        self.format_run_properties(get_or_create_child(run, W_RPR, RUN_ORDER))

    def format_run_properties(self, rpr: Element) -> None:
        fmt = self.config.run
        upsert_attributes(rpr, "w:rFonts", [
            ("w:ascii", fmt.font),
            ("w:hAnsi", fmt.font),
            ("w:cs", fmt.font),
        ], RUN_PROPERTIES_ORDER)
        upsert_attributes(rpr, "w:sz", [("w:val", fmt.size)], RUN_PROPERTIES_ORDER)
        upsert_attributes(rpr, "w:szCs", [("w:val", fmt.size)], RUN_PROPERTIES_ORDER)

    # =========================================================================
    # TITLE PASS
    # =========================================================================

    def format_title(self, body: Element) -> bool:
        if not self.config.title.enabled:
            return False
        title = body.find(W_P)
        if title is None:
            return False
        fmt = self.config.title
        ppr = get_paragraph_properties(title)
        replace_child(ppr, "w:ind", [
            ("w:left", fmt.left),
            ("w:right", fmt.right),
            ("w:firstLine", fmt.first_line),
        ], PARAGRAPH_PROPERTIES_ORDER)
        replace_child(ppr, "w:jc", [("w:val", fmt.justification)], PARAGRAPH_PROPERTIES_ORDER)
        return True

    # =========================================================================
    # MAIN ENTRY POINT
    # =========================================================================

    def run(self, document: Document) -> StylerResult:
        result = StylerResult()
        body = get_body(document.root)

        if body is not None:
            result.fixes_applied.extend(self.insert_blank_paragraphs(body))
            result.blank_paragraphs_inserted = len(result.fixes_applied)
        else:
            logger.warning("Document has no body element")

        for paragraph in list(document.root.iter(W_P)):
            self.format_paragraph(paragraph)
            result.paragraphs_formatted += 1

        for run in list(document.root.iter(W_R)):
            self.format_run(run)
            result.runs_formatted += 1

        if body is not None and self.format_title(body):
            result.title_formatted = True
            result.fixes_applied.append("Formatted title paragraph")

        logger.info(
            "Styled document",
            paragraphs=result.paragraphs_formatted,
            runs=result.runs_formatted,
            blanks_inserted=result.blank_paragraphs_inserted,
        )
        return result


class StylesStyler:
    """Rewrites the document defaults in styles.xml."""

    def __init__(self, config: Optional[FormattingConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def run(self, styles: Document) -> List[str]:
        fmt = self.config.styles
        fixes = []

        if fmt.remove_contextual_spacing:
            removed = sum(remove_child(ppr, "w:contextualSpacing") for ppr in list(styles.root.iter(W_PPR)))
            if removed:
                fixes.append(f"Removed {removed} contextualSpacing setting(s)")

        doc_defaults = get_or_create_child(styles.root, "w:docDefaults", STYLES_ORDER)
        rpr_default = get_or_create_child(doc_defaults, "w:rPrDefault", DOC_DEFAULTS_ORDER)
        rpr = get_or_create_child(rpr_default, W_RPR, RPR_DEFAULT_ORDER)
        upsert_attributes(rpr, "w:rFonts", [
            ("w:ascii", fmt.font),
            ("w:hAnsi", fmt.font),
            ("w:cs", fmt.font),
            ("w:eastAsia", fmt.font),
        ], RUN_PROPERTIES_ORDER)
        upsert_attributes(rpr, "w:sz", [("w:val", fmt.size)], RUN_PROPERTIES_ORDER)
        upsert_attributes(rpr, "w:szCs", [("w:val", fmt.size)], RUN_PROPERTIES_ORDER)
        fixes.append("Set document default font and size")

        logger.debug("Styled styles.xml", fixes=len(fixes))
        return fixes
