"""
Document pipeline orchestrator.

Per document, over in-memory bytes:
    container -> parse document.xml / styles.xml / numbering.xml
              -> numbering -> line-break split -> styling
              -> serialize -> repackage

process_many runs documents on a thread pool; documents share nothing but
the (immutable) config, and one bad document never aborts its siblings.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

import structlog

from docxform.config import DEFAULT_CONFIG, FormattingConfig
from docxform.errors import DocxFormError
from docxform.models import ProcessedDocument, SourceDocument, processed_name
from docxform.package import DocxPackage
from docxform.transform.numbering import NumberingResolver
from docxform.transform.splitter import ParagraphSplitter
from docxform.transform.styler import DocumentStyler, StylesStyler
from docxform.utils.docx import W_NS, W_P
from docxform.utils.xmltree import serialize_bytes

logger = structlog.get_logger(__name__)


class DocumentProcessor:
    """Runs every transform on one .docx at a time."""

    def __init__(self, config: Optional[FormattingConfig] = None):
        self.config = config or DEFAULT_CONFIG

    def process(self, data: bytes) -> bytes:
        package = DocxPackage.open(data)
        main_part = package.main_part
        document = package.read_xml(main_part)

        if document.root.get("xmlns:w") != W_NS:
            logger.warning("Main part does not bind the w prefix to WordprocessingML", part=main_part)

        styles_part = package.styles_part
        styles = package.read_xml(styles_part) if styles_part else None
        numbering_part = package.numbering_part
        numbering = package.read_xml(numbering_part) if numbering_part else None

        overrides = {}

        if self.config.convert_numbering:
            NumberingResolver().load(numbering).render(document)

        if self.config.split_line_breaks:
            ParagraphSplitter(self.config.text_substitutions).split_document(document.root)
        else:
            splitter = ParagraphSplitter(self.config.text_substitutions)
            for paragraph in list(document.root.iter(W_P)):
                splitter.substitute(paragraph)

        result = DocumentStyler(self.config).run(document)
        overrides[main_part] = serialize_bytes(document)

        if styles is not None:
            StylesStyler(self.config).run(styles)
            overrides[styles_part] = serialize_bytes(styles)

        logger.info(
            "Processed document",
            part=main_part,
            paragraphs=result.paragraphs_formatted,
            runs=result.runs_formatted,
            has_styles=styles is not None,
            has_numbering=numbering is not None,
        )
        return package.repackage(overrides)


def process_document(data: bytes, config: Optional[FormattingConfig] = None) -> bytes:
    """
    Format one .docx given as bytes and return the new package bytes.

    Raises:
        ContainerCorruptError: input is not a ZIP archive
        MissingRequiredPartError: no main document part
        MalformedXmlError: a processed part is not well-formed
    """
    return DocumentProcessor(config).process(data)


def _process_one(processor: DocumentProcessor, source: SourceDocument) -> ProcessedDocument:
    log = logger.bind(document=source.name)
    try:
        content = processor.process(source.content)
    except DocxFormError as e:
        log.warning("Document failed", error=str(e), error_kind=type(e).__name__)
        return ProcessedDocument(name=source.name, success=False, error=str(e), error_kind=type(e).__name__)
    except Exception as e:
        log.error("Unexpected failure while processing document", exc_info=True)
        return ProcessedDocument(name=source.name, success=False, error=str(e) or type(e).__name__,
                                 error_kind=type(e).__name__)
    return ProcessedDocument(name=processed_name(source.name), success=True, content=content)


def process_many(documents: Sequence[SourceDocument], config: Optional[FormattingConfig] = None) -> List[ProcessedDocument]:
    """Process a batch; results keep input order. Raises ValueError for an empty batch."""
    if not documents:
        raise ValueError("No documents to process")
    config = config or DEFAULT_CONFIG
    processor = DocumentProcessor(config)
    workers = min(config.max_workers, len(documents))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lambda source: _process_one(processor, source), documents))
    failed = sum(1 for r in results if not r.success)
    logger.info("Processed batch", documents=len(results), failed=failed)
    return results
