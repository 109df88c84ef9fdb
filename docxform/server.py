import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from mcp.server.fastmcp import FastMCP

from docxform.models import SourceDocument, processed_name
from docxform.package import bundle_results
from docxform.pipeline import process_document, process_many

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio: every log line goes to stderr.
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)

structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

mcp = FastMCP("docxform Formatting Service")


def _read_file_bytes(path: str) -> bytes:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {path}")
    with open(p, "rb") as f:
        return f.read()


@mcp.tool()
def format_docx(file_path: str, output_path: Optional[str] = None) -> str:
    """
    Formats a DOCX file: list numbering becomes literal text, manual line breaks
    become paragraphs, and paragraph/run formatting is normalized.

    Args:
        file_path: Absolute path to the DOCX file.
        output_path: Where to save the result. Defaults to '<name>_processed.docx' next to the input.
    """
    try:
        data = _read_file_bytes(file_path)
        result = process_document(data)

        if not output_path:
            p = Path(file_path)
            output_path = str(p.parent / processed_name(p.name))

        with open(output_path, "wb") as f:
            f.write(result)
        return f"Formatted document. Saved to: {output_path}"
    except Exception as e:
        return f"Error formatting document: {str(e)}"


@mcp.tool()
def format_docx_batch(file_paths: List[str], output_dir: str, as_archive: bool = False) -> str:
    """
    Formats several DOCX files at once.

    Args:
        file_paths: Absolute paths of the DOCX files.
        output_dir: Directory that receives the '<name>_processed.docx' files.
        as_archive: If True, writes a single 'processed_documents.zip' (with errors.txt) instead.
    """
    try:
        sources = [SourceDocument(name=Path(p).name, content=_read_file_bytes(p)) for p in file_paths]
        results = process_many(sources)

        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        if as_archive:
            with open(out / "processed_documents.zip", "wb") as f:
                f.write(bundle_results(results))
        else:
            for result in results:
                if result.success:
                    with open(out / result.name, "wb") as f:
                        f.write(result.content)

        lines = [f"Processed {sum(r.success for r in results)} of {len(results)} documents into {out}"]
        lines.extend(f"Failed: {r.name}: {r.error}" for r in results if not r.success)
        return "\n".join(lines)
    except Exception as e:
        return f"Error formatting documents: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
