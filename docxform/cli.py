import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from pydantic import ValidationError

from docxform import __version__
from docxform.config import DEFAULT_CONFIG, FormattingConfig
from docxform.models import SourceDocument
from docxform.package import bundle_results
from docxform.pipeline import process_many


def _configure_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _load_config(path: Optional[Path]) -> FormattingConfig:
    if path is None:
        return DEFAULT_CONFIG
    try:
        return FormattingConfig.from_file(path)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        print(f"Error loading config {path}: {e}", file=sys.stderr)
        sys.exit(1)


def _read_sources(paths: List[Path]) -> List[SourceDocument]:
    sources = []
    for path in paths:
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            sys.exit(1)
        with open(path, "rb") as f:
            sources.append(SourceDocument(name=path.name, content=f.read()))
    return sources


def handle_process(args):
    config = _load_config(args.config)
    results = process_many(_read_sources(args.inputs), config)

    if args.archive:
        with open(args.archive, "wb") as f:
            f.write(bundle_results(results))
        print(f"✅ Saved archive to {args.archive}", file=sys.stderr)
    else:
        output_dir = args.output or args.inputs[0].parent
        output_dir.mkdir(parents=True, exist_ok=True)
        for result in results:
            if result.success:
                target = output_dir / result.name
                with open(target, "wb") as f:
                    f.write(result.content)
                print(f"✅ Saved to {target}", file=sys.stderr)

    failed = [r for r in results if not r.success]
    for result in failed:
        print(f"❌ {result.name}: {result.error}", file=sys.stderr)
    print(f"Stats: {len(results) - len(failed)} processed, {len(failed)} failed.", file=sys.stderr)
    if failed:
        sys.exit(1)


def handle_config(args):
    """Print the effective configuration as JSON (a starting point for --config files)."""
    config = _load_config(args.config)
    print(json.dumps(config.model_dump(mode="json"), indent=2, ensure_ascii=False))


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="docxform", description="docxform: batch formatting of DOCX documents")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_process = subparsers.add_parser("process", help="Format one or more DOCX files")
    p_process.add_argument("inputs", type=Path, nargs="+", help="Input DOCX files")
    p_process.add_argument("-o", "--output", type=Path, help="Output directory (default: next to the first input)")
    p_process.add_argument("--archive", type=Path, help="Write all results into one ZIP (with errors.txt)")
    p_process.add_argument("--config", type=Path, help="JSON formatting config")
    p_process.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    p_process.set_defaults(func=handle_process)

    p_config = subparsers.add_parser("config", help="Print the formatting config as JSON")
    p_config.add_argument("--config", type=Path, help="JSON formatting config to validate and print")
    p_config.set_defaults(func=handle_config, verbose=False)

    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
