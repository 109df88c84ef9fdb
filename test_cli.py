"""
Tests for docxform/cli.py — the process and config subcommands.

Run: python3 test_cli.py
"""

import json
import os
import sys
import tempfile
import zipfile
from io import StringIO
from pathlib import Path

sys.path.insert(0, '.')

import structlog
from docx import Document

from docxform.cli import main


def _write_docx(path, *texts):
    doc = Document()
    for text in texts:
        doc.add_paragraph(text)
    doc.save(str(path))


def _run(argv):
    """Run the CLI; returns the exit code (0 when it returns normally)."""
    try:
        main(argv)
    except SystemExit as e:
        return e.code
    finally:
        structlog.reset_defaults()
    return 0


def test_process_writes_next_to_output_dir():
    with tempfile.TemporaryDirectory() as tmp:
        tmp = Path(tmp)
        _write_docx(tmp / "report.docx", "Title", "Body")
        code = _run(["process", str(tmp / "report.docx"), "-o", str(tmp / "out")])

        assert code == 0
        out = tmp / "out" / "report_processed.docx"
        assert out.exists()
        assert [p.text for p in Document(str(out)).paragraphs] == ["Title", "", "Body"]
    print("PASS: test_process_writes_next_to_output_dir")


def test_process_archive_with_failure():
    with tempfile.TemporaryDirectory() as tmp:
        tmp = Path(tmp)
        _write_docx(tmp / "good.docx", "Title")
        (tmp / "bad.docx").write_bytes(b"not a zip")
        archive = tmp / "processed_documents.zip"

        code = _run(["process", str(tmp / "good.docx"), str(tmp / "bad.docx"), "--archive", str(archive)])

        assert code == 1
        with zipfile.ZipFile(archive) as zf:
            assert zf.namelist() == ["good_processed.docx", "errors.txt"]
            assert zf.read("errors.txt").decode("utf-8").startswith("bad.docx: ")
    print("PASS: test_process_archive_with_failure")


def test_process_missing_input():
    with tempfile.TemporaryDirectory() as tmp:
        assert _run(["process", os.path.join(tmp, "nope.docx")]) == 1
    print("PASS: test_process_missing_input")


def test_config_command_prints_json():
    captured = StringIO()
    stdout = sys.stdout
    sys.stdout = captured
    try:
        code = _run(["config"])
    finally:
        sys.stdout = stdout
    assert code == 0
    data = json.loads(captured.getvalue())
    assert data["paragraph"]["line"] == 264
    assert data["run"]["size"] == 28
    assert data["styles"]["size"] == 26
    print("PASS: test_config_command_prints_json")


def test_bad_config_file():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "config.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write('{"run": {"size": "huge"}}')
        assert _run(["config", "--config", path]) == 1
    print("PASS: test_bad_config_file")


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

if __name__ == '__main__':
    tests = [
        test_process_writes_next_to_output_dir,
        test_process_archive_with_failure,
        test_process_missing_input,
        test_config_command_prints_json,
        test_bad_config_file,
    ]

    passed = 0
    failed = 0
    for t in tests:
        try:
            t()
            passed += 1
        except Exception as e:
            print(f"FAIL: {t.__name__} — {e}")
            failed += 1

    print(f"\n{'=' * 50}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed > 0:
        sys.exit(1)
    else:
        print("All tests passed!")
