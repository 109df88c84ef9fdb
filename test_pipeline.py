"""
Tests for docxform/pipeline.py — end-to-end document processing and batches.

Run: python3 test_pipeline.py
"""

import json
import os
import sys
import tempfile
import zipfile
from io import BytesIO

sys.path.insert(0, '.')

from docx import Document
from pydantic import ValidationError

from docxform.config import FormattingConfig
from docxform.errors import ContainerCorruptError, MalformedXmlError, MissingRequiredPartError
from docxform.models import SourceDocument, processed_name
from docxform.package import DocxPackage
from docxform.pipeline import process_document, process_many
from docxform.utils.docx import get_paragraph_text, is_blank_paragraph
from docxform.utils.xmltree import parse

W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
RT = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
MARKER = "TÀI LIỆU THAM KHẢO"


# ---------------------------------------------------------------------------
# Helpers — build .docx bytes
# ---------------------------------------------------------------------------

def _doc_to_bytes(doc):
    buf = BytesIO()
    doc.save(buf)
    return buf.getvalue()


def _word_doc(*paragraphs):
    """python-docx document; a paragraph given as a list of strings gets line breaks between them."""
    doc = Document()
    for item in paragraphs:
        if isinstance(item, list):
            run = doc.add_paragraph().add_run(item[0])
            for line in item[1:]:
                run.add_break()
                run.add_text(line)
        else:
            doc.add_paragraph(item)
    return _doc_to_bytes(doc)


def _raw_docx(body_xml, numbering_xml=None):
    """Minimal package written part by part."""
    document = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
        f'<w:document xmlns:w="{W_NS}"><w:body>{body_xml}<w:sectPr/></w:body></w:document>'
    )
    doc_rels = f'<Relationships xmlns="{REL_NS}">'
    if numbering_xml is not None:
        doc_rels += f'<Relationship Id="rId1" Type="{RT}/numbering" Target="numbering.xml"/>'
    doc_rels += "</Relationships>"

    buf = BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("[Content_Types].xml", "<Types/>")
        zf.writestr(
            "_rels/.rels",
            f'<Relationships xmlns="{REL_NS}">'
            f'<Relationship Id="rId1" Type="{RT}/officeDocument" Target="word/document.xml"/></Relationships>',
        )
        zf.writestr("word/document.xml", document)
        zf.writestr("word/_rels/document.xml.rels", doc_rels)
        if numbering_xml is not None:
            zf.writestr("word/numbering.xml", f'<w:numbering xmlns:w="{W_NS}">{numbering_xml}</w:numbering>')
    return buf.getvalue()


def _numbered(text, num_id="1"):
    return (
        f'<w:p><w:pPr><w:numPr><w:ilvl w:val="0"/><w:numId w:val="{num_id}"/></w:numPr></w:pPr>'
        f"<w:r><w:t>{text}</w:t></w:r></w:p>"
    )


DECIMAL_NUMBERING = (
    '<w:abstractNum w:abstractNumId="0"><w:lvl w:ilvl="0"><w:start w:val="1"/>'
    '<w:numFmt w:val="decimal"/><w:lvlText w:val="%1."/></w:lvl></w:abstractNum>'
    '<w:num w:numId="1"><w:abstractNumId w:val="0"/></w:num>'
)


def _document_xml(data):
    package = DocxPackage.open(data)
    return package.read_xml(package.main_part)


def _body_texts(data):
    body = _document_xml(data).root.find("w:body")
    return [get_paragraph_text(p) for p in body.findall("w:p")]


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------

def test_break_splits_and_formats():
    out = process_document(_word_doc("Title", ["first line", "second line"]))
    body = _document_xml(out).root.find("w:body")
    paragraphs = body.findall("w:p")

    assert [get_paragraph_text(p) for p in paragraphs] == ["Title", "", "first line", "second line"]
    for p in paragraphs[2:]:
        ppr = p.find("w:pPr")
        assert ppr.find("w:jc").get("w:val") == "left"
        assert ppr.find("w:ind").get("w:firstLine") == "567"
        assert ppr.find("w:spacing").get("w:line") == "264"
        rpr = p.find("w:r").find("w:rPr")
        assert rpr.find("w:rFonts").get("w:ascii") == "Times New Roman"
        assert rpr.find("w:sz").get("w:val") == "28"
        assert p.find("w:r").find("w:br") is None
    assert paragraphs[0].find("w:pPr").find("w:jc").get("w:val") == "center"
    print("PASS: test_break_splits_and_formats")


def test_numbered_items_become_text():
    data = _raw_docx(_numbered("Title", "0") + _numbered("one") + _numbered("two") + _numbered("three"),
                     DECIMAL_NUMBERING)
    out = process_document(data)
    assert _body_texts(out) == ["Title", "", "1. one", "2. two", "3. three"]
    assert next(_document_xml(out).root.iter("w:numPr"), None) is None
    print("PASS: test_numbered_items_become_text")


def test_missing_numbering_part_gives_dash_bullets():
    out = process_document(_raw_docx(_numbered("Title", "0") + _numbered("item")))
    assert _body_texts(out)[-1] == "- item"
    print("PASS: test_missing_numbering_part_gives_dash_bullets")


def test_section_marker_gets_one_blank():
    out = process_document(_word_doc("Title", "Body text", MARKER, "[1] Reference"))
    assert _body_texts(out) == ["Title", "", "Body text", "", MARKER, "[1] Reference"]
    again = process_document(out)
    assert _body_texts(again) == _body_texts(out)
    print("PASS: test_section_marker_gets_one_blank")


def test_en_dash_replaced():
    out = process_document(_word_doc("Title", "2019–2020"))
    assert _body_texts(out)[-1] == "2019-2020"
    print("PASS: test_en_dash_replaced")


def test_pipeline_is_idempotent():
    data = _raw_docx(
        "<w:p><w:r><w:t>Title</w:t></w:r></w:p>"
        + _numbered("one")
        + "<w:p><w:r><w:t>a</w:t><w:br/><w:t>b–c</w:t></w:r></w:p>",
        DECIMAL_NUMBERING,
    )
    once = process_document(data)
    twice = process_document(once)
    assert _document_xml(twice) == _document_xml(once)
    print("PASS: test_pipeline_is_idempotent")


def test_untouched_entries_byte_identical():
    data = _word_doc("Title", "Body")
    out = process_document(data)
    with zipfile.ZipFile(BytesIO(data)) as before, zipfile.ZipFile(BytesIO(out)) as after:
        assert after.namelist() == before.namelist()
        for name in before.namelist():
            if name in ("word/document.xml", "word/styles.xml"):
                continue
            assert after.read(name) == before.read(name), name
    print("PASS: test_untouched_entries_byte_identical")


def test_styles_defaults_written():
    out = process_document(_word_doc("Title"))
    package = DocxPackage.open(out)
    styles = package.read_xml(package.styles_part)
    rpr = styles.root.find("w:docDefaults").find("w:rPrDefault").find("w:rPr")
    assert rpr.find("w:rFonts").get("w:eastAsia") == "Times New Roman"
    assert rpr.find("w:sz").get("w:val") == "26"
    assert next(styles.root.iter("w:contextualSpacing"), None) is None
    print("PASS: test_styles_defaults_written")


def test_output_parts_are_well_formed():
    out = process_document(_word_doc("Title", ["a", "b"]))
    with zipfile.ZipFile(BytesIO(out)) as zf:
        for name in zf.namelist():
            if name.endswith(".xml") or name.endswith(".rels"):
                parse(zf.read(name), part=name)
    # python-docx can open the result
    reopened = Document(BytesIO(out))
    assert [p.text for p in reopened.paragraphs] == ["Title", "", "a", "b"]
    print("PASS: test_output_parts_are_well_formed")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

def test_corrupt_container():
    try:
        process_document(b"definitely not a zip")
    except ContainerCorruptError:
        pass
    else:
        raise AssertionError("corrupt container accepted")
    print("PASS: test_corrupt_container")


def test_missing_document_part():
    buf = BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("[Content_Types].xml", "<Types/>")
    try:
        process_document(buf.getvalue())
    except MissingRequiredPartError:
        pass
    else:
        raise AssertionError("package without document accepted")
    print("PASS: test_missing_document_part")


def test_malformed_numbering_is_fatal():
    data = _raw_docx(_numbered("one"), "<w:abstractNum>")
    try:
        process_document(data)
    except MalformedXmlError as e:
        assert e.part == "word/numbering.xml"
    else:
        raise AssertionError("malformed numbering accepted")
    print("PASS: test_malformed_numbering_is_fatal")


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

def test_process_many_keeps_order_and_captures_failures():
    sources = [
        SourceDocument(name="first.docx", content=_word_doc("One")),
        SourceDocument(name="broken.docx", content=b"not a zip"),
        SourceDocument(name="third.docx", content=_word_doc("Three")),
    ]
    results = process_many(sources)

    assert [r.name for r in results] == ["first_processed.docx", "broken.docx", "third_processed.docx"]
    assert [r.success for r in results] == [True, False, True]
    assert results[1].error_kind == "ContainerCorruptError"
    assert results[1].content is None and results[1].error
    assert _body_texts(results[2].content)[0] == "Three"
    print("PASS: test_process_many_keeps_order_and_captures_failures")


def test_process_many_empty_raises():
    try:
        process_many([])
    except ValueError:
        pass
    else:
        raise AssertionError("empty batch accepted")
    print("PASS: test_process_many_empty_raises")


def test_process_many_single_worker():
    config = FormattingConfig(max_workers=1)
    sources = [SourceDocument(name=f"d{i}.docx", content=_word_doc(f"Doc {i}")) for i in range(3)]
    results = process_many(sources, config)
    assert [r.name for r in results] == ["d0_processed.docx", "d1_processed.docx", "d2_processed.docx"]
    print("PASS: test_process_many_single_worker")


def test_processed_name():
    assert processed_name("report.docx") == "report_processed.docx"
    assert processed_name("my.report.docx") == "my.report_processed.docx"
    print("PASS: test_processed_name")


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def test_config_from_file_and_frozen():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "config.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"run": {"font": "Arial", "size": 24}, "section_markers": ["REFERENCES"]}, f)
        config = FormattingConfig.from_file(path)

    assert config.run.font == "Arial"
    assert config.run.size == 24
    assert config.paragraph.first_line == 567
    assert config.section_markers == ("REFERENCES",)

    try:
        config.max_workers = 8
    except ValidationError:
        pass
    else:
        raise AssertionError("config is mutable")

    out = process_document(_word_doc("Title", "Body"), config)
    rpr = _document_xml(out).root.find("w:body").findall("w:p")[-1].find("w:r").find("w:rPr")
    assert rpr.find("w:rFonts").get("w:ascii") == "Arial"
    print("PASS: test_config_from_file_and_frozen")


def test_config_rejects_unknown_keys():
    try:
        FormattingConfig.model_validate({"paragraph": {"lines": 1}})
    except ValidationError:
        pass
    else:
        raise AssertionError("unknown key accepted")
    print("PASS: test_config_rejects_unknown_keys")


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

if __name__ == '__main__':
    tests = [
        test_break_splits_and_formats,
        test_numbered_items_become_text,
        test_missing_numbering_part_gives_dash_bullets,
        test_section_marker_gets_one_blank,
        test_en_dash_replaced,
        test_pipeline_is_idempotent,
        test_untouched_entries_byte_identical,
        test_styles_defaults_written,
        test_output_parts_are_well_formed,
        test_corrupt_container,
        test_missing_document_part,
        test_malformed_numbering_is_fatal,
        test_process_many_keeps_order_and_captures_failures,
        test_process_many_empty_raises,
        test_process_many_single_worker,
        test_processed_name,
        test_config_from_file_and_frozen,
        test_config_rejects_unknown_keys,
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
