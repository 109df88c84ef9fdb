"""
Container adapter: the .docx ZIP package as an ordered map of entries.

Part locations come from the package relationships, with the conventional
paths as fallback. Repackaging writes every entry back in its original order;
entries that were not overridden keep their exact bytes.
"""

import posixpath
import zipfile
import zlib
from io import BytesIO
from typing import Dict, Iterable, List, Mapping, Optional

import structlog
from lxml import etree

from docxform.errors import ContainerCorruptError, MalformedXmlError, MissingRequiredPartError
from docxform.models import ProcessedDocument
from docxform.utils import xmltree

logger = structlog.get_logger(__name__)

PKG_RELS_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
RELTYPE_BASE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
RELTYPE_OFFICE_DOCUMENT = f"{RELTYPE_BASE}/officeDocument"
RELTYPE_STYLES = f"{RELTYPE_BASE}/styles"
RELTYPE_NUMBERING = f"{RELTYPE_BASE}/numbering"

PACKAGE_RELS = "_rels/.rels"
MAIN_DOCUMENT_PART = "word/document.xml"
STYLES_PART = "word/styles.xml"
NUMBERING_PART = "word/numbering.xml"
ERRORS_ENTRY = "errors.txt"

_RELS_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


def rels_path_for(part: str) -> str:
    """word/document.xml -> word/_rels/document.xml.rels"""
    directory, name = posixpath.split(part)
    return posixpath.join(directory, "_rels", f"{name}.rels")


class DocxPackage:
    """An opened .docx container."""

    def __init__(self, infos: List[zipfile.ZipInfo], entries: Dict[str, bytes]):
        self.infos = infos
        self.entries = entries
        self._main_part: Optional[str] = None

    @classmethod
    def open(cls, data: bytes) -> "DocxPackage":
        try:
            with zipfile.ZipFile(BytesIO(data), "r") as zf:
                infos = zf.infolist()
                entries = {info.filename: zf.read(info) for info in infos}
        except (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError, NotImplementedError) as e:
            raise ContainerCorruptError(f"Not a valid .docx container: {e}") from e
        logger.debug("Opened package", entries=len(entries))
        return cls(infos, entries)

    def __contains__(self, path: str) -> bool:
        return path in self.entries

    def read_xml(self, path: str) -> Optional[xmltree.Document]:
        data = self.entries.get(path)
        if data is None:
            return None
        return xmltree.parse(data, part=path)

    # =========================================================================
    # PART LOCATION
    # =========================================================================

    def relationships(self, rels_part: str) -> Dict[str, str]:
        """Relationship type -> resolved internal target for one .rels part."""
        data = self.entries.get(rels_part)
        if data is None:
            return {}
        try:
            root = etree.fromstring(data, _RELS_PARSER)
        except etree.XMLSyntaxError as e:
            raise MalformedXmlError(str(e), part=rels_part) from e

        # _rels/.rels belongs to the package root; word/_rels/x.rels to word/x.
        base = posixpath.dirname(posixpath.dirname(rels_part))
        targets = {}
        for rel in root.iter(f"{{{PKG_RELS_NS}}}Relationship"):
            if rel.get("TargetMode") == "External":
                continue
            rel_type, target = rel.get("Type"), rel.get("Target")
            if not rel_type or not target or rel_type in targets:
                continue
            if target.startswith("/"):
                resolved = target.lstrip("/")
            else:
                resolved = posixpath.normpath(posixpath.join(base, target))
            targets[rel_type] = resolved
        return targets

    @property
    def main_part(self) -> str:
        if self._main_part is None:
            target = self.relationships(PACKAGE_RELS).get(RELTYPE_OFFICE_DOCUMENT)
            if target is None or target not in self.entries:
                target = MAIN_DOCUMENT_PART
            if target not in self.entries:
                raise MissingRequiredPartError(MAIN_DOCUMENT_PART)
            self._main_part = target
        return self._main_part

    def _related_part(self, rel_type: str, fallback: str) -> Optional[str]:
        target = self.relationships(rels_path_for(self.main_part)).get(rel_type)
        for candidate in (target, fallback):
            if candidate and candidate in self.entries:
                return candidate
        return None

    @property
    def styles_part(self) -> Optional[str]:
        return self._related_part(RELTYPE_STYLES, STYLES_PART)

    @property
    def numbering_part(self) -> Optional[str]:
        return self._related_part(RELTYPE_NUMBERING, NUMBERING_PART)

    # =========================================================================
    # WRITING
    # =========================================================================

    def repackage(self, overrides: Optional[Mapping[str, bytes]] = None) -> bytes:
        overrides = dict(overrides or {})
        output = BytesIO()
        with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as out_zip:
            for info in self.infos:
                data = overrides.pop(info.filename, self.entries[info.filename])
                out_zip.writestr(_copy_info(info), data)
            for name, data in overrides.items():
                out_zip.writestr(name, data)
        return output.getvalue()


def _copy_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    copied = zipfile.ZipInfo(info.filename, date_time=info.date_time)
    copied.external_attr = info.external_attr
    copied.create_system = info.create_system
    copied.compress_type = zipfile.ZIP_DEFLATED
    return copied


def extract(data: bytes) -> Dict[str, bytes]:
    return dict(DocxPackage.open(data).entries)


def repackage(package: DocxPackage, overrides: Mapping[str, bytes]) -> bytes:
    return package.repackage(overrides)


def bundle_results(results: Iterable[ProcessedDocument]) -> bytes:
    """Archive of the successful documents plus errors.txt for the failures."""
    output = BytesIO()
    errors = []
    with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as out_zip:
        for result in results:
            if result.success:
                out_zip.writestr(result.name, result.content)
            else:
                errors.append(f"{result.name}: {result.error}")
        if errors:
            out_zip.writestr(ERRORS_ENTRY, "\n".join(errors))
    return output.getvalue()
