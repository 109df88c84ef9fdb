from importlib.metadata import PackageNotFoundError, version

from docxform.config import FormattingConfig
from docxform.errors import ContainerCorruptError, DocxFormError, MalformedXmlError, MissingRequiredPartError
from docxform.models import ProcessedDocument, SourceDocument
from docxform.pipeline import process_document, process_many

try:
    __version__ = version("docxform")
except PackageNotFoundError:
    # Running from a source checkout without an installed distribution.
    __version__ = "0.0.0-dev"

__all__ = [
    "process_document",
    "process_many",
    "FormattingConfig",
    "SourceDocument",
    "ProcessedDocument",
    "DocxFormError",
    "MalformedXmlError",
    "MissingRequiredPartError",
    "ContainerCorruptError",
    "__version__",
]
