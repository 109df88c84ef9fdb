"""
Typed failures raised by the document pipeline.

All of them are fatal for the document being processed. Batch processing
turns them into failed result entries instead of propagating them.
"""

from typing import Optional


class DocxFormError(ValueError):
    """Base class for every failure the pipeline reports for a document."""


class MalformedXmlError(DocxFormError):
    """A document part is not well-formed XML."""

    def __init__(self, message: str, part: Optional[str] = None):
        self.part = part
        if part:
            message = f"{part}: {message}"
        super().__init__(message)


class MissingRequiredPartError(DocxFormError):
    """The container has no main document part."""

    def __init__(self, part: str):
        self.part = part
        super().__init__(f"Required part missing from package: {part}")


class ContainerCorruptError(DocxFormError):
    """The input bytes are not a readable ZIP archive."""
