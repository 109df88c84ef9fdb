from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

PROCESSED_SUFFIX = "_processed"


def processed_name(name: str) -> str:
    """report.docx -> report_processed.docx"""
    return f"{Path(name).stem}{PROCESSED_SUFFIX}.docx"


class SourceDocument(BaseModel):
    """One input of a batch."""

    name: str = Field(..., description="Original file name, e.g. 'report.docx'.")
    content: bytes = Field(..., repr=False)


class ProcessedDocument(BaseModel):
    """
    Outcome for one input of a batch.
    Successful entries carry the new package bytes; failed ones the error message.
    """

    name: str
    success: bool
    content: Optional[bytes] = Field(None, repr=False)
    error: Optional[str] = None
    error_kind: Optional[str] = Field(None, description="Exception class name of the failure.")
