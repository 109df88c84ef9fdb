"""
Formatting configuration.

Measurements are in twentieths of a point (twips) and sizes in half-points,
the units WordprocessingML stores them in.
"""

import json
from pathlib import Path
from typing import Dict, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

TWIPS_PER_CM = 567
DEFAULT_FONT = "Times New Roman"
REFERENCES_MARKER = "TÀI LIỆU THAM KHẢO"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ParagraphFormat(_Frozen):
    justification: str = Field("left", description="w:jc value for every paragraph.")
    line: int = Field(264, description="Line spacing in 240ths of a line (264 = 1.1).")
    line_rule: str = "auto"
    before: int = Field(120, description="Space before, twips.")
    after: int = 0
    left: int = 0
    first_line: int = Field(TWIPS_PER_CM, description="First-line indent, twips (1 cm).")
    right: int = 142


class RunFormat(_Frozen):
    font: str = DEFAULT_FONT
    size: int = Field(28, description="Half-points (28 = 14 pt).")


class TitleFormat(_Frozen):
    enabled: bool = True
    justification: str = "center"
    left: int = 0
    first_line: int = 0
    right: int = 0
    blank_after: bool = True


class StyleDefaults(_Frozen):
    font: str = DEFAULT_FONT
    size: int = Field(26, description="Half-points (26 = 13 pt).")
    remove_contextual_spacing: bool = True


class FormattingConfig(_Frozen):
    paragraph: ParagraphFormat = Field(default_factory=ParagraphFormat)
    run: RunFormat = Field(default_factory=RunFormat)
    title: TitleFormat = Field(default_factory=TitleFormat)
    styles: StyleDefaults = Field(default_factory=StyleDefaults)
    section_markers: Tuple[str, ...] = (REFERENCES_MARKER,)
    text_substitutions: Dict[str, str] = Field(default_factory=lambda: {"–": "-"})
    convert_numbering: bool = True
    split_line_breaks: bool = True
    max_workers: int = Field(4, ge=1)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "FormattingConfig":
        """Load a JSON config; keys left out keep their defaults."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.model_validate(json.load(f))


DEFAULT_CONFIG = FormattingConfig()
