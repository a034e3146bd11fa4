"""Custom format condition variants.

Conditions form a closed union discriminated by ``field``. Each variant only
admits the operators that make sense for its field type, so an invalid
combination fails at construction instead of at evaluation time.
"""

from __future__ import annotations

import re
from typing import Annotated, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

TextOperator = Literal["eq", "not_eq", "contains", "not_contains", "regex"]
BoolOperator = Literal["eq", "not_eq"]

NEGATED_OPERATORS: frozenset[str] = frozenset({"not_eq", "not_contains"})


class _TextCondition(BaseModel):
    """Base for conditions compared against a string value."""

    model_config = ConfigDict(frozen=True)

    operator: TextOperator = "eq"
    value: str

    @model_validator(mode="after")
    def _check_regex(self) -> Self:
        if self.operator == "regex":
            try:
                re.compile(self.value)
            except re.error as e:
                raise ValueError(f"Invalid regex {self.value!r}: {e}") from e
        return self


class _BoolCondition(BaseModel):
    """Base for conditions compared against a flag."""

    model_config = ConfigDict(frozen=True)

    operator: BoolOperator = "eq"
    value: bool = True


class ResolutionCondition(_TextCondition):
    field: Literal["resolution"] = "resolution"


class SourceCondition(_TextCondition):
    field: Literal["source"] = "source"


class CodecCondition(_TextCondition):
    field: Literal["codec"] = "codec"


class AudioCodecCondition(_TextCondition):
    field: Literal["audioCodec"] = "audioCodec"


class HdrCondition(_TextCondition):
    """Membership test against the set of HDR formats."""

    field: Literal["hdr"] = "hdr"


class ReleaseGroupCondition(_TextCondition):
    field: Literal["releaseGroup"] = "releaseGroup"


class TitleCondition(_TextCondition):
    """Test against the raw, untouched release title."""

    field: Literal["title"] = "title"


class ProperCondition(_BoolCondition):
    field: Literal["proper"] = "proper"


class RepackCondition(_BoolCondition):
    field: Literal["repack"] = "repack"


class SeasonPackCondition(_BoolCondition):
    field: Literal["season-pack"] = "season-pack"


Condition = Annotated[
    ResolutionCondition
    | SourceCondition
    | CodecCondition
    | AudioCodecCondition
    | HdrCondition
    | ReleaseGroupCondition
    | TitleCondition
    | ProperCondition
    | RepackCondition
    | SeasonPackCondition,
    Field(discriminator="field"),
]
