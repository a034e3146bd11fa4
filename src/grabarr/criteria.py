"""Custom format condition evaluation."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import TYPE_CHECKING, Protocol

from grabarr.models.conditions import (
    NEGATED_OPERATORS,
    AudioCodecCondition,
    CodecCondition,
    HdrCondition,
    ProperCondition,
    ReleaseGroupCondition,
    RepackCondition,
    ResolutionCondition,
    SeasonPackCondition,
    SourceCondition,
    TitleCondition,
)
from grabarr.parser import normalize_value

if TYPE_CHECKING:
    from collections.abc import Sequence

    from grabarr.models.conditions import Condition
    from grabarr.models.profiles import CustomFormatDef
    from grabarr.models.release import ParsedRelease


class ConditionMatcher(Protocol):
    """Protocol for condition evaluation functions."""

    def __call__(self, condition: Condition, release: ParsedRelease) -> bool:
        """Check if a release satisfies the condition."""
        ...


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def _compare_text(
    operator: str, expected: str, actual: str | None, *, canonical: str | None = None
) -> bool:
    """Compare a condition value against a single optional string.

    An unknown ``actual`` never satisfies a positive operator and always
    satisfies a negated one.
    """
    if actual is None:
        return operator in NEGATED_OPERATORS
    if operator in ("eq", "not_eq"):
        wanted = normalize_value(canonical, expected) if canonical else expected
        equal = actual.casefold() == wanted.casefold()
        return equal if operator == "eq" else not equal
    if operator in ("contains", "not_contains"):
        found = expected.casefold() in actual.casefold()
        return found if operator == "contains" else not found
    return _compile(expected).search(actual) is not None


def _match_scalar(field: str, actual: str | None, condition: Condition) -> bool:
    return _compare_text(condition.operator, condition.value, actual, canonical=field)


def _match_resolution(condition: Condition, release: ParsedRelease) -> bool:
    return _match_scalar("resolution", release.resolution, condition)


def _match_source(condition: Condition, release: ParsedRelease) -> bool:
    return _match_scalar("source", release.source, condition)


def _match_codec(condition: Condition, release: ParsedRelease) -> bool:
    return _match_scalar("codec", release.codec, condition)


def _match_audio_codec(condition: Condition, release: ParsedRelease) -> bool:
    return _match_scalar("audioCodec", release.audio_codec, condition)


def _match_hdr(condition: Condition, release: ParsedRelease) -> bool:
    """HDR formats are a set: eq/contains test membership."""
    members = {fmt.casefold() for fmt in release.hdr_formats}
    if condition.operator == "regex":
        pattern = _compile(condition.value)
        return any(pattern.search(fmt) for fmt in release.hdr_formats)
    present = normalize_value("hdr", condition.value).casefold() in members
    if condition.operator in NEGATED_OPERATORS:
        return not present
    return present


def _match_release_group(condition: Condition, release: ParsedRelease) -> bool:
    return _compare_text(condition.operator, condition.value, release.release_group)


def _match_title(condition: Condition, release: ParsedRelease) -> bool:
    return _compare_text(condition.operator, condition.value, release.raw_title or release.title)


def _match_flag(actual: bool, condition: Condition) -> bool:
    equal = actual == condition.value
    return equal if condition.operator == "eq" else not equal


def _match_proper(condition: Condition, release: ParsedRelease) -> bool:
    return _match_flag(release.is_proper, condition)


def _match_repack(condition: Condition, release: ParsedRelease) -> bool:
    return _match_flag(release.is_repack, condition)


def _match_season_pack(condition: Condition, release: ParsedRelease) -> bool:
    return _match_flag(release.is_season_pack, condition)


_MATCHERS: dict[type, ConditionMatcher] = {
    ResolutionCondition: _match_resolution,
    SourceCondition: _match_source,
    CodecCondition: _match_codec,
    AudioCodecCondition: _match_audio_codec,
    HdrCondition: _match_hdr,
    ReleaseGroupCondition: _match_release_group,
    TitleCondition: _match_title,
    ProperCondition: _match_proper,
    RepackCondition: _match_repack,
    SeasonPackCondition: _match_season_pack,
}


def get_matcher_for_condition(condition: Condition) -> ConditionMatcher:
    """Get the evaluation function for a condition variant.

    Args:
        condition: The condition to evaluate

    Returns:
        A callable taking the condition and a ParsedRelease
    """
    return _MATCHERS[type(condition)]


def evaluate_condition(condition: Condition, release: ParsedRelease) -> bool:
    """Check if a release satisfies a single condition."""
    return get_matcher_for_condition(condition)(condition, release)


def format_matches(custom_format: CustomFormatDef, release: ParsedRelease) -> bool:
    """Check if every condition of a custom format holds.

    A format with no conditions never matches.
    """
    if not custom_format.conditions:
        return False
    return all(evaluate_condition(condition, release) for condition in custom_format.conditions)


def match_formats(
    release: ParsedRelease, formats: Sequence[CustomFormatDef]
) -> list[CustomFormatDef]:
    """Return the custom formats a release matches, in definition order.

    Args:
        release: The parsed release
        formats: Custom format definitions to test

    Returns:
        The matching formats
    """
    return [custom_format for custom_format in formats if format_matches(custom_format, release)]
