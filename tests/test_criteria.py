"""Tests for custom format condition evaluation."""

import pytest
from pydantic import ValidationError

from grabarr.criteria import evaluate_condition, format_matches, match_formats
from grabarr.models.conditions import (
    AudioCodecCondition,
    CodecCondition,
    HdrCondition,
    ProperCondition,
    ReleaseGroupCondition,
    ResolutionCondition,
    SeasonPackCondition,
    SourceCondition,
    TitleCondition,
)
from grabarr.models.profiles import CustomFormatDef
from grabarr.parser import parse_title

REMUX = parse_title("Movie.2160p.REMUX.HDR10.DV.TrueHD.7.1-XYZ")
EPISODE = parse_title("Show.Name.S02E05.720p.WEB-DL.DDP5.1.H.264-TEAM")
PACK = parse_title("Show.Name.S03.1080p.BluRay.x264-GRP")
PROPER = parse_title("Movie.2020.PROPER.1080p.BluRay.x264-GRP")


class TestTextConditions:
    """Tests for conditions on scalar text attributes."""

    def test_resolution_eq(self) -> None:
        """Equality matches the parsed resolution."""
        assert evaluate_condition(ResolutionCondition(value="2160p"), REMUX) is True
        assert evaluate_condition(ResolutionCondition(value="1080p"), REMUX) is False

    def test_eq_uses_aliases(self) -> None:
        """Condition values are normalized before comparison."""
        assert evaluate_condition(SourceCondition(value="webdl"), EPISODE) is True
        assert evaluate_condition(CodecCondition(value="x264"), EPISODE) is True
        assert evaluate_condition(AudioCodecCondition(value="eac3"), EPISODE) is True

    def test_eq_is_case_insensitive(self) -> None:
        """Equality ignores case."""
        assert evaluate_condition(ReleaseGroupCondition(value="team"), EPISODE) is True

    def test_not_eq(self) -> None:
        """not_eq inverts equality."""
        assert evaluate_condition(SourceCondition(operator="not_eq", value="REMUX"), EPISODE)
        assert not evaluate_condition(SourceCondition(operator="not_eq", value="REMUX"), REMUX)

    def test_contains(self) -> None:
        """contains is a case-insensitive substring test."""
        condition = ReleaseGroupCondition(operator="contains", value="EA")
        assert evaluate_condition(condition, EPISODE) is True
        assert evaluate_condition(condition, REMUX) is False

    def test_not_contains(self) -> None:
        """not_contains inverts contains."""
        condition = ReleaseGroupCondition(operator="not_contains", value="xy")
        assert evaluate_condition(condition, EPISODE) is True
        assert evaluate_condition(condition, REMUX) is False

    def test_regex_on_raw_title(self) -> None:
        """Title regexes run against the untouched release title."""
        condition = TitleCondition(operator="regex", value=r"TrueHD\.7\.1")
        assert evaluate_condition(condition, REMUX) is True
        assert evaluate_condition(condition, EPISODE) is False

    def test_unknown_attribute(self) -> None:
        """An unset attribute fails positive operators and passes negated ones."""
        assert evaluate_condition(CodecCondition(value="HEVC"), REMUX) is False
        assert evaluate_condition(CodecCondition(operator="not_eq", value="HEVC"), REMUX) is True

    def test_invalid_regex_rejected_at_construction(self) -> None:
        """A malformed regex fails validation."""
        with pytest.raises(ValidationError):
            TitleCondition(operator="regex", value="(unclosed")


class TestHdrCondition:
    """Tests for HDR membership conditions."""

    def test_membership(self) -> None:
        """eq tests membership in the HDR format set."""
        assert evaluate_condition(HdrCondition(value="DV"), REMUX) is True
        assert evaluate_condition(HdrCondition(value="HDR10"), REMUX) is True
        assert evaluate_condition(HdrCondition(value="HLG"), REMUX) is False

    def test_alias(self) -> None:
        """HDR aliases are normalized."""
        assert evaluate_condition(HdrCondition(value="dolby vision"), REMUX) is True

    def test_negated_membership(self) -> None:
        """not_contains passes when the format is absent."""
        condition = HdrCondition(operator="not_contains", value="DV")
        assert evaluate_condition(condition, EPISODE) is True
        assert evaluate_condition(condition, REMUX) is False

    def test_regex(self) -> None:
        """regex passes when any format matches."""
        assert evaluate_condition(HdrCondition(operator="regex", value="^HDR"), REMUX) is True
        assert evaluate_condition(HdrCondition(operator="regex", value="^HDR"), EPISODE) is False


class TestFlagConditions:
    """Tests for boolean flag conditions."""

    def test_proper(self) -> None:
        """Proper condition defaults to requiring the flag."""
        assert evaluate_condition(ProperCondition(), PROPER) is True
        assert evaluate_condition(ProperCondition(), REMUX) is False

    def test_season_pack(self) -> None:
        """Season pack condition follows the parsed flag."""
        assert evaluate_condition(SeasonPackCondition(), PACK) is True
        assert evaluate_condition(SeasonPackCondition(), EPISODE) is False

    def test_not_eq_flag(self) -> None:
        """not_eq inverts the flag test."""
        assert evaluate_condition(SeasonPackCondition(operator="not_eq"), EPISODE) is True


class TestFormatMatching:
    """Tests for custom format matching."""

    def test_all_conditions_must_hold(self) -> None:
        """A format matches only when every condition holds."""
        fmt = CustomFormatDef(
            id=1,
            name="UHD DV",
            conditions=[ResolutionCondition(value="2160p"), HdrCondition(value="DV")],
        )
        assert format_matches(fmt, REMUX) is True

        stricter = CustomFormatDef(
            id=2,
            name="UHD DV HEVC",
            conditions=[*fmt.conditions, CodecCondition(value="HEVC")],
        )
        assert format_matches(stricter, REMUX) is False

    def test_empty_format_never_matches(self) -> None:
        """A format without conditions matches nothing."""
        assert format_matches(CustomFormatDef(id=1, name="Empty"), REMUX) is False

    def test_conditions_from_camel_case_json(self) -> None:
        """Conditions validate from their tagged dictionary form."""
        fmt = CustomFormatDef.model_validate(
            {
                "id": 3,
                "name": "Lossless",
                "conditions": [{"field": "audioCodec", "operator": "eq", "value": "TrueHD"}],
            }
        )
        assert isinstance(fmt.conditions[0], AudioCodecCondition)
        assert format_matches(fmt, REMUX) is True

    def test_unknown_field_rejected(self) -> None:
        """An unknown condition field fails validation."""
        with pytest.raises(ValidationError):
            CustomFormatDef.model_validate(
                {"id": 4, "name": "Bad", "conditions": [{"field": "bitrate", "value": "x"}]}
            )

    def test_bool_condition_rejects_text_operator(self) -> None:
        """Flag conditions only admit eq and not_eq."""
        with pytest.raises(ValidationError):
            CustomFormatDef.model_validate(
                {"id": 5, "name": "Bad", "conditions": [{"field": "proper", "operator": "regex"}]}
            )

    def test_match_formats_keeps_definition_order(self) -> None:
        """Matching formats are returned in definition order."""
        formats = [
            CustomFormatDef(id=1, name="DV", conditions=[HdrCondition(value="DV")]),
            CustomFormatDef(id=2, name="720p", conditions=[ResolutionCondition(value="720p")]),
            CustomFormatDef(id=3, name="XYZ", conditions=[ReleaseGroupCondition(value="XYZ")]),
        ]
        assert [f.name for f in match_formats(REMUX, formats)] == ["DV", "XYZ"]
