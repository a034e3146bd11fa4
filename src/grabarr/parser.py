"""Release title parser.

Turns an unstructured release title such as
``Movie.Name.2020.1080p.BluRay.x264-GROUP`` into a :class:`ParsedRelease`.

Each attribute is read from an ordered table of ``(pattern, value)`` rules;
the first rule in the table that matches decides the value, so table order is
the priority order. Parsing never raises: anything that is not recognised is
left unset.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

from grabarr.models.release import ParsedRelease

Rule = tuple[re.Pattern[str], str]


def _token(pattern: str) -> re.Pattern[str]:
    """Compile a pattern that must stand alone between separators."""
    return re.compile(rf"(?<![a-z0-9])(?:{pattern})(?![a-z0-9])", re.IGNORECASE)


def _prefix(pattern: str) -> re.Pattern[str]:
    """Compile a pattern that may be directly followed by digits (``DDP5.1``)."""
    return re.compile(rf"(?<![a-z0-9])(?:{pattern})(?![a-z])", re.IGNORECASE)


RESOLUTION_RULES: tuple[Rule, ...] = (
    (_token(r"2160p|4k|uhd"), "2160p"),
    (_token(r"1080[pi]"), "1080p"),
    (_token(r"720p"), "720p"),
    (_token(r"480p|576p"), "480p"),
)

BLOCKED_SOURCES: frozenset[str] = frozenset(
    {"CAM", "TELESYNC", "TELECINE", "SCREENER", "R5", "WORKPRINT"}
)

SOURCE_RULES: tuple[Rule, ...] = (
    (_token(r"cam|cam-?rip|hdcam"), "CAM"),
    (_token(r"ts|telesync|hd-?ts|pdvd"), "TELESYNC"),
    (_token(r"tc|telecine|hd-?tc"), "TELECINE"),
    (_token(r"scr|screener|dvd-?scr|bd-?scr"), "SCREENER"),
    (_token(r"r5"), "R5"),
    (_token(r"workprint|wp"), "WORKPRINT"),
    (_token(r"remux|bd-?remux"), "REMUX"),
    (_token(r"blu[ -]?ray|bdrip|brrip|bd|bd25|bd50"), "BluRay"),
    (_token(r"web[ -]?dl|web(?![ -]?rip)"), "WEB-DL"),
    (_token(r"web[ -]?rip"), "WEBRip"),
    (_token(r"hdtv|uhdtv|pdtv|dsr|dsrip|tvrip"), "HDTV"),
    (_token(r"dvd|dvdrip|dvd5|dvd9|dvdr"), "DVD"),
    (_token(r"sdtv"), "SDTV"),
)

CODEC_RULES: tuple[Rule, ...] = (
    (_token(r"x265|h[ .]?265|hevc"), "HEVC"),
    (_token(r"x264|h[ .]?264|avc"), "H264"),
    (_token(r"av1"), "AV1"),
    (_token(r"vp9"), "VP9"),
    (_token(r"xvid|divx"), "XviD"),
    (_token(r"mpeg[ -]?2"), "MPEG2"),
    (_token(r"vc[ -]?1"), "VC1"),
)

AUDIO_RULES: tuple[Rule, ...] = (
    (_prefix(r"true[ -]?hd"), "TrueHD"),
    (_prefix(r"dts[ -]?x"), "DTS-X"),
    (_prefix(r"dts[ -]?hd(?:[ -]?ma)?|dts[ -]?ma"), "DTS-HD"),
    (_prefix(r"flac"), "FLAC"),
    (_prefix(r"l?pcm"), "PCM"),
    (_prefix(r"ddp|dd\+|e-?ac-?3"), "DDP"),
    (_prefix(r"dts"), "DTS"),
    (_prefix(r"dd|ac-?3"), "DD"),
    (_prefix(r"aac"), "AAC"),
    (_prefix(r"opus"), "Opus"),
)

CHANNEL_RULES: tuple[Rule, ...] = (
    (re.compile(r"(?<!\d)7[ .]1(?!\d)"), "7.1"),
    (re.compile(r"(?<!\d)5[ .]1(?!\d)"), "5.1"),
    (re.compile(r"(?<!\d)2[ .]0(?!\d)"), "2.0"),
)

HDR_RULES: tuple[Rule, ...] = (
    (_token(r"hdr10(?:\+|plus| plus)"), "HDR10+"),
    (_token(r"hdr10(?!\+| ?plus)|hdr"), "HDR10"),
    (_token(r"dv|dovi|dolby[ -]?vision"), "DV"),
    (_token(r"hlg"), "HLG"),
)

EDITION_RULES: tuple[Rule, ...] = (
    (_token(r"director'?s?[ -]?cut"), "Director's Cut"),
    (_token(r"extended(?:[ -](?:cut|edition))?"), "Extended"),
    (_token(r"theatrical(?:[ -]cut)?"), "Theatrical"),
    (_token(r"unrated|uncut"), "Unrated"),
    (_token(r"remastered|remaster"), "Remastered"),
    (_token(r"imax"), "IMAX"),
    (_token(r"criterion(?:[ -]collection)?"), "Criterion"),
    (_token(r"ultimate[ -](?:edition|cut)"), "Ultimate Edition"),
    (_token(r"collector'?s?[ -]edition"), "Collector's Edition"),
    (_token(r"(?:\d+th[ -])?anniversary(?:[ -]edition)?"), "Anniversary Edition"),
    (_token(r"special[ -]edition"), "Special Edition"),
    (_token(r"open[ -]matte"), "Open Matte"),
)

STREAMING_RULES: tuple[Rule, ...] = (
    (_token(r"amzn|amazon"), "AMZN"),
    (_token(r"nf|netflix"), "NF"),
    (_token(r"atvp"), "ATVP"),
    (_token(r"dsnp|dsny"), "DSNP"),
    (_token(r"hmax"), "HMAX"),
    (_token(r"hulu"), "HULU"),
    (_token(r"pcok"), "PCOK"),
    (_token(r"pmtp"), "PMTP"),
)

_PROPER_RE = _token(r"proper")
_REPACK_RE = _token(r"repack|rerip")
_SAMPLE_RE = _token(r"sample")
_UPSCALED_RE = _token(r"(?:ai[ -]?)?upscaled?")
_HARDCODED_RE = _token(r"hc|hardsubs?|hardcoded(?: subs)?|korsub")
_NUKED_RE = _token(r"nuked?")

# Markers that end the title when there is no year or season marker.
_QUALITY_MARKERS: tuple[Rule, ...] = (
    RESOLUTION_RULES
    + tuple(rule for rule in SOURCE_RULES if rule[1] not in BLOCKED_SOURCES)
    + CODEC_RULES
)

_EXTENSION_RE = re.compile(r"\.(?:mkv|mp4|avi|m4v|wmv|mov|iso|nzb|torrent)$", re.IGNORECASE)
_SEPARATORS_RE = re.compile(r"[._]")
_BRACKETS_RE = re.compile(r"[\[\](){}]")
_BRACKET_GROUP_RE = re.compile(r"\[[^\]]*\]|\{[^}]*\}")
_WHITESPACE_RE = re.compile(r"\s+")

_YEAR_RE = re.compile(r"(?<![a-z0-9])((?:19|20)\d{2})(?![a-z0-9])", re.IGNORECASE)
_EPISODE_RE = re.compile(r"(?<![a-z0-9])s(\d{1,2})[ -]?e(\d{1,3})(?!\d)", re.IGNORECASE)
_CROSS_EPISODE_RE = re.compile(r"(?<![a-z0-9])(\d{1,2})x(\d{2,3})(?![a-z0-9])", re.IGNORECASE)
_SEASON_RE = re.compile(
    r"(?<![a-z0-9])(?:s(\d{1,2})|season[ -]?(\d{1,2}))(?![a-z0-9])", re.IGNORECASE
)
_ABSOLUTE_EPISODE_RE = re.compile(r"\s-\s(\d{1,4})(?:v\d)?(?=\s|$)")

_TRAILING_TAGS_RE = re.compile(r"(?:\s*\[[^\]]*\])+\s*$")
_SUFFIX_GROUP_RE = re.compile(r"-([^\s\-.\[\](){}]+)$")
_PREFIX_GROUP_RE = re.compile(r"^\s*\[([^\]]+)\]")

_GROUP_KEYWORDS: frozenset[str] = frozenset(
    {
        "dl",
        "rip",
        "hd",
        "sd",
        "ma",
        "x",
        "audio",
        "dual",
        "multi",
        "sub",
        "subs",
        "eng",
        "internal",
        "proper",
        "repack",
        "hdr10",
        "ray",
    }
)

_KEYWORD_TABLES: tuple[tuple[Rule, ...], ...] = (
    RESOLUTION_RULES,
    SOURCE_RULES,
    CODEC_RULES,
    AUDIO_RULES,
    HDR_RULES,
    STREAMING_RULES,
)

_FIELD_RULES: dict[str, tuple[Rule, ...]] = {
    "resolution": RESOLUTION_RULES,
    "source": SOURCE_RULES,
    "codec": CODEC_RULES,
    "audioCodec": AUDIO_RULES,
    "hdr": HDR_RULES,
}


def _normalize(text: str) -> str:
    """Replace dots, underscores and brackets with spaces and collapse runs."""
    text = _SEPARATORS_RE.sub(" ", text)
    text = _BRACKETS_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _first_value(rules: tuple[Rule, ...], text: str) -> str | None:
    for pattern, value in rules:
        if pattern.search(text):
            return value
    return None


def _first_position(rules: tuple[Rule, ...], text: str) -> int | None:
    positions = [m.start() for pattern, _ in rules if (m := pattern.search(text))]
    return min(positions) if positions else None


def _find_year(text: str) -> re.Match[str] | None:
    """Find the release year.

    Only 4-digit tokens between 1900 and two years from now count. When a
    title itself contains a year-like number (``1917.2019.1080p``), the last
    candidate before the resolution wins.
    """
    limit = _first_position(RESOLUTION_RULES, text)
    max_year = datetime.now(UTC).year + 2
    candidates = [
        m
        for m in _YEAR_RE.finditer(text, 0, len(text) if limit is None else limit)
        if 1900 <= int(m.group(1)) <= max_year
    ]
    if not candidates:
        return None
    not_leading = [m for m in candidates if m.start() > 0]
    return (not_leading or candidates)[-1]


def _find_season_episode(text: str) -> tuple[int | None, int | None, int | None]:
    """Find season and episode numbers.

    Returns:
        Tuple of (season, episode, start position of the marker)
    """
    match = _EPISODE_RE.search(text) or _CROSS_EPISODE_RE.search(text)
    if match:
        return int(match.group(1)), int(match.group(2)), match.start()
    match = _SEASON_RE.search(text)
    if match:
        return int(match.group(1) or match.group(2)), None, match.start()
    return None, None, None


def _title_end(text: str, *, anime: bool = False) -> int:
    """Position where the title part of a normalized string ends."""
    stops: list[int] = []
    year = _find_year(text)
    if year:
        stops.append(year.start())
    _, _, marker = _find_season_episode(text)
    if marker is not None:
        stops.append(marker)
    if anime and (absolute := _ABSOLUTE_EPISODE_RE.search(text)):
        stops.append(absolute.start())
    if not stops:
        quality = _first_position(_QUALITY_MARKERS, text)
        if quality is not None:
            stops.append(quality)
    return min(stops) if stops else len(text)


def _is_keyword(token: str) -> bool:
    if token.isdigit() or token.lower() in _GROUP_KEYWORDS:
        return True
    return any(
        pattern.fullmatch(token) for table in _KEYWORD_TABLES for pattern, _ in table
    )


def _suffix_group(stem: str) -> re.Match[str] | None:
    """Find the trailing ``-GROUP`` token of a title stem.

    Trailing ``[site]`` tags are ignored. Quality keywords are not groups,
    except a blocked-source token (``-TS``, ``-CAM``) after a title that
    already names a regular source.
    """
    trimmed = _TRAILING_TAGS_RE.sub("", stem).rstrip()
    match = _SUFFIX_GROUP_RE.search(trimmed)
    if match is None:
        return None
    token = match.group(1)
    if not _is_keyword(token):
        return match
    if _first_value(SOURCE_RULES, token) not in BLOCKED_SOURCES:
        return None
    rest = _first_value(SOURCE_RULES, _normalize(trimmed[: match.start()]))
    return match if rest is not None and rest not in BLOCKED_SOURCES else None


def _release_group(stem: str) -> tuple[str | None, str]:
    """Extract the release group from a title stem.

    The group is the trailing ``-TOKEN``. Anime releases carry it as a
    leading ``[Group]`` tag instead.

    Returns:
        Tuple of (group, stem with a trailing group removed)
    """
    match = _suffix_group(stem)
    if match is not None:
        return match.group(1), stem[: match.start()] + stem[match.end() :]
    prefix = _PREFIX_GROUP_RE.match(stem)
    if prefix:
        group = prefix.group(1).strip()
        if group and not _is_keyword(group):
            return group, stem
    return None, stem


def _hdr_formats(text: str) -> list[str]:
    """All HDR formats in order of first appearance."""
    found: list[tuple[int, str]] = []
    for pattern, value in HDR_RULES:
        match = pattern.search(text)
        if match:
            found.append((match.start(), value))
    formats: list[str] = []
    for _, value in sorted(found):
        if value not in formats:
            formats.append(value)
    return formats


def parse_title(title: str) -> ParsedRelease:
    """Parse a raw release title.

    Args:
        title: The release title as advertised by the indexer

    Returns:
        ParsedRelease with every recognised attribute set
    """
    stem = _EXTENSION_RE.sub("", title.strip())
    anime = _PREFIX_GROUP_RE.match(stem) is not None

    # Bracketed tags never belong to the title text but are still scanned.
    bare = _normalize(_BRACKET_GROUP_RE.sub(" ", stem))
    scan = _normalize(stem)

    end = _title_end(bare, anime=anime)
    clean_title = bare[:end].strip(" -")
    year_match = _find_year(bare)
    if not clean_title and year_match:
        clean_title = year_match.group(1)

    season, episode, _ = _find_season_episode(scan)
    is_season_pack = season is not None and episode is None
    if anime and season is None:
        absolute = _ABSOLUTE_EPISODE_RE.search(bare)
        if absolute:
            episode = int(absolute.group(1))

    # Attributes are read after the title and before the group so words in
    # either (e.g. "Charlotte's Web", "-TS") are not mistaken for quality tokens.
    group, body = _release_group(stem)
    attributes = _normalize(body)
    tail = attributes[_title_end(attributes, anime=anime) :] or attributes

    source = _first_value(SOURCE_RULES, tail)

    return ParsedRelease(
        title=clean_title,
        raw_title=title,
        year=int(year_match.group(1)) if year_match else None,
        resolution=_first_value(RESOLUTION_RULES, tail),
        source=source,
        codec=_first_value(CODEC_RULES, tail),
        audio_codec=_first_value(AUDIO_RULES, tail),
        audio_channels=_first_value(CHANNEL_RULES, tail),
        hdr_formats=_hdr_formats(tail),
        release_group=group,
        is_proper=_PROPER_RE.search(tail) is not None,
        is_repack=_REPACK_RE.search(tail) is not None,
        edition=_first_value(EDITION_RULES, tail),
        season=season,
        episode=episode,
        is_season_pack=is_season_pack,
        streaming_service=_first_value(STREAMING_RULES, tail),
        is_blocked_source=source in BLOCKED_SOURCES,
        is_sample=_SAMPLE_RE.search(tail) is not None,
        is_upscaled=_UPSCALED_RE.search(tail) is not None,
        has_hardcoded_subs=_HARDCODED_RE.search(tail) is not None,
        is_nuked=_NUKED_RE.search(tail) is not None,
    )


def normalize_value(field: str, value: str) -> str:
    """Map an attribute alias to the parser's canonical value.

    ``normalize_value("source", "webdl")`` returns ``"WEB-DL"`` and
    ``normalize_value("codec", "x265")`` returns ``"HEVC"``. Values with no
    known alias, and fields without a rule table, are returned unchanged.
    """
    rules = _FIELD_RULES.get(field)
    if rules is None:
        return value
    text = _normalize(value)
    for pattern, canonical in rules:
        if pattern.fullmatch(text):
            return canonical
    return value


def normalize_release_title(title: str) -> str:
    """Reduce a release title to lowercase alphanumeric words.

    Two titles that differ only in separators, case or file extension
    normalize to the same string.
    """
    stem = _EXTENSION_RE.sub("", title.strip())
    return " ".join(re.findall(r"[a-z0-9]+", stem.lower().replace("'", "")))
