"""
Date format inference for partial date/time strings.

Deduces the layout of strings such as ``220422``, ``2/4-22``,
``2022-04-22 10:30`` or ``2017-07-25T15:25:16.123456+02:00`` and parses
them into timezone-aware datetimes.

Formats are small patterns over single-letter tokens:

    d  day, two digits            j  day, no padding
    m  month, two digits          n  month, no padding
    y  year, two digits           Y  year, four digits
    H  hour                       i  minutes
    s  seconds                    u  microseconds
    P  UTC offset (+02:00, Z)     U  Unix timestamp
    #  any one of ; : / . , -

Every other character is matched literally.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Copenhagen"

# Characters accepted wherever a format has '#'
SEPARATORS = ";:/.,-"

_DIGITS = "0123456789"

# Possessive quantifiers: a field never gives digits back to the next one
_TOKEN_PATTERNS = {
    "d": r"(\d{1,2}+)",
    "j": r"(\d{1,2}+)",
    "m": r"(\d{1,2}+)",
    "n": r"(\d{1,2}+)",
    "y": r"(\d{2})",
    "Y": r"(\d{1,4}+)",
    "H": r"(\d{1,2}+)",
    "i": r"(\d{2})",
    "s": r"(\d{2})",
    "u": r"(\d{1,6}+)",
    "P": r"(Z|[+-]\d{2}:?\d{2})",
    "U": r"(-?\d+)",
}

_TOKEN_FIELDS = {
    "d": "day",
    "j": "day",
    "m": "month",
    "n": "month",
    "Y": "year",
    "H": "hour",
    "i": "minute",
    "s": "second",
}

_TIME_LAYOUTS = {
    8: "H{sep}i{sep}s",
    5: "H{sep}i",
    2: "H",
}

_UNIX_TIMESTAMP_RE = re.compile(r"[0-9]{10}")

# T between the date and the time, as in 2024-03-15T10:30
_DATE_TIME_DELIMITER_RE = re.compile(r"(?<=[0-9])[Tt](?=[0-9])")

TimezoneLike = Union[str, tzinfo, None]


def resolve_timezone(tz: TimezoneLike) -> tzinfo:
    """Turn a zone name (or None for the default) into a tzinfo.

    Raises:
        ValueError: If the name is not a known IANA zone
    """
    if tz is None:
        tz = DEFAULT_TIMEZONE
    if isinstance(tz, tzinfo):
        return tz
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {tz!r}") from e


def localize(naive: datetime, zone: tzinfo) -> datetime:
    """Attach a zone to a wall-clock time.

    Wall times inside a DST gap move forward by the length of the gap,
    so 02:30 on a spring-forward night becomes 03:30.
    """
    aware = naive.replace(tzinfo=zone)
    return aware.astimezone(timezone.utc).astimezone(zone)


def start_of_day(value: datetime) -> datetime:
    """Midnight of the same calendar day, in the same zone."""
    midnight = value.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None)
    return localize(midnight, value.tzinfo or timezone.utc)


def _expand_year(two_digits: int) -> int:
    return 2000 + two_digits if two_digits < 70 else 1900 + two_digits


def _parse_offset(raw: str) -> timezone:
    if raw.upper() == "Z":
        return timezone.utc
    sign = -1 if raw[0] == "-" else 1
    digits = raw[1:].replace(":", "")
    minutes = int(digits[:2]) * 60 + int(digits[2:])
    return timezone(sign * timedelta(minutes=minutes))


def _format_offset(value: datetime) -> str:
    offset = value.utcoffset() or timedelta(0)
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{sign}{minutes // 60:02d}:{minutes % 60:02d}"


_RENDERERS = {
    "d": lambda v: f"{v.day:02d}",
    "j": lambda v: str(v.day),
    "m": lambda v: f"{v.month:02d}",
    "n": lambda v: str(v.month),
    "y": lambda v: f"{v.year % 100:02d}",
    "Y": lambda v: f"{v.year:04d}",
    "H": lambda v: f"{v.hour:02d}",
    "i": lambda v: f"{v.minute:02d}",
    "s": lambda v: f"{v.second:02d}",
    "u": lambda v: f"{v.microsecond:06d}",
    "P": _format_offset,
    "U": lambda v: str(int(v.timestamp())),
}


@lru_cache(maxsize=256)
def _compile(pattern: str) -> tuple[re.Pattern, tuple[str, ...]]:
    parts: list[str] = []
    tokens: list[str] = []
    for char in pattern:
        if char in _TOKEN_PATTERNS:
            parts.append(_TOKEN_PATTERNS[char])
            tokens.append(char)
        elif char == "#":
            parts.append(f"[{re.escape(SEPARATORS)}]")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.IGNORECASE), tuple(tokens)


@dataclass(frozen=True)
class DateFormat:
    """An inferred date/time layout."""
    pattern: str

    def __str__(self) -> str:
        return self.pattern

    @property
    def is_timestamp(self) -> bool:
        return self.pattern == "U"

    def parse(self, text: str, tz: TimezoneLike = None) -> datetime:
        """
        Parse text laid out in this format.

        Fields the format lacks start at the beginning of their period
        (day 1, 00:00:00). A missing year is the current one.

        Args:
            text: Input that must match the whole pattern
            tz: Zone for the wall-clock time, unless the text carries an offset

        Returns:
            Timezone-aware datetime

        Raises:
            ValueError: If the text does not fit or names an impossible date
        """
        regex, tokens = _compile(self.pattern)
        match = regex.fullmatch(text)
        if match is None:
            raise ValueError(f"{text!r} does not match format {self.pattern!r}")

        zone = resolve_timezone(tz)
        fields: dict[str, int] = {
            "month": 1, "day": 1, "hour": 0, "minute": 0, "second": 0, "microsecond": 0,
        }
        offset: Optional[timezone] = None

        for token, raw in zip(tokens, match.groups()):
            if token == "U":
                return datetime.fromtimestamp(int(raw), tz=timezone.utc)
            if token == "P":
                offset = _parse_offset(raw)
            elif token == "u":
                fields["microsecond"] = int(raw.ljust(6, "0"))
            elif token == "y":
                fields["year"] = _expand_year(int(raw))
            else:
                fields[_TOKEN_FIELDS[token]] = int(raw)

        if "year" not in fields:
            fields["year"] = datetime.now(zone).year

        naive = datetime(**fields)
        if offset is not None:
            return naive.replace(tzinfo=offset)
        return localize(naive, zone)

    def render(self, value: datetime) -> str:
        """Render a datetime with this format ('#' renders as '-')."""
        out = []
        for char in self.pattern:
            renderer = _RENDERERS.get(char)
            if renderer is not None:
                out.append(renderer(value))
            elif char == "#":
                out.append("-")
            else:
                out.append(char)
        return "".join(out)


@dataclass(frozen=True)
class DateGuess:
    """Outcome of parsing a guessed date: a value, or the reason there is none."""
    value: Optional[datetime] = None
    reason: Optional[str] = None
    format: Optional[DateFormat] = None

    @property
    def ok(self) -> bool:
        return self.value is not None


# -----------------------------------------------------------------------------
# Inference
# -----------------------------------------------------------------------------

def _to_int(text: str) -> int:
    """Leading digits as an int, 0 when there are none."""
    match = re.match(r"\d+", text)
    return int(match.group()) if match else 0


def _before(text: str, needle: str) -> str:
    if not needle:
        return text
    index = text.find(needle)
    return text if index < 0 else text[:index]


def _after(text: str, needle: str) -> str:
    if not needle:
        return text
    index = text.find(needle)
    return text if index < 0 else text[index + len(needle):]


def _find_separator(text: str, positions: tuple[int, ...]) -> str:
    """First non-digit at one of the positions; '' past the end or if all are digits."""
    for pos in positions:
        char = text[pos:pos + 1]
        if not (char and char in _DIGITS):
            return char
    return ""


def _split_date_time(text: str) -> tuple[str, str, str]:
    """Split into (date, delimiter, time); the delimiter is T or a space."""
    match = _DATE_TIME_DELIMITER_RE.search(text)
    if match is None:
        return text.partition(" ")
    return text[:match.start()], match.group(), text[match.end():]


def _unseparated_layout(date: str) -> str:
    """Layout of a bare digit block such as 220422 or 15032024."""
    day, month, year = date[:2], date[2:4], date[4:]
    tokens = ["d", "m", "Y" if len(year) == 4 else "y"]

    if _to_int(month) > 12:
        tokens = [tokens[1], tokens[0], tokens[2]]

        # 20220422: neither day-month nor month-day fits
        if len(year) == 4 and _to_int(day) > 12:
            tokens = ["Y", "m", "d"] if _to_int(date[4:6]) <= 12 else ["Y", "d", "m"]

    return "".join(tokens)


def _two_field_layout(first: str, second: str, sep: str) -> Optional[str]:
    """Layout of a year and month, as in 2024-03 or 03/2024."""
    if len(first) == 4:
        return f"Y{sep}{'n' if len(second) == 1 else 'm'}"
    if len(second) == 4:
        return f"{'n' if len(first) == 1 else 'm'}{sep}Y"
    return None


def _three_field_layout(first: str, second: str, third: str, sep: str) -> str:
    """Layout of a separated date such as 2/4-22, 22-4-2 or 2022-4-2."""
    tokens = [
        "j" if len(first) == 1 else "d",
        "n" if len(second) == 1 else "m",
        "y" if len(third) == 2 else "Y",
    ]

    if _to_int(second) > 12:
        tokens = [tokens[1], tokens[0], tokens[2]]

    if len(first) == 4:
        tokens = [
            "Y",
            "n" if len(second) == 1 else "m",
            "j" if len(third) == 1 else "d",
        ]
        if _to_int(second) > 12:
            tokens = [tokens[0], tokens[2], tokens[1]]

    return sep.join(tokens)


def _infer_layout(text: str, date_separator: str, time_separator: str) -> Optional[str]:
    date, delimiter, time = _split_date_time(text)
    delimiter = delimiter or " "

    first_sep = _find_separator(date, (1, 2, 4))
    rest = _after(date, first_sep)
    second_sep = _find_separator(rest, (1, 2, 3, 4))

    if not first_sep and not second_sep:
        date_layout = _unseparated_layout(date)
    elif first_sep and not second_sep:
        date_layout = _two_field_layout(_before(date, first_sep), rest, date_separator)
    else:
        date_layout = _three_field_layout(
            _before(date, first_sep),
            _before(rest, second_sep),
            _after(rest, second_sep),
            date_separator,
        )

    if date_layout is None:
        return None

    time_layout = _TIME_LAYOUTS.get(len(time), "").format(sep=time_separator)
    if time_layout:
        return f"{date_layout}{delimiter}{time_layout}"
    return date_layout


def infer_format(
    text: str,
    date_separator: str = "#",
    time_separator: str = "#",
) -> Optional[DateFormat]:
    """
    Guess the format of a date or date-time string.

    The default '#' separators accept any of ``; : / . , -`` when parsing.
    Pass concrete separators (e.g. '-' and ':') to get a format for
    rendering instead.

    Args:
        text: Date text, at least six characters to be recognized
        date_separator: Separator placed between date fields
        time_separator: Separator placed between time fields

    Returns:
        The inferred DateFormat, or None if no layout fits
    """
    text = (text or "").strip()
    pattern: Optional[str] = None

    # Anything from 220422 to a full date-time
    if len(text) >= 6:
        pattern = _infer_layout(text, date_separator, time_separator)

    if _UNIX_TIMESTAMP_RE.fullmatch(text):
        pattern = "U"

    # Full ISO 8601, like 2017-07-25T15:25:16.123456+02:00 or 2018-08-27T00:00:00Z
    _, delimiter, time = _split_date_time(text)
    if len(text) >= 20 and delimiter in ("T", "t"):
        pattern = f"Y-m-d{delimiter}H:i:s"
        if "." in time:
            pattern += ".u"
        pattern += "P"

    if pattern is None:
        logger.debug("No date format fits %r", text)
        return None
    return DateFormat(pattern)


def parse_date(text: Any, tz: TimezoneLike = None) -> DateGuess:
    """
    Guess the format of a date string and parse it.

    Impossible dates (February 30th, month 13) and text that only partly
    fits the inferred format are failures. Input of ten characters or
    fewer is taken as a date, and the result is moved to midnight.

    Args:
        text: Date or date-time text (datetimes are parsed from their str())
        tz: Zone of the wall-clock time (default: Europe/Copenhagen)

    Returns:
        DateGuess with either a value or the reason parsing failed
    """
    text = str(text if text is not None else "").strip()
    if not text:
        return DateGuess(reason="No input for date")

    date_format = infer_format(text)
    if date_format is None:
        return DateGuess(reason="Format could not be determined")

    try:
        value = date_format.parse(text, tz)
        if len(text) <= 10:
            value = start_of_day(value)
    except (ValueError, OverflowError, OSError) as e:
        logger.debug("Could not parse %r as %s: %s", text, date_format, e)
        return DateGuess(reason=str(e), format=date_format)

    return DateGuess(value=value, format=date_format)


def guess_date(text: Any, default: Any = None, timezone: TimezoneLike = None) -> Any:
    """
    Parse a date or date-time string of unknown layout.

    Returns:
        Timezone-aware datetime, or ``default`` if the text is not a valid date
    """
    guess = parse_date(text, timezone)
    return guess.value if guess.ok else default
