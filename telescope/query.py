"""
Tag query compiler.

Turns a filter string from the search box into a predicate tree:

    status:403                  entries tagged 'status:403'
    status:403,status:404       either tag
    status:403|method:POST      OR of sub-queries
    status:403;method:POST      AND of sub-queries
    created:>2024-01-01         created after a date
    created:!2024-03,status:200 not created in March 2024, tagged status:200

'|' binds loosest, then ';', then ','. Within a comma list the plain tags
are alternatives, while every ``created:`` clause must hold, so several
date bounds can narrow one list.

Each node can test an entry in memory (``matches``) and render itself as
a SQL condition over the ``entries`` table (``sql``).
"""

import logging
import operator
from dataclasses import dataclass
from typing import Callable, Optional

from .dates import (
    DEFAULT_TIMEZONE,
    DateFormat,
    TimezoneLike,
    guess_date,
    infer_format,
    resolve_timezone,
)
from .types import TIMESTAMP_FORMAT, EntryRecord, parse_timestamp

logger = logging.getLogger(__name__)

# Keys handled by the query itself instead of the tag index
CREATED_KEY = "created"

# Two-character operators must be tried first
_OPERATORS = ("<=", ">=", "==", "!=", "<", ">", "=", "!")

_COMPARISONS: dict[str, Callable[[str, str], bool]] = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


def render_created_at(created_at: str, pattern: str, tz: str) -> str:
    """Re-render a stored created_at with a display format."""
    return DateFormat(pattern).render(parse_timestamp(created_at, tz))


class Filter:
    """A predicate over entries."""

    def matches(self, entry: EntryRecord) -> bool:
        raise NotImplementedError

    def sql(self) -> tuple[str, list]:
        raise NotImplementedError


@dataclass(frozen=True)
class Everything(Filter):
    def matches(self, entry: EntryRecord) -> bool:
        return True

    def sql(self) -> tuple[str, list]:
        return "1 = 1", []


@dataclass(frozen=True)
class Nothing(Filter):
    """Never matches; stands in for clauses with an unusable date."""

    def matches(self, entry: EntryRecord) -> bool:
        return False

    def sql(self) -> tuple[str, list]:
        return "0 = 1", []


EVERYTHING = Everything()
NOTHING = Nothing()


@dataclass(frozen=True)
class TagMatch(Filter):
    """Entry carries at least one of the tags (exact, case-sensitive)."""
    tags: tuple[str, ...]

    def matches(self, entry: EntryRecord) -> bool:
        return any(tag in entry.tags for tag in self.tags)

    def sql(self) -> tuple[str, list]:
        placeholders = ",".join("?" * len(self.tags))
        return (
            "uuid IN (SELECT entry_uuid FROM entries_tags "
            f"WHERE tag IN ({placeholders}))",
            list(self.tags),
        )


@dataclass(frozen=True)
class CreatedCompare(Filter):
    """Ordering comparison of created_at against a full timestamp."""
    op: str
    value: str

    def __post_init__(self):
        if self.op not in _COMPARISONS:
            raise ValueError(f"Unsupported comparison: {self.op!r}")

    def matches(self, entry: EntryRecord) -> bool:
        return _COMPARISONS[self.op](entry.created_at, self.value)

    def sql(self) -> tuple[str, list]:
        return f"created_at {self.op} ?", [self.value]


@dataclass(frozen=True)
class CreatedContains(Filter):
    """
    created_at, rendered with the query's own format, contains the needle.

    Rendering the stored timestamp at the precision of the query makes a
    partial date such as 2024-03 match every day of that month.
    """
    needle: str
    pattern: str
    timezone: str = DEFAULT_TIMEZONE
    negate: bool = False

    def matches(self, entry: EntryRecord) -> bool:
        found = self.needle in render_created_at(entry.created_at, self.pattern, self.timezone)
        return not found if self.negate else found

    def sql(self) -> tuple[str, list]:
        comparison = "=" if self.negate else ">"
        return (
            f"instr(telescope_render(created_at, ?, ?), ?) {comparison} 0",
            [self.pattern, self.timezone, self.needle],
        )


@dataclass(frozen=True)
class AnyOf(Filter):
    children: tuple[Filter, ...]

    def matches(self, entry: EntryRecord) -> bool:
        return any(child.matches(entry) for child in self.children)

    def sql(self) -> tuple[str, list]:
        return _join_sql(self.children, " OR ")


@dataclass(frozen=True)
class AllOf(Filter):
    children: tuple[Filter, ...]

    def matches(self, entry: EntryRecord) -> bool:
        return all(child.matches(entry) for child in self.children)

    def sql(self) -> tuple[str, list]:
        return _join_sql(self.children, " AND ")


def _join_sql(children: tuple[Filter, ...], joiner: str) -> tuple[str, list]:
    clauses = []
    params: list = []
    for child in children:
        clause, child_params = child.sql()
        clauses.append(f"({clause})")
        params.extend(child_params)
    return joiner.join(clauses), params


def _combine(node_type: type, children: list[Filter]) -> Filter:
    if not children:
        return EVERYTHING
    if len(children) == 1:
        return children[0]
    return node_type(tuple(children))


def _segments(text: str, separator: str) -> list[str]:
    return [s.strip() for s in text.split(separator) if s.strip()]


def _is_created_atom(atom: str) -> bool:
    return atom.lower().partition(":")[0] == CREATED_KEY


def _split_operator(value: str) -> tuple[str, str]:
    for candidate in _OPERATORS:
        if value.startswith(candidate):
            return candidate, value[len(candidate):].strip()
    return "=", value


def compile_created(atom: str, tz: TimezoneLike = DEFAULT_TIMEZONE) -> Filter:
    """
    Compile one ``created:<op><date>`` clause.

    A date that cannot be parsed gives NOTHING rather than an error.
    """
    zone = resolve_timezone(tz)
    zone_name = str(zone)
    _, _, value = atom.lower().strip().partition(":")
    op, value = _split_operator(value)

    date = guess_date(value, timezone=zone_name)
    display: Optional[DateFormat] = infer_format(value, "-", ":")

    if date is None or display is None:
        logger.debug("Unusable date in %r, clause matches nothing", atom)
        return NOTHING

    # Unix and ISO offset inputs are not in the store's wall time
    date = date.astimezone(zone)

    if op[0] in "<>":
        return CreatedCompare(op, date.strftime(TIMESTAMP_FORMAT))

    return CreatedContains(
        needle=display.render(date),
        pattern=display.pattern,
        timezone=zone_name,
        negate=op.startswith("!"),
    )


def compile_tag_query(text: Optional[str], tz: TimezoneLike = DEFAULT_TIMEZONE) -> Filter:
    """
    Compile a tag query into a Filter.

    Never raises on malformed text: empty segments are dropped, and an
    empty query compiles to EVERYTHING.

    Args:
        text: Query string (see module docstring)
        tz: Zone used for created: dates and stored timestamps

    Returns:
        Root node of the predicate tree
    """
    text = text or ""

    if "|" in text:
        return _combine(AnyOf, [compile_tag_query(s, tz) for s in _segments(text, "|")])

    if ";" in text:
        return _combine(AllOf, [compile_tag_query(s, tz) for s in _segments(text, ";")])

    atoms = _segments(text, ",")
    tags = tuple(atom for atom in atoms if not _is_created_atom(atom))

    parts: list[Filter] = []
    if tags:
        parts.append(TagMatch(tags))
    parts.extend(compile_created(atom, tz) for atom in atoms if _is_created_atom(atom))

    return _combine(AllOf, parts)
