"""
Data types for stored entries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from .dates import TimezoneLike, localize, resolve_timezone


# Canonical stored timestamp: wall time in the store's timezone, no suffix
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_LIMIT = 50


def now_timestamp(tz: TimezoneLike = None) -> str:
    """Current wall time in the given zone, in canonical format."""
    return datetime.now(resolve_timezone(tz)).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(stamp: str, tz: TimezoneLike = None) -> datetime:
    """Parse a stored timestamp into an aware datetime in the given zone.

    Raises:
        ValueError: If the stamp is not in canonical format
    """
    return localize(datetime.strptime(stamp, TIMESTAMP_FORMAT), resolve_timezone(tz))


@dataclass(frozen=True)
class EntryRecord:
    """
    One logged entry (request, query, job, ...).

    Entries are append-only: the store assigns uuid, batch_id, created_at
    and sequence when they are missing, and never changes them afterwards.
    """
    type: str
    content: dict[str, Any] = field(default_factory=dict)
    tags: tuple[str, ...] = ()
    uuid: str = ""
    batch_id: str = ""
    family_hash: Optional[str] = None
    should_display_on_index: bool = True
    created_at: str = ""
    sequence: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "sequence": self.sequence,
            "batch_id": self.batch_id,
            "family_hash": self.family_hash,
            "type": self.type,
            "content": self.content,
            "tags": list(self.tags),
            "should_display_on_index": self.should_display_on_index,
            "created_at": self.created_at,
        }

    def __str__(self) -> str:
        tags = f" [{', '.join(self.tags)}]" if self.tags else ""
        return f"{self.sequence} {self.created_at} {self.type} {self.uuid}{tags}"


@dataclass
class EntryQueryOptions:
    """Scope of an entry listing.

    Setting batch_id, tag or family_hash also shows entries that are
    hidden from the index.
    """
    batch_id: Optional[str] = None
    tag: Optional[str] = None
    family_hash: Optional[str] = None
    before_sequence: Optional[int] = None
    limit: int = DEFAULT_LIMIT

    @property
    def shows_hidden(self) -> bool:
        return bool(self.family_hash or self.tag or self.batch_id)
