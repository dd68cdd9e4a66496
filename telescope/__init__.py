"""
Telescope entry storage

Stores logged application entries (requests, queries, jobs, ...) with a tag
index, and searches them with a compact tag query language.

Quick Start:
    from telescope import EntryStore, EntryQueryOptions

    store = EntryStore(Path("telescope.db"))
    store.record("request", {"uri": "/admin"}, tags=["status:403", "method:POST"])
    store.get_entries("request", EntryQueryOptions(tag="status:403|status:500"))

CLI Usage:
    telescope record request -t status:403
    telescope entries request --tag "created:>2024-01-01;method:POST"
    telescope guess 2/4-22

Environment Variables:
    TELESCOPE_STORE_PATH  - Override default store location (~/.telescope)
    TELESCOPE_VERBOSE     - Set to 1 for debug logging
"""

from .dates import DateFormat, DateGuess, guess_date, infer_format, parse_date
from .entry_store import EntryStore
from .query import Filter, compile_tag_query
from .types import EntryQueryOptions, EntryRecord

__version__ = "0.1.0"
__all__ = [
    "DateFormat",
    "DateGuess",
    "EntryQueryOptions",
    "EntryRecord",
    "EntryStore",
    "Filter",
    "compile_tag_query",
    "guess_date",
    "infer_format",
    "parse_date",
]
