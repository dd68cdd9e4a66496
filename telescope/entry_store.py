"""
Entry store using SQLite.

Entries are appended in batches and never changed. Each entry may carry
tags, kept in a separate index table so tag queries do not have to
decode entry content:

- entries: one row per entry, ``sequence`` gives insertion order
- entries_tags: (entry_uuid, tag) pairs

Tag queries compile to SQL conditions (see ``telescope.query``). The
``telescope_render`` SQL function lets created: clauses re-render stored
timestamps inside the query.
"""

import json
import logging
import sqlite3
import uuid as uuidlib
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional

from .dates import DEFAULT_TIMEZONE, TimezoneLike, resolve_timezone
from .query import EVERYTHING, Filter, compile_tag_query, render_created_at
from .types import (
    EntryQueryOptions,
    EntryRecord,
    now_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

_ENTRY_COLUMNS = (
    "sequence, uuid, batch_id, family_hash, type, content_json, "
    "should_display_on_index, created_at"
)


class EntryStore:
    """
    SQLite-backed store for logged entries.

    Timestamps are stored as wall time in the store's timezone, so the
    same zone must be used when querying.
    """

    def __init__(self, store_path: Path, timezone: TimezoneLike = DEFAULT_TIMEZONE):
        """
        Args:
            store_path: Path to SQLite database file
            timezone: Zone for created_at values and created: queries
        """
        self._conn: Optional[sqlite3.Connection] = None
        self._db_path = Path(store_path)
        self._timezone = str(resolve_timezone(timezone))
        self._init_db()

    @property
    def timezone(self) -> str:
        return self._timezone

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.create_function(
            "telescope_render", 3, render_created_at, deterministic=True,
        )

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                sequence INTEGER PRIMARY KEY AUTOINCREMENT,
                uuid TEXT NOT NULL UNIQUE,
                batch_id TEXT NOT NULL,
                family_hash TEXT,
                type TEXT NOT NULL,
                content_json TEXT NOT NULL DEFAULT '{}',
                should_display_on_index INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS entries_tags (
                entry_uuid TEXT NOT NULL,
                tag TEXT NOT NULL
            )
        """)

        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_entries_type_display
            ON entries(type, should_display_on_index)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_entries_batch
            ON entries(batch_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_entries_family
            ON entries(family_hash)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_entries_created
            ON entries(created_at)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_entries_tags_tag
            ON entries_tags(tag, entry_uuid)
        """)

        self._conn.commit()

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def store(self, entries: Iterable[EntryRecord]) -> list[EntryRecord]:
        """
        Append a batch of entries.

        Entries without a batch_id share a new one. Missing uuids and
        created_at values are filled in.

        Args:
            entries: Entries to append, in order

        Returns:
            The stored entries, with sequence numbers

        Raises:
            ValueError: If an entry has a malformed created_at
        """
        batch_id = str(uuidlib.uuid4())
        now = now_timestamp(self._timezone)
        stored: list[EntryRecord] = []

        # Validate the whole batch before the first insert
        batch = []
        for entry in entries:
            if entry.created_at:
                parse_timestamp(entry.created_at, self._timezone)
            batch.append(replace(
                entry,
                uuid=entry.uuid or str(uuidlib.uuid4()),
                batch_id=entry.batch_id or batch_id,
                created_at=entry.created_at or now,
                tags=tuple(dict.fromkeys(entry.tags)),
            ))

        with self._conn:
            for entry in batch:
                stored.append(self._insert(entry))

        if stored:
            logger.info("Stored %d entries (batch %s)", len(stored), batch_id)
        return stored

    def _insert(self, entry: EntryRecord) -> EntryRecord:
        """Insert one entry and its tags. Caller commits."""
        cursor = self._conn.execute("""
            INSERT INTO entries
            (uuid, batch_id, family_hash, type, content_json,
             should_display_on_index, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            entry.uuid,
            entry.batch_id,
            entry.family_hash,
            entry.type,
            json.dumps(entry.content, ensure_ascii=False),
            int(entry.should_display_on_index),
            entry.created_at,
        ))
        self._conn.executemany("""
            INSERT INTO entries_tags (entry_uuid, tag) VALUES (?, ?)
        """, [(entry.uuid, tag) for tag in entry.tags])
        return replace(entry, sequence=cursor.lastrowid)

    def record(
        self,
        type: str,
        content: Optional[dict] = None,
        tags: Iterable[str] = (),
        *,
        batch_id: str = "",
        family_hash: Optional[str] = None,
        should_display_on_index: bool = True,
        created_at: str = "",
    ) -> EntryRecord:
        """Append a single entry. See store()."""
        entry = EntryRecord(
            type=type,
            content=content or {},
            tags=tuple(tags),
            batch_id=batch_id,
            family_hash=family_hash,
            should_display_on_index=should_display_on_index,
            created_at=created_at,
        )
        return self.store([entry])[0]

    def prune(self, before: str) -> int:
        """
        Delete entries created before a timestamp.

        Args:
            before: Canonical timestamp (YYYY-MM-DD HH:MM:SS)

        Returns:
            Number of entries deleted
        """
        parse_timestamp(before, self._timezone)

        with self._conn:
            self._conn.execute("""
                DELETE FROM entries_tags
                WHERE entry_uuid IN (SELECT uuid FROM entries WHERE created_at < ?)
            """, (before,))
            cursor = self._conn.execute("""
                DELETE FROM entries WHERE created_at < ?
            """, (before,))

        logger.info("Pruned %d entries created before %s", cursor.rowcount, before)
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, uuid: str) -> Optional[EntryRecord]:
        """
        Get an entry by uuid.

        Returns:
            EntryRecord if found, None otherwise
        """
        cursor = self._conn.execute(f"""
            SELECT {_ENTRY_COLUMNS} FROM entries
            WHERE uuid = ?
        """, (uuid,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._to_records([row])[0]

    def count(self) -> int:
        """Count all entries."""
        cursor = self._conn.execute("SELECT COUNT(*) FROM entries")
        return cursor.fetchone()[0]

    def tagged_uuids(self, tags: Iterable[str]) -> set[str]:
        """Uuids of entries carrying at least one of the tags."""
        tags = list(tags)
        if not tags:
            return set()
        placeholders = ",".join("?" * len(tags))
        cursor = self._conn.execute(f"""
            SELECT DISTINCT entry_uuid FROM entries_tags
            WHERE tag IN ({placeholders})
        """, tags)
        return {row["entry_uuid"] for row in cursor}

    def get_entries(
        self,
        type: Optional[str] = None,
        options: Optional[EntryQueryOptions] = None,
    ) -> list[EntryRecord]:
        """
        List entries, newest first.

        Args:
            type: Only entries of this type (None for all)
            options: Batch, tag query, family and pagination scope

        Returns:
            Matching entries ordered by sequence, descending
        """
        options = options or EntryQueryOptions()
        clauses: list[str] = []
        params: list = []

        if type:
            clauses.append("type = ?")
            params.append(type)

        if options.batch_id:
            clauses.append("batch_id = ?")
            params.append(options.batch_id)

        tag_filter = compile_tag_query(options.tag, self._timezone)
        if tag_filter != EVERYTHING:
            clause, tag_params = tag_filter.sql()
            clauses.append(f"({clause})")
            params.extend(tag_params)

        if options.family_hash:
            clauses.append("family_hash = ?")
            params.append(options.family_hash)

        if options.before_sequence:
            clauses.append("sequence < ?")
            params.append(options.before_sequence)

        if not options.shows_hidden:
            clauses.append("should_display_on_index = 1")

        return self._select(clauses, params, options.limit)

    def filter_entries(self, filter: Filter, limit: Optional[int] = None) -> list[EntryRecord]:
        """List entries matching a prebuilt filter, newest first."""
        clause, params = filter.sql()
        return self._select([f"({clause})"], params, limit)

    def _select(self, clauses: list[str], params: list, limit: Optional[int]) -> list[EntryRecord]:
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT {_ENTRY_COLUMNS} FROM entries {where} ORDER BY sequence DESC"
        if limit:
            sql += " LIMIT ?"
            params = [*params, limit]

        logger.debug("Entry query: %s %s", sql, params)
        rows = self._conn.execute(sql, params).fetchall()
        return self._to_records(rows)

    def _to_records(self, rows: list[sqlite3.Row]) -> list[EntryRecord]:
        tags = self._tags_for([row["uuid"] for row in rows])
        return [
            EntryRecord(
                sequence=row["sequence"],
                uuid=row["uuid"],
                batch_id=row["batch_id"],
                family_hash=row["family_hash"],
                type=row["type"],
                content=json.loads(row["content_json"]),
                tags=tuple(tags.get(row["uuid"], ())),
                should_display_on_index=bool(row["should_display_on_index"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def _tags_for(self, uuids: list[str]) -> dict[str, list[str]]:
        if not uuids:
            return {}
        placeholders = ",".join("?" * len(uuids))
        cursor = self._conn.execute(f"""
            SELECT entry_uuid, tag FROM entries_tags
            WHERE entry_uuid IN ({placeholders})
            ORDER BY rowid
        """, uuids)
        tags: dict[str, list[str]] = {}
        for row in cursor:
            tags.setdefault(row["entry_uuid"], []).append(row["tag"])
        return tags

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()
