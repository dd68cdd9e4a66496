"""
Shared pytest fixtures for telescope tests.

Stores live under tmp_path; seeded entries have fixed timestamps so
created: queries are deterministic.
"""

import pytest

from telescope.entry_store import EntryStore
from telescope.types import EntryRecord


SEED_ENTRIES = [
    EntryRecord(
        type="request",
        content={"uri": "/login", "method": "POST"},
        tags=("status:403", "method:POST"),
        created_at="2024-01-01 00:00:00",
    ),
    EntryRecord(
        type="request",
        content={"uri": "/home", "method": "GET"},
        tags=("status:200", "method:GET"),
        created_at="2024-03-15 10:00:00",
    ),
    EntryRecord(
        type="request",
        content={"uri": "/admin", "method": "GET"},
        tags=("status:403", "method:GET"),
        created_at="2024-03-20 12:00:00",
    ),
    EntryRecord(
        type="query",
        content={"sql": "select * from users"},
        tags=("slow",),
        family_hash="fam1",
        created_at="2024-04-02 09:00:00",
    ),
    EntryRecord(
        type="query",
        content={"sql": "select * from users"},
        tags=("slow",),
        family_hash="fam1",
        should_display_on_index=False,
        created_at="2024-04-02 09:00:01",
    ),
]


@pytest.fixture
def store(tmp_path):
    """An empty EntryStore in the default timezone."""
    entry_store = EntryStore(tmp_path / "telescope.db")
    yield entry_store
    entry_store.close()


@pytest.fixture
def seeded(store):
    """Store with SEED_ENTRIES, returned with the stored records in seed order."""
    stored = store.store(SEED_ENTRIES)
    return store, stored


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "dst: depends on the DST rules of Europe/Copenhagen"
    )
