"""
Configuration management for entry stores.

The configuration is stored as a TOML file in the store directory.
It names the database file, the timezone entries are recorded in,
and the default page size for listings.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w

from .dates import DEFAULT_TIMEZONE, resolve_timezone
from .types import DEFAULT_LIMIT


CONFIG_FILENAME = "telescope.toml"
CONFIG_VERSION = 1
DEFAULT_DATABASE = "telescope.db"


@dataclass
class TelescopeConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    database: str = DEFAULT_DATABASE
    timezone: str = DEFAULT_TIMEZONE
    limit: int = DEFAULT_LIMIT

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        """Path to the SQLite database (relative names live in the store directory)."""
        db = Path(self.database).expanduser()
        return db if db.is_absolute() else self.path / db

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path(override: Optional[Path] = None) -> Path:
    """
    Resolve the store directory.

    Priority:
    1. Explicit override (--store)
    2. TELESCOPE_STORE_PATH environment variable
    3. ~/.telescope
    """
    if override is not None:
        return Path(override).expanduser()
    env_path = os.environ.get("TELESCOPE_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".telescope"


def load_config(store_path: Path) -> TelescopeConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    query = data.get("query", {})
    tz = query.get("timezone", DEFAULT_TIMEZONE)
    resolve_timezone(tz)

    limit = query.get("limit", DEFAULT_LIMIT)
    if not isinstance(limit, int) or limit < 1:
        raise ValueError(f"Invalid query limit in {config_path}: {limit!r}")

    return TelescopeConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        database=data.get("storage", {}).get("database", DEFAULT_DATABASE),
        timezone=tz,
        limit=limit,
    )


def save_config(config: TelescopeConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "storage": {
            "database": config.database,
        },
        "query": {
            "timezone": config.timezone,
            "limit": config.limit,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> TelescopeConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = TelescopeConfig(path=store_path)
        save_config(config)
        return config
