"""Shared fixtures for doccrawl tests."""

from datetime import datetime, timedelta

import pytest

from doccrawl.catalog import Catalog
from doccrawl.database.connection import create_db_engine, create_session_factory, create_tables


class FakeClock:
    """Manually advanced clock returning naive UTC datetimes."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_db_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def catalog(session_factory) -> Catalog:
    return Catalog(session_factory)


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Point configuration and data at a temp directory for CLI commands.

    Yields the config directory.
    """
    import os

    from doccrawl import main
    from doccrawl.config import clear_config_cache
    from doccrawl.database.connection import dispose_engine

    for key in list(os.environ):
        if key.startswith("DOCCRAWL_"):
            monkeypatch.delenv(key)
    config_dir = tmp_path / "config"
    monkeypatch.setenv("DOCCRAWL_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("DOCCRAWL_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setitem(main._global_state, "json", False)
    clear_config_cache()
    dispose_engine()
    yield config_dir
    clear_config_cache()
    dispose_engine()
