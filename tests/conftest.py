"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest

from notewell.db.connection import Database
from notewell.db.schema import initialize
from notewell.db.store import ContentStore


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / "notewell.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def tmp_store(tmp_path):
    """Initialized ContentStore in tmp_path, closed after test."""
    store = ContentStore(tmp_path / "notewell.db")
    store.initialize()
    yield store
    store.close()


@pytest.fixture(autouse=True)
def _reset_notewell_logger():
    """Undo setup_logging() from CLI tests so caplog sees notewell records."""
    yield
    logger = logging.getLogger("notewell")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
