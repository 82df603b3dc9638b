"""Pytest configuration: every test runs against a fresh SQLite file.

``db.connection`` builds its engine from the environment at import time, so
the environment is pointed at a temporary SQLite file before any application
module is imported. Tables are dropped and recreated around each test.

SQLite transactions here take the write lock on BEGIN. Tests must not keep a
session with an open transaction while another session, thread or the
TestClient is working; seed with ``session_scope`` and read back with fresh
sessions.
"""

from __future__ import annotations

import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="credit-ledger-tests-")
os.environ["DB_TYPE"] = "sqlite"
os.environ["SQLITE_PATH"] = os.path.join(_DB_DIR, "ledger.db")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from db.connection import SessionLocal, engine  # noqa: E402
from models.transaction import Base  # noqa: E402
import models.goal  # noqa: E402,F401
import models.allocation  # noqa: E402,F401


@pytest.fixture(autouse=True)
def _fresh_schema():
    """Recreate every table so tests never see each other's rows."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def client():
    from app import app

    with TestClient(app) as test_client:
        yield test_client
