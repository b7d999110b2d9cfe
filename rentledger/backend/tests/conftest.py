# rentledger/backend/tests/conftest.py
from __future__ import annotations

import os
import tempfile

# must be set before app.config is imported anywhere
_DB_DIR = tempfile.mkdtemp(prefix="rentledger-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["APP_ENV"] = "test"
os.environ["AUTH_MODE"] = "dev"

import pytest  # noqa: E402

from app import models  # noqa: E402,F401
from app.db import Base, engine  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
