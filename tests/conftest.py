import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

# Ensure the project root is on sys.path so we can import the `loadnetwork` package
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from loadnetwork.models.bootstrap_db import create_schema  # noqa: E402


@pytest.fixture
def engine():
    """Fresh in-memory SQLite store with every table created."""
    eng = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_schema(eng)
    yield eng
    eng.dispose()
