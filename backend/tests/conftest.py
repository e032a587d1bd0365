"""
Pytest configuration and shared test helpers for backend tests.
"""
import os
import sys
from pathlib import Path

# Skip heavy server startup (MongoDB, scheduler) when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from mongomock_motor import AsyncMongoMockClient

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app
from services.lead_store import LeadStore
from utils.clock import ManualClock
from utils.rate_limiter import rate_limiter


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    rate_limiter.reset()
    return TestClient(app)


@pytest.fixture
def mock_db():
    """Fresh in-memory Mongo database per test."""
    return AsyncMongoMockClient()["lead_intake_test"]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store(mock_db, clock):
    return LeadStore(db=mock_db, clock=clock)
