"""
Pytest configuration and shared fixtures.

Test env vars default to the local backend on a throwaway SQLite file.
They are set before any swiftlogix import so settings pick them up.
"""

import asyncio
import os

import pytest

os.environ.setdefault("BACKEND", "local")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_swiftlogix.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Clear settings cache before any app imports to ensure test env vars are used
from swiftlogix.config import get_settings
get_settings.cache_clear()

from fastapi.testclient import TestClient

from swiftlogix.backend import get_backend
from swiftlogix.main import app
from swiftlogix.storage import Base, engine
import swiftlogix.models  # noqa: F401


def run(coro):
    """Drive a coroutine from a synchronous test."""
    return asyncio.run(coro)


@pytest.fixture(scope="function")
def database():
    """Fresh tables for each test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def backend(database):
    """The process-wide local backend, on fresh tables."""
    return get_backend()


@pytest.fixture(scope="function")
def client(database):
    """Create test client with fresh database for each test."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def shipment(backend):
    """A shipment created the way an order creates one: pending with one event."""
    return run(backend.rpc("create_shipment_from_order", {
        "p_order_number": "CL-20260118-4821",
        "p_origin_city": "Shanghai",
        "p_origin_country": "China",
        "p_destination_city": "Rotterdam",
        "p_destination_country": "Netherlands",
        "p_sender_name": "Li Wei",
        "p_recipient_name": "Anna de Vries",
        "p_weight_kg": 12.5,
        "p_shipping_method": "ocean",
    }))


@pytest.fixture
def customer(backend):
    """A signed-in customer session."""
    return run(backend.issue_session("user-customer", "customer@example.com"))


@pytest.fixture
def admin(backend):
    """A signed-in session holding the admin role."""
    session = run(backend.issue_session("user-admin", "ops@swiftlogix.com"))
    run(backend.grant_role("user-admin", "admin"))
    return session
