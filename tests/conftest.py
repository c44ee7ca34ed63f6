"""
conftest.py
===========
Shared fixtures: both store implementations, seeded users, and an API
test client wired to an in-memory store.
"""

import sys, os
# Ensure the rapidaid package is importable when running from /tests without installing
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# the module-level app in rapidaid.main must not open the on-disk database
os.environ.setdefault("RAPIDAID_STORE", "memory")

import asyncio
import datetime

import pytest
from fastapi.testclient import TestClient

from rapidaid.config import DispatchPolicy
from rapidaid.db import init_db, make_session_factory
from rapidaid.main import create_app
from rapidaid.memory_store import MemoryStore
from rapidaid.schemas import Emergency, EmergencyStatus, UserRole
from rapidaid.sql_store import SqlStore


def run(coro):
    """Drive a coroutine to completion from a plain (sync) test."""
    return asyncio.run(coro)


def make_emergency(**overrides) -> Emergency:
    """Build an Emergency model without going through a store."""
    now = datetime.datetime(2025, 1, 6, 12, 0, 0)
    fields = {
        "id": "e1",
        "patient_id": "p1",
        "patient_name": "Robert Wilson",
        "emergency_type": "Cardiac Arrest",
        "status": EmergencyStatus.pending,
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Emergency.model_validate(fields)


# --------------------------------------------------------------------------
# FIXTURE: store implementations
# --------------------------------------------------------------------------

@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    """
    Every store-level test runs against the in-memory fake and against
    SQLAlchemy on a temporary SQLite file.
    """
    if request.param == "memory":
        return MemoryStore()
    factory = make_session_factory(str(tmp_path / "rapidaid-test.db"))
    init_db(factory)
    return SqlStore(factory)


@pytest.fixture
def seeded(store):
    """One patient, two on-duty drivers with live locations, one admin."""
    async def _seed():
        await store.create_user("p1", {"email": "robert@rapidaid.dev", "name": "Robert Wilson", "role": UserRole.patient})
        await store.create_user("d1", {"email": "dana@rapidaid.dev", "name": "Dana", "role": UserRole.driver, "is_on_duty": True})
        await store.create_user("d2", {"email": "sam@rapidaid.dev", "name": "Sam", "role": UserRole.driver, "is_on_duty": True})
        await store.create_user("a1", {"email": "admin@rapidaid.dev", "name": "Admin", "role": UserRole.admin})
        await store.set_live_location("d1", 40.7130, -74.0062)
        await store.set_live_location("d2", 40.7150, -74.0100)
    run(_seed())
    return store


# --------------------------------------------------------------------------
# FIXTURE: API client
# --------------------------------------------------------------------------

@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def client(memory_store):
    """TestClient over an in-memory store with the default (demo) policy."""
    app = create_app(store=memory_store, policy=DispatchPolicy())
    with TestClient(app) as c:
        yield c
