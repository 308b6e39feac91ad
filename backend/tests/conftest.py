"""Pytest configuration and shared fixtures.

This module provides centralized test fixtures for:
- HTTP client for API testing
- Test database engine and sessions (in-memory SQLite unless DATABASE_TEST_URL is set)
- Common FHIR test data
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from labstore import models  # noqa: F401  (registers tables on Base.metadata)
from labstore.config import settings
from labstore.database import Base, get_db
from labstore.main import app
from labstore.projections.extractors import register_all_projections


@pytest.fixture(autouse=True)
def projections():
    """Register every projection; the app lifespan does not run under ASGITransport."""
    register_all_projections()


# =============================================================================
# HTTP Client Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(test_engine):
    """Async test client for FastAPI app with test database.

    Overrides the app's get_db dependency to use the test database,
    ensuring API tests use the same database as other test fixtures.
    """
    test_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db():
        async with test_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Headers with valid API key for authenticated requests."""
    return {"X-API-Key": settings.api_key}


@pytest.fixture
def fhir_headers(auth_headers) -> dict[str, str]:
    """Authenticated headers for requests carrying a FHIR JSON body."""
    return {**auth_headers, "Content-Type": "application/fhir+json"}


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_engine():
    """Create test database engine with automatic schema management.

    Creates all tables before tests, drops them after.
    Uses DATABASE_TEST_URL env var if set (PostgreSQL in CI), otherwise a
    private in-memory SQLite database.
    """
    db_url = os.environ.get("DATABASE_TEST_URL")
    if db_url:
        engine = create_async_engine(db_url, echo=False)
    else:
        engine = create_async_engine(
            "sqlite+aiosqlite://",
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncSession:
    """Create test database session with automatic rollback.

    Each test gets a fresh session that rolls back on completion,
    ensuring test isolation.
    """
    session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with session_maker() as session:
        yield session
        await session.rollback()


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(seconds=1)
        return value


@pytest.fixture
def clock() -> StepClock:
    """Clock giving every write a distinct, increasing timestamp."""
    return StepClock()


# =============================================================================
# FHIR Test Data
# =============================================================================


def make_patient(fhir_id: str | None = "p1", family: str = "Smith", given: str = "John", **extra) -> dict:
    """Build a minimal valid Patient."""
    patient = {
        "resourceType": "Patient",
        "name": [{"family": family, "given": [given]}],
        "gender": "male",
        "birthDate": "1980-01-15",
    }
    if fhir_id:
        patient["id"] = fhir_id
    patient.update(extra)
    return patient


def make_observation(
    fhir_id: str | None = "o1",
    subject: str = "Patient/p1",
    code: str = "2345-7",
    **extra,
) -> dict:
    """Build a minimal valid laboratory Observation."""
    observation = {
        "resourceType": "Observation",
        "status": "final",
        "category": [{"coding": [{
            "system": "http://terminology.hl7.org/CodeSystem/observation-category",
            "code": "laboratory",
        }]}],
        "code": {"coding": [{"system": "http://loinc.org", "code": code, "display": "Glucose"}]},
        "subject": {"reference": subject},
        "effectiveDateTime": "2024-05-01T10:30:00Z",
        "valueQuantity": {"value": 95, "unit": "mg/dL"},
    }
    if fhir_id:
        observation["id"] = fhir_id
    observation.update(extra)
    return observation


def make_report(
    fhir_id: str | None = "r1",
    subject: str = "Patient/p1",
    results: list[str] | None = None,
    **extra,
) -> dict:
    """Build a minimal valid DiagnosticReport."""
    report = {
        "resourceType": "DiagnosticReport",
        "status": "final",
        "category": [{"coding": [{"code": "LAB"}]}],
        "code": {"coding": [{"system": "http://loinc.org", "code": "24323-8", "display": "Metabolic panel"}]},
        "subject": {"reference": subject},
        "effectiveDateTime": "2024-05-01T10:30:00Z",
        "result": [{"reference": ref} for ref in (results or [])],
    }
    if fhir_id:
        report["id"] = fhir_id
    report.update(extra)
    return report


def make_order(fhir_id: str | None = "sr1", subject: str = "Patient/p1", **extra) -> dict:
    """Build a minimal valid ServiceRequest (lab order)."""
    order = {
        "resourceType": "ServiceRequest",
        "status": "active",
        "intent": "order",
        "priority": "routine",
        "code": {"coding": [{"system": "http://loinc.org", "code": "2345-7"}]},
        "subject": {"reference": subject},
        "authoredOn": "2024-04-30T09:00:00Z",
        "requester": {"reference": "Practitioner/dr-1"},
    }
    if fhir_id:
        order["id"] = fhir_id
    order.update(extra)
    return order
