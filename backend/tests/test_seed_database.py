"""Tests for the demo seed script."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from labstore.scripts import seed_database as seed_module
from labstore.services.resources import ResourceService


@pytest.fixture
def seeded_session_maker(test_engine, monkeypatch):
    """Point the seed script at the test database."""
    session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def connected() -> bool:
        return True

    monkeypatch.setattr(seed_module, "async_session_maker", session_maker)
    monkeypatch.setattr(seed_module, "verify_connection", connected)
    return session_maker


class TestDemoResources:
    """Tests for the demo record set."""

    def test_dependency_order(self):
        types = [resource["resourceType"] for resource in seed_module.demo_resources()]
        assert types[0] == "Patient"
        assert types.index("DiagnosticReport") > types.index("Observation")

    def test_ids_unique(self):
        ids = [resource["id"] for resource in seed_module.demo_resources()]
        assert len(ids) == len(set(ids))


class TestSeedDatabase:
    """Tests for seed_database()."""

    @pytest.mark.asyncio
    async def test_seed_creates_everything(self, seeded_session_maker):
        stats = await seed_module.seed_database()
        assert stats == {"created": 5, "skipped": 0}

        async with seeded_session_maker() as session:
            report = await ResourceService(session, "DiagnosticReport").read("demo-lipids-1")
            assert report.version_id == 1
            result = await ResourceService(session, "Observation").search({"patient": seed_module.DEMO_PATIENT_ID})
            assert result.total == 2

    @pytest.mark.asyncio
    async def test_seed_is_repeatable(self, seeded_session_maker):
        await seed_module.seed_database()
        stats = await seed_module.seed_database()
        assert stats == {"created": 0, "skipped": 5}
