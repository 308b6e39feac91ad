"""Tests for database setup and models."""

import importlib.util
import inspect
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import Numeric, String, select

from labstore.database import Base, get_db
from labstore.models import (
    DiagnosticReportProjection,
    FhirResource,
    ObservationProjection,
    PatientProjection,
    ServiceRequestProjection,
)

MIGRATIONS_DIR = Path(__file__).parent.parent / "alembic" / "versions"


class TestFhirResourceModel:
    """Tests for FhirResource model structure."""

    def test_fhir_resource_tablename(self):
        """FhirResource should use fhir_resources table."""
        assert FhirResource.__tablename__ == "fhir_resources"

    def test_fhir_resource_columns_exist(self):
        """FhirResource should have all required columns."""
        column_names = {c.name for c in FhirResource.__table__.columns}
        assert column_names == {
            "id",
            "fhir_id",
            "resource_type",
            "canonical_payload",
            "version_id",
            "created_at",
            "last_updated",
            "is_deleted",
        }

    def test_type_and_id_unique(self):
        constraints = {c.name for c in FhirResource.__table__.constraints}
        assert "uq_fhir_type_id" in constraints

    def test_fhir_resource_indexes(self):
        index_names = {idx.name for idx in FhirResource.__table__.indexes}
        assert "idx_fhir_type_live_order" in index_names

    def test_fhir_resource_repr(self):
        """FhirResource repr should include key identifiers."""
        test_id = uuid.uuid4()
        resource = FhirResource(id=test_id, fhir_id="patient-123", resource_type="Patient", version_id=3)
        repr_str = repr(resource)
        assert str(test_id) in repr_str
        assert "Patient" in repr_str
        assert "version=3" in repr_str


class TestProjectionModels:
    """Tests for projection table structure."""

    @pytest.mark.parametrize(
        "model",
        [PatientProjection, ObservationProjection, DiagnosticReportProjection, ServiceRequestProjection],
    )
    def test_keyed_by_fhir_resource(self, model):
        key = model.__table__.columns["fhir_resource_id"]
        assert key.primary_key is True
        foreign_key = next(iter(key.foreign_keys))
        assert foreign_key.target_fullname == "fhir_resources.id"
        assert foreign_key.ondelete == "CASCADE"

    @pytest.mark.parametrize(
        "model",
        [PatientProjection, ObservationProjection, DiagnosticReportProjection, ServiceRequestProjection],
    )
    def test_client_text_columns_unbounded(self, model):
        """Only patient_id, which always names a stored id, has a length limit."""
        for column in model.__table__.columns:
            if isinstance(column.type, String) and column.name != "patient_id":
                assert column.type.length is None, column.name

    def test_value_quantity_has_no_precision_limit(self):
        column_type = ObservationProjection.__table__.columns["value_quantity"].type
        assert isinstance(column_type, Numeric)
        assert column_type.precision is None
        assert column_type.scale is None

    def test_all_tables_registered(self):
        assert set(Base.metadata.tables) == {
            "fhir_resources",
            "patient_projections",
            "observation_projections",
            "diagnostic_report_projections",
            "service_request_projections",
        }


class TestUTCDateTime:
    """Timestamps come back timezone-aware in UTC on every backend."""

    @pytest.mark.asyncio
    async def test_round_trip_is_utc(self, db_session):
        stamp = datetime(2024, 5, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        resource = FhirResource(
            fhir_id="p1",
            resource_type="Patient",
            canonical_payload="{}",
            version_id=1,
            created_at=stamp,
            last_updated=stamp,
        )
        db_session.add(resource)
        await db_session.flush()
        db_session.expunge_all()

        loaded = (await db_session.execute(select(FhirResource))).scalar_one()
        assert loaded.created_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert loaded.created_at.tzinfo == timezone.utc
        assert loaded.is_deleted is False


class TestGetDb:
    """Tests for the request-scoped session dependency."""

    def test_get_db_is_async_generator(self):
        assert inspect.isasyncgenfunction(get_db)


class TestMigrations:
    """Tests for Alembic migration scripts."""

    def _load(self, path: Path):
        spec = importlib.util.spec_from_file_location(path.stem, path)
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def test_single_root_revision(self):
        modules = [self._load(path) for path in sorted(MIGRATIONS_DIR.glob("*.py"))]
        roots = [module for module in modules if module.down_revision is None]
        assert len(roots) == 1
        assert roots[0].revision == "0001_initial_resources"

    def test_initial_migration_defines_upgrade_and_downgrade(self):
        module = self._load(MIGRATIONS_DIR / "0001_initial_resources.py")
        assert callable(module.upgrade)
        assert callable(module.downgrade)
