"""Tests for ReferenceValidator."""

import pytest

from conftest import make_observation, make_patient, make_report
from labstore.exceptions import MissingReferenceError, WrongReferenceTypeError
from labstore.projections import get_projection_config
from labstore.repositories.fhir import FhirRepository
from labstore.services.references import ReferenceCheck, ReferenceValidator


@pytest.fixture
def validator(db_session) -> ReferenceValidator:
    return ReferenceValidator(db_session)


async def seed(db_session, clock):
    """One live patient p1 with observation o1; patient gone has been deleted."""
    patients = FhirRepository(db_session, "Patient", clock=clock)
    await patients.create(make_patient())
    await patients.create(make_patient(fhir_id="gone"))
    await patients.soft_delete("gone")
    await FhirRepository(db_session, "Observation", clock=clock).create(make_observation())


class TestCheck:
    """Tests for ReferenceValidator.check()."""

    @pytest.mark.asyncio
    async def test_resolves_prefixed_and_bare(self, db_session, clock, validator):
        await seed(db_session, clock)
        assert await validator.check("Patient/p1", "Patient") is ReferenceCheck.OK
        assert await validator.check("p1", "Patient") is ReferenceCheck.OK

    @pytest.mark.asyncio
    async def test_versioned_reference_resolves_current_record(self, db_session, clock, validator):
        await seed(db_session, clock)
        assert await validator.check("Patient/p1/_history/1", "Patient") is ReferenceCheck.OK
        assert await validator.check("Patient/gone/_history/1", "Patient") is ReferenceCheck.MISSING_REFERENCE

    @pytest.mark.asyncio
    async def test_unknown_is_missing(self, db_session, clock, validator):
        await seed(db_session, clock)
        assert await validator.check("Patient/UNKNOWN", "Patient") is ReferenceCheck.MISSING_REFERENCE

    @pytest.mark.asyncio
    async def test_deleted_is_missing(self, db_session, clock, validator):
        await seed(db_session, clock)
        assert await validator.check("Patient/gone", "Patient") is ReferenceCheck.MISSING_REFERENCE

    @pytest.mark.asyncio
    async def test_wrong_prefix_checked_before_lookup(self, db_session, clock, validator):
        """An id that exists as a Patient is still wrong behind another prefix."""
        await seed(db_session, clock)
        assert await validator.check("Practitioner/p1", "Patient") is ReferenceCheck.WRONG_REFERENCE_TYPE

    @pytest.mark.asyncio
    async def test_record_of_other_type_is_missing(self, db_session, clock, validator):
        await seed(db_session, clock)
        assert await validator.check("o1", "Patient") is ReferenceCheck.MISSING_REFERENCE

    @pytest.mark.asyncio
    async def test_prefix_required(self, db_session, clock, validator):
        await seed(db_session, clock)
        outcome = await validator.check("o1", "Observation", require_prefix=True)
        assert outcome is ReferenceCheck.WRONG_REFERENCE_TYPE
        assert await validator.check("Observation/o1", "Observation", require_prefix=True) is ReferenceCheck.OK

    @pytest.mark.asyncio
    async def test_empty_reference_is_missing(self, validator):
        assert await validator.check(None, "Patient") is ReferenceCheck.MISSING_REFERENCE


class TestValidateResource:
    """Tests for ReferenceValidator.validate_resource()."""

    @pytest.mark.asyncio
    async def test_valid_report(self, db_session, clock, validator):
        await seed(db_session, clock)
        report = make_report(results=["Observation/o1"])
        await validator.validate_resource(get_projection_config("DiagnosticReport"), report)

    @pytest.mark.asyncio
    async def test_missing_subject(self, db_session, clock, validator):
        await seed(db_session, clock)
        with pytest.raises(MissingReferenceError) as exc_info:
            await validator.validate_resource(
                get_projection_config("Observation"),
                make_observation(subject="Patient/UNKNOWN"),
            )
        assert exc_info.value.field == "subject"

    @pytest.mark.asyncio
    async def test_unprefixed_result_is_wrong_type(self, db_session, clock, validator):
        """A bare result id is rejected even though Observation o1 exists."""
        await seed(db_session, clock)
        report = make_report(results=["Observation/o1", "o1"])
        with pytest.raises(WrongReferenceTypeError) as exc_info:
            await validator.validate_resource(get_projection_config("DiagnosticReport"), report)
        assert exc_info.value.field == "result[1]"

    @pytest.mark.asyncio
    async def test_missing_result(self, db_session, clock, validator):
        await seed(db_session, clock)
        report = make_report(results=["Observation/o1", "Observation/o404"])
        with pytest.raises(MissingReferenceError) as exc_info:
            await validator.validate_resource(get_projection_config("DiagnosticReport"), report)
        assert exc_info.value.field == "result[1]"

    @pytest.mark.asyncio
    async def test_subject_with_wrong_type(self, db_session, clock, validator):
        await seed(db_session, clock)
        with pytest.raises(WrongReferenceTypeError) as exc_info:
            await validator.validate_resource(
                get_projection_config("Observation"),
                make_observation(subject="Group/p1"),
            )
        assert exc_info.value.field == "subject"
