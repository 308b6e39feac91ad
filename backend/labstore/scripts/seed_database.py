"""Seed the store with a small demo record set.

Creates one patient with a lipid panel (two observations and a report) and
a pending order, going through the same validation and reference checks as
the API.

Usage:
    python -m labstore.scripts.seed_database

Safe to run repeatedly: resources whose id is already taken are skipped.
"""

import asyncio
from typing import Any

from sqlalchemy import text

from labstore.database import async_session_maker, engine
from labstore.exceptions import ResourceConflictError
from labstore.projections.extractors import register_all_projections
from labstore.services.resources import ResourceService

DEMO_PATIENT_ID = "demo-patient-1"


def demo_resources() -> list[dict[str, Any]]:
    """Demo resources in dependency order (referenced targets first)."""
    subject = {"reference": f"Patient/{DEMO_PATIENT_ID}"}
    return [
        {
            "resourceType": "Patient",
            "id": DEMO_PATIENT_ID,
            "identifier": [{"system": "urn:oid:1.2.36.146.595.217.0.1", "value": "MRN-1001"}],
            "name": [{"family": "Chalmers", "given": ["Peter", "James"]}],
            "gender": "male",
            "birthDate": "1974-12-25",
        },
        {
            "resourceType": "Observation",
            "id": "demo-chol-1",
            "status": "final",
            "category": [{"coding": [{
                "system": "http://terminology.hl7.org/CodeSystem/observation-category",
                "code": "laboratory",
            }]}],
            "code": {"coding": [{"system": "http://loinc.org", "code": "2093-3",
                                 "display": "Cholesterol [Mass/volume] in Serum or Plasma"}]},
            "subject": subject,
            "effectiveDateTime": "2026-03-02T09:30:00Z",
            "valueQuantity": {"value": 6.3, "unit": "mmol/L"},
        },
        {
            "resourceType": "Observation",
            "id": "demo-hdl-1",
            "status": "final",
            "category": [{"coding": [{
                "system": "http://terminology.hl7.org/CodeSystem/observation-category",
                "code": "laboratory",
            }]}],
            "code": {"coding": [{"system": "http://loinc.org", "code": "2085-9",
                                 "display": "HDL Cholesterol"}]},
            "subject": subject,
            "effectiveDateTime": "2026-03-02T09:30:00Z",
            "valueQuantity": {"value": 1.3, "unit": "mmol/L"},
        },
        {
            "resourceType": "DiagnosticReport",
            "id": "demo-lipids-1",
            "status": "final",
            "category": [{"coding": [{
                "system": "http://terminology.hl7.org/CodeSystem/v2-0074",
                "code": "LAB",
            }]}],
            "code": {"coding": [{"system": "http://loinc.org", "code": "57698-3",
                                 "display": "Lipid panel with direct LDL"}]},
            "subject": subject,
            "effectiveDateTime": "2026-03-02T09:30:00Z",
            "issued": "2026-03-02T14:00:00Z",
            "result": [
                {"reference": "Observation/demo-chol-1"},
                {"reference": "Observation/demo-hdl-1"},
            ],
            "conclusion": "Total cholesterol elevated.",
        },
        {
            "resourceType": "ServiceRequest",
            "id": "demo-order-1",
            "status": "active",
            "intent": "order",
            "priority": "routine",
            "code": {"coding": [{"system": "http://loinc.org", "code": "4548-4",
                                 "display": "Hemoglobin A1c"}]},
            "subject": subject,
            "authoredOn": "2026-03-02",
            "requester": {"reference": "Practitioner/demo-gp"},
        },
    ]


async def verify_connection() -> bool:
    """Verify the database connection is working."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        print("  Database: connected")
    except Exception as e:
        print(f"  Database: FAILED - {e}")
        return False
    return True


async def seed_database() -> dict[str, int]:
    """Create the demo resources.

    Returns:
        Dictionary with counts: created, skipped.
    """
    stats = {"created": 0, "skipped": 0}
    register_all_projections()

    print("\nVerifying database connection...")
    if not await verify_connection():
        raise RuntimeError("Database connection verification failed")

    print("\nLoading demo resources...")
    for fhir_data in demo_resources():
        label = f"{fhir_data['resourceType']}/{fhir_data['id']}"
        async with async_session_maker() as session:
            service = ResourceService(session, fhir_data["resourceType"])
            try:
                resource = await service.create(fhir_data)
            except ResourceConflictError:
                await session.rollback()
                print(f"  {label}: exists, skipped")
                stats["skipped"] += 1
                continue
            await session.commit()
        print(f"  {label}: created (version {resource.version_id})")
        stats["created"] += 1

    return stats


def main() -> None:
    """Main entry point for the seed script."""
    print("Seeding labstore demo data")
    stats = asyncio.run(seed_database())
    print(f"\nDone: {stats['created']} created, {stats['skipped']} skipped")


if __name__ == "__main__":
    main()
