"""Patient projection model.

Indexed demographics extracted from FHIR Patient JSON. The canonical data
lives in fhir_resources.canonical_payload; this table backs name,
identifier, birthdate and gender search.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Date, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from labstore.database import Base, UTCDateTime


class PatientProjection(Base):
    """Projection table for FHIR Patient resources."""

    __tablename__ = "patient_projections"

    # Primary key is also the foreign key to fhir_resources
    fhir_resource_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("fhir_resources.id", ondelete="CASCADE"),
        primary_key=True,
    )

    family_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    given_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    identifier: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    gender: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)

    projected_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_patient_proj_family_given", "family_name", "given_name"),
    )

    def __repr__(self) -> str:
        return f"<PatientProjection(fhir_resource_id={self.fhir_resource_id}, family={self.family_name})>"
