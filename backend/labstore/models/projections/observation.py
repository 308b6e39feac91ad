"""Observation projection model."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from labstore.database import Base, UTCDateTime


class ObservationProjection(Base):
    """Projection table for FHIR Observation resources (lab results)."""

    __tablename__ = "observation_projections"

    fhir_resource_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("fhir_resources.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Coded test (LOINC)
    code: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    code_display: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    category: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    effective_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)

    # Value: numeric quantity or coded concept
    value_quantity: Mapped[Decimal | None] = mapped_column(Numeric, nullable=True)
    value_unit: Mapped[str | None] = mapped_column(Text, nullable=True)
    value_code: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Bare Patient id from subject.reference
    patient_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    projected_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_obs_proj_patient_code", "patient_id", "code"),
    )

    def __repr__(self) -> str:
        return f"<ObservationProjection(fhir_resource_id={self.fhir_resource_id}, code={self.code})>"
