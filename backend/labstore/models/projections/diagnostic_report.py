"""DiagnosticReport projection model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from labstore.database import Base, JsonDocument, UTCDateTime


class DiagnosticReportProjection(Base):
    """Projection table for FHIR DiagnosticReport resources (lab panels)."""

    __tablename__ = "diagnostic_report_projections"

    fhir_resource_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("fhir_resources.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # Coded panel (LOINC)
    code: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    code_display: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    category: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    effective_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    issued_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)

    # Ordered bare Observation ids from result[]
    result_ids: Mapped[list[str] | None] = mapped_column(JsonDocument, nullable=True)
    conclusion: Mapped[str | None] = mapped_column(Text, nullable=True)

    patient_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    projected_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_dr_proj_patient_code", "patient_id", "code"),
    )

    def __repr__(self) -> str:
        return f"<DiagnosticReportProjection(fhir_resource_id={self.fhir_resource_id}, code={self.code})>"
