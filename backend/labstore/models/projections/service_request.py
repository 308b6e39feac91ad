"""ServiceRequest (lab order) projection model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from labstore.database import Base, UTCDateTime


class ServiceRequestProjection(Base):
    """Projection table for FHIR ServiceRequest resources."""

    __tablename__ = "service_request_projections"

    fhir_resource_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("fhir_resources.id", ondelete="CASCADE"),
        primary_key=True,
    )

    code: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    status: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    intent: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    category: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    priority: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    authored_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True, index=True)
    occurrence_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Requester and performer may point at Practitioner, Organization, etc.,
    # none of which live in this store, so the reference is kept verbatim.
    requester: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    performer: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)

    patient_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    projected_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_sr_proj_status_intent", "status", "intent"),
    )

    def __repr__(self) -> str:
        return f"<ServiceRequestProjection(fhir_resource_id={self.fhir_resource_id}, code={self.code})>"
