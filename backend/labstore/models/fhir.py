"""SQLAlchemy model for stored FHIR resources."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String, Text, UniqueConstraint, Uuid, false
from sqlalchemy.orm import Mapped, mapped_column

from labstore.database import Base, UTCDateTime


class FhirResource(Base):
    """FHIR resource stored with its canonical serialized payload.

    The payload text is the source of truth for every field that is not
    promoted to a projection table. ``(resource_type, fhir_id)`` is unique
    for the lifetime of the store: soft-deleted rows keep their id, so an id
    is never handed out twice.
    """

    __tablename__ = "fhir_resources"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Identifiers
    fhir_id: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Canonical FHIR JSON, meta.versionId / meta.lastUpdated stripped
    canonical_payload: Mapped[str] = mapped_column(Text, nullable=False)

    # Lifecycle
    version_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    __table_args__ = (
        UniqueConstraint("resource_type", "fhir_id", name="uq_fhir_type_id"),
        # Search ordering: live rows of one type by (last_updated, fhir_id)
        Index(
            "idx_fhir_type_live_order",
            "resource_type",
            "is_deleted",
            "last_updated",
            "fhir_id",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<FhirResource(id={self.id}, type={self.resource_type}, "
            f"fhir_id={self.fhir_id}, version={self.version_id})>"
        )
