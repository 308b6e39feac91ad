"""initial_resources

Revision ID: 0001_initial_resources
Revises:
Create Date: 2026-10-18

Creates fhir_resources (canonical payload + version lifecycle) and the
projection tables backing search for Patient, Observation,
DiagnosticReport and ServiceRequest.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial_resources"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _projection_key() -> list[sa.Column]:
    return [
        sa.Column("fhir_resource_id", postgresql.UUID(as_uuid=True), nullable=False),
    ]


def _projection_constraints() -> list:
    return [
        sa.PrimaryKeyConstraint("fhir_resource_id"),
        sa.ForeignKeyConstraint(
            ["fhir_resource_id"],
            ["fhir_resources.id"],
            ondelete="CASCADE",
        ),
    ]


def _projected_at() -> sa.Column:
    return sa.Column("projected_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    """Create fhir_resources and the projection tables."""
    op.create_table(
        "fhir_resources",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("fhir_id", sa.String(64), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=False),
        sa.Column("canonical_payload", sa.Text(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("resource_type", "fhir_id", name="uq_fhir_type_id"),
    )
    op.create_index("ix_fhir_resources_resource_type", "fhir_resources", ["resource_type"])
    # Search ordering: live rows of one type by (last_updated, fhir_id)
    op.create_index(
        "idx_fhir_type_live_order",
        "fhir_resources",
        ["resource_type", "is_deleted", "last_updated", "fhir_id"],
    )

    # Patient
    op.create_table(
        "patient_projections",
        *_projection_key(),
        sa.Column("family_name", sa.Text(), nullable=True),
        sa.Column("given_name", sa.Text(), nullable=True),
        sa.Column("identifier", sa.Text(), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("gender", sa.Text(), nullable=True),
        _projected_at(),
        *_projection_constraints(),
    )
    op.create_index("ix_patient_projections_identifier", "patient_projections", ["identifier"])
    op.create_index("ix_patient_projections_birth_date", "patient_projections", ["birth_date"])
    op.create_index("ix_patient_projections_gender", "patient_projections", ["gender"])
    op.create_index(
        "ix_patient_proj_family_given",
        "patient_projections",
        ["family_name", "given_name"],
    )

    # Observation
    op.create_table(
        "observation_projections",
        *_projection_key(),
        sa.Column("code", sa.Text(), nullable=True),
        sa.Column("code_display", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("effective_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("value_quantity", sa.Numeric(), nullable=True),
        sa.Column("value_unit", sa.Text(), nullable=True),
        sa.Column("value_code", sa.Text(), nullable=True),
        sa.Column("patient_id", sa.String(64), nullable=True),
        _projected_at(),
        *_projection_constraints(),
    )
    for column in ("code", "status", "category", "effective_at", "patient_id"):
        op.create_index(f"ix_observation_projections_{column}", "observation_projections", [column])
    op.create_index("ix_obs_proj_patient_code", "observation_projections", ["patient_id", "code"])

    # DiagnosticReport
    op.create_table(
        "diagnostic_report_projections",
        *_projection_key(),
        sa.Column("code", sa.Text(), nullable=True),
        sa.Column("code_display", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("effective_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("result_ids", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("conclusion", sa.Text(), nullable=True),
        sa.Column("patient_id", sa.String(64), nullable=True),
        _projected_at(),
        *_projection_constraints(),
    )
    for column in ("code", "status", "category", "effective_at", "issued_at", "patient_id"):
        op.create_index(
            f"ix_diagnostic_report_projections_{column}",
            "diagnostic_report_projections",
            [column],
        )
    op.create_index("ix_dr_proj_patient_code", "diagnostic_report_projections", ["patient_id", "code"])

    # ServiceRequest
    op.create_table(
        "service_request_projections",
        *_projection_key(),
        sa.Column("code", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("intent", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        sa.Column("priority", sa.Text(), nullable=True),
        sa.Column("authored_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("occurrence_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("requester", sa.Text(), nullable=True),
        sa.Column("performer", sa.Text(), nullable=True),
        sa.Column("patient_id", sa.String(64), nullable=True),
        _projected_at(),
        *_projection_constraints(),
    )
    for column in (
        "code",
        "status",
        "intent",
        "category",
        "priority",
        "authored_at",
        "requester",
        "performer",
        "patient_id",
    ):
        op.create_index(
            f"ix_service_request_projections_{column}",
            "service_request_projections",
            [column],
        )
    op.create_index("ix_sr_proj_status_intent", "service_request_projections", ["status", "intent"])


def downgrade() -> None:
    """Drop projection tables, then fhir_resources."""
    # Indexes go with their tables
    op.drop_table("service_request_projections")
    op.drop_table("diagnostic_report_projections")
    op.drop_table("observation_projections")
    op.drop_table("patient_projections")
    op.drop_table("fhir_resources")
