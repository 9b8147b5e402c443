"""SQLAlchemy async database models for CineCRM.

Master data hierarchy Site -> Audi -> Projector -> ProjectorModel, plus the
DTR and RMA service cases tracked against it.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class SiteModel(Base):
    """Cinema site; root of the location hierarchy."""

    __tablename__ = "sites"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    site_name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ProjectorModelModel(Base):
    """Projector model catalogue entry."""

    __tablename__ = "projector_models"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    model_no: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    manufacturer: Mapped[str | None] = mapped_column(Text)
    specifications: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ProjectorModel(Base):
    """Physical projector; the serial number is the cross-sheet identity key."""

    __tablename__ = "projectors"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    serial_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    projector_model_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projector_models.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    installation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class AudiModel(Base):
    """Auditorium (screen) within a site, optionally holding one projector."""

    __tablename__ = "audis"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    audi_no: Mapped[str] = mapped_column(Text, nullable=False)
    site_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("sites.id"), nullable=False, index=True
    )
    projector_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projectors.id", ondelete="SET NULL"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("site_id", "audi_no", name="uq_audi_site_number"),
    )


class UserModel(Base):
    """CRM user; cases reference creators and assignees by id."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="engineer")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class PartModel(Base):
    """Spare part catalogue entry scoped to a projector model."""

    __tablename__ = "parts"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    part_name: Mapped[str] = mapped_column(Text, nullable=False)
    part_number: Mapped[str] = mapped_column(Text, nullable=False)
    projector_model_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("projector_models.id"), nullable=False
    )
    category: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("part_number", "projector_model_id", name="uq_part_model"),
    )


class DTRCaseModel(Base):
    """Daily technical report ticket."""

    __tablename__ = "dtr_cases"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    case_number: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    error_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    site_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("sites.id"), nullable=False, index=True
    )
    audi_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("audis.id"), nullable=False, index=True
    )

    # Snapshot of the unit at import time
    unit_model: Mapped[str] = mapped_column(Text, nullable=False)
    unit_serial: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    nature_of_problem: Mapped[str] = mapped_column(Text, nullable=False)
    action_taken: Mapped[str] = mapped_column(Text, nullable=False, default="")
    remarks: Mapped[str | None] = mapped_column(Text)
    call_status: Mapped[str] = mapped_column(String(32), nullable=False, default="open")
    case_severity: Mapped[str] = mapped_column(String(16), nullable=False, default="medium")

    created_by: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    assigned_to: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class RMACaseModel(Base):
    """Return merchandise authorization ticket."""

    __tablename__ = "rma_cases"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    rma_type: Mapped[str] = mapped_column(String(16), nullable=False, default="RMA")
    call_log_number: Mapped[str | None] = mapped_column(Text, unique=True)
    rma_number: Mapped[str | None] = mapped_column(Text, unique=True)
    rma_order_number: Mapped[str | None] = mapped_column(Text)
    rma_raised_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    customer_error_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    site_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("sites.id"), nullable=False, index=True
    )
    audi_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("audis.id"), index=True
    )

    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    product_part_number: Mapped[str | None] = mapped_column(Text)
    serial_number: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    # Defective / replacement parts
    defect_details: Mapped[str | None] = mapped_column(Text)
    defective_part_name: Mapped[str | None] = mapped_column(Text)
    defective_part_number: Mapped[str | None] = mapped_column(Text)
    defective_part_serial: Mapped[str | None] = mapped_column(Text)
    is_defective_part_dnr: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    defective_part_dnr_reason: Mapped[str | None] = mapped_column(Text)
    replaced_part_number: Mapped[str | None] = mapped_column(Text)
    replaced_part_serial: Mapped[str | None] = mapped_column(Text)
    symptoms: Mapped[str | None] = mapped_column(Text)

    # Shipping
    shipping_carrier: Mapped[str | None] = mapped_column(Text)
    tracking_number_out: Mapped[str | None] = mapped_column(Text)
    shipped_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    return_tracking_number: Mapped[str | None] = mapped_column(Text)
    return_shipped_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    return_shipped_through: Mapped[str | None] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="open")
    created_by: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    assigned_to: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class AuditLogModel(Base):
    """Append-only case history.

    No foreign key to the case tables: rows are keyed by (case_id, case_type)
    and removed by the cleanup commands before the owning case.
    """

    __tablename__ = "audit_logs"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    case_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    case_type: Mapped[str] = mapped_column(String(8), nullable=False)  # DTR or RMA
    action: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    performed_by: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), ForeignKey("users.id"))
    details: Mapped[dict | None] = mapped_column(JSON)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_audit_case", "case_id", "case_type"),
    )
