# fieldsched/models.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# -----------------------------
# Audit trail (CRUD + batch level)
# -----------------------------
class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (Index("ix_audit_events_entity", "entity_type", "entity_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class ProcessingLock(Base):
    """Advisory lock row. One row per lock_key; expired rows may be stolen."""

    __tablename__ = "processing_locks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lock_key: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    owner: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


# -----------------------------
# Core domain: Job sites / Recurring services
# -----------------------------
class JobSite(Base):
    __tablename__ = "job_sites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    street_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    street: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    zip: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    county: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    services: Mapped[List["RecurringService"]] = relationship(back_populates="job_site")

    @property
    def full_address(self) -> str:
        street = " ".join(x for x in (self.street_number, self.street) if x)
        tail = " ".join(x for x in (self.city, self.zip) if x)
        return ", ".join(x for x in (street, tail) if x)


class Technician(Base):
    """Field crew member. Reference data only; nothing assigns work to them."""

    __tablename__ = "technicians"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


class RecurringService(Base):
    __tablename__ = "recurring_services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_site_id: Mapped[int] = mapped_column(Integer, ForeignKey("job_sites.id"), nullable=False, index=True)

    service_type: Mapped[str] = mapped_column(String(120), nullable=False)
    frequency: Mapped[str] = mapped_column(String(40), nullable=False)

    # NULL = never serviced; excluded from projection.
    last_service_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    day_constraint: Mapped[Optional[str]] = mapped_column(String(12), nullable=True)
    time_constraint: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    office_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    manifest_county: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    job_site: Mapped["JobSite"] = relationship(back_populates="services")


# -----------------------------
# Append-only ledgers
# -----------------------------
class ServiceEvent(Base):
    """
    Action history. Never updated or deleted; "is this occurrence resolved"
    is derived from completed/cancelled rows keyed by (service_id, scheduled_date).
    """

    __tablename__ = "service_events"
    __table_args__ = (Index("ix_service_events_service_scheduled", "service_id", "scheduled_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recorded_at: Mapped[date] = mapped_column(Date, nullable=False)
    batch_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True, index=True)

    service_id: Mapped[int] = mapped_column(Integer, ForeignKey("recurring_services.id"), nullable=False)

    # denormalized so the ledger survives renames
    job_site_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    job_site_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    service_type: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # completed|cancelled|rescheduled|printed

    # completion date for completed, rescheduled-to date for rescheduled
    action_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    performed_by: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ManifestEntry(Base):
    __tablename__ = "manifest_entries"
    __table_args__ = (Index("ix_manifest_entries_quarter_county", "quarter", "county"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    service_id: Mapped[int] = mapped_column(Integer, ForeignKey("recurring_services.id"), nullable=False, index=True)
    batch_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    job_site_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    job_site_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    service_type: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    county: Mapped[str] = mapped_column(String(120), nullable=False)
    date_completed: Mapped[date] = mapped_column(Date, nullable=False)
    quarter: Mapped[str] = mapped_column(String(10), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
