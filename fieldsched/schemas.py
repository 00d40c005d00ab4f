# fieldsched/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import dates
from .domain.contracts import STRATEGIES
from .domain.recurrence import canonical_frequency, frequency_options


# -------------------- Job sites --------------------

class JobSiteCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    street_number: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    zip: Optional[str] = None
    county: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class JobSiteOut(JobSiteCreate):
    id: int
    is_active: bool
    full_address: str = ""
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Technicians --------------------

class TechnicianCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=40)
    email: Optional[str] = Field(default=None, max_length=200)
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("phone", "email")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class TechnicianOut(TechnicianCreate):
    id: int
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Recurring services --------------------

class RecurringServiceCreate(BaseModel):
    job_site_id: int
    service_type: str = Field(min_length=1, max_length=120)
    frequency: str
    last_service_date: Optional[date] = None
    day_constraint: Optional[str] = None
    time_constraint: Optional[str] = None
    priority: int = 0
    notes: Optional[str] = None
    office_notes: Optional[str] = None
    manifest_county: Optional[str] = None

    @field_validator("frequency")
    @classmethod
    def _known_frequency(cls, v: str) -> str:
        label = canonical_frequency(v)
        if label is None:
            raise ValueError(f"unknown frequency {v!r}; expected one of {', '.join(frequency_options())}")
        return label

    @field_validator("day_constraint")
    @classmethod
    def _known_day(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        if dates.day_number(v) is None:
            raise ValueError(f"unknown weekday {v!r}")
        return v.strip().capitalize()

    @field_validator("manifest_county")
    @classmethod
    def _blank_county(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class RecurringServiceOut(RecurringServiceCreate):
    id: int
    is_active: bool
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Projection --------------------

class ServiceInstanceOut(BaseModel):
    service_id: int
    date: date
    original_date: date
    is_manual: bool
    priority: int
    printed: bool
    days_overdue: int = 0

    job_site_id: Optional[int] = None
    job_site_name: str = ""
    address: str = ""
    county: str = ""
    service_type: str = ""
    frequency: str = ""
    time_constraint: Optional[str] = None
    notes: Optional[str] = None
    manifest_county: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PendingSummaryOut(BaseModel):
    pending: int
    overdue: int


class ServiceManagerOut(BaseModel):
    window_end: date
    message: Optional[str] = None
    summary: PendingSummaryOut
    skipped_service_ids: List[int] = Field(default_factory=list)
    instances: List[ServiceInstanceOut]


class CalendarOut(BaseModel):
    year: int
    month: int
    days: dict[str, List[ServiceInstanceOut]]


# -------------------- Action batches --------------------

class CompletionIn(BaseModel):
    service_id: int
    scheduled_date: date
    completion_date: Optional[date] = None
    notes: Optional[str] = None


class CancellationIn(BaseModel):
    service_id: int
    scheduled_date: date
    notes: Optional[str] = None


class RescheduleIn(BaseModel):
    service_id: int
    scheduled_date: date
    # optional here so a missing value is reported as an input error in the batch result
    new_date: Optional[date] = None
    notes: Optional[str] = None


class ActionBatchIn(BaseModel):
    completions: List[CompletionIn] = Field(default_factory=list)
    cancellations: List[CancellationIn] = Field(default_factory=list)
    reschedules: List[RescheduleIn] = Field(default_factory=list)


class SmartRescheduleIn(BaseModel):
    service_ids: List[int]
    strategy: str
    new_date: date
    # error list of the rejected batch (service_id + scheduled_date per entry)
    violations: List[dict[str, Any]] = Field(default_factory=list)

    @field_validator("strategy")
    @classmethod
    def _known_strategy(cls, v: str) -> str:
        s = (v or "").strip().lower()
        if s not in STRATEGIES:
            raise ValueError(f"strategy must be one of {', '.join(STRATEGIES)}")
        return s


class PrintedItemIn(BaseModel):
    service_id: int
    scheduled_date: date


class PrintedIn(BaseModel):
    items: List[PrintedItemIn]


class BatchIssueOut(BaseModel):
    type: str
    message: str
    service_id: Optional[int] = None
    scheduled_date: Optional[date] = None
    dates: List[date] = Field(default_factory=list)


class AppliedCountsOut(BaseModel):
    completed: int = 0
    cancelled: int = 0
    rescheduled: int = 0


class BatchResultOut(BaseModel):
    success: bool
    status: str
    batch_id: str
    retryable: bool = False
    errors: List[BatchIssueOut] = Field(default_factory=list)
    warnings: List[BatchIssueOut] = Field(default_factory=list)
    applied: AppliedCountsOut = Field(default_factory=AppliedCountsOut)


# -------------------- Ledgers --------------------

class ServiceEventOut(BaseModel):
    id: int
    recorded_at: date
    batch_id: Optional[str] = None
    service_id: int
    job_site_id: Optional[int] = None
    job_site_name: Optional[str] = None
    service_type: Optional[str] = None
    scheduled_date: date
    event_type: str
    action_date: Optional[date] = None
    performed_by: Optional[str] = None
    notes: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ManifestEntryOut(BaseModel):
    id: int
    service_id: int
    job_site_id: Optional[int] = None
    job_site_name: Optional[str] = None
    address: Optional[str] = None
    service_type: Optional[str] = None
    county: str
    date_completed: date
    quarter: str
    model_config = ConfigDict(from_attributes=True)


class AuditEventOut(BaseModel):
    id: int
    actor: Optional[str] = None
    action: str
    entity_type: str
    entity_id: str
    before_json: Optional[str] = None
    after_json: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)
