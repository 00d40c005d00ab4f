# fieldsched/services/manifest_service.py
from __future__ import annotations

import csv
from io import StringIO
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain import dates
from ..models import ManifestEntry

CSV_HEADERS = ("Date Completed", "Quarter", "County", "Job Site", "Address", "Service Type")


def list_manifest_entries(
    db: Session,
    *,
    quarter: Optional[str] = None,
    county: Optional[str] = None,
    limit: int = 1000,
) -> list[ManifestEntry]:
    q = select(ManifestEntry).order_by(ManifestEntry.date_completed.asc(), ManifestEntry.id.asc())
    if quarter:
        q = q.where(ManifestEntry.quarter == quarter.strip())
    if county:
        q = q.where(ManifestEntry.county == county.strip())
    return list(db.scalars(q.limit(limit)).all())


def manifest_quarters(db: Session) -> list[str]:
    rows = db.scalars(select(ManifestEntry.quarter).distinct()).all()

    def key(label: str) -> tuple[int, str]:
        # "Q1 2024" -> (2024, "Q1")
        q, _, year = label.partition(" ")
        return (int(year) if year.isdigit() else 0, q)

    return sorted((r for r in rows if r), key=key, reverse=True)


def export_manifest_csv(entries: list[ManifestEntry]) -> str:
    buf = StringIO()
    w = csv.writer(buf)
    w.writerow(CSV_HEADERS)
    for e in entries:
        w.writerow(
            [
                dates.format_date(e.date_completed),
                e.quarter,
                e.county,
                e.job_site_name or "",
                e.address or "",
                e.service_type or "",
            ]
        )
    return buf.getvalue()
