# fieldsched/routers/manifests.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas import ManifestEntryOut
from ..services.manifest_service import export_manifest_csv, list_manifest_entries, manifest_quarters

router = APIRouter(prefix="/manifests", tags=["manifests"])


@router.get("", response_model=list[ManifestEntryOut])
def list_manifests(
    quarter: Optional[str] = Query(default=None, description='e.g. "Q1 2024"'),
    county: Optional[str] = Query(default=None),
    limit: int = Query(default=1000, ge=1, le=10000),
    db: Session = Depends(get_db),
):
    return list_manifest_entries(db, quarter=quarter, county=county, limit=limit)


@router.get("/quarters")
def list_quarters(db: Session = Depends(get_db)):
    return {"quarters": manifest_quarters(db)}


@router.get("/export", response_class=PlainTextResponse)
def export_manifests(
    quarter: Optional[str] = Query(default=None),
    county: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    entries = list_manifest_entries(db, quarter=quarter, county=county, limit=100000)
    filename = "manifest-{}-{}.csv".format((quarter or "all").replace(" ", "_"), (county or "all").replace(" ", "_"))
    return PlainTextResponse(
        export_manifest_csv(entries),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
