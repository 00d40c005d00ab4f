# fieldsched/domain/audit.py
from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditEvent

BATCH_ENTITY = "batch"


def _plain(v: Any) -> Any:
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return v


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=str)


def row_snapshot(row: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    """JSON-ready view of selected ORM attributes (dates as ISO strings)."""
    return {f: _plain(getattr(row, f, None)) for f in fields}


def changed_fields(before: dict[str, Any], after: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Reduce two snapshots to the keys whose values differ."""
    keys = [k for k in after if before.get(k) != after.get(k)]
    return {k: before.get(k) for k in keys}, {k: after[k] for k in keys}


def audit_write(
    db: Session,
    *,
    actor: Optional[str],
    action: str,
    entity_type: str,
    entity_id: str,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    commit: bool = False,
) -> AuditEvent:
    """
    Append an audit row. Not committed unless commit=True, so a batch's
    audit row lands in the same transaction as its ledger rows.
    """
    row = AuditEvent(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=_dumps(before),
        after_json=_dumps(after),
        created_at=datetime.now(timezone.utc).replace(tzinfo=None),
    )
    db.add(row)
    if commit:
        db.commit()
        db.refresh(row)
    return row


def audit_batch(
    db: Session,
    *,
    batch_id: str,
    outcome: str,
    actor: Optional[str],
    before: dict[str, Any],
    after: dict[str, Any],
    commit: bool = False,
) -> AuditEvent:
    """One row per applied batch: action is batch_committed / batch_rolled_back."""
    return audit_write(
        db,
        actor=actor,
        action=f"batch_{outcome}",
        entity_type=BATCH_ENTITY,
        entity_id=batch_id,
        before=before,
        after=after,
        commit=commit,
    )
