from __future__ import annotations

import threading
from datetime import date

from sqlalchemy import func, select

from fieldsched.db import SessionLocal
from fieldsched.domain.contracts import (
    ActionBatch,
    CompletionAction,
    STATUS_APPLY_FAILED,
    STATUS_BUSY,
    STATUS_COMMITTED,
    STATUS_INPUT_ERROR,
    STATUS_VALIDATION_FAILED,
)
from fieldsched.models import AuditEvent, ManifestEntry, ProcessingLock, RecurringService, ServiceEvent
from fieldsched.services import action_processor
from fieldsched.services.action_processor import process_batch
from fieldsched.services.locks_service import BATCH_LOCK_KEY, acquire_lock, release_lock
from fieldsched.services.schedule_service import get_pending_instances


def _events(db):
    return db.execute(
        select(ServiceEvent.service_id, ServiceEvent.scheduled_date, ServiceEvent.event_type, ServiceEvent.action_date)
        .order_by(ServiceEvent.id)
    ).all()


def _count(db, model):
    return db.scalar(select(func.count()).select_from(model))


def test_completion_writes_ledger_and_advances_last_service_date(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 1, 1))
        res = process_batch(
            db,
            {"completions": [{"service_id": svc.id, "scheduled_date": "2024-01-08", "notes": "gate code 1234"}]},
            performed_by="Dana",
            as_of=date(2024, 1, 10),
        )
        assert res.success is True
        assert res.status == STATUS_COMMITTED
        assert res.completed == 1

        db.refresh(svc)
        assert svc.last_service_date == date(2024, 1, 8)

        ev = db.scalars(select(ServiceEvent)).one()
        assert (ev.event_type, ev.scheduled_date, ev.action_date) == ("completed", date(2024, 1, 8), date(2024, 1, 8))
        assert ev.performed_by == "Dana"
        assert ev.batch_id == res.batch_id
        assert ev.job_site_name == "Maple Creek Apartments"

        pending = get_pending_instances(db, None, date(2024, 1, 22))
        assert [i.date for i in pending] == [date(2024, 1, 15), date(2024, 1, 22)]
    finally:
        db.close()


def test_late_completion_reanchors_sequence(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 1, 1))
        batch = ActionBatch(completions=(CompletionAction(svc.id, date(2024, 1, 8), date(2024, 1, 9)),))
        assert process_batch(db, batch, as_of=date(2024, 1, 10)).status == STATUS_COMMITTED

        db.refresh(svc)
        assert svc.last_service_date == date(2024, 1, 9)
        assert [i.date for i in get_pending_instances(db, None, date(2024, 1, 23))] == [date(2024, 1, 16), date(2024, 1, 23)]
    finally:
        db.close()


def test_last_service_date_never_regresses(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 1, 1))
        res = process_batch(
            db,
            {
                "completions": [
                    {"service_id": svc.id, "scheduled_date": "2024-01-08", "completion_date": "2024-01-16"},
                    {"service_id": svc.id, "scheduled_date": "2024-01-15", "completion_date": "2024-01-15"},
                ]
            },
            as_of=date(2024, 1, 17),
        )
        assert res.status == STATUS_COMMITTED
        db.refresh(svc)
        assert svc.last_service_date == date(2024, 1, 16)
    finally:
        db.close()


def test_cancellation_consumes_slot_without_manifest(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 1, 1), manifest_county="Greene")
        res = process_batch(
            db,
            {"cancellations": [{"service_id": svc.id, "scheduled_date": "2024-01-08", "notes": "site closed"}]},
            as_of=date(2024, 1, 10),
        )
        assert res.status == STATUS_COMMITTED
        assert res.cancelled == 1

        db.refresh(svc)
        assert svc.last_service_date == date(2024, 1, 8)
        assert _events(db) == [(svc.id, date(2024, 1, 8), "cancelled", None)]
        assert _count(db, ManifestEntry) == 0
    finally:
        db.close()


def test_reschedule_shifts_anchor_by_delta(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 1, 1))
        res = process_batch(
            db,
            {"reschedules": [{"service_id": svc.id, "scheduled_date": "2024-01-08", "new_date": "2024-01-05"}]},
            as_of=date(2024, 1, 2),
        )
        assert res.status == STATUS_COMMITTED
        assert res.rescheduled == 1

        db.refresh(svc)
        assert svc.last_service_date == date(2023, 12, 29)
        assert _events(db) == [(svc.id, date(2024, 1, 8), "rescheduled", date(2024, 1, 5))]
    finally:
        db.close()


def test_completion_for_manifest_service_records_quarter(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 2, 2), manifest_county="Greene")
        res = process_batch(
            db,
            {"completions": [{"service_id": svc.id, "scheduled_date": "2024-02-09", "completion_date": "2024-02-10"}]},
            as_of=date(2024, 2, 12),
        )
        assert res.status == STATUS_COMMITTED

        entries = db.scalars(select(ManifestEntry)).all()
        assert len(entries) == 1
        m = entries[0]
        assert (m.county, m.date_completed, m.quarter) == ("Greene", date(2024, 2, 10), "Q1 2024")
        assert m.service_id == svc.id
        assert m.batch_id == res.batch_id
        assert m.job_site_name == "Maple Creek Apartments"
    finally:
        db.close()


def test_order_violation_changes_nothing(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 1, 1))
        res = process_batch(
            db,
            {"completions": [{"service_id": svc.id, "scheduled_date": "2024-01-15"}]},
            as_of=date(2024, 1, 16),
        )
        assert res.status == STATUS_VALIDATION_FAILED
        assert res.success is False
        assert res.errors[0].dates == (date(2024, 1, 8),)

        db.refresh(svc)
        assert svc.last_service_date == date(2024, 1, 1)
        assert _events(db) == []
    finally:
        db.close()


def test_malformed_payload_is_an_input_error(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db)
        res = process_batch(db, {"reschedules": [{"service_id": svc.id, "scheduled_date": "2024-01-08"}]})
        assert res.status == STATUS_INPUT_ERROR
        assert res.retryable is False
        assert "new_date" in res.errors[0].message

        res = process_batch(
            db,
            {
                "completions": [{"service_id": svc.id, "scheduled_date": "2024-01-08"}],
                "cancellations": [{"service_id": svc.id, "scheduled_date": "2024-01-08"}],
            },
        )
        assert res.status == STATUS_INPUT_ERROR
        assert _events(db) == []
    finally:
        db.close()


def test_failure_mid_batch_rolls_back_everything(mk_service, monkeypatch):
    db = SessionLocal()
    try:
        first = mk_service(db, last_service_date=date(2024, 1, 1), manifest_county="Greene")
        second = mk_service(db, last_service_date=date(2024, 1, 1), site_name="Oak Ridge")
        payload = {
            "cancellations": [{"service_id": second.id, "scheduled_date": "2024-01-08"}],
            "completions": [{"service_id": first.id, "scheduled_date": "2024-01-08"}],
            "reschedules": [{"service_id": second.id, "scheduled_date": "2024-01-15", "new_date": "2024-01-17"}],
        }

        def boom(*args, **kwargs):
            raise RuntimeError("manifest store unavailable")

        monkeypatch.setattr(action_processor, "_append_manifest_entry", boom)
        res = process_batch(db, payload, as_of=date(2024, 1, 10))

        assert res.status == STATUS_APPLY_FAILED
        assert res.success is False
        assert "manifest store unavailable" in res.errors[0].message

        db.expire_all()
        assert _events(db) == []
        assert _count(db, ManifestEntry) == 0
        assert db.get(RecurringService, first.id).last_service_date == date(2024, 1, 1)
        assert db.get(RecurringService, second.id).last_service_date == date(2024, 1, 1)

        audit = db.scalars(select(AuditEvent).where(AuditEvent.entity_id == res.batch_id)).all()
        assert [a.action for a in audit] == ["batch_rolled_back"]

        # lock was released and the system is still usable
        monkeypatch.undo()
        res = process_batch(db, payload, as_of=date(2024, 1, 10))
        assert res.status == STATUS_COMMITTED
        assert (res.completed, res.cancelled, res.rescheduled) == (1, 1, 1)
        assert _count(db, ManifestEntry) == 1
    finally:
        db.close()


def test_batch_is_busy_while_another_holds_the_lock(mk_service):
    db = SessionLocal()
    other = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 1, 1))
        payload = {"completions": [{"service_id": svc.id, "scheduled_date": "2024-01-08"}]}

        assert acquire_lock(other, lock_key=BATCH_LOCK_KEY, owner="other-batch", ttl_seconds=60) is True
        other.commit()

        res = process_batch(db, payload, as_of=date(2024, 1, 10), wait_seconds=0.2)
        assert res.status == STATUS_BUSY
        assert res.retryable is True
        assert _events(db) == []

        assert release_lock(other, lock_key=BATCH_LOCK_KEY, owner="other-batch") is True
        other.commit()

        res = process_batch(db, payload, as_of=date(2024, 1, 10), wait_seconds=0.2)
        assert res.status == STATUS_COMMITTED
    finally:
        other.close()
        db.close()


def test_expired_lock_is_taken_over(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 1, 1))
        acquire_lock(db, lock_key=BATCH_LOCK_KEY, owner="crashed-worker", ttl_seconds=-5)
        db.commit()

        res = process_batch(
            db,
            {"completions": [{"service_id": svc.id, "scheduled_date": "2024-01-08"}]},
            as_of=date(2024, 1, 10),
            wait_seconds=0,
        )
        assert res.status == STATUS_COMMITTED

        lock = db.scalars(select(ProcessingLock).where(ProcessingLock.lock_key == BATCH_LOCK_KEY)).one()
        assert lock.owner != "crashed-worker"
    finally:
        db.close()


def test_release_does_not_drop_someone_elses_lock():
    db = SessionLocal()
    try:
        assert acquire_lock(db, lock_key="other", owner="a", ttl_seconds=60) is True
        db.commit()
        assert acquire_lock(db, lock_key="other", owner="b", ttl_seconds=60) is False
        assert release_lock(db, lock_key="other", owner="b") is False
        assert acquire_lock(db, lock_key="other", owner="a", ttl_seconds=60) is True
        db.commit()
    finally:
        db.close()


def _release_once(lock_key):
    s = SessionLocal()
    try:
        assert acquire_lock(s, lock_key=lock_key, owner="earlier-batch", ttl_seconds=60) is True
        s.commit()
        assert release_lock(s, lock_key=lock_key, owner="earlier-batch") is True
        s.commit()
    finally:
        s.close()


def _race(fn, names):
    barrier = threading.Barrier(len(names))
    results = {}
    errors = []

    def run(name):
        try:
            barrier.wait()
            results[name] = fn(name)
        except Exception as e:  # surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=run, args=(n,)) for n in names]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    assert errors == []
    return results


def test_two_workers_cannot_both_take_over_a_released_lock():
    # the row exists and is expired, as it is after every normal batch
    _release_once(BATCH_LOCK_KEY)

    def take(owner):
        s = SessionLocal()
        try:
            got = acquire_lock(s, lock_key=BATCH_LOCK_KEY, owner=owner, ttl_seconds=60)
            s.commit()
            return got
        finally:
            s.close()

    results = _race(take, ["batch-a", "batch-b"])
    assert sorted(results.values()) == [False, True]

    db = SessionLocal()
    try:
        lock = db.scalars(select(ProcessingLock).where(ProcessingLock.lock_key == BATCH_LOCK_KEY)).one()
        winner = [name for name, got in results.items() if got]
        assert lock.owner == winner[0]
    finally:
        db.close()


def test_concurrent_batches_apply_at_most_once(mk_service):
    db = SessionLocal()
    try:
        svc = mk_service(db, last_service_date=date(2024, 1, 1))
        sid = svc.id
    finally:
        db.close()
    _release_once(BATCH_LOCK_KEY)
    payload = {"completions": [{"service_id": sid, "scheduled_date": "2024-01-08"}]}

    def submit(name):
        s = SessionLocal()
        try:
            return process_batch(s, payload, performed_by=name, as_of=date(2024, 1, 10), wait_seconds=0).status
        finally:
            s.close()

    statuses = sorted(_race(submit, ["office-1", "office-2"]).values())
    assert statuses.count(STATUS_COMMITTED) == 1
    assert set(statuses) - {STATUS_COMMITTED} <= {STATUS_BUSY, STATUS_INPUT_ERROR}

    db = SessionLocal()
    try:
        assert _events(db) == [(sid, date(2024, 1, 8), "completed", date(2024, 1, 8))]
    finally:
        db.close()
