# fieldsched/cli/__main__.py
from __future__ import annotations

import argparse

from ..db import SessionLocal, init_db
from ..domain import dates
from ..services.schedule_service import days_overdue, project_pending, summarize_pending
from .seed_demo import seed_demo


def _pending(end: str | None) -> None:
    t = dates.today()
    window_end, message = dates.clamp_window_end(end, as_of=t) if end else (None, None)
    if message:
        print(message)

    db = SessionLocal()
    try:
        report = project_pending(db, None, window_end, as_of=t)
    finally:
        db.close()

    for i in report.instances:
        overdue = days_overdue(i, t)
        flag = f"  OVERDUE {overdue}d" if overdue else ""
        manual = "  (rescheduled)" if i.is_manual else ""
        print(f"{dates.format_date(i.date)}  #{i.service_id:<5} {i.job_site_name} | {i.service_type}{manual}{flag}")

    summary = summarize_pending(report.instances, t)
    print({"ok": True, **summary, "skipped_services": report.skipped_service_ids})


def main() -> None:
    p = argparse.ArgumentParser(prog="fieldsched")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db", help="create tables directly (local dev)")
    sub.add_parser("seed-demo", help="insert demo job sites and services")
    pp = sub.add_parser("pending", help="list pending instances (all overdue + window)")
    pp.add_argument("--end", default=None, help="window end, YYYY-MM-DD")

    args = p.parse_args()

    if args.cmd == "init-db":
        init_db()
        print({"ok": True})
    elif args.cmd == "seed-demo":
        init_db()
        out = seed_demo()
        print({"ok": True, "job_site_ids": out.job_site_ids, "service_ids": out.service_ids})
    elif args.cmd == "pending":
        _pending(args.end)


if __name__ == "__main__":
    main()
