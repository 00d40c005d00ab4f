from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

import fieldsched

SCRIPT_LOCATION = Path(fieldsched.__file__).resolve().parent / "alembic"

TABLES = {
    "audit_events",
    "processing_locks",
    "job_sites",
    "recurring_services",
    "service_events",
    "manifest_entries",
    "technicians",
}


def _config(url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(SCRIPT_LOCATION))
    cfg.attributes["sqlalchemy.url"] = url
    return cfg


def test_upgrade_head_then_downgrade_base(tmp_path):
    url = f"sqlite:///{tmp_path / 'migrate.db'}"
    cfg = _config(url)

    command.upgrade(cfg, "head")
    engine = create_engine(url)
    try:
        insp = inspect(engine)
        assert TABLES <= set(insp.get_table_names())
        cols = {c["name"] for c in insp.get_columns("service_events")}
        assert {"service_id", "scheduled_date", "event_type", "action_date", "batch_id"} <= cols
        assert any(ix["name"] == "ix_audit_events_entity" for ix in insp.get_indexes("audit_events"))
    finally:
        engine.dispose()

    command.downgrade(cfg, "base")
    engine = create_engine(url)
    try:
        assert not (TABLES & set(inspect(engine).get_table_names()))
    finally:
        engine.dispose()
