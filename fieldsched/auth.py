# fieldsched/auth.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request

from .config import settings


@dataclass(frozen=True)
class Operator:
    email: Optional[str]
    name: Optional[str]

    @property
    def performed_by(self) -> str:
        return self.name or self.email or settings.default_performed_by


def get_operator(request: Request) -> Operator:
    """
    Operator identity for ledger rows.

    Sessions/login live in front of this service; it only reads identity
    headers:
      - auth_mode "dev": headers optional, falls back to default_performed_by
      - auth_mode "header": X-User-Email required (set by the upstream proxy)
    """
    email = (request.headers.get(settings.dev_header_user_email) or "").strip().lower() or None
    name = (request.headers.get(settings.dev_header_user_name) or "").strip() or None

    if settings.auth_mode == "header" and not email:
        raise HTTPException(status_code=401, detail=f"Missing {settings.dev_header_user_email}")

    return Operator(email=email, name=name)
