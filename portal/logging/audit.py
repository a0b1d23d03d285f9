from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from portal.models import SystemLog


class AuditLogger:
    """Persists the portal's activity trail.

    Recording is fire-and-forget: a failing write is rolled back and logged,
    never raised into the operation that triggered it.
    """

    def __init__(self, session: Session, logger: logging.Logger | None = None) -> None:
        self.session = session
        self.logger = logger or logging.getLogger("portal.audit")

    def record(
        self,
        action: str,
        status: str,
        details: str,
        account_id: int | None = None,
        role_id: int | None = None,
        ip_address: str | None = None,
        endpoint: str | None = None,
    ) -> SystemLog | None:
        entry = SystemLog(
            action=action,
            status=status,
            details=details,
            account_id=account_id,
            role_id=role_id,
            ip_address=ip_address or "unknown",
            endpoint=endpoint,
        )
        try:
            self._persist(entry)
        except Exception:
            self.logger.exception("Failed to persist audit entry action=%s status=%s", action, status)
            return None
        return entry

    def _persist(self, entry: Any) -> None:
        self.session.add(entry)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(entry)
        self._log_entry(entry)

    def _log_entry(self, entry: Any) -> None:
        payload = {"category": "system_log"}
        for column in entry.__table__.columns:
            payload[column.name] = getattr(entry, column.name)
        self.logger.info(json.dumps(payload, default=str))
