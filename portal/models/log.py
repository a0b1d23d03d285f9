from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, event, func

from .db import Base


class ImmutableLogMixin:
    @classmethod
    def __declare_last__(cls) -> None:
        event.listen(cls, "before_update", cls._deny_mutation)
        event.listen(cls, "before_delete", cls._deny_mutation)

    @staticmethod
    def _deny_mutation(mapper, connection, target) -> None:
        raise ValueError("Log entries are immutable")


class SystemLog(ImmutableLogMixin, Base):
    __tablename__ = "system_logs"

    id = Column(Integer, primary_key=True)
    # Plain column, not a foreign key: entries outlive the accounts they mention.
    account_id = Column(Integer, index=True)
    role_id = Column(Integer)
    action = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    details = Column(String)
    ip_address = Column(String(50))
    endpoint = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
