from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, String, func

from .db import Base


class WebSession(Base):
    __tablename__ = "web_sessions"

    id = Column(String(64), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    # Copy of the bound token held in ``data``; lets logins tell a live session from an idle-expired one.
    session_token = Column(String(64), index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
