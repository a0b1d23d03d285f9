from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import relationship

from .db import Base


class Role(Base):
    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("name", name="uq_roles_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(20), nullable=False)
    prefix = Column(String(10), nullable=True)
    landing_url = Column(String(200), nullable=False, default="/dashboard")

    accounts = relationship("Account", back_populates="role")


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("username", name="uq_accounts_username"),)

    id = Column(Integer, primary_key=True)
    username = Column(String(30), nullable=False)
    email = Column(String(100), nullable=False)
    first_name = Column(String(50), nullable=False, default="")
    last_name = Column(String(50), nullable=False, default="")
    password_hash = Column(String, nullable=False)
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    otp_secret = Column(String(64))
    second_factor_enabled = Column(Boolean, nullable=False, default=False)
    otp_code_hash = Column(String)
    challenge_expires_at = Column(DateTime(timezone=True))
    last_used_otp = Column(String(10))
    current_session_token = Column(String(64))
    last_login = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    role = relationship("Role", back_populates="accounts")

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.username
