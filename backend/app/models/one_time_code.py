# backend/app/models/one_time_code.py
"""
ORM model for short-lived numeric verification codes.

One row per (email, purpose). Issuing a new code replaces the row, so at most
one code per purpose is ever actionable.

Lifecycle is stored as an explicit state column:
    pending  -> issued, not yet matched
    verified -> matched; for password resets the reset itself is still pending
    consumed -> the follow-up action completed
Expiry and attempt exhaustion are derived from ``expires_at`` and ``attempts``
at read time; nothing sweeps the table.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from backend.app.db.base import Base


class CodePurpose(str, enum.Enum):
    REGISTRATION = "registration"
    PASSWORD_RESET = "password_reset"
    TWO_FACTOR = "two_factor"


class CodeState(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    CONSUMED = "consumed"
    # Derived only, never written
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


class OneTimeCode(Base):
    __tablename__ = "one_time_codes"
    __table_args__ = (
        UniqueConstraint("email", "purpose", name="uq_one_time_codes_email_purpose"),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    purpose = Column(String(32), nullable=False)

    code = Column(String(6), nullable=False)
    state = Column(String(16), nullable=False, default=CodeState.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    consumed_at = Column(DateTime(timezone=True), nullable=True)

    # Registration only: staged profile and bcrypt hashes of both secrets.
    # The account is materialized from this once the code is verified.
    payload = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )
