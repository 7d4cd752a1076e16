# backend/app/models/account.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from backend.app.db.base import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)

    # Login secret. Only authenticates the session, never gates decryption.
    hashed_password = Column(String(255), nullable=False)

    # Master secret, hashed with its own salt. Knowing one hash says nothing
    # about the other.
    hashed_master_password = Column(String(255), nullable=False)

    is_email_verified = Column(Boolean, nullable=False, default=False)
    two_factor_enabled = Column(Boolean, nullable=False, default=False)

    # Consecutive master password failures (server-side lockout)
    master_password_attempts = Column(Integer, nullable=False, default=0)
    last_master_password_attempt = Column(DateTime(timezone=True), nullable=True)

    # Preferences
    email_notifications = Column(Boolean, nullable=False, default=True)
    security_alerts = Column(Boolean, nullable=False, default=True)
    auto_logout = Column(Integer, nullable=False, default=15)  # minutes

    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    credentials = relationship(
        "CredentialRecord",
        back_populates="owner",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
