# backend/app/models/credential.py
import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, DateTime, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from backend.app.db.base import Base


class Category(str, enum.Enum):
    SOCIAL = "social"
    WORK = "work"
    FINANCE = "finance"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    OTHER = "other"

    @classmethod
    def values(cls):
        return [member.value for member in cls]


class CredentialRecord(Base):
    __tablename__ = "credentials"
    __table_args__ = (
        Index("ix_credentials_owner_title_website", "owner_id", "title", "website"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # --- METADATA (searchable, returned by list queries) ---
    title = Column(String(200), nullable=False)
    website = Column(String(500), nullable=False, default="")
    username = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    category = Column(String(32), nullable=False, default=Category.OTHER.value)
    tags = Column(JSON, nullable=False, default=list)
    is_favorite = Column(Boolean, nullable=False, default=False)

    # --- SECRET (sealed by CryptoVault, hex-encoded) ---
    # The plaintext password is never stored.
    encrypted_password = Column(Text, nullable=False)
    # iv: hex-encoded (12 bytes for AES-GCM)
    iv = Column(String(32), nullable=False)

    last_accessed = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    owner = relationship("Account", back_populates="credentials")
