"""
Columns shared by the three provider account tables.

Each provider keeps its own table (its credentials differ), but identity,
ownership, sync status and soft-delete bookkeeping are identical.
"""
from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, ForeignKey, Uuid, Text
from sqlalchemy.orm import Mapped, mapped_column, declared_attr
from sqlalchemy_utils import StringEncryptedType
from sqlalchemy_utils.types.encrypted.encrypted_type import AesEngine

from app.shared.core.config import get_settings
from app.shared.core.exceptions import ConfigurationError


class AccountStatus(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    ERROR = "error"


def _encryption_key() -> str:
    key = get_settings().ENCRYPTION_KEY
    if not key:
        # Fail closed rather than store provider secrets in plaintext
        raise ConfigurationError("ENCRYPTION_KEY not set. Cannot store credentials securely.")
    return key


def encrypted_string(length_type=String):
    """AES-encrypted column; the key is read lazily from settings."""
    return StringEncryptedType(length_type, _encryption_key, AesEngine, "pkcs5")


def encrypted_text():
    return encrypted_string(Text)


class CloudAccountMixin:
    """Identity, ownership and sync-status columns for a provider account."""

    # Subclasses name the column holding the provider-side identifier
    external_id_field: str = ""

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    @declared_attr
    def user_id(cls) -> Mapped[UUID]:
        return mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String, nullable=False)

    status: Mapped[str] = mapped_column(String, default=AccountStatus.PENDING.value, nullable=False)
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    @property
    def external_id(self) -> str:
        return getattr(self, self.external_id_field)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
