from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base
from app.models.account_base import CloudAccountMixin, encrypted_string


class AzureAccount(CloudAccountMixin, Base):
    """
    A user's connection to an Azure subscription via Service Principal.

    Security:
    - subscription_id is public
    - directory tenant id, client id and client secret are encrypted at rest (AES)
    """
    __tablename__ = "azure_accounts"
    __table_args__ = (
        UniqueConstraint('user_id', 'subscription_id', name='uq_user_azure_subscription'),
    )

    external_id_field = "subscription_id"

    subscription_id: Mapped[str] = mapped_column(String, nullable=False)

    directory_tenant_id: Mapped[str | None] = mapped_column(encrypted_string(), nullable=True)
    client_id: Mapped[str | None] = mapped_column(encrypted_string(), nullable=True)
    client_secret: Mapped[str | None] = mapped_column(encrypted_string(), nullable=True)

    @property
    def provider(self) -> str:
        return "azure"
