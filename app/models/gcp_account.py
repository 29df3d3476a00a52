from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base
from app.models.account_base import CloudAccountMixin, encrypted_text


class GcpAccount(CloudAccountMixin, Base):
    """
    A user's connection to a GCP project.

    Security:
    - project_id is public
    - the service account JSON key is encrypted at rest (AES)
    """
    __tablename__ = "gcp_accounts"
    __table_args__ = (
        UniqueConstraint('user_id', 'project_id', name='uq_user_gcp_project'),
    )

    external_id_field = "project_id"

    project_id: Mapped[str] = mapped_column(String, nullable=False)
    service_account_json: Mapped[str | None] = mapped_column(encrypted_text(), nullable=True)

    @property
    def provider(self) -> str:
        return "gcp"
