from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.shared.db.base import Base
from app.models.account_base import CloudAccountMixin, encrypted_string


class AwsAccount(CloudAccountMixin, Base):
    """
    A user's connection to an AWS account.

    Security:
    - account_id/region are public
    - access keys, role ARN and external id are encrypted at rest (AES)
    """
    __tablename__ = "aws_accounts"
    __table_args__ = (
        UniqueConstraint('user_id', 'account_id', name='uq_user_aws_account'),
    )

    external_id_field = "account_id"

    # 12-digit AWS account number
    account_id: Mapped[str] = mapped_column(String(12), nullable=False)
    region: Mapped[str] = mapped_column(String, default="us-east-1")

    access_key_id: Mapped[str | None] = mapped_column(encrypted_string(), nullable=True)
    secret_access_key: Mapped[str | None] = mapped_column(encrypted_string(), nullable=True)
    role_arn: Mapped[str | None] = mapped_column(encrypted_string(), nullable=True)
    role_external_id: Mapped[str | None] = mapped_column(encrypted_string(), nullable=True)

    @property
    def provider(self) -> str:
        return "aws"
