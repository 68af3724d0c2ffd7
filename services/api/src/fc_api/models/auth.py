"""凭据相关模型。"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fc_api.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from fc_api.models.enums import CredentialStatus


class UserCredential(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """主体本地凭据：口令哈希、二次验证密钥与重置令牌。"""

    __tablename__ = "user_credentials"
    __table_args__ = (UniqueConstraint("user_id", name="uk_user_credential_user"),)

    # 用户 ID（逻辑关联 users.id，不声明数据库外键）。
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    # 口令哈希，不存明文。
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    # 凭据状态，例如 active/disabled。
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=CredentialStatus.ACTIVE)
    # 最近一次修改口令时间。
    password_updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # TOTP 密钥（base32），setup 后写入，verify 通过才真正启用。
    totp_secret: Mapped[str | None] = mapped_column(String(64))
    # 密码重置令牌摘要（sha256），不存原文。
    reset_token_hash: Mapped[str | None] = mapped_column(String(64), index=True)
    # 密码重置令牌过期时间。
    reset_token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
