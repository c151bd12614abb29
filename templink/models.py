import enum
from typing import Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class Plan(str, enum.Enum):
    FREE = "free"
    PRO = "pro"
    BUSINESS = "business"


class TokenKind(str, enum.Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class Link(Base):
    __tablename__ = "links"

    # Equal to custom_slug when the creator chose one.
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    expires_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    max_views: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    current_views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    password_digest: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    custom_slug: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    creator_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    owner_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class AnalyticsEvent(Base):
    __tablename__ = "analytics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    link_id: Mapped[str] = mapped_column(String(64), ForeignKey("links.id"), nullable=False)
    accessed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    referer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_analytics_link_accessed", "link_id", "accessed_at"),
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)
    password_digest: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    plan: Mapped[str] = mapped_column(String(16), default=Plan.FREE.value, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_login: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Token(Base):
    __tablename__ = "tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    secret: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
