"""User accounts: registration, sessions, verification, password management."""

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import crud
from ..errors import (
    EmailAlreadyInUse,
    EmailAlreadyRegistered,
    EmailAlreadyVerified,
    IncorrectPassword,
    InvalidCredentials,
    InvalidEmailFormat,
    PasswordTooWeak,
    UserNotFound,
)
from ..models import Plan, TokenKind, User
from ..security import PasswordHasher, SessionSigner
from ..utils import now_ms
from .notifications import MessageKind, Notifier
from .tokens import TokenService

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass
class AuthResult:
    user: User
    token: str


@dataclass
class UserStats:
    total_links: int
    total_views: int


def normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise InvalidEmailFormat()
    return email


class AccountService:
    def __init__(
        self,
        hasher: PasswordHasher,
        signer: SessionSigner,
        tokens: TokenService,
        notifier: Notifier,
        base_url: str = "http://localhost:8000",
        clock: Callable[[], int] = now_ms,
        password_min_length: int = 6,
        verification_ttl_minutes: int = 24 * 60,
        reset_ttl_minutes: int = 60,
    ):
        self.hasher = hasher
        self.signer = signer
        self.tokens = tokens
        self.notifier = notifier
        self.base_url = base_url.rstrip("/")
        self.clock = clock
        self.password_min_length = password_min_length
        self.verification_ttl_minutes = verification_ttl_minutes
        self.reset_ttl_minutes = reset_ttl_minutes
        # Verified against when the email is unknown, so login timing is uniform.
        self._dummy_digest = hasher.hash(uuid.uuid4().hex)

    def _check_strength(self, password: Optional[str]) -> None:
        if not password or len(password) < self.password_min_length:
            raise PasswordTooWeak(self.password_min_length)

    def _session_for(self, user: User) -> str:
        return self.signer.create_access_token({"sub": user.id, "email": user.email, "plan": user.plan})

    async def _notify(self, user: User, kind: MessageKind, url: str) -> None:
        delivered = await self.notifier.deliver(user.email, kind, {"name": user.name, "url": url})
        if not delivered:
            logger.warning("Email delivery failed", extra={"user_id": user.id, "message_kind": kind.value})

    async def _require_user(self, db: AsyncSession, user_id: str) -> User:
        user = await crud.get_user_by_id(db, user_id)
        if user is None:
            raise UserNotFound()
        return user

    async def register(
        self, db: AsyncSession, email: str, password: str, name: Optional[str] = None
    ) -> AuthResult:
        email = normalize_email(email)
        self._check_strength(password)
        # Deactivated accounts keep their address.
        if await crud.email_taken(db, email):
            raise EmailAlreadyRegistered()

        user = User(
            id=str(uuid.uuid4()),
            email=email,
            password_digest=self.hasher.hash(password),
            name=name,
            plan=Plan.FREE.value,
            email_verified=False,
            created_at=self.clock(),
            is_active=True,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise EmailAlreadyRegistered()

        logger.info("Account registered", extra={"user_id": user.id})
        return AuthResult(user=user, token=self._session_for(user))

    async def login(self, db: AsyncSession, email: str, password: str) -> AuthResult:
        try:
            email = normalize_email(email)
        except InvalidEmailFormat:
            raise InvalidCredentials()

        user = await crud.get_user_by_email(db, email)
        if user is None:
            self.hasher.verify(password or "", self._dummy_digest)
            raise InvalidCredentials()
        if not self.hasher.verify(password or "", user.password_digest):
            raise InvalidCredentials()

        user.last_login = self.clock()
        await db.commit()
        return AuthResult(user=user, token=self._session_for(user))

    async def get_user(self, db: AsyncSession, user_id: str) -> User:
        return await self._require_user(db, user_id)

    async def user_stats(self, db: AsyncSession, user_id: str) -> UserStats:
        total_links, total_views = await crud.owner_stats(db, user_id)
        return UserStats(total_links=total_links, total_views=total_views)

    async def update_plan(self, db: AsyncSession, user_id: str, plan: Plan) -> User:
        user = await self._require_user(db, user_id)
        user.plan = Plan(plan).value
        await db.commit()
        logger.info("Plan changed", extra={"user_id": user.id, "plan": user.plan})
        return user

    async def request_email_verification(self, db: AsyncSession, user_id: str) -> None:
        user = await self._require_user(db, user_id)
        if user.email_verified:
            raise EmailAlreadyVerified()
        secret = await self.tokens.issue_token(
            db, user.id, TokenKind.EMAIL_VERIFICATION, self.verification_ttl_minutes
        )
        await self._notify(user, MessageKind.EMAIL_VERIFICATION, f"{self.base_url}/verify?token={secret}")

    async def verify_email(self, db: AsyncSession, secret: str) -> User:
        token = await self.tokens.redeem_token(db, secret, TokenKind.EMAIL_VERIFICATION)
        user = await self._require_user(db, token.user_id)
        user.email_verified = True
        await db.commit()
        logger.info("Email verified", extra={"user_id": user.id})
        await self._notify(user, MessageKind.WELCOME, self.base_url)
        return user

    async def request_password_reset(self, db: AsyncSession, email: str) -> None:
        """Silent when no active account matches, so callers cannot probe for accounts."""
        try:
            email = normalize_email(email)
        except InvalidEmailFormat:
            return
        user = await crud.get_user_by_email(db, email)
        if user is None:
            return
        secret = await self.tokens.issue_token(db, user.id, TokenKind.PASSWORD_RESET, self.reset_ttl_minutes)
        await self._notify(user, MessageKind.PASSWORD_RESET, f"{self.base_url}/reset-password?token={secret}")

    async def reset_password(self, db: AsyncSession, secret: str, new_password: str) -> None:
        self._check_strength(new_password)
        token = await self.tokens.redeem_token(db, secret, TokenKind.PASSWORD_RESET)
        user = await self._require_user(db, token.user_id)
        user.password_digest = self.hasher.hash(new_password)
        await db.commit()
        logger.info("Password reset", extra={"user_id": user.id})

    async def change_password(
        self, db: AsyncSession, user_id: str, current_password: str, new_password: str
    ) -> None:
        user = await self._require_user(db, user_id)
        if not self.hasher.verify(current_password or "", user.password_digest):
            raise IncorrectPassword("Current password is incorrect")
        self._check_strength(new_password)
        user.password_digest = self.hasher.hash(new_password)
        await db.commit()
        logger.info("Password changed", extra={"user_id": user.id})

    async def update_profile(
        self,
        db: AsyncSession,
        user_id: str,
        name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        user = await self._require_user(db, user_id)
        if email:
            email = normalize_email(email)
            if await crud.email_taken(db, email, exclude_user_id=user.id):
                raise EmailAlreadyInUse()

        try:
            if email and email != user.email:
                user.email = email
                user.email_verified = False
                # A link mailed to the old address must not verify the new one.
                await crud.invalidate_tokens(db, user.id, TokenKind.EMAIL_VERIFICATION.value)
            if name is not None:
                user.name = name
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise EmailAlreadyInUse()
        return user

    async def deactivate_account(self, db: AsyncSession, user_id: str, password: str) -> None:
        user = await self._require_user(db, user_id)
        if not self.hasher.verify(password or "", user.password_digest):
            raise IncorrectPassword()
        user.is_active = False
        await db.commit()
        logger.info("Account deactivated", extra={"user_id": user.id})
