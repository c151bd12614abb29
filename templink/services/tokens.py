import logging
import uuid
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from .. import crud
from ..errors import InvalidOrExpiredToken
from ..models import Token, TokenKind
from ..utils import generate_random_code, now_ms

logger = logging.getLogger(__name__)


class TokenService:
    """Single-use, expiring secrets for email verification and password reset."""

    def __init__(
        self,
        clock: Callable[[], int] = now_ms,
        generate_secret: Callable[[int], str] = generate_random_code,
        secret_length: int = 32,
    ):
        self.clock = clock
        self.generate_secret = generate_secret
        self.secret_length = secret_length

    async def issue_token(self, db: AsyncSession, user_id: str, kind: TokenKind, ttl_minutes: int) -> str:
        token = Token(
            id=str(uuid.uuid4()),
            user_id=user_id,
            secret=self.generate_secret(self.secret_length),
            kind=kind.value,
            expires_at=self.clock() + ttl_minutes * 60 * 1000,
            used=False,
        )
        db.add(token)
        await db.commit()
        logger.info("Token issued", extra={"user_id": user_id, "token_kind": kind.value})
        return token.secret

    async def redeem_token(self, db: AsyncSession, secret: str, expected_kind: TokenKind) -> Token:
        """Claims the token for the caller; it is spent even if the caller's action fails."""
        if not secret:
            raise InvalidOrExpiredToken()
        token = await crud.get_token_by_secret(db, secret)
        if token is None or token.kind != expected_kind.value:
            raise InvalidOrExpiredToken()
        if not await crud.claim_token(db, token.id, expected_kind.value, self.clock()):
            raise InvalidOrExpiredToken()
        set_committed_value(token, "used", True)
        return token
