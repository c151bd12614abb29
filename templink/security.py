from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import bcrypt
import jwt

from .errors import InvalidSession

# bcrypt only reads the first 72 bytes of its input.
BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Secret-hashing collaborator: one-way, salted, adaptive."""

    def __init__(self, rounds: int = 10):
        self.rounds = rounds

    @staticmethod
    def _encode(secret: str) -> bytes:
        return secret.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def hash(self, secret: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(self._encode(secret), salt).decode("ascii")

    def verify(self, secret: str, digest: str) -> bool:
        try:
            return bcrypt.checkpw(self._encode(secret), digest.encode("ascii"))
        except ValueError:
            # Malformed digest in storage
            return False


class SessionSigner:
    """Issues and checks tamper-evident session credentials (JWT)."""

    def __init__(self, secret: str, algorithm: str = "HS256", expires_days: int = 7):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_in = timedelta(days=expires_days)

    def create_access_token(self, claims: Dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        payload = {**claims, "iat": now, "exp": now + self.expires_in}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.PyJWTError:
            raise InvalidSession()
        if not payload.get("sub"):
            raise InvalidSession()
        return payload
