"""Bearer token issuing and verification.

Tokens are HS256 JWTs carrying ``sub`` (user id), ``jti``, ``iat`` and
``exp``. The SHA-256 of every issued token is persisted; a token is only
honoured while that row exists, which is how logout and password changes
revoke it before expiry.
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from sitejo.core.exceptions import AuthenticationError

TOKEN_TYPE = "access"


@dataclass(slots=True)
class IssuedToken:
    token: str
    token_id: str
    token_hash: str
    issued_at: datetime
    expires_at: datetime

    @property
    def expires_in(self) -> int:
        return int((self.expires_at - self.issued_at).total_seconds())


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a raw token, the only form that is stored."""

    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenCodec:
    """Encode and decode signed access tokens."""

    def __init__(self, secret: str, *, algorithm: str = "HS256", ttl_seconds: int = 604800) -> None:
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self._secret = secret
        self._algorithm = algorithm
        self._ttl = timedelta(seconds=ttl_seconds)

    def issue(self, user_id: str) -> IssuedToken:
        now = datetime.now(timezone.utc)
        expires_at = now + self._ttl
        token_id = str(uuid.uuid4())
        payload = {
            "sub": user_id,
            "type": TOKEN_TYPE,
            "iat": now,
            "exp": expires_at,
            "jti": token_id,
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return IssuedToken(
            token=token,
            token_id=token_id,
            token_hash=hash_token(token),
            issued_at=now,
            expires_at=expires_at,
        )

    def decode(self, token: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token") from exc
        if payload.get("type") != TOKEN_TYPE or not payload.get("sub"):
            raise AuthenticationError("Invalid token")
        return payload
