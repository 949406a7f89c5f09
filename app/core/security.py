"""
Password hashing and bearer tokens.

``TokenService.authenticate`` is the authorization gate: it turns a raw
``Authorization`` header into an ``Identity`` or raises ``UnauthorizedError``.
The checks run in a fixed order and stop at the first failure, so each
rejection carries a predictable message.
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from numbers import Real
from typing import Any, Optional

import structlog
from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.exceptions import UnauthorizedError
from app.models import Role

logger = structlog.get_logger(__name__, channel="security")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    role: str
    exp: int


@dataclass(frozen=True)
class Identity:
    """Caller identity as asserted by a verified token. Never re-checked against the store."""

    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


class TokenService:
    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expires_in: timedelta = timedelta(hours=1),
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_in = expires_in

    def issue(self, user_id: int, role: str, now: Optional[float] = None) -> str:
        issued_at = time.time() if now is None else now
        claims = {
            "user_id": user_id,
            "role": role,
            "exp": int(issued_at + self.expires_in.total_seconds()),
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str, now: Optional[float] = None) -> TokenClaims:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError:
            raise UnauthorizedError("Invalid token")
        if header.get("alg") != self.algorithm:
            logger.warning("Unexpected signing method", alg=header.get("alg"))
            raise UnauthorizedError("Invalid token")

        try:
            # exp is checked below so an expired token gets its own message
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            raise UnauthorizedError("Invalid token")

        if not isinstance(claims, Mapping):
            raise UnauthorizedError("Invalid token claims")

        current = time.time() if now is None else now
        exp = claims.get("exp")
        if not _is_number(exp) or int(exp) < int(current):
            raise UnauthorizedError("Token expired")

        user_id = claims.get("user_id")
        if not _is_number(user_id):
            raise UnauthorizedError("Invalid user ID in token")

        role = claims.get("role")
        if not isinstance(role, str):
            raise UnauthorizedError("Invalid role in token")

        return TokenClaims(user_id=int(user_id), role=role, exp=int(exp))

    def authenticate(self, authorization: Optional[str], now: Optional[float] = None) -> Identity:
        if not authorization:
            raise UnauthorizedError("No token provided")

        parts = authorization.split(" ")
        if len(parts) != 2 or parts[0] != "Bearer":
            raise UnauthorizedError("Invalid token format")

        claims = self.verify(parts[1], now=now)
        return Identity(user_id=claims.user_id, role=claims.role)
