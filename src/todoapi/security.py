"""Password hashing and access token helpers."""

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
from passlib.context import CryptContext
from pydantic import ValidationError as PydanticValidationError

from .config import settings
from .errors import HashingError, InvalidToken, SigningError
from .schemas import Role, TokenIdentity

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    try:
        return pwd_context.hash(password)
    except (ValueError, TypeError, RuntimeError) as exc:
        logger.exception("password hashing failed")
        raise HashingError() from exc


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Return whether ``plain_password`` matches ``password_hash``.

    A mismatch is simply ``False``; only a hash that cannot be parsed raises
    :class:`HashingError`.
    """
    try:
        return pwd_context.verify(plain_password, password_hash)
    except (ValueError, TypeError) as exc:
        logger.error("stored password hash is malformed")
        raise HashingError() from exc


def create_access_token(
    user_id: UUID, email: str, role: Role, expires_minutes: int | None = None
) -> str:
    if not settings.jwt_secret:
        raise SigningError("signing key is not configured")

    now = datetime.now(timezone.utc)
    expire_minutes = expires_minutes or settings.access_token_expire_minutes
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": Role(role).value,
        "iat": now,
        "exp": now + timedelta(minutes=expire_minutes),
    }
    try:
        return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    except (jwt.PyJWTError, NotImplementedError, TypeError, ValueError) as exc:
        logger.exception("token signing failed")
        raise SigningError() from exc


def decode_access_token(token: str) -> TokenIdentity:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub", "email", "role"]},
        )
    except jwt.ExpiredSignatureError as exc:
        logger.debug("token expired")
        raise InvalidToken() from exc
    except jwt.PyJWTError as exc:
        logger.debug("token rejected: %s", exc)
        raise InvalidToken() from exc

    try:
        return TokenIdentity(
            user_id=payload["sub"], email=payload["email"], role=payload["role"]
        )
    except PydanticValidationError as exc:
        logger.debug("token carries invalid claims")
        raise InvalidToken() from exc


def dummy_verify() -> None:
    """Spend the same time as a real verification when there is no hash."""
    pwd_context.dummy_verify()
