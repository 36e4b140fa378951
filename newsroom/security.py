"""
Token codec and password hashing.

Access and refresh tokens are HS256 JWTs signed with distinct secrets and
carrying ``{userId, email, role}`` plus a ``type`` claim, so a refresh token
can never be replayed as an access token (or vice versa).  Validity is purely
a function of signature and expiry; there is no revocation list.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import bcrypt
import jwt

from newsroom.config import settings

TokenKind = Literal["access", "refresh"]


class TokenError(Exception):
    """Base class for token verification failures."""


class InvalidToken(TokenError):
    """Malformed token, bad signature or wrong token kind."""


class ExpiredToken(TokenError):
    """Well-formed token whose ``exp`` is in the past."""


def _secret_for(kind: TokenKind) -> str:
    return settings.JWT_SECRET if kind == "access" else settings.JWT_REFRESH_SECRET


def _lifetime_for(kind: TokenKind) -> timedelta:
    minutes = settings.JWT_EXPIRES_MINUTES if kind == "access" else settings.JWT_REFRESH_EXPIRES_MINUTES
    return timedelta(minutes=minutes)


def build_claims(user) -> dict[str, Any]:
    """Claims embedded in every token issued for *user*."""
    role = user.role.value if hasattr(user.role, "value") else user.role
    return {"userId": user.id, "email": user.email, "role": role}


def _issue(claims: dict[str, Any], kind: TokenKind, expires_in: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "type": kind,
        "iat": now,
        "exp": now + (expires_in if expires_in is not None else _lifetime_for(kind)),
    }
    return jwt.encode(payload, _secret_for(kind), algorithm=settings.JWT_ALGORITHM)


def issue_access_token(claims: dict[str, Any], expires_in: timedelta | None = None) -> str:
    return _issue(claims, "access", expires_in)


def issue_refresh_token(claims: dict[str, Any], expires_in: timedelta | None = None) -> str:
    return _issue(claims, "refresh", expires_in)


def issue_token_pair(user) -> dict[str, str]:
    claims = build_claims(user)
    return {
        "access_token": issue_access_token(claims),
        "refresh_token": issue_refresh_token(claims),
    }


def verify(token: str, kind: TokenKind = "access") -> dict[str, Any]:
    """
    Decode *token* and return its claims.

    Raises ``ExpiredToken`` when the signature is valid but ``exp`` has
    passed, and ``InvalidToken`` for everything else (garbage input, wrong
    secret, missing claims, or a token of the other kind).
    """
    try:
        payload = jwt.decode(
            token,
            _secret_for(kind),
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise ExpiredToken("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidToken("Invalid token") from exc

    if payload.get("type") != kind or not isinstance(payload.get("userId"), int):
        raise InvalidToken("Invalid token")
    return payload


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

def _password_bytes(password: str) -> bytes:
    # bcrypt only reads the first 72 bytes; newer releases reject longer input.
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # Stored hash is not a bcrypt hash.
        return False
