"""
auth/tokens.py -- Token codec and password hashing.

Security design decisions:
  JWT: python-jose with HS256. sign_token() copies the caller's claims and adds
       iat/exp; verify_token() returns a Result rather than raising, with
       ExpiredSignatureError mapped to EXPIRED and every other JWTError mapped
       to MALFORMED. The secret is always passed in by the caller -- this
       module holds no key material, so an access token can only be checked
       against the access secret the caller chose.

  Passwords: bcrypt used directly (no passlib wrapper). The _DUMMY_HASH
       constant enables timing equalization in verify_password_timed() so
       response time does not reveal whether an account exists.

Layer rule: no imports from api/. Import from core/ is not needed here --
secrets arrive as arguments.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import ErrorKind, Result

logger = logging.getLogger("authserver.auth.tokens")

_ALGORITHM = "HS256"

# Added by sign_token(); stripped again by verify_token().
_RESERVED_CLAIMS = ("iat", "exp")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def sign_token(claims: dict, secret: str, expires_in: timedelta, now: datetime | None = None) -> str:
    """Encode claims into a signed JWT that expires expires_in after now.

    Args:
        claims:     Arbitrary JSON-serializable mapping. Must not contain iat/exp.
        secret:     HMAC key. Access, refresh and verification tokens each use
                    their own.
        expires_in: Lifetime of the token.
        now:        Issue time; defaults to the current UTC time. Tests pass a
                    past value to produce already-expired tokens.
    """
    issued_at = now or datetime.now(timezone.utc)
    payload = dict(claims)
    payload["iat"] = int(issued_at.timestamp())
    payload["exp"] = int((issued_at + expires_in).timestamp())
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def verify_token(token: str, secret: str) -> Result[dict]:
    """Verify signature and expiry, returning the original claims.

    EXPIRED only when the signature is good but exp has passed. Anything else
    that goes wrong (wrong secret, truncated string, bad JSON, wrong alg) is
    MALFORMED.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError:
        return Result.failure(ErrorKind.EXPIRED, "token expired")
    except JWTError as exc:
        return Result.failure(ErrorKind.MALFORMED, str(exc))
    for key in _RESERVED_CLAIMS:
        payload.pop(key, None)
    return Result.success(payload)


# ---------------------------------------------------------------------------
# Password hashing (bcrypt)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps passwords at
    128 characters, which is as far as we care to go.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Corrupt or non-bcrypt hash in the DB.
        logger.warning("Stored password hash could not be parsed")
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("authserver_timing_dummy")


def verify_password_timed(plain: str, hashed: str | None) -> bool:
    """verify_password() that still spends a bcrypt round when there is no hash.

    Call this with hashed=None for unknown accounts and federated-only users
    so the response time matches a real wrong-password attempt.
    """
    if hashed is None:
        verify_password(plain, _DUMMY_HASH)
        return False
    return verify_password(plain, hashed)
