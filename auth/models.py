"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, minimal logic). Stores and managers
do the work; these types only own the shape of the data.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class IdentityClaims:
    """Identity embedded in every access and refresh token.

    email is the stable lookup key across the user, OTP and verification
    tables; user_id is opaque to everything except the store.
    """

    user_id: str
    email: str

    def __post_init__(self) -> None:
        if not self.user_id or not self.email:
            raise ValueError("IdentityClaims requires a non-empty user_id and email")

    def to_payload(self) -> dict:
        return {"userId": self.user_id, "email": self.email}

    @classmethod
    def from_payload(cls, payload: dict) -> IdentityClaims:
        """Build claims from a decoded token payload. Raises ValueError on missing fields."""
        return cls(user_id=str(payload.get("userId") or ""), email=str(payload.get("email") or ""))


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    refresh_token: str


@dataclass
class User:
    """A login identity.

    hashed_password is None for users created through Google sign-in; they
    can still use the passwordless OTP flow. email_verified holds the ISO
    timestamp of the first successful verification, None until then.
    """

    email: str
    id: str | None = None
    name: str | None = None
    image: str | None = None
    hashed_password: str | None = None  # None = federated-only user
    email_verified: str | None = None
    created_at: str | None = None

    @property
    def is_verified(self) -> bool:
        return self.email_verified is not None


@dataclass
class Account:
    """Link between a User and a federated identity (e.g. a Google subject)."""

    user_id: str
    provider: str  # "google"
    provider_account_id: str
    type: str = "oauth"
    id: int | None = None


@dataclass
class Session:
    """Audit record of an issued refresh token. See DESIGN.md for why refresh does not read it."""

    user_id: str
    session_token: str
    expires: datetime
    id: int | None = None


@dataclass
class VerificationToken:
    email: str
    token: str  # random opaque string, wrapped in a signed JWT before mailing
    expires: datetime
    id: int | None = None


@dataclass
class OTPCredential:
    email: str
    code: str  # fixed-length numeric string
    expires: datetime
    id: int | None = None
