"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; the _row_to_* functions are the mappers.
Route and manager code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  One-time credentials (verification tokens, OTP codes) are unique per email
  at the schema level. replace_*() deletes and inserts inside a single
  transaction, so a reader never sees two live rows and a concurrent issuer
  loses with IntegrityError instead of leaving a duplicate behind.

  consume_*() are compare-and-delete: a single DELETE whose WHERE clause holds
  every check (email, code/token, expiry). The rowcount tells the caller
  whether it won. Two concurrent verifications of the same OTP cannot both
  see rowcount == 1.

Expiry columns hold UTC epoch seconds (REAL) so the expiry comparison in the
DELETE is a plain numeric comparison on every backend.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine

from auth.models import Account, OTPCredential, Session, User, VerificationToken


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255)),
    Column("image", Text),
    Column("hashed_password", Text),  # NULL for federated-only users
    Column("email_verified", String(32)),  # ISO 8601, NULL until verified
    Column("created_at", String(32), nullable=False),
)

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(32), nullable=False),
    Column("type", String(30), nullable=False),
    Column("provider", String(30), nullable=False),
    Column("provider_account_id", String(255), nullable=False),
    UniqueConstraint("provider", "provider_account_id", name="uq_accounts_provider_subject"),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(32), nullable=False),
    Column("session_token", Text, nullable=False, unique=True),
    Column("expires", Float, nullable=False),
)

_verification_tokens = Table(
    "verification_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("expires", Float, nullable=False),
)

_otp_codes = Table(
    "otp_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("code", String(16), nullable=False),
    Column("expires", Float, nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_epoch(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def _from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for users, federated accounts, sessions and one-time credentials.

    Usage:
        store = CredentialStore(settings.database_url)
        user_id = store.create_user(User(email="a@x.com", hashed_password=hash_password("secret")))
        store.replace_otp(OTPCredential(email="a@x.com", code="482913", expires=...))
        store.consume_otp("a@x.com", "482913", now)   # True once, then False
        store.close()

    Every method lets sqlalchemy.exc.SQLAlchemyError propagate. The one-time
    manager turns it into STORE_ERROR; routes turn it into a 500.
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated opaque ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers should treat that as "account already exists" -- a concurrent
        registration may have won between their lookup and this insert.
        """
        user_id = user.id or uuid.uuid4().hex
        with self.engine.begin() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    email=user.email,
                    name=user.name,
                    image=user.image,
                    hashed_password=user.hashed_password,
                    email_verified=user.email_verified,
                    created_at=_now_iso(),
                )
            )
        return user_id

    def find_user_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def mark_email_verified(self, email: str, drop_password: bool = False) -> bool:
        """Stamp email_verified if it is not already set. Returns True if a user matched.

        drop_password=True also clears hashed_password, but only in the same
        UPDATE that stamps a previously unverified row. A password set before
        anyone proved control of the address must not survive a federated
        login vouching for it.
        """
        values: dict = {"email_verified": _now_iso()}
        if drop_password:
            values["hashed_password"] = None
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.email == email) & (_users.c.email_verified.is_(None)))
                .values(**values)
            )
            if result.rowcount:
                return True
            exists = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return exists is not None

    def update_profile(self, user_id: str, name: str | None, image: str | None) -> None:
        """Refresh display fields from a federated profile. None leaves a field unchanged."""
        fields = {k: v for k, v in (("name", name), ("image", image)) if v}
        if not fields:
            return
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))

    # ------------------------------------------------------------------
    # Federated accounts
    # ------------------------------------------------------------------

    def find_user_by_account(self, provider: str, provider_account_id: str) -> User | None:
        """Return the user linked to (provider, provider_account_id), or None."""
        linked = select(_accounts.c.user_id).where(
            (_accounts.c.provider == provider) & (_accounts.c.provider_account_id == provider_account_id)
        )
        query = _users.select().where(_users.c.id.in_(linked))
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        return _row_to_user(row) if row is not None else None

    def link_account(self, account: Account) -> int:
        """Insert a provider link. Raises IntegrityError if the identity is already linked."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    user_id=account.user_id,
                    type=account.type,
                    provider=account.provider,
                    provider_account_id=account.provider_account_id,
                )
            )
        return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, user_id: str, session_token: str, expires: datetime) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.insert().values(user_id=user_id, session_token=session_token, expires=_to_epoch(expires))
            )
        return result.inserted_primary_key[0]

    def get_session(self, session_token: str) -> Session | None:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.session_token == session_token)).fetchone()
        return _row_to_session(row) if row is not None else None

    # ------------------------------------------------------------------
    # Verification tokens
    # ------------------------------------------------------------------

    def find_verification_token(self, email: str) -> VerificationToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _verification_tokens.select().where(_verification_tokens.c.email == email)
            ).fetchone()
        return _row_to_verification_token(row) if row is not None else None

    def find_verification_token_by_token(self, token: str) -> VerificationToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _verification_tokens.select().where(_verification_tokens.c.token == token)
            ).fetchone()
        return _row_to_verification_token(row) if row is not None else None

    def delete_verification_tokens(self, email: str) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(_verification_tokens.delete().where(_verification_tokens.c.email == email))
        return result.rowcount

    def create_verification_token(self, row: VerificationToken) -> int:
        """Plain insert. Raises IntegrityError if the email already has a row -- use replace_verification_token()."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _verification_tokens.insert().values(email=row.email, token=row.token, expires=_to_epoch(row.expires))
            )
        return result.inserted_primary_key[0]

    def replace_verification_token(self, row: VerificationToken) -> None:
        """Delete every verification token for row.email and insert row, in one transaction."""
        with self.engine.begin() as conn:
            conn.execute(_verification_tokens.delete().where(_verification_tokens.c.email == row.email))
            conn.execute(
                _verification_tokens.insert().values(email=row.email, token=row.token, expires=_to_epoch(row.expires))
            )

    def consume_verification_token(self, token: str, email: str, now: datetime) -> bool:
        """Delete the row only if token, email and expiry all still match. True if this call deleted it."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _verification_tokens.delete().where(
                    (_verification_tokens.c.token == token)
                    & (_verification_tokens.c.email == email)
                    & (_verification_tokens.c.expires > _to_epoch(now))
                )
            )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # OTP codes
    # ------------------------------------------------------------------

    def find_otp(self, email: str) -> OTPCredential | None:
        with self.engine.connect() as conn:
            row = conn.execute(_otp_codes.select().where(_otp_codes.c.email == email)).fetchone()
        return _row_to_otp(row) if row is not None else None

    def delete_otps(self, email: str) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(_otp_codes.delete().where(_otp_codes.c.email == email))
        return result.rowcount

    def create_otp(self, row: OTPCredential) -> int:
        """Plain insert. Raises IntegrityError if the email already has a code -- use replace_otp()."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _otp_codes.insert().values(email=row.email, code=row.code, expires=_to_epoch(row.expires))
            )
        return result.inserted_primary_key[0]

    def replace_otp(self, row: OTPCredential) -> None:
        """Delete every OTP for row.email and insert row, in one transaction."""
        with self.engine.begin() as conn:
            conn.execute(_otp_codes.delete().where(_otp_codes.c.email == row.email))
            conn.execute(_otp_codes.insert().values(email=row.email, code=row.code, expires=_to_epoch(row.expires)))

    def consume_otp(self, email: str, code: str, now: datetime) -> bool:
        """Compare-and-delete the OTP for email. True only for the single caller that deleted a live match."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _otp_codes.delete().where(
                    (_otp_codes.c.email == email)
                    & (_otp_codes.c.code == code)
                    & (_otp_codes.c.expires > _to_epoch(now))
                )
            )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete expired sessions, verification tokens and OTP codes. Returns rows removed."""
        cutoff = _to_epoch(now or datetime.now(timezone.utc))
        removed = 0
        with self.engine.begin() as conn:
            for table in (_sessions, _verification_tokens, _otp_codes):
                removed += conn.execute(table.delete().where(table.c.expires <= cutoff)).rowcount
        return removed

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        image=row.image,
        hashed_password=row.hashed_password,
        email_verified=row.email_verified,
        created_at=row.created_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        session_token=row.session_token,
        expires=_from_epoch(row.expires),
    )


def _row_to_verification_token(row) -> VerificationToken:
    return VerificationToken(
        id=row.id,
        email=row.email,
        token=row.token,
        expires=_from_epoch(row.expires),
    )


def _row_to_otp(row) -> OTPCredential:
    return OTPCredential(
        id=row.id,
        email=row.email,
        code=row.code,
        expires=_from_epoch(row.expires),
    )
