"""
auth/store.py -- Account persistence: the contract the state machine needs,
and a SQLAlchemy Core implementation of it.

Pattern: Repository + Data Mapper.
AccountStore is the Protocol the state machine depends on. SqlAccountStore is
the repository; _row_to_account is the mapper. The state machine never
touches SQL directly and works with any object that satisfies the Protocol.

Contract:
  create()  -- raises AccountConflictError when the email is already taken.
               Uniqueness is a UNIQUE constraint, so two racing signups for
               one email cannot both succeed.
  save()    -- writes every mutable column of one account in a single UPDATE
               statement inside one transaction. Concurrent saves on the same
               account are last-writer-wins; no field-level interleaving.
  find_by_reset_token() -- only matches tokens whose expiry is after `now`.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or mail/.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import AccountConflictError
from auth.models import Account, normalize_email
from core.clock import Clock, utc_now

logger = logging.getLogger("accounts.auth.store")

_DEFAULT_DB_URL = "sqlite:///accounts.db"

# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class AccountStore(Protocol):
    """Persistence operations the credential state machine relies on."""

    def find_by_email(self, email: str) -> Account | None: ...

    def find_by_id(self, account_id: int) -> Account | None: ...

    def find_by_reset_token(self, token: str, now: datetime) -> Account | None: ...

    def create(self, account: Account) -> Account: ...

    def save(self, account: Account) -> None: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("name", String(255), nullable=False),
    Column("is_verified", Boolean, nullable=False, server_default="0"),
    Column("verification_code", String(16)),
    Column("verification_expires_at", DateTime(timezone=True)),
    Column("reset_token", String(128), index=True),
    Column("reset_token_expires_at", DateTime(timezone=True)),
    Column("last_login_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands DateTime columns back naive even with timezone=True.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlAccountStore:
    """SQLAlchemy Core implementation of AccountStore.

    Usage:
        store = SqlAccountStore("sqlite:///accounts.db")
        account = store.create(Account(email="a@x.com", password_hash=h, name="Ann"))
        store.find_by_email("A@X.com")  # lookup is case-insensitive via normalization
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, timeout: float = 5.0, clock: Clock = utc_now) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        self._clock = clock
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by email. The argument is normalized first."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_reset_token(self, token: str, now: datetime) -> Account | None:
        """Return the account holding this reset token, if it has not expired.

        The indexed equality lookup narrows to at most one row; the caller
        still re-compares the token in constant time before acting on it.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _accounts.select().where(
                    (_accounts.c.reset_token == token) & (_accounts.c.reset_token_expires_at.is_not(None))
                )
            ).fetchone()
        if row is None:
            return None
        account = _row_to_account(row)
        # Compare in Python: SQLite stores naive datetimes, so a SQL-side
        # comparison against an aware `now` is unreliable.
        if account.reset_token_expires_at is None or account.reset_token_expires_at <= now:
            return None
        return account

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, account: Account) -> Account:
        """Insert a new account and return it with id and timestamps filled in.

        Raises AccountConflictError if the email is already registered.
        """
        now = self._clock()
        email = normalize_email(account.email)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        email=email,
                        password_hash=account.password_hash,
                        name=account.name,
                        is_verified=account.is_verified,
                        verification_code=account.verification_code,
                        verification_expires_at=account.verification_expires_at,
                        reset_token=account.reset_token,
                        reset_token_expires_at=account.reset_token_expires_at,
                        last_login_at=account.last_login_at,
                        created_at=now,
                        updated_at=now,
                    )
                )
                account_id = result.inserted_primary_key[0]
        except IntegrityError as exc:
            raise AccountConflictError(email) from exc
        return replace(account, id=account_id, email=email, created_at=now, updated_at=now)

    def save(self, account: Account) -> None:
        """Persist every mutable field of an existing account in one UPDATE.

        email and created_at are immutable and never written here. Raises
        LookupError if the account no longer exists.
        """
        if account.id is None:
            raise ValueError("save() requires an account that has been created")
        now = self._clock()
        with self.engine.begin() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account.id)
                .values(
                    password_hash=account.password_hash,
                    name=account.name,
                    is_verified=account.is_verified,
                    verification_code=account.verification_code,
                    verification_expires_at=account.verification_expires_at,
                    reset_token=account.reset_token,
                    reset_token_expires_at=account.reset_token_expires_at,
                    last_login_at=account.last_login_at,
                    updated_at=now,
                )
            )
        if result.rowcount == 0:
            raise LookupError(f"account {account.id} not found")
        account.updated_at = now

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except Exception:
            logger.exception("Account store health check failed")
            return False
        return True

    def count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM accounts")).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        name=row.name,
        is_verified=bool(row.is_verified),
        verification_code=row.verification_code,
        verification_expires_at=_as_utc(row.verification_expires_at),
        reset_token=row.reset_token,
        reset_token_expires_at=_as_utc(row.reset_token_expires_at),
        last_login_at=_as_utc(row.last_login_at),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )
