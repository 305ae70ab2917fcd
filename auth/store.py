"""
auth/store.py -- SQLAlchemy Core persistence layer for the identity aggregate.

Pattern: Repository + Data Mapper. CredentialStore is the repository;
_row_to_user / _row_to_token are the mappers. Route, issuer and CLI code never
touch SQL directly.

Aggregate: a User plus its role links and refresh tokens is one consistency
boundary. Every mutation of an aggregate
  1. runs on the store's worker pool so the caller's timeout bounds it,
  2. holds that user's lock (per-user threading.Lock registry),
  3. executes inside a single engine.begin() transaction.
Any SQLAlchemyError rolls the transaction back and surfaces as
PersistenceError. Business errors raised mid-transaction (RoleNotFound,
InvalidCredentials, ...) roll back the same way. Nothing is retried.

Reads run on the pool too (bounded by the timeout) but take no lock.

A call that times out raises OperationTimeout to the caller. The worker is not
interrupted, but a mutation checks the deadline again before committing and
rolls back if it has passed, so a timed-out write never applies.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Refresh tokens are stored as HMAC digests (see auth/tokens.py). Removed
  digests go to revoked_tokens so a token string can never validate again.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
import weakref
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from datetime import datetime, timezone
from typing import Any, TypeVar

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    and_,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    InvalidCredentials,
    OperationTimeout,
    PersistenceError,
    RoleNotFound,
    TokenExpired,
    TokenNotFound,
    TokenRevoked,
    UserNotFound,
    ValidationError,
)
from auth.models import RefreshToken, Role, User
from auth.passwords import DUMMY_HASH, PasswordPolicy, check_username, hash_password
from auth.passwords import verify_password as _check_password

logger = logging.getLogger("identity.store")

T = TypeVar("T")

_DEFAULT_TIMEOUT = 10.0

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("username", String(255), nullable=False),
    Column("normalized_username", String(255), nullable=False, unique=True),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    # casefold() twins for search; SQLite lower() only folds ASCII.
    Column("first_name_normalized", String(100), nullable=False, server_default=""),
    Column("last_name_normalized", String(100), nullable=False, server_default=""),
    Column("hashed_password", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("name", String(256), primary_key=True),
    Column("normalized_name", String(256), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

_user_roles = Table(
    "user_roles",
    _metadata,
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role_name", String(256), ForeignKey("roles.name"), nullable=False),
    PrimaryKeyConstraint("user_id", "role_name"),
)

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("issued_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
)

# Tombstones outlive their user on purpose: the digest must stay unusable.
_revoked_tokens = Table(
    "revoked_tokens",
    _metadata,
    Column("token_hash", String(64), primary_key=True),
    Column("user_id", String(36), nullable=False),
    Column("revoked_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign-key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. Foreign keys make role assignment and token
    insertion fail inside the transaction if the referenced row vanished.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _now_iso() -> str:
    return _now().isoformat()


def _normalize(value: str) -> str:
    return value.strip().upper()


def _fold(value: str) -> str:
    """Caseless form of a name for prefix search."""
    return value.strip().casefold()


class _UserLocks:
    """Registry of one lock per user id.

    Entries are weak: a lock lives only while some caller holds a reference to
    it, so ids of missing or deleted users do not accumulate.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()

    def get(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def __contains__(self, user_id: str) -> bool:
        with self._guard:
            return user_id in self._locks


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for users, roles, and refresh-token persistence.

    Usage:
        store = CredentialStore("sqlite:///identity.db")
        store.create_role("Patient")
        uid = store.create_user(User(username="alice", first_name="Alice"), "P@ss1")
        store.assign_role(uid, "Patient")
        store.verify_password(uid, "P@ss1")   # True
        store.close()

    Every public method takes an optional `timeout` in seconds; the default is
    the `timeout` given to the constructor.
    """

    def __init__(
        self,
        db_url: str,
        policy: PasswordPolicy | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        workers: int = 8,
    ) -> None:
        self.policy = policy or PasswordPolicy()
        self.timeout = timeout
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        _metadata.create_all(self.engine)
        self._locks = _UserLocks()
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="credential-store")

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    def _deadline(self, timeout: float | None) -> float:
        return time.monotonic() + (self.timeout if timeout is None else timeout)

    def _bounded(self, fn: Callable[[], T], deadline: float) -> T:
        """Run fn on the worker pool and wait until the deadline at most."""
        future = self._executor.submit(fn)
        try:
            return future.result(timeout=max(0.0, deadline - time.monotonic()))
        except OperationTimeout:
            raise
        except FuturesTimeout as exc:
            future.cancel()
            raise OperationTimeout("Operation did not complete within the allotted time.") from exc

    def _read(self, work: Callable[[Connection], T], timeout: float | None) -> T:
        def run() -> T:
            try:
                with self.engine.connect() as conn:
                    return work(conn)
            except SQLAlchemyError as exc:
                logger.error("Read failed: %s", exc)
                raise PersistenceError("Storage read failed.") from exc

        return self._bounded(run, self._deadline(timeout))

    def _write(self, work: Callable[[Connection], T], timeout: float | None, user_id: str | None = None) -> T:
        """Run work in one transaction, holding user_id's lock when given."""
        deadline = self._deadline(timeout)

        def run() -> T:
            lock = self._locks.get(user_id) if user_id is not None else None
            if lock is not None and not lock.acquire(timeout=max(0.0, deadline - time.monotonic())):
                raise OperationTimeout("Timed out waiting for the user record lock.")
            # The caller may already have given up; never start work after the deadline.
            if time.monotonic() >= deadline:
                if lock is not None:
                    lock.release()
                raise OperationTimeout("Deadline passed before the write could start.")
            try:
                with self.engine.begin() as conn:
                    result = work(conn)
                    # Raising inside begin() rolls back: a caller told "timeout" sees no change.
                    if time.monotonic() >= deadline:
                        raise OperationTimeout("Deadline passed before the write could commit.")
                    return result
            except SQLAlchemyError as exc:
                logger.error("Write failed (user=%s): %s", user_id, exc)
                raise PersistenceError("Storage write failed; no changes were applied.") from exc
            finally:
                if lock is not None:
                    lock.release()

        return self._bounded(run, deadline)

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, name: str, timeout: float | None = None) -> Role:
        """Create a role. Raises ValidationError if the name is blank or taken."""
        name = name.strip()
        if not name or len(name) > 256:
            raise ValidationError("Role name must be 1-256 characters.")

        def work(conn: Connection) -> Role:
            if _find_role(conn, name) is not None:
                raise ValidationError(f"Role '{name}' already exists.")
            created_at = _now_iso()
            try:
                conn.execute(_roles.insert().values(name=name, normalized_name=_normalize(name), created_at=created_at))
            except IntegrityError as exc:
                raise ValidationError(f"Role '{name}' already exists.") from exc
            return Role(name=name, created_at=created_at)

        role = self._write(work, timeout)
        logger.info("Role created: %s", name)
        return role

    def ensure_roles(self, names: Iterable[str], timeout: float | None = None) -> list[str]:
        """Create any of the given roles that do not exist yet. Returns the names created."""
        wanted = [n.strip() for n in names if n.strip()]

        def work(conn: Connection) -> list[str]:
            created: list[str] = []
            for name in wanted:
                if _find_role(conn, name) is None:
                    conn.execute(
                        _roles.insert().values(name=name, normalized_name=_normalize(name), created_at=_now_iso())
                    )
                    created.append(name)
            return created

        return self._write(work, timeout)

    def role_exists(self, name: str, timeout: float | None = None) -> bool:
        return self._read(lambda conn: _find_role(conn, name) is not None, timeout)

    def list_roles(self, timeout: float | None = None) -> list[Role]:
        def work(conn: Connection) -> list[Role]:
            rows = conn.execute(select(_roles).order_by(_roles.c.name)).fetchall()
            return [Role(name=r.name, created_at=r.created_at) for r in rows]

        return self._read(work, timeout)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def has_users(self, timeout: float | None = None) -> bool:
        """Return True if at least one user record exists."""

        def work(conn: Connection) -> bool:
            return (conn.execute(select(func.count()).select_from(_users)).scalar() or 0) > 0

        return self._read(work, timeout)

    def get_by_id(self, user_id: str, timeout: float | None = None) -> User | None:
        def work(conn: Connection) -> User | None:
            row = conn.execute(select(_users).where(_users.c.id == user_id)).fetchone()
            return _load_users(conn, [row])[0] if row is not None else None

        return self._read(work, timeout)

    def find_by_username(self, username: str, timeout: float | None = None) -> User | None:
        """Look up a user by username, ignoring case. Returns None if not found."""

        def work(conn: Connection) -> User | None:
            row = conn.execute(
                select(_users).where(_users.c.normalized_username == _normalize(username))
            ).fetchone()
            return _load_users(conn, [row])[0] if row is not None else None

        return self._read(work, timeout)

    def list_users(self, timeout: float | None = None) -> list[User]:
        """Return all users ordered by username."""

        def work(conn: Connection) -> list[User]:
            rows = conn.execute(select(_users).order_by(_users.c.normalized_username)).fetchall()
            return _load_users(conn, rows)

        return self._read(work, timeout)

    def search_by_name(self, first: str, last: str, timeout: float | None = None) -> list[User]:
        """Find users whose names start with (first, last) in either order.

        Matches (first_name ^first AND last_name ^last) OR
        (first_name ^last AND last_name ^first), case-insensitively.
        LIKE wildcards in the query are escaped, so "%" matches a literal "%".
        """
        first, last = _fold(first), _fold(last)
        fn, ln = _users.c.first_name_normalized, _users.c.last_name_normalized
        condition = or_(
            and_(fn.startswith(first, autoescape=True), ln.startswith(last, autoescape=True)),
            and_(fn.startswith(last, autoescape=True), ln.startswith(first, autoescape=True)),
        )

        def work(conn: Connection) -> list[User]:
            rows = conn.execute(select(_users).where(condition).order_by(_users.c.normalized_username)).fetchall()
            return _load_users(conn, rows)

        return self._read(work, timeout)

    def get_user_roles(self, user_id: str, timeout: float | None = None) -> list[str]:
        """Return the user's role names, sorted. Raises UserNotFound."""

        def work(conn: Connection) -> list[str]:
            _require_user(conn, user_id)
            return sorted(_roles_by_user(conn, [user_id]).get(user_id, set()))

        return self._read(work, timeout)

    # ------------------------------------------------------------------
    # User mutations
    # ------------------------------------------------------------------

    def create_user(self, user: User, password: str, timeout: float | None = None) -> str:
        """Insert a new user and return its id.

        Raises ValidationError if the username is malformed or already taken
        (case-insensitively) or the password fails policy. Any roles already
        set on `user` are assigned in the same transaction; a missing one
        raises RoleNotFound and nothing is stored.
        """
        check_username(user.username)
        self.policy.check(password)
        user_id = user.id or str(uuid.uuid4())

        def work(conn: Connection) -> str:
            normalized = _normalize(user.username)
            taken = conn.execute(select(_users.c.id).where(_users.c.normalized_username == normalized)).fetchone()
            if taken is not None:
                raise ValidationError(f"Username '{user.username}' is already taken.")
            try:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        username=user.username,
                        normalized_username=normalized,
                        first_name=user.first_name,
                        last_name=user.last_name,
                        first_name_normalized=_fold(user.first_name),
                        last_name_normalized=_fold(user.last_name),
                        hashed_password=hash_password(password),
                        created_at=_now_iso(),
                    )
                )
            except IntegrityError as exc:
                raise ValidationError(f"Username '{user.username}' is already taken.") from exc
            for role_name in sorted(user.roles):
                _add_role(conn, user_id, role_name)
            return user_id

        created = self._write(work, timeout, user_id=user_id)
        logger.info("User created: %s (%s)", user.username, created)
        return created

    def assign_role(self, user_id: str, role_name: str, timeout: float | None = None) -> None:
        """Add role_name to the user's role set. Idempotent.

        The existence check and the insert share one transaction, and the
        user_roles foreign key rejects a role removed in between, so the
        assignment is atomic. Raises UserNotFound or RoleNotFound.
        """

        def work(conn: Connection) -> None:
            _require_user(conn, user_id)
            _add_role(conn, user_id, role_name)

        self._write(work, timeout, user_id=user_id)
        logger.info("Role %s assigned to user %s", role_name, user_id)

    def verify_password(self, user_id: str, password: str, timeout: float | None = None) -> bool:
        """Return True if password matches the stored hash.

        Unknown users return False after a bcrypt round against a dummy hash,
        so the call costs the same either way. Never raises on mismatch.
        """

        def work(conn: Connection) -> bool:
            hashed = conn.execute(select(_users.c.hashed_password).where(_users.c.id == user_id)).scalar()
            if hashed is None:
                _check_password(password, DUMMY_HASH)
                return False
            return _check_password(password, hashed)

        return self._read(work, timeout)

    def change_password(self, user_id: str, old_password: str, new_password: str, timeout: float | None = None) -> None:
        """Replace the password hash after re-verifying the old password.

        Every refresh token of the user is revoked in the same transaction.
        Raises InvalidCredentials if old_password does not verify (unknown
        users included), ValidationError if new_password fails policy.
        """
        self.policy.check(new_password)

        def work(conn: Connection) -> None:
            hashed = conn.execute(select(_users.c.hashed_password).where(_users.c.id == user_id)).scalar()
            if hashed is None:
                _check_password(old_password, DUMMY_HASH)
                raise InvalidCredentials("Invalid credentials.")
            if not _check_password(old_password, hashed):
                raise InvalidCredentials("Invalid credentials.")
            conn.execute(
                _users.update().where(_users.c.id == user_id).values(hashed_password=hash_password(new_password))
            )
            _revoke_all(conn, user_id)

        self._write(work, timeout, user_id=user_id)
        logger.info("Password changed for user %s; refresh tokens revoked", user_id)

    def delete_user(self, user_id: str, timeout: float | None = None) -> None:
        """Delete the user, its role links, and all of its refresh tokens.

        Token digests are moved to revoked_tokens first so they stay unusable.
        Raises UserNotFound.
        """

        def work(conn: Connection) -> int:
            _require_user(conn, user_id)
            revoked = _revoke_all(conn, user_id)
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            conn.execute(_users.delete().where(_users.c.id == user_id))
            return revoked

        revoked = self._write(work, timeout, user_id=user_id)
        logger.info("User %s deleted (%d refresh token(s) revoked)", user_id, revoked)

    # ------------------------------------------------------------------
    # Refresh-token persistence (used by auth.issuer.TokenIssuer)
    # ------------------------------------------------------------------

    def add_refresh_token(self, token: RefreshToken, timeout: float | None = None) -> bool:
        """Persist token.token_hash against its user.

        Returns False without writing if the digest is live or was ever
        revoked, so a removed token string is never reissued. Raises
        UserNotFound if the owner is gone.
        """

        def work(conn: Connection) -> bool:
            _require_user(conn, token.user_id)
            if _digest_in_use(conn, token.token_hash):
                return False
            _insert_token(conn, token)
            return True

        return self._write(work, timeout, user_id=token.user_id)

    def find_refresh_token(self, token_hash: str, timeout: float | None = None) -> RefreshToken | None:
        def work(conn: Connection) -> RefreshToken | None:
            row = conn.execute(select(_refresh_tokens).where(_refresh_tokens.c.token_hash == token_hash)).fetchone()
            return _row_to_token(row) if row is not None else None

        return self._read(work, timeout)

    def is_revoked(self, token_hash: str, timeout: float | None = None) -> bool:
        def work(conn: Connection) -> bool:
            row = conn.execute(
                select(_revoked_tokens.c.token_hash).where(_revoked_tokens.c.token_hash == token_hash)
            ).fetchone()
            return row is not None

        return self._read(work, timeout)

    def remove_refresh_token(self, user_id: str, token_hash: str, timeout: float | None = None) -> bool:
        """Remove one of the user's tokens. Returns False if it was not there."""
        return self._write(lambda conn: _revoke(conn, user_id, token_hash), timeout, user_id=user_id)

    def remove_all_refresh_tokens(self, user_id: str, timeout: float | None = None) -> int:
        """Remove every token of the user. Returns the number removed."""
        return self._write(lambda conn: _revoke_all(conn, user_id), timeout, user_id=user_id)

    def replace_refresh_token(
        self, user_id: str, old_hash: str, new_token: RefreshToken, timeout: float | None = None
    ) -> bool:
        """Swap old_hash for new_token in one transaction (token rotation).

        Raises TokenRevoked / TokenNotFound if old_hash is no longer the
        user's live token, TokenExpired if it has expired. Returns False,
        leaving the old token in place, if the new digest is unusable.
        """

        def work(conn: Connection) -> bool:
            row = conn.execute(
                select(_refresh_tokens).where(
                    (_refresh_tokens.c.token_hash == old_hash) & (_refresh_tokens.c.user_id == user_id)
                )
            ).fetchone()
            if row is None:
                if _is_tombstoned(conn, old_hash):
                    raise TokenRevoked("Refresh token has been revoked.")
                raise TokenNotFound("Refresh token not found.")
            if _row_to_token(row).is_expired(new_token.issued_at):
                raise TokenExpired("Refresh token has expired.")
            if _digest_in_use(conn, new_token.token_hash):
                return False
            _revoke(conn, user_id, old_hash)
            _insert_token(conn, new_token)
            return True

        return self._write(work, timeout, user_id=user_id)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Transaction-scoped helpers (called with the user lock already held)
# ---------------------------------------------------------------------------


def _require_user(conn: Connection, user_id: str) -> None:
    if conn.execute(select(_users.c.id).where(_users.c.id == user_id)).fetchone() is None:
        raise UserNotFound(f"User '{user_id}' not found.")


def _find_role(conn: Connection, name: str) -> Any:
    return conn.execute(select(_roles).where(_roles.c.normalized_name == _normalize(name))).fetchone()


def _add_role(conn: Connection, user_id: str, role_name: str) -> None:
    role = _find_role(conn, role_name)
    if role is None:
        raise RoleNotFound(f"Role '{role_name}' does not exist.")
    linked = conn.execute(
        select(_user_roles.c.user_id).where((_user_roles.c.user_id == user_id) & (_user_roles.c.role_name == role.name))
    ).fetchone()
    if linked is None:
        conn.execute(_user_roles.insert().values(user_id=user_id, role_name=role.name))


def _is_tombstoned(conn: Connection, token_hash: str) -> bool:
    row = conn.execute(select(_revoked_tokens.c.token_hash).where(_revoked_tokens.c.token_hash == token_hash)).fetchone()
    return row is not None


def _digest_in_use(conn: Connection, token_hash: str) -> bool:
    live = conn.execute(
        select(_refresh_tokens.c.id).where(_refresh_tokens.c.token_hash == token_hash)
    ).fetchone()
    return live is not None or _is_tombstoned(conn, token_hash)


def _insert_token(conn: Connection, token: RefreshToken) -> None:
    conn.execute(
        _refresh_tokens.insert().values(
            token_hash=token.token_hash,
            user_id=token.user_id,
            issued_at=token.issued_at.isoformat(),
            expires_at=token.expires_at.isoformat(),
        )
    )


def _revoke(conn: Connection, user_id: str, token_hash: str) -> bool:
    result = conn.execute(
        _refresh_tokens.delete().where(
            (_refresh_tokens.c.token_hash == token_hash) & (_refresh_tokens.c.user_id == user_id)
        )
    )
    if result.rowcount == 0:
        return False
    conn.execute(_revoked_tokens.insert().values(token_hash=token_hash, user_id=user_id, revoked_at=_now_iso()))
    return True


def _revoke_all(conn: Connection, user_id: str) -> int:
    hashes = conn.execute(
        select(_refresh_tokens.c.token_hash).where(_refresh_tokens.c.user_id == user_id)
    ).scalars().all()
    if not hashes:
        return 0
    revoked_at = _now_iso()
    conn.execute(
        _revoked_tokens.insert(),
        [{"token_hash": h, "user_id": user_id, "revoked_at": revoked_at} for h in hashes],
    )
    conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.user_id == user_id))
    return len(hashes)


def _roles_by_user(conn: Connection, user_ids: list[str]) -> dict[str, set[str]]:
    result: dict[str, set[str]] = {}
    if not user_ids:
        return result
    rows = conn.execute(select(_user_roles).where(_user_roles.c.user_id.in_(user_ids))).fetchall()
    for r in rows:
        result.setdefault(r.user_id, set()).add(r.role_name)
    return result


def _tokens_by_user(conn: Connection, user_ids: list[str]) -> dict[str, list[RefreshToken]]:
    result: dict[str, list[RefreshToken]] = {}
    if not user_ids:
        return result
    rows = conn.execute(
        select(_refresh_tokens)
        .where(_refresh_tokens.c.user_id.in_(user_ids))
        .order_by(_refresh_tokens.c.issued_at, _refresh_tokens.c.id)
    ).fetchall()
    for r in rows:
        result.setdefault(r.user_id, []).append(_row_to_token(r))
    return result


def _load_users(conn: Connection, rows) -> list[User]:
    """Map user rows to full aggregates (roles and tokens) with two extra queries."""
    ids = [r.id for r in rows]
    roles = _roles_by_user(conn, ids)
    tokens = _tokens_by_user(conn, ids)
    return [_row_to_user(r, roles.get(r.id, set()), tokens.get(r.id, [])) for r in rows]


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, roles: set[str], tokens: list[RefreshToken]) -> User:
    return User(
        id=row.id,
        username=row.username,
        first_name=row.first_name,
        last_name=row.last_name,
        hashed_password=row.hashed_password,
        roles=set(roles),
        refresh_tokens=list(tokens),
        created_at=row.created_at,
    )


def _row_to_token(row) -> RefreshToken:
    return RefreshToken(
        user_id=row.user_id,
        token_hash=row.token_hash,
        issued_at=datetime.fromisoformat(row.issued_at),
        expires_at=datetime.fromisoformat(row.expires_at),
    )
