"""
auth/store.py -- SQLAlchemy Core persistence layer for marketplace users.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Services and dependencies never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  increment_token_version() is a single UPDATE ... SET token_version =
  token_version + 1, so concurrent revocations never lose an increment, and
  it commits before returning so the next request sees the new epoch.

Emails are normalized to lowercase on every write and lookup. The UNIQUE
index on email therefore enforces case-insensitive uniqueness.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),  # always lowercased
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="customer"),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("is_approved", Integer, nullable=False, server_default="1"),
    Column("token_version", Integer, nullable=False, server_default="0"),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("approved_by", Integer),
    Column("approved_at", String(32)),
)

# Fields update_user() accepts. Everything else (id, email, token_version,
# created_at) has its own dedicated write path or is immutable.
_MUTABLE_FIELDS = frozenset(
    {
        "password_hash",
        "role",
        "first_name",
        "last_name",
        "is_active",
        "is_approved",
        "last_login",
        "approved_by",
        "approved_at",
    }
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _to_db(fields: dict) -> dict:
    """Convert bool/enum values to their SQLite column representation."""
    converted = dict(fields)
    for flag in ("is_active", "is_approved"):
        if flag in converted:
            converted[flag] = 1 if converted[flag] else 0
    if isinstance(converted.get("role"), Role):
        converted["role"] = converted["role"].value
    return converted


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///marketplace_auth.db")
        uid = store.create_user(User(email="a@b.co", role=Role.customer, password_hash=digest))
        user = store.get_by_email("A@B.co")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return (result or 0) > 0

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, ignoring case. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_pending_suppliers(self) -> list[User]:
        """Return suppliers still waiting for admin approval, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _users.select()
                .where((_users.c.role == Role.supplier.value) & (_users.c.is_approved == 0))
                .order_by(_users.c.created_at, _users.c.id)
            ).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        token_version always starts at 0 regardless of the dataclass value.
        Raises sqlalchemy.exc.IntegrityError if the email is already taken;
        callers treat that as a concurrent duplicate registration.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=normalize_email(user.email),
                    password_hash=user.password_hash,
                    role=Role(user.role).value,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    is_active=1 if user.is_active else 0,
                    is_approved=1 if user.is_approved else 0,
                    token_version=0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> User | None:
        """Update mutable fields and return the fresh record (None if user_id is unknown).

        Unknown field names raise ValueError rather than being silently
        dropped. token_version is not accepted here; use
        increment_token_version().
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown or immutable user fields: {sorted(unknown)!r}")
        if fields:
            with self.engine.connect() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**_to_db(fields)))
                conn.commit()
            if result.rowcount == 0:
                return None
        return self.get_by_id(user_id)

    def increment_token_version(self, user_id: int) -> bool:
        """Atomically bump the revocation epoch. Returns False if user_id is unknown."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(token_version=_users.c.token_version + 1)
            )
            conn.commit()
        return result.rowcount > 0

    def approve_supplier(self, user_id: int, admin_id: int) -> User | None:
        """Mark a supplier approved and record who approved it."""
        return self.update_user(user_id, is_approved=True, approved_by=admin_id, approved_at=_now_iso())

    def deactivate_user(self, user_id: int) -> User | None:
        return self.update_user(user_id, is_active=False)

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC time as last_login. Advisory only."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=Role(row.role),
        first_name=row.first_name,
        last_name=row.last_name,
        is_active=bool(row.is_active),
        is_approved=bool(row.is_approved),
        token_version=row.token_version,
        last_login=row.last_login,
        created_at=row.created_at,
        approved_by=row.approved_by,
        approved_at=row.approved_at,
    )
