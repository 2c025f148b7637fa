"""
auth/store.py -- SQLAlchemy Core schema and credential store.

Pattern: Repository + Data Mapper. UserStore is the repository for users;
_row_to_user is the mapper. RefreshTokenLedger (auth/ledger.py) is the
repository for refresh_tokens and shares the engine created here.
Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Schema:
  users           -- UNIQUE(email); id is the caller-supplied UUID string.
  refresh_tokens  -- UNIQUE(token_hash); user_id references users.id with
                     ON DELETE CASCADE.

  SQLite only enforces foreign keys when PRAGMA foreign_keys=ON is set on
  each connection, so delete_user() also removes ledger rows explicitly in
  the same transaction. A deleted user's refresh tokens can never resolve.

  Timestamps are stored as ISO 8601 UTC strings with fixed microsecond
  precision, so string comparison in SQL matches chronological order.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select, text
from sqlalchemy.engine import Engine

from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(50), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("is_revoked", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign-key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_store_engine(db_url: str) -> Engine:
    """Create the engine shared by UserStore and RefreshTokenLedger and ensure the schema exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        engine = create_store_engine("sqlite:///auth.db")
        store = UserStore(engine)
        store.create_user(User(id=str(uuid4()), email="a@b.io", password_hash=h, role="ROLE_USER"))
        user = store.get_by_email("a@b.io")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def ping(self) -> bool:
        """Run a trivial query. Raises on connection failure."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with timestamps filled in.

        Raises sqlalchemy.exc.IntegrityError if the id or email already
        exists. AuthService checks both first; the constraint catches the
        race where two registrations pass the check concurrently.
        """
        now = utcnow()
        with self.engine.begin() as conn:
            conn.execute(
                users.insert().values(
                    id=user.id,
                    email=user.email,
                    password_hash=user.password_hash,
                    role=user.role,
                    created_at=to_iso(now),
                    updated_at=to_iso(now),
                )
            )
        user.created_at = now
        user.updated_at = now
        return user

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def exists_by_email(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(users.c.id).where(users.c.email == email)).fetchone()
        return row is not None

    def exists_by_id(self, user_id: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(users.c.id).where(users.c.id == user_id)).fetchone()
        return row is not None

    def delete_user(self, user_id: str) -> bool:
        """Delete a user and every refresh-token record they own, atomically.

        Returns True if the user existed, False otherwise.
        """
        with self.engine.begin() as conn:
            conn.execute(refresh_tokens.delete().where(refresh_tokens.c.user_id == user_id))
            result = conn.execute(users.delete().where(users.c.id == user_id))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        created_at=from_iso(row.created_at),
        updated_at=from_iso(row.updated_at),
    )
