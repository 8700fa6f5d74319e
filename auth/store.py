"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_device_token are the
mappers. Engine and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(email) and UNIQUE(username) are enforced in SQL. The engine checks
  for an existing email before inserting, but two concurrent registrations can
  both pass that check; the constraint is what stops the second insert, which
  then raises IntegrityError.

Device tokens live in their own table with UNIQUE(user_id, device_id), so the
one-entry-per-device invariant of UserRecord.tokens holds at the DB level too.

DB path: auth/authservice.db unless DATABASE_URL is set.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Column,
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
from sqlalchemy.engine import Connection, Engine

from auth.models import DeviceToken, UserRecord

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'authservice.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("otp", String(16)),  # NULL until an OTP has been issued
    Column("created_at", String(32), nullable=False),
)

_device_tokens = Table(
    "device_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("device_id", String(255), nullable=False),
    Column("token", Text, nullable=False, server_default=""),  # "" = placeholder
    UniqueConstraint("user_id", "device_id", name="uq_device_tokens_user_device"),
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


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for UserRecord entities and their device tokens.

    Usage:
        store = UserStore()
        uid = store.create_user(UserRecord(username="alice", email="a@x.com", password_hash=h))
        user = store.get_by_email("a@x.com")
        user.set_device_token("d1", token)
        store.update_user(user)
        store.close()
    """

    def __init__(self, db_url: str = "") -> None:
        db_url = db_url or _DEFAULT_DB_URL
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
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: UserRecord) -> int:
        """Insert a new user with its device tokens and return the assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the email or username already
        exists. The caller decides what that means (the engine maps it to a
        Conflict). user.id and user.created_at are filled in on success.
        """
        created_at = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email,
                    password_hash=user.password_hash,
                    otp=user.otp,
                    created_at=created_at,
                )
            )
            user_id = result.inserted_primary_key[0]
            _insert_device_tokens(conn, user_id, user.tokens)
            conn.commit()
        user.id = user_id
        user.created_at = created_at
        return user_id

    def update_user(self, user: UserRecord) -> bool:
        """Persist the mutable fields of an existing user.

        Writes password_hash and otp, then replaces the user's device token
        rows with user.tokens. Both happen in one transaction.

        Returns True if the user row was updated, False if user.id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user.id)
                .values(password_hash=user.password_hash, otp=user.otp)
            )
            if result.rowcount == 0:
                conn.rollback()
                return False
            conn.execute(_device_tokens.delete().where(_device_tokens.c.user_id == user.id))
            _insert_device_tokens(conn, user.id, user.tokens)
            conn.commit()
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> UserRecord | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        return self._get_one(_users.c.email == email)

    def get_by_id(self, user_id: int) -> UserRecord | None:
        """Look up a user by primary key. Returns None if not found."""
        return self._get_one(_users.c.id == user_id)

    def get_by_username(self, username: str) -> UserRecord | None:
        return self._get_one(_users.c.username == username)

    def list_users(self, offset: int = 0, limit: int | None = None) -> list[UserRecord]:
        """Return users in insertion (primary key) order, paginated by offset/limit.

        limit=None returns every row from offset onwards.
        """
        query = _users.select().order_by(_users.c.id).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
            if not rows:
                return []
            ids = [r.id for r in rows]
            token_rows = conn.execute(
                select(_device_tokens)
                .where(_device_tokens.c.user_id.in_(ids))
                .order_by(_device_tokens.c.id)
            ).fetchall()
        by_user: dict[int, list[DeviceToken]] = {uid: [] for uid in ids}
        for t in token_rows:
            by_user[t.user_id].append(_row_to_device_token(t))
        return [_row_to_user(r, by_user[r.id]) for r in rows]

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()

    def _get_one(self, condition) -> UserRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(condition)).fetchone()
            if row is None:
                return None
            token_rows = conn.execute(
                select(_device_tokens)
                .where(_device_tokens.c.user_id == row.id)
                .order_by(_device_tokens.c.id)
            ).fetchall()
        return _row_to_user(row, [_row_to_device_token(t) for t in token_rows])


def _insert_device_tokens(conn: Connection, user_id: int, tokens: list[DeviceToken]) -> None:
    if not tokens:
        return
    conn.execute(
        _device_tokens.insert(),
        [{"user_id": user_id, "device_id": t.device_id, "token": t.token} for t in tokens],
    )


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, tokens: list[DeviceToken]) -> UserRecord:
    return UserRecord(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        otp=row.otp,
        tokens=tokens,
        created_at=row.created_at,
    )


def _row_to_device_token(row) -> DeviceToken:
    return DeviceToken(device_id=row.device_id, token=row.token or "")
