"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is a UNIQUE constraint on the column, so two concurrent
  registrations for the same address cannot both succeed: the first insert
  wins and the second raises sqlalchemy.exc.IntegrityError. The service
  layer (auth.users) translates that into EmailExistsError.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(12), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # bcrypt hash
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("invite_code", String(100), nullable=False, server_default=""),
    Column("is_email_verified", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


class UserNotFoundError(LookupError):
    """Raised by delete_user() when no record has the given id."""


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block on a registration write.

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
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///keyhole.db")
        store.create_user(User(id=generate_id(), email="a@b.co", password=hasher.hash("secret")))
        user = store.get_by_email("a@b.co")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        # In-memory databases cannot switch to WAL; only file databases need it.
        if db_url.startswith("sqlite") and "mode=memory" not in db_url and ":memory:" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def create_user(self, user: User) -> User:
        """Insert a new user and return the stored record (with timestamps).

        Raises sqlalchemy.exc.IntegrityError if the email (or id) already exists.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user.id,
                    email=user.email,
                    password=user.password or "",
                    first_name=user.first_name,
                    last_name=user.last_name,
                    invite_code=user.invite_code,
                    is_email_verified=user.is_email_verified,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return User(
            id=user.id,
            email=user.email,
            password=user.password or None,
            first_name=user.first_name,
            last_name=user.last_name,
            invite_code=user.invite_code,
            is_email_verified=user.is_email_verified,
            created_at=now,
            updated_at=now,
        )

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def delete_user(self, user_id: str) -> None:
        """Permanently delete a user record.

        Raises UserNotFoundError when nothing was deleted. Ownership checks are
        the caller's responsibility.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        if result.rowcount == 0:
            raise UserNotFoundError(user_id)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password=row.password or None,
        first_name=row.first_name,
        last_name=row.last_name,
        invite_code=row.invite_code,
        is_email_verified=bool(row.is_email_verified),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
