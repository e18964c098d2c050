"""
auth/store.py -- SQLAlchemy Core persistence layer for users and applications.

Pattern: Repository + Data Mapper.
CredentialStore is the repository; _row_to_user / _row_to_application are the
mappers. Route and authenticator code never touches SQL directly.

Concurrency:
  Every method opens its own connection, so concurrent requests never share
  one. Lookups are plain SELECTs. Mutations are single-statement UPDATE /
  DELETE keyed by primary key, which the database serializes per row.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Application tokens carry a UNIQUE index; create_application() regenerates
  the token on the (astronomically unlikely) collision.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import Boolean, Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Application, User

logger = logging.getLogger("pushgate.auth.store")

_DEFAULT_DB_URL = "sqlite:///pushgate.db"

# Token collisions with 192-bit random tokens do not happen in practice; the
# bound keeps a broken token generator from looping forever.
_MAX_TOKEN_ATTEMPTS = 5

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("is_admin", Integer, nullable=False, server_default="0"),
    Column("matrix_id", String(255), nullable=False, server_default=""),
)

_applications = Table(
    "applications",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(64), nullable=False, unique=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("colored_title", Boolean),  # NULL = gateway default
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers never block behind a writer."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for User and Application entities.

    Usage:
        store = CredentialStore()
        uid = store.create_user(User(name="admin", password_hash=digest, is_admin=True))
        user = store.get_user_by_name("admin")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the name is already taken.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    password_hash=user.password_hash,
                    is_admin=1 if user.is_admin else 0,
                    matrix_id=user.matrix_id,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_user_by_name(self, name: str) -> User | None:
        """Look up a user by exact name (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.name == name)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_user_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by name. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.name)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_password(self, user_id: int, password_hash: str) -> bool:
        """Replace a user's digest. Returns False if user_id was not found.

        This is the only way a stored digest changes.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(password_hash=password_hash))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user together with the applications it owns."""
        with self.engine.connect() as conn:
            conn.execute(_applications.delete().where(_applications.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def create_application(self, application: Application, token_factory: Callable[[], str] | None = None) -> int:
        """Insert an application and return its ID.

        If token_factory is given, a token collision is resolved by drawing a
        new token from it and the new value is written back to
        application.token. Without a factory the IntegrityError propagates.
        """
        for attempt in range(1, _MAX_TOKEN_ATTEMPTS + 1):
            try:
                with self.engine.connect() as conn:
                    result = conn.execute(
                        _applications.insert().values(
                            token=application.token,
                            user_id=application.user_id,
                            name=application.name,
                            colored_title=application.colored_title,
                        )
                    )
                    conn.commit()
                    return result.inserted_primary_key[0]
            except IntegrityError:
                if token_factory is None or attempt == _MAX_TOKEN_ATTEMPTS:
                    raise
                logger.warning("Application token collision, regenerating (attempt %d)", attempt)
                application.token = token_factory()
        raise RuntimeError("unreachable")

    def get_application_by_token(self, token: str) -> Application | None:
        """Look up an application by its token. O(1) via UNIQUE index."""
        if not token:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_applications.select().where(_applications.c.token == token)).fetchone()
        return _row_to_application(row) if row is not None else None

    def get_application_by_id(self, app_id: int) -> Application | None:
        with self.engine.connect() as conn:
            row = conn.execute(_applications.select().where(_applications.c.id == app_id)).fetchone()
        return _row_to_application(row) if row is not None else None

    def get_applications_for_user(self, user_id: int) -> list[Application]:
        """Return every application owned by user_id, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _applications.select().where(_applications.c.user_id == user_id).order_by(_applications.c.id)
            ).fetchall()
        return [_row_to_application(r) for r in rows]

    def delete_application(self, app_id: int, user_id: int) -> bool:
        """Delete an application. user_id is checked to prevent IDOR attacks.

        Returns True if deleted, False if not found or owned by someone else.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _applications.delete().where((_applications.c.id == app_id) & (_applications.c.user_id == user_id))
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        password_hash=row.password_hash,
        is_admin=bool(row.is_admin),
        matrix_id=row.matrix_id or "",
    )


def _row_to_application(row) -> Application:
    return Application(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        name=row.name,
        colored_title=None if row.colored_title is None else bool(row.colored_title),
    )
