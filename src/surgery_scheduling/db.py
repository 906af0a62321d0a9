"""Database setup and session management for the surgery scheduling system."""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import shutil
import warnings

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT = 30.0


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#"):
        return None
    line = line.removeprefix("export ").lstrip()
    key, sep, value = line.partition("=")
    key = key.strip()
    if not sep or not key:
        return None
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return key, value


def _env_candidates() -> list[Path]:
    explicit = os.environ.get("SURGERY_ENV_FILE")
    if explicit:
        return [Path(explicit).expanduser()]
    return [Path.cwd() / ".env", Path(__file__).resolve().parents[2] / ".env"]


def load_env_file() -> Path | None:
    """Apply the first readable env file and return its path.

    ``SURGERY_ENV_FILE`` names the file explicitly; otherwise ``.env`` is
    looked up in the working directory, then at the project root. Variables
    already set in the environment win over the file.
    """
    for env_path in _env_candidates():
        try:
            content = env_path.read_text()
        except OSError:
            continue
        for raw_line in content.splitlines():
            pair = _parse_env_line(raw_line)
            if pair is not None:
                os.environ.setdefault(*pair)
        logger.debug("Loaded settings from %s", env_path)
        return env_path
    return None


load_env_file()


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


def _busy_timeout() -> float:
    raw = os.environ.get("SURGERY_DB_BUSY_TIMEOUT")
    if not raw:
        return DEFAULT_BUSY_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        warnings.warn(
            f"Ignoring invalid SURGERY_DB_BUSY_TIMEOUT={raw!r}",
            RuntimeWarning,
            stacklevel=2,
        )
        return DEFAULT_BUSY_TIMEOUT


def _resolve_default_db_url() -> str:
    env_url = os.environ.get("SURGERY_DB_URL")
    if env_url:
        return env_url
    default_path = Path.cwd() / "data" / "surgery.db"
    default_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{default_path}"


def _ensure_writable_sqlite_url(url: str) -> str:
    """Ensure the SQLite file is writable; if not, fall back to a user-local copy."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite" or parsed.database in (None, "", ":memory:"):
        return url

    db_path = Path(parsed.database)
    target_path = db_path

    def is_writable(path: Path) -> bool:
        return os.access(path if path.exists() else path.parent, os.W_OK)

    if not is_writable(db_path):
        fallback_dir = Path.home() / ".surgery_scheduling"
        fallback_dir.mkdir(parents=True, exist_ok=True)
        target_path = fallback_dir / db_path.name
        if db_path.exists():
            try:
                shutil.copy2(db_path, target_path)
            except OSError:
                logger.warning("Could not copy %s to %s; starting empty", db_path, target_path)
        warnings.warn(
            f"Database path {db_path} not writable; using fallback {target_path}",
            RuntimeWarning,
            stacklevel=2,
        )
    return f"sqlite:///{target_path}"


def _install_sqlite_locking(engine: Engine) -> None:
    """Make every SQLite transaction take the database write lock up front.

    SQLite ignores ``FOR UPDATE``; ``BEGIN IMMEDIATE`` gives the same
    exclusion by serializing writers, and waiting writers block for the
    connection's busy timeout instead of failing.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy's "begin" event below.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def create_database_engine(database_url: str | None = None, echo: bool | None = None) -> Engine:
    """Create an engine for ``database_url`` and verify the connection."""
    raw_url = database_url or _resolve_default_db_url()
    db_url = _ensure_writable_sqlite_url(raw_url)
    is_sqlite = make_url(db_url).get_backend_name() == "sqlite"
    connect_args = {"timeout": _busy_timeout(), "check_same_thread": False} if is_sqlite else {}
    try:
        engine = create_engine(
            db_url,
            echo=_env_flag("SURGERY_DB_ECHO") if echo is None else echo,
            future=True,
            connect_args=connect_args,
        )
        if is_sqlite:
            _install_sqlite_locking(engine)
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        logger.info("Connected to %s", engine.url.render_as_string(hide_password=True))
        return engine
    except SQLAlchemyError as exc:
        raise DatabaseConnectionError("Failed to connect to the database.") from exc


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Build the session factory every transaction draws a fresh session from."""
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def init_db(engine: Engine) -> None:
    """Create database tables."""
    # Register the mapped classes on Base.metadata.
    from . import models  # noqa: F401

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as exc:
        raise DatabaseConnectionError("Failed to initialize database schema.") from exc


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations.

    The session is already inside an explicit transaction when yielded; it
    commits when the block exits normally and rolls back on any exception.
    """
    session: Session = session_factory()
    session.begin()
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise
    finally:
        session.close()
