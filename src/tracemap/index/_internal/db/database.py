"""SQLite engine shared by the index store and the report store.

Reads go through short-lived ORM sessions. Writes take the RESERVED lock up
front (``BEGIN IMMEDIATE``) so a per-file commit either lands completely or
not at all, and a writer that finds the database busy backs off and retries
instead of failing the file.

- Database.session(): ORM reads and small writes
- Database.immediate_transaction(): one atomic write unit (ORM session)
- Database.bulk_writer(): Core statements for truncation and batch writes
"""

from __future__ import annotations

import time
from collections.abc import Callable, Generator, Iterable
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, create_engine

from tracemap.config.models import DatabaseConfig

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = structlog.get_logger()

_T = TypeVar("_T")

RETRY_MAX_DELAY_SEC = 2.0

# Applied to every new connection. LIKE must be case sensitive because the
# resolver's suffix lookups are.
_CONNECTION_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA case_sensitive_like=ON",
    "PRAGMA foreign_keys=OFF",
)


def _is_busy(error: OperationalError) -> bool:
    message = str(error).lower()
    return "database is locked" in message or "database is busy" in message


class Database:
    """One SQLite file, opened in WAL mode."""

    def __init__(self, db_path: Path, config: DatabaseConfig | None = None) -> None:
        self.db_path = db_path
        self.config = config or DatabaseConfig()
        self.engine = self._create_engine()

    def _create_engine(self) -> Engine:
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        busy_timeout = int(self.config.busy_timeout_ms)

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_conn: Any, _record: Any) -> None:
            cursor = dbapi_conn.cursor()
            for pragma in _CONNECTION_PRAGMAS:
                cursor.execute(pragma)
            cursor.execute(f"PRAGMA busy_timeout={busy_timeout}")
            cursor.close()

        return engine

    def create_all(self, tables: Iterable[type[SQLModel]]) -> None:
        """Create the given tables (and their indexes) if missing."""
        SQLModel.metadata.create_all(
            self.engine,
            tables=[model.__table__ for model in tables],  # type: ignore[attr-defined]
        )

    def dispose(self) -> None:
        self.engine.dispose()

    def _begin_with_retry(self, begin: Callable[[], _T]) -> _T:
        """Call ``begin`` until it gets the write lock or retries run out."""
        attempt = 0
        while True:
            try:
                return begin()
            except OperationalError as e:
                if not _is_busy(e) or attempt >= self.config.max_retries:
                    raise
                delay = min(
                    self.config.retry_base_delay_sec * (2**attempt), RETRY_MAX_DELAY_SEC
                )
                attempt += 1
                logger.warning(
                    "sqlite_busy_retry",
                    db=self.db_path.name,
                    attempt=attempt,
                    max_retries=self.config.max_retries,
                    delay_sec=delay,
                )
                time.sleep(delay)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        with Session(self.engine) as session:
            yield session

    @contextmanager
    def immediate_transaction(self) -> Generator[Session, None, None]:
        """ORM session holding the write lock; commits on exit, rolls back on error."""

        def begin() -> Session:
            session = Session(self.engine)
            try:
                session.execute(text("BEGIN IMMEDIATE"))
            except OperationalError:
                session.close()
                raise
            return session

        session = self._begin_with_retry(begin)
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def bulk_writer(self) -> Generator[BulkWriter, None, None]:
        """Core-level writer in one transaction; commits on exit, rolls back on error."""

        def begin() -> Connection:
            conn = self.engine.connect()
            try:
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            except OperationalError:
                conn.close()
                raise
            return conn

        conn = self._begin_with_retry(begin)
        writer = BulkWriter(conn)
        try:
            yield writer
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()


class BulkWriter:
    """Table-level writes without ORM identity tracking."""

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def insert_many(self, model: type[SQLModel], rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        table = model.__table__  # type: ignore[attr-defined]
        self.conn.execute(table.insert(), rows)
        return len(rows)

    def delete_all(self, model: type[SQLModel]) -> int:
        table = model.__table__  # type: ignore[attr-defined]
        return int(self.conn.execute(table.delete()).rowcount)

    def update_by_id(self, model: type[SQLModel], row_id: int, values: dict[str, Any]) -> int:
        table = model.__table__  # type: ignore[attr-defined]
        stmt = table.update().where(table.c.id == row_id).values(**values)
        return int(self.conn.execute(stmt).rowcount)
