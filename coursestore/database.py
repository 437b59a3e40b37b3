import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    IntegrityError,
    OperationalError,
    ProgrammingError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

logger = logging.getLogger(__name__)

Statement = Union[str, Any]
Params = Optional[Dict[str, Any]]


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    if database_url.startswith("sqlite"):
        # in-memory sqlite must share one connection across threads
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,      # checks dead connections
        pool_recycle=1800,       # refresh every 30 min
        pool_size=10,
        pool_timeout=10,
    )


# deadlock, serialization failure, statement timeout
TRANSIENT_SQLSTATES = {"40P01", "40001", "57014"}
# "08" is the postgres connection exception class
TRANSIENT_SQLSTATE_CLASSES = ("08",)

TRANSIENT_MESSAGES = (
    "database is locked",
    "server closed the connection",
    "could not connect to server",
    "connection reset",
)


def _sqlstate(orig) -> Optional[str]:
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code is None:
        code = getattr(getattr(orig, "diag", None), "sqlstate", None)
    return code


def is_transient_error(exc: BaseException) -> bool:
    """
    Connection resets, deadlocks, lock waits and timeouts.

    Decided by the driver's cause, not the SQLAlchemy class: sqlite raises
    syntax errors as OperationalError too, and those must fail at once.
    """
    if isinstance(exc, PoolTimeoutError):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    if isinstance(exc, (IntegrityError, ProgrammingError, DataError)):
        return False
    if not isinstance(exc, OperationalError):
        return False

    code = _sqlstate(exc.orig)
    if code:
        return code in TRANSIENT_SQLSTATES or code.startswith(TRANSIENT_SQLSTATE_CLASSES)

    message = str(exc.orig).lower()
    return any(marker in message for marker in TRANSIENT_MESSAGES)


@dataclass
class StatementResult:
    rows: List[Dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


def _as_statement(statement: Statement):
    return text(statement) if isinstance(statement, str) else statement


def _buffer(result) -> StatementResult:
    if result.returns_rows:
        rows = [dict(row) for row in result.mappings().all()]
        return StatementResult(rows=rows, rowcount=len(rows))
    return StatementResult(rowcount=result.rowcount)


class DataGateway:
    """
    Data-access handle owned by the process lifecycle.

    One instance is built at startup and passed to every component that
    touches the database. Connections and sessions are checked out only for
    the duration of a call and always returned, including when a statement
    in the middle of a transaction raises.
    """

    def __init__(
        self,
        engine: Engine,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        self.engine = engine
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay

    # -------------------------
    # SINGLE STATEMENT
    # -------------------------
    def execute(self, statement: Statement, params: Params = None) -> StatementResult:
        """
        Run one parameterized statement in its own transaction.

        Transient failures are retried with a fixed delay up to
        ``max_attempts``; the last error is re-raised unchanged.
        """
        stmt = _as_statement(statement)
        attempt = 0

        while True:
            attempt += 1
            try:
                with self.engine.begin() as conn:
                    return _buffer(conn.execute(stmt, params or {}))

            except Exception as exc:
                if not is_transient_error(exc):
                    raise

                remaining = self.max_attempts - attempt
                logger.warning(
                    f"Transient database error (attempts left: {remaining}): {exc}"
                )
                if remaining <= 0:
                    logger.error("Database retries exhausted")
                    raise

                time.sleep(self.retry_delay)

    # -------------------------
    # STATEMENT SEQUENCE
    # -------------------------
    def execute_many(
        self, statements: Sequence[Tuple[Statement, Params]]
    ) -> List[StatementResult]:
        """
        Run an ordered sequence of statements as one atomic transaction.

        Any failure rolls the whole sequence back and propagates. Never
        retried: part of the work may already have been observed elsewhere.
        """
        results = []
        try:
            with self.engine.begin() as conn:
                for statement, params in statements:
                    results.append(
                        _buffer(conn.execute(_as_statement(statement), params or {}))
                    )
        except Exception as exc:
            logger.error(f"Transaction rolled back: {exc}")
            raise
        return results

    # -------------------------
    # ORM UNITS OF WORK
    # -------------------------
    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session bound to one transaction: commit on exit, rollback on error."""
        with Session(self.engine, expire_on_commit=False) as session:
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Read session; nothing is committed implicitly."""
        with Session(self.engine, expire_on_commit=False) as session:
            yield session

    def create_all(self) -> None:
        from coursestore import models  # noqa: F401  registers every table

        SQLModel.metadata.create_all(self.engine)

    def ping(self) -> bool:
        try:
            self.execute("SELECT 1")
            return True
        except Exception:
            logger.exception("Database ping failed")
            return False

    def dispose(self) -> None:
        self.engine.dispose()
