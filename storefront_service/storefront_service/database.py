"""SQLAlchemy engine, session factory and unit of work."""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .exceptions import UnexpectedError
from .logger import get_logger

logger = get_logger("storefront.database")


class Base(DeclarativeBase):
    pass


def create_session_factory(database_url: str, **engine_kwargs) -> sessionmaker:
    """Create a session factory bound to a new engine.

    Args:
        database_url: SQLAlchemy database URL.
        **engine_kwargs: Extra arguments for ``create_engine`` (e.g. ``poolclass``).

    Returns:
        sessionmaker: Factory producing sessions that keep loaded state after commit.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, connect_args=connect_args, **engine_kwargs)

    if engine.dialect.name == "sqlite":
        # pysqlite defers BEGIN on its own; take it over so SAVEPOINTs nest correctly
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    logger.info(f"Database engine created for dialect {engine.dialect.name}")
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(session_factory: sessionmaker) -> None:
    """Create every table that does not exist yet."""
    from . import models  # noqa: F401

    Base.metadata.create_all(session_factory.kw["bind"])
    logger.info("Database schema ready")


@contextmanager
def unit_of_work(session_factory: sessionmaker) -> Iterator[Session]:
    """Run a block inside one database transaction.

    Commits when the block exits normally and rolls back otherwise. Storage
    failures are surfaced as ``UnexpectedError`` so callers can tell them
    apart from business errors.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Storage failure, transaction rolled back: {e}")
        raise UnexpectedError("Storage is temporarily unavailable") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
