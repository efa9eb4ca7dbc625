from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from messenger.core.config import settings, logger
from messenger.core.errors import ConflictError, StorageError

Base = declarative_base()


def utcnow():
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections get foreign key enforcement."""
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if ":memory:" in database_url or database_url == "sqlite://":
            # One shared connection, otherwise every session sees an empty db
            kwargs["poolclass"] = StaticPool

    engine = create_engine(
        database_url, echo=echo, connect_args=connect_args, **kwargs
    )

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db, action: str, conflict_message: str = None):
    """Commit everything done in the block at once, or nothing.

    Integrity violations become ConflictError when ``conflict_message`` is
    given; any other database failure becomes StorageError.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if conflict_message:
            raise ConflictError(conflict_message) from e
        logger.error("Integrity error while trying to %s: %s", action, e.orig)
        raise StorageError(f"Could not {action}") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database error while trying to %s", action)
        raise StorageError(f"Could not {action}") from e
    except Exception:
        db.rollback()
        raise


# Columns added after the first release: table -> column -> DDL
LATER_COLUMNS = {
    "conversations": {"last_message_at": "DATETIME", "pair_key": "VARCHAR"},
    "participants": {"last_read_at": "DATETIME"},
    "messages": {"is_deleted": "BOOLEAN NOT NULL DEFAULT 0"},
}


def upgrade_schema(bind):
    """Add missing columns to tables created by older versions"""
    inspector = inspect(bind)
    added = []
    with bind.begin() as conn:
        for table, columns in LATER_COLUMNS.items():
            existing = {column["name"] for column in inspector.get_columns(table)}
            for name, ddl in columns.items():
                if name not in existing:
                    conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))
                    added.append(f"{table}.{name}")
        if "conversations.pair_key" in added:
            # SQLite cannot add a UNIQUE column, so the constraint becomes an index
            conn.execute(
                text(
                    "CREATE UNIQUE INDEX IF NOT EXISTS uq_conversations_pair_key "
                    "ON conversations (pair_key)"
                )
            )
    for column in added:
        logger.info("Added missing column %s", column)
    return added


def init_db(bind=None, session_factory=None):
    """Create tables, upgrade older ones and reconcile duplicate pairwise conversations."""
    # Register the models on Base.metadata
    from messenger.db import models  # noqa: F401
    from messenger.db.conversation_crud import reconcile_pairwise_duplicates

    bind = bind or engine
    session_factory = session_factory or SessionLocal

    Base.metadata.create_all(bind=bind)
    upgrade_schema(bind)

    db = session_factory()
    try:
        removed = reconcile_pairwise_duplicates(db)
    finally:
        db.close()

    logger.info("Database initialized successfully (%d duplicate conversations removed)", removed)
    return removed


def ping(db) -> bool:
    db.execute(text("SELECT 1"))
    return True
