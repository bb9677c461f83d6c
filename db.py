import logging
import os
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./data/subscriptions.db"

def resolve_database_url(raw_url: Optional[str]) -> Tuple[URL, Dict[str, Any]]:
    """Normalize DATABASE_URL for SQLAlchemy.

    Hosted Postgres providers hand out ``postgres://`` URLs; those are upgraded
    to the psycopg driver and get ``sslmode=require`` unless one is given.
    Without a URL a local SQLite file is used.
    """
    if not raw_url:
        return make_url(DEFAULT_DATABASE_URL), {"check_same_thread": False}

    url = make_url(raw_url)

    if url.drivername.startswith("sqlite"):
        return url, {"check_same_thread": False}

    if url.drivername in {"postgres", "postgresql"}:
        url = url.set(drivername="postgresql+psycopg")

    query = dict(url.query)
    if "sslmode" not in query and url.drivername.startswith("postgresql"):
        query["sslmode"] = "require"
        url = url.set(query=query)

    return url, {}

def _enable_sqlite_savepoints(sqlite_engine: Engine) -> None:
    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; emit it ourselves.
    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

def build_engine(raw_url: Optional[str] = None, **kwargs: Any) -> Engine:
    url, connect_args = resolve_database_url(raw_url)
    is_sqlite = url.drivername.startswith("sqlite")
    if is_sqlite and url.database and url.database != ":memory:":
        directory = os.path.dirname(url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)
    kwargs.setdefault("connect_args", connect_args)
    built = create_engine(url, pool_pre_ping=True, **kwargs)
    if is_sqlite:
        _enable_sqlite_savepoints(built)
    return built

def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)

engine = build_engine(os.getenv("DATABASE_URL"))

SessionLocal = build_session_factory(engine)

Base = declarative_base()

def dialect_insert(session: Session, model: Any):
    """Return an ``INSERT`` construct that supports ``ON CONFLICT`` for the bound dialect."""

    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Unsupported database dialect for upserts: {dialect}")
    return insert(model)

def init_db(bind: Optional[Engine] = None) -> None:
    """
    Create all database tables
    """
    # The models import registers the tables with the metadata.
    import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database schema ready")
