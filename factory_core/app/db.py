import logging
import os
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)

# Every persistence call is bounded by this many seconds.
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "10"))

# Prefer explicit DATABASE_URL env var. If not provided, construct a local
# SQLite URL in a `data/` folder adjacent to the package directory.
env_db = os.getenv("DATABASE_URL")
if env_db:
    DATABASE_URL = env_db
else:
    pkg_root = Path(__file__).resolve().parents[1]
    data_dir = pkg_root / "data"
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        # best-effort; if creating fails fall back to in-memory DB
        data_dir = None
    if data_dir:
        db_file = data_dir / "factory_core.db"
        # Use POSIX path style for SQLAlchemy URL on Windows as well
        DATABASE_URL = f"sqlite:///{db_file.as_posix()}"
    else:
        DATABASE_URL = "sqlite:///:memory:"


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": STORE_TIMEOUT_SECONDS}
    if url.startswith("postgresql"):
        return {
            "connect_timeout": int(STORE_TIMEOUT_SECONDS),
            "options": f"-c statement_timeout={int(STORE_TIMEOUT_SECONDS * 1000)}",
        }
    return {}


def build_engine(url: str, **kwargs):
    """
    Create an engine whose calls are bounded by STORE_TIMEOUT_SECONDS.

    SQLite connections open every transaction with BEGIN IMMEDIATE: writers
    queue on the database lock (up to the busy timeout) instead of failing
    on lock upgrade, and SAVEPOINT works under pysqlite.
    """
    kwargs.setdefault("connect_args", _connect_args(url))
    if not url.startswith("sqlite"):
        kwargs.setdefault("pool_timeout", STORE_TIMEOUT_SECONDS)
    engine = create_engine(url, echo=os.getenv("SQL_ECHO") == "1", **kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            # hand transaction control to the "begin" hook below
            dbapi_connection.isolation_level = None
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

        @event.listens_for(engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_db_and_tables(bind=None):
    # models must be imported so their tables register on Base.metadata
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
    logger.info(f"Database ready at {bind.url if bind is not None else DATABASE_URL}")
