"""Database connection layer for Postgres with a SQLite fallback for local runs and tests."""
import os
from contextlib import contextmanager
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator, Iterator

# Database configuration from environment variables
DB_TYPE = os.getenv("DB_TYPE", "postgres")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "postgres")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")
POSTGRES_USER = os.getenv("POSTGRES_USER", "finance")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "finance")
POSTGRES_DB = os.getenv("POSTGRES_DB", "finance")

# SQLite configuration (local development and the test suite)
SQLITE_PATH = os.getenv("SQLITE_PATH", "./finance.db")


def _install_sqlite_hooks(engine) -> None:
    """Make SQLite transactions take the write lock up front.

    pysqlite defers BEGIN until the first write, so two sessions could both
    read the same remaining amount before either writes. BEGIN IMMEDIATE
    serialises read-modify-write transactions the way row locks do on Postgres.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _):
        # Let SQLAlchemy emit BEGIN itself
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def get_engine():
    """Create database engine based on DB_TYPE."""
    if DB_TYPE == "postgres":
        database_url = (
            f"postgresql+psycopg2://{POSTGRES_USER}:{POSTGRES_PASSWORD}"
            f"@{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}"
        )
        return create_engine(database_url, pool_pre_ping=True)

    elif DB_TYPE == "sqlite":
        engine = create_engine(
            f"sqlite+pysqlite:///{SQLITE_PATH}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _install_sqlite_hooks(engine)
        return engine

    else:
        raise ValueError(f"Unsupported DB_TYPE: {DB_TYPE}")


# Create engine and session factory
engine = get_engine()
# Committed objects keep their values; reading them must not open a new transaction
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit the work done inside the block, or roll all of it back."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
