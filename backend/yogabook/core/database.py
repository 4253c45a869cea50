from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from yogabook.core.config import settings
import os
from yogabook.core.logging_config import get_logger
logger = get_logger("database")


def _ensure_sqlite_dir(url: str) -> None:
    # sqlite:///path/to/db
    db_path = url.replace("sqlite:///", "", 1)
    if not db_path or db_path == ":memory:":
        return
    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
        if not os.access(db_dir, os.W_OK):
            raise PermissionError(f"Database directory is not writable: {db_dir}")


def _install_sqlite_locking(engine: Engine) -> None:
    """Start every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, so two bookers could both read
    the confirmed count before either takes the write lock. Taking the lock at
    BEGIN serializes whole transactions, which is what the capacity check needs.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str = None, echo: bool = False) -> Engine:
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        _ensure_sqlite_dir(url)
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.DB_LOCK_TIMEOUT_SECONDS,  # Wait for locks
            },
            pool_pre_ping=True,
            echo=echo,
        )
        _install_sqlite_locking(engine)
    else:
        engine = create_engine(url, pool_pre_ping=True, echo=echo)
    logger.info(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
