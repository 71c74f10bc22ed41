import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/vibe_match")

Base = declarative_base()


def configure_sqlite(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write; reads must join the transaction
    # so a read-then-write sees a consistent snapshot and conflicts surface as busy errors.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        engine = create_engine(url, future=True, connect_args={"check_same_thread": False})
        configure_sqlite(engine)
        return engine
    return create_engine(url, future=True, pool_pre_ping=True)


def build_session_factories(engine: Engine) -> tuple[sessionmaker, sessionmaker]:
    """Return (read factory, transaction factory) bound to ``engine``.

    The transaction factory runs at SERIALIZABLE isolation on PostgreSQL so the
    read of a reverse interaction is part of the conflict check. SQLite already
    serializes writers.
    """
    tx_engine = engine if engine.dialect.name == "sqlite" else engine.execution_options(isolation_level="SERIALIZABLE")
    read_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    tx_factory = sessionmaker(bind=tx_engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    return read_factory, tx_factory


engine = build_engine(DATABASE_URL)
SessionLocal, TransactionSessionLocal = build_session_factories(engine)
