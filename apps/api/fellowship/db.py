from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from fellowship.core.config import settings


def _install_sqlite_hooks(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write, so two transactions can both
    # read the confirmed count before either writes. Take the write lock up
    # front instead; this plays the role of SELECT ... FOR UPDATE on Postgres.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str | None = None) -> Engine:
    database_url = url or settings.database_url
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=settings.db_echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _install_sqlite_hooks(engine)
        return engine

    return create_engine(
        database_url,
        echo=settings.db_echo,
        pool_pre_ping=True,
    )


engine = build_engine()

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
