"""
Engine and session factory for the status store.

A file-backed SQLite database gets its parent directory created and runs in WAL mode.
An in-memory SQLite URL shares one connection so every session sees the same tables.
"""
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sf_eventlog.core.config import settings

SQLITE_CONNECT_ARGS = {'check_same_thread': False, 'timeout': 30}


def _sqlite_pragmas(dbapi_connection, _connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA journal_mode=WAL;')
    cursor.execute('PRAGMA busy_timeout=30000;')
    cursor.close()


def build_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if url.get_backend_name() != 'sqlite':
        return create_engine(
            url,
            pool_pre_ping=True,
            pool_size=max(1, int(settings.db_pool_size)),
            pool_recycle=max(30, int(settings.db_pool_recycle)),
        )
    if url.database in (None, '', ':memory:'):
        return create_engine(url, connect_args=SQLITE_CONNECT_ARGS, poolclass=StaticPool)
    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(url, connect_args=SQLITE_CONNECT_ARGS, pool_pre_ping=True)
    event.listen(engine, 'connect', _sqlite_pragmas)
    return engine


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)
