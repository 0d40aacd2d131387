import logging

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from urlshort.config import Settings

logger = logging.getLogger("urlshort.database")

Base = declarative_base()


def make_engine(settings: Settings):
    # Dev: SQLite (zero config), Prod: PostgreSQL
    if settings.is_sqlite:
        engine = create_engine(
            settings.database_url,
            connect_args={"check_same_thread": False, "timeout": 30},  # needed for SQLite + FastAPI
        )

        @event.listens_for(engine, "connect")
        def _on_connect(dbapi_conn, _record):
            # let SQLAlchemy emit BEGIN itself (see _on_begin)
            dbapi_conn.isolation_level = None
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine, "begin")
        def _on_begin(conn):
            # take the write lock up front so concurrent writers wait on the
            # busy timeout instead of failing with "database is locked"
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
    )


class Database:
    """Engine and session factory owned by one application instance."""

    def __init__(self, settings: Settings):
        self.engine = make_engine(settings)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self):
        # models must be imported so their tables are registered on Base
        from urlshort import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database ready: %s", self.engine.url.render_as_string(hide_password=True))

    def dispose(self):
        self.engine.dispose()
        logger.info("Database connections closed")

    def session(self):
        return self.SessionLocal()


def get_db(request: Request):
    db = request.app.state.db.session()
    try:
        yield db
    finally:
        db.close()
