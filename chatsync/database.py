# chatsync/database.py
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.schema import CreateIndex, CreateTable

from chatsync.models import Base

logger = logging.getLogger(__name__)


def _engine_options(url: str, pool_size: int, pool_timeout: int, echo: bool) -> dict:
    options = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            # in-memory sqlite uses a singleton pool without sizing knobs
            return options
    elif "railway" in url:
        options["connect_args"] = {"sslmode": "require"}
    options.update(pool_size=pool_size, max_overflow=0, pool_timeout=pool_timeout)
    return options


class Database:
    """Engine plus session factory. One instance per process, passed to the app."""

    def __init__(self, url: str, pool_size: int = 10, pool_timeout: int = 5, echo: bool = False):
        self.url = url
        self.engine = create_engine(url, **_engine_options(url, pool_size, pool_timeout, echo))
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @classmethod
    def from_settings(cls, settings):
        return cls(settings.database_url, pool_size=settings.pool_size,
                   pool_timeout=settings.pool_timeout, echo=settings.db_echo)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def init_schema(self):
        """Create missing tables, then missing indexes, as two separate steps.

        Every statement is IF NOT EXISTS so concurrent or repeated startups are
        harmless. Errors propagate; the caller treats them as fatal.
        """
        tables = Base.metadata.sorted_tables
        with self.engine.begin() as conn:
            for table in tables:
                conn.execute(CreateTable(table, if_not_exists=True))
        with self.engine.begin() as conn:
            for table in tables:
                for index in sorted(table.indexes, key=lambda i: i.name):
                    conn.execute(CreateIndex(index, if_not_exists=True))
        logger.info("Database schema ready (%d tables)", len(tables))

    def session(self) -> Session:
        return self.SessionLocal()

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.warning("Database ping failed: %s", exc)
            return False

    def dispose(self):
        self.engine.dispose()
