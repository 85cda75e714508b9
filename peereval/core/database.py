from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from fastapi import HTTPException, Request
from .config import Settings
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def async_database_url(url: str) -> str:
    """Convert a plain PostgreSQL URL to its asyncpg form"""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _is_memory_sqlite(url: str) -> bool:
    return url.rstrip("/").endswith("sqlite+aiosqlite:") or ":memory:" in url


def _configure_sqlite(engine):
    """Let SQLAlchemy own BEGIN/SAVEPOINT on aiosqlite and enforce foreign keys"""

    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """Owns the engine (connection pool) and the session factory.

    Constructed once at application startup and disposed at shutdown.
    Requests borrow one session each through ``get_db``.
    """

    def __init__(self, url: str, pool_size: int = 5, max_overflow: int = 10,
                 pool_timeout: int = 30, echo: bool = False):
        self.url = async_database_url(url)
        engine_args = {"echo": echo}

        if self.url.startswith("sqlite"):
            if _is_memory_sqlite(self.url):
                engine_args["poolclass"] = StaticPool
                engine_args["connect_args"] = {"check_same_thread": False}
        else:
            engine_args.update(
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,  # Verify connections before use
                pool_recycle=3600,  # Recycle connections every hour
            )

        self.engine = create_async_engine(self.url, **engine_args)
        if self.url.startswith("sqlite"):
            _configure_sqlite(self.engine)

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=True,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            echo=settings.db_echo,
        )

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def create_tables(self):
        """Create all database tables"""
        try:
            async with self.engine.begin() as conn:
                # Import all models to ensure they're registered
                from .. import models  # noqa: F401

                logger.info("Creating database tables...")
                await conn.run_sync(Base.metadata.create_all)
                logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Error creating database tables: {e}")
            raise

    async def dispose(self):
        """Close every pooled connection"""
        try:
            await self.engine.dispose()
            logger.info("Database engine disposed")
        except Exception as e:
            logger.error(f"Error disposing database engine: {e}")


async def get_db(request: Request):
    """Dependency to get database session"""
    database: Database = request.app.state.db
    async with database.session() as session:
        try:
            yield session
        except HTTPException:
            await session.rollback()
            raise
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise
