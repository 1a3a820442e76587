"""
Database base configuration and utilities.
"""
from sqlalchemy import MetaData, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from boardvote.core.config import settings

# Naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """Base class for all database models."""
    metadata = metadata


def enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy issue BEGIN itself on SQLite connections.

    The sqlite3 driver otherwise defers BEGIN on its own, which breaks
    SAVEPOINT and makes read-then-write transactions unpredictable.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(url: str, **kwargs) -> AsyncEngine:
    new_engine = create_async_engine(url, future=True, **kwargs)
    if new_engine.dialect.name == "sqlite":
        enable_sqlite_transactions(new_engine)
    return new_engine


# Create async engine
engine = create_engine(settings.DATABASE_URL, echo=settings.DEBUG)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db() -> AsyncSession:
    """Dependency that provides a database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Initialize database tables."""
    # Register every model on the metadata before create_all
    import boardvote.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
