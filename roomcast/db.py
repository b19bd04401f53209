# Async SQLAlchemy engine/session setup
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from roomcast.settings import settings


async def apply_migrations(conn) -> None:
    """Lightweight schema tweaks for existing SQLite DB."""
    result = await conn.exec_driver_sql("PRAGMA table_info(messages)")
    cols = [row[1] for row in result.fetchall()]
    if "is_pinned" not in cols:
        await conn.exec_driver_sql(
            "ALTER TABLE messages ADD COLUMN is_pinned BOOLEAN NOT NULL DEFAULT 0"
        )

    result = await conn.exec_driver_sql("PRAGMA table_info(lectures)")
    cols = [row[1] for row in result.fetchall()]
    if "location" not in cols:
        await conn.exec_driver_sql(
            "ALTER TABLE lectures ADD COLUMN location VARCHAR(256)"
        )


engine = create_async_engine(settings.DATABASE_URL, future=True, echo=False)
AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()
