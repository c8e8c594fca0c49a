from sqlalchemy.ext.asyncio import (
  AsyncEngine,
  AsyncSession,
  async_sessionmaker,
  create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from creditmeter.config import env


def get_database_url() -> str:
  """Get database URL with SSL configuration if needed."""
  database_url = env.DATABASE_URL

  if env.is_production() and database_url.startswith("postgresql"):
    if "?" not in database_url:
      database_url += "?ssl=require"
    elif "ssl" not in database_url:
      database_url += "&ssl=require"

  return database_url


class Base(DeclarativeBase):
  """Base class for all models."""

  pass


def create_engine(database_url: str | None = None) -> AsyncEngine:
  """Create the async engine used by the SQL ledger store."""
  return create_async_engine(
    database_url or get_database_url(),
    pool_pre_ping=True,
    echo=env.DATABASE_ECHO,
  )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
  return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_models(engine: AsyncEngine) -> None:
  """Create ledger tables that do not exist yet."""
  # Register tables on Base.metadata
  from creditmeter.models import ledger  # noqa: F401

  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
