from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from webanalyzer.platform.config import settings


def _engine_options(url: str) -> dict:
    options = {"echo": False, "future": True}
    if url.startswith("sqlite"):
        # aiosqlite uses a static/null pool, no sizing arguments
        return options
    options.update(
        pool_pre_ping=True,
        pool_recycle=1800,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=30,
    )
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def get_db():
    async with SessionLocal() as session:
        yield session


async def init_models():
    """Create tables for local runs; production schemas come from alembic."""
    from webanalyzer.platform.db.base import Base
    from webanalyzer.features.analysis.models import Analysis, RecentResult  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
