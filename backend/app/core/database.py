from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from app.core.config import settings

engine_kwargs = {"echo": False, "pool_pre_ping": True}
if "postgresql" in settings.DATABASE_URL:
    engine_kwargs.update(
        pool_size=20,
        max_overflow=10,
        pool_recycle=3600,
        connect_args={"server_settings": {"jit": "off"}},
    )

engine = create_async_engine(settings.async_database_url, **engine_kwargs)

AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()

async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

async def init_db():
    # Import registers the tables on Base.metadata
    import app.models.goal  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
