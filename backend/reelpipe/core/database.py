from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from reelpipe.core.config import settings

class Base(DeclarativeBase):
    pass

# MySQL specific configuration
if "mysql" in settings.database_url.lower():
    async_engine = create_async_engine(
        settings.database_url,
        echo=settings.sqlalchemy_echo,
        pool_pre_ping=True,
        pool_recycle=3600,
        isolation_level="READ COMMITTED",  # status updates from webhooks must be visible to pollers
        connect_args={
            "charset": "utf8mb4",
            "autocommit": False,
        }
    )
else:
    # SQLite configuration
    async_engine = create_async_engine(
        settings.database_url,
        echo=settings.sqlalchemy_echo,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

async def create_tables():
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
