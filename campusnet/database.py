from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine
from sqlalchemy.orm import sessionmaker, declarative_base
from campusnet.config import DATABASE_URL, SQL_ECHO
from typing import AsyncGenerator

Base = declarative_base()


def make_engine(url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    return create_async_engine(
        url.replace("postgresql://", "postgresql+asyncpg://"),
        echo=echo,
        future=True,
        **kwargs,
    )


def make_sessionmaker(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(DATABASE_URL, echo=SQL_ECHO)
AsyncSessionLocal = make_sessionmaker(engine)


# Dependency for FastAPI routes
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
