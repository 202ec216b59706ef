from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from config.settings import DATABASE_URL_ASYNC, DATABASE_ECHO

# Asynchronous engine and session
engine_async = create_async_engine(
    DATABASE_URL_ASYNC,
    echo=DATABASE_ECHO,  # Enable SQL statement logging
    pool_pre_ping=True,
)

AsyncSessionLocal = sessionmaker(
    bind=engine_async,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Dependency for asynchronous sessions
async def get_async_db():
    async with AsyncSessionLocal() as db:
        try:
            yield db
        finally:
            await db.close()


async def create_tables():
    async with engine_async.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

# Base declarative class for ORM models
Base = declarative_base()
