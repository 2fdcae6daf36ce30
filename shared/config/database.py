from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from shared.config.settings import get_settings

_settings = get_settings()

engine = create_async_engine(_settings.database_url, echo=_settings.db_echo)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    """Dependency for routes that open their own UnitOfWork."""
    return AsyncSessionLocal


async def init_models(bind=None):
    """Create every registered table. Models must be imported before this runs."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class UnitOfWork:
    """One database transaction shared by every component taking part in an operation.

    Commits on a clean exit, rolls back when the block raises. ``commit()`` may be
    called earlier by a step that needs the data durable before continuing; a
    clean exit afterwards commits whatever was written since.
    """

    def __init__(self, session_factory: async_sessionmaker | None = None):
        self._session_factory = session_factory or AsyncSessionLocal
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> "UnitOfWork":
        self.session = self._session_factory()
        await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        try:
            if exc_type is None:
                await self.session.commit()
            else:
                await self.session.rollback()
        finally:
            await self.session.close()
        return False

    async def commit(self):
        await self.session.commit()

    async def flush(self):
        await self.session.flush()
