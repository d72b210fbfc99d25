from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tiger_tracker.core.config import get_settings


# Lazy initialization so importing the package never needs a configured DATABASE_URL
class Database:
    def __init__(self, url: str | None = None):
        self._url = url
        self._engine = None
        self._session_maker = None

    @property
    def url(self) -> str:
        if self._url is None:
            self._url = get_settings().DATABASE_URL
        return self._url

    @property
    def engine(self):
        if self._engine is None:
            self._engine = create_async_engine(self.url, echo=get_settings().DB_ECHO, pool_pre_ping=True)
        return self._engine

    @property
    def session_maker(self):
        if self._session_maker is None:
            self._session_maker = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_maker

    async def dispose(self):
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._session_maker = None


db_manager = Database()


async def get_db():
    async with db_manager.session_maker() as session:
        yield session


# Helper for non-dependency contexts (ingestion worker)
def AsyncSessionLocal():
    return db_manager.session_maker()
