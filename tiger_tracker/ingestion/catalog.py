"""
Reference catalog: keeps the configured user and assets present in the store
and maps symbols to the identifiers the store assigned them.
"""
from typing import Callable, Iterable, List, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select

from tiger_tracker.core.database import AsyncSessionLocal
from tiger_tracker.core.errors import AssetNotFoundError, ResolutionError, SeedError, UserNotFoundError
from tiger_tracker.core.logging_config import get_logger
from tiger_tracker.db.models import Asset, User
from tiger_tracker.schemas.catalog import AssetSpec, SeedReport, UserSpec

logger = get_logger("reference_catalog")

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_statement(dialect_name: str, model, values: dict, key: str):
    """INSERT ... ON CONFLICT (key) DO UPDATE for the dialects that support it."""
    try:
        insert = _UPSERT_INSERTS[dialect_name]
    except KeyError:
        raise SeedError(model.__tablename__, f"upsert not supported on dialect {dialect_name}")

    stmt = insert(model).values(**values)
    updates = {col: stmt.excluded[col] for col in values if col != key}
    if updates:
        return stmt.on_conflict_do_update(index_elements=[key], set_=updates)
    return stmt.on_conflict_do_nothing(index_elements=[key])


class ReferenceCatalog:
    def __init__(
        self,
        assets: Iterable[AssetSpec],
        user: UserSpec,
        session_factory: Callable = AsyncSessionLocal,
    ):
        self._assets = list(assets)
        self._user = user
        self._session_factory = session_factory

    @property
    def assets(self) -> List[AssetSpec]:
        return list(self._assets)

    @property
    def symbols(self) -> List[str]:
        return [a.symbol for a in self._assets]

    async def _upsert(self, model, values: dict, key: str):
        async with self._session_factory() as session:
            async with session.begin():
                stmt = upsert_statement(session.get_bind().dialect.name, model, values, key)
                await session.execute(stmt)

    async def seed_reference_data(self) -> SeedReport:
        """
        Upserts the user and every configured asset, one transaction each.
        A failed entity is logged and skipped so the rest still get seeded.
        """
        report = SeedReport()
        entities = [(f"user:{self._user.name}", User, {"name": self._user.name}, "name")]
        entities += [
            (f"asset:{a.symbol}", Asset, {"symbol": a.symbol, "name": a.name}, "symbol")
            for a in self._assets
        ]

        for label, model, values, key in entities:
            try:
                await self._upsert(model, values, key)
                report.seeded.append(label)
            except (SQLAlchemyError, OSError, SeedError) as e:
                err = e if isinstance(e, SeedError) else SeedError(label, str(e))
                logger.error("seed_upsert_failed", entity=label, error=str(err))
                report.failed.append(label)

        logger.info("seed_complete", seeded=len(report.seeded), failed=report.failed)
        return report

    async def resolve_assets(self, symbols: Optional[Iterable[str]] = None) -> List[Asset]:
        """Stored assets for `symbols`, in exactly the order given."""
        symbols = list(symbols) if symbols is not None else self.symbols
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Asset).where(Asset.symbol.in_(symbols)))
                by_symbol = {asset.symbol: asset for asset in result.scalars().all()}
        except (SQLAlchemyError, OSError) as e:
            raise ResolutionError(f"asset lookup failed: {e}") from e

        missing = [s for s in symbols if s not in by_symbol]
        if missing:
            raise AssetNotFoundError(missing)
        return [by_symbol[s] for s in symbols]

    async def resolve_user(self) -> User:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(User).where(User.name == self._user.name).order_by(User.id).limit(1)
                )
                user = result.scalars().first()
        except (SQLAlchemyError, OSError) as e:
            raise ResolutionError(f"user lookup failed: {e}") from e

        if user is None:
            raise UserNotFoundError(self._user.name)
        logger.debug("user_resolved", user_id=user.id)
        return user
