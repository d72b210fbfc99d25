from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from tiger_tracker.core.database import db_manager
from tiger_tracker.core.logging_config import get_logger
from tiger_tracker.db.models import Base, Observation

logger = get_logger("init_db")

HYPERTABLE_DDL = (
    f"SELECT create_hypertable('{Observation.__tablename__}', 'ts', if_not_exists => TRUE)"
)


async def init_db(engine=None):
    engine = engine or db_manager.engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if engine.dialect.name != "postgresql":
        return

    # Separate transaction: a missing timescaledb extension must not undo create_all
    try:
        async with engine.begin() as conn:
            await conn.execute(text(HYPERTABLE_DDL))
        logger.info("hypertable_ready", table=Observation.__tablename__)
    except DBAPIError as e:
        logger.warning("hypertable_unavailable", table=Observation.__tablename__, error=str(e))
