from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel import SQLModel
from storefront.common.logging_setup import get_logger
import storefront.schema.full_schema  # noqa: F401  registers the tables on SQLModel.metadata

logger = get_logger("storefront.db")


async def init_models(engine: AsyncEngine) -> None:
    """Provision tables and indexes once , before the app starts serving traffic."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("db.bootstrap.complete", extra={"tables": sorted(SQLModel.metadata.tables)})
