import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


async def init_models(bind: Optional[AsyncEngine] = None, drop: bool = False) -> None:
    """Create every table registered on ``Base.metadata``.

    ``drop=True`` wipes the schema first (development and tests only).
    """
    from backend.app.db.base import Base, engine
    # Model modules must be imported so their tables land on the metadata
    from backend.app import models  # noqa: F401

    bind = bind or engine
    async with bind.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready (%d tables)", len(Base.metadata.tables))
