"""
Request-scoped database session.

One session per request. Catalog and assignment changes made by a handler,
together with their audit rows, are committed once the handler returns and
rolled back as a unit when it raises.
"""

from typing import AsyncGenerator

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.core.errors import AuthzError
from parish_authz.models.database import async_session_factory

logger = structlog.get_logger()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except AuthzError:
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            logger.warning("request_transaction_rolled_back")
            raise
