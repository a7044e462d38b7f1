import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.core.exceptions import APIException, StoreUnavailableException

logger = logging.getLogger(__name__)


class CommonService:
    """
    Common helpers shared by the services.
    """

    @staticmethod
    @asynccontextmanager
    async def transaction(db: AsyncSession, operation: str) -> AsyncIterator[None]:
        """
        Run a top-level mutation as one unit of work.

        Commits when the block finishes, rolls every write back otherwise.
        Store errors surface as StoreUnavailableException so callers can retry.
        :param db: Session the mutation writes through.
        :param operation: Operation name used in logs and errors.
        """
        try:
            yield
            await db.commit()
        except APIException:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"{operation} failed, rolled back: {e}")
            raise StoreUnavailableException(operation) from e
