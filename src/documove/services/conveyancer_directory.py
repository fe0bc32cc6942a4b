"""Conveyancer directory — filtered, rating-ranked reads over conveyancing firms.

The directory is read-only from the workflow's point of view: ratings and
review counts are directory-wide aggregates maintained elsewhere.
"""

import logging
from typing import AsyncIterator

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from documove.domain.errors import EntityNotFoundError
from documove.domain.models import Conveyancer
from documove.domain.schemas import ConveyancerRecord, load_record

logger = logging.getLogger(__name__)


class DirectorySearch:
    """A lazy, restartable search: every ``async for`` re-runs the query."""

    def __init__(self, db: AsyncSession, query: str = "", active_only: bool = True):
        self.db = db
        self.query = query.strip()
        self.active_only = active_only

    def statement(self):
        stmt = select(Conveyancer)
        if self.active_only:
            stmt = stmt.where(Conveyancer.is_active.is_(True))
        if self.query:
            stmt = stmt.where(
                or_(
                    Conveyancer.contact_name.icontains(self.query, autoescape=True),
                    Conveyancer.firm_name.icontains(self.query, autoescape=True),
                    Conveyancer.town.icontains(self.query, autoescape=True),
                )
            )
        return stmt.order_by(Conveyancer.rating.desc(), func.lower(Conveyancer.firm_name).asc())

    async def __aiter__(self) -> AsyncIterator[ConveyancerRecord]:
        rows = await self.db.stream_scalars(self.statement())
        async for row in rows:
            yield load_record(ConveyancerRecord, row)

    async def all(self) -> list[ConveyancerRecord]:
        return [entry async for entry in self]


class ConveyancerDirectory:
    """Read access to the conveyancer directory."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def search(self, query: str = "", active_only: bool = True) -> DirectorySearch:
        """Conveyancers matching ``query``, best-rated first.

        Nothing is read until the result is iterated.
        """
        logger.debug("Directory search q=%r active_only=%s", query, active_only)
        return DirectorySearch(self.db, query=query, active_only=active_only)

    async def get(self, conveyancer_id: str) -> ConveyancerRecord:
        result = await self.db.execute(select(Conveyancer).where(Conveyancer.id == conveyancer_id))
        conveyancer = result.scalar_one_or_none()
        if conveyancer is None:
            raise EntityNotFoundError(f"Conveyancer {conveyancer_id} not found")
        return load_record(ConveyancerRecord, conveyancer)
