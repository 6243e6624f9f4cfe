from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from structlog import get_logger

from rentmatch.models.property import Property
from rentmatch.schemas.property import PropertyFilter, PropertyRead

logger = get_logger(__name__)


class PropertyStore(ABC):
    @abstractmethod
    async def list(self, filter: Optional[PropertyFilter] = None) -> List[PropertyRead]:
        """Properties with their building embedded."""

    @abstractmethod
    async def get(self, property_id) -> Optional[PropertyRead]:
        ...


class SqlAlchemyPropertyStore(PropertyStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list(self, filter: Optional[PropertyFilter] = None) -> List[PropertyRead]:
        filter = filter or PropertyFilter()
        stmt = select(Property).options(selectinload(Property.building))
        if filter.building_id is not None:
            stmt = stmt.where(Property.building_id == filter.building_id)
        if filter.max_price is not None:
            stmt = stmt.where(Property.price <= filter.max_price)
        stmt = stmt.order_by(Property.created_at.desc()).offset(filter.offset).limit(filter.limit)
        result = await self.session.execute(stmt)
        rows = result.scalars().all()
        logger.debug("Properties loaded", count=len(rows), building_id=filter.building_id)
        return [PropertyRead.model_validate(row) for row in rows]

    async def get(self, property_id) -> Optional[PropertyRead]:
        stmt = (
            select(Property)
            .options(selectinload(Property.building))
            .where(Property.id == property_id)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return PropertyRead.model_validate(row) if row is not None else None


class InMemoryPropertyStore(PropertyStore):
    def __init__(self, properties: Iterable[PropertyRead] = ()):
        self.properties = list(properties)

    async def list(self, filter: Optional[PropertyFilter] = None) -> List[PropertyRead]:
        filter = filter or PropertyFilter()
        found = [
            p
            for p in self.properties
            if (filter.building_id is None or p.building_id == filter.building_id)
            and (filter.max_price is None or (p.price is not None and p.price <= filter.max_price))
        ]
        return found[filter.offset:filter.offset + filter.limit]

    async def get(self, property_id) -> Optional[PropertyRead]:
        for p in self.properties:
            if str(p.id) == str(property_id):
                return p
        return None
