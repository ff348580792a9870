from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from insurepulse.database.models import AIQuery
from insurepulse.repositories.base_repository import BaseRepository


class AIQueryRepository(BaseRepository[AIQuery]):
    """Repository for logged portfolio questions and answers."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, AIQuery)

    async def log_query(self, tenant_id: str, query: str, response: str) -> AIQuery:
        return await self.create(tenant_id=tenant_id, query=query, response=response)

    async def recent_for_tenant(self, tenant_id: str, limit: int = 20) -> List[AIQuery]:
        query = (
            select(AIQuery)
            .where(AIQuery.tenant_id == tenant_id)
            .order_by(AIQuery.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
