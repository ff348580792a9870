"""Natural-language questions answered against a tenant's portfolio."""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from insurepulse.core.llm_client import CompletionClient
from insurepulse.repositories.ai_query_repository import AIQueryRepository
from insurepulse.schemas.records import QueryAnswer
from insurepulse.services.portfolio.aggregation_engine import AggregationEngine
from insurepulse.services.portfolio.context_builder import ContextBuilder
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__)

PORTFOLIO_QUERY_PROMPT = """You are an AI assistant for GCC insurance analytics. Analyze this query using the user's portfolio data:

{context}

User Query: {query}

Provide a concise, actionable response with specific numbers and recommendations. Focus on GCC market context, Takaful considerations, and regulatory implications where relevant."""


class PortfolioQueryService:
    """Builds the portfolio context, asks the completion service, logs the exchange."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        aggregation_engine: AggregationEngine,
        context_builder: ContextBuilder,
        completion_client: CompletionClient,
    ):
        self.session_factory = session_factory
        self.aggregation_engine = aggregation_engine
        self.context_builder = context_builder
        self.completion_client = completion_client

    async def answer(self, tenant_id: str, query: str) -> QueryAnswer:
        """Answer ``query`` using the tenant's current snapshot as context.

        Raises:
            ValueError: If the query is blank
            StorageFailure: If the portfolio could not be read
            APIClientError: If the completion service fails
        """
        query = (query or "").strip()
        if not query:
            raise ValueError("Query is required")

        snapshot = await self.aggregation_engine.compute_snapshot(tenant_id)
        context = self.context_builder.render_context(snapshot)

        prompt = PORTFOLIO_QUERY_PROMPT.format(context=context, query=query)
        response = await self.completion_client.generate_content(prompt)

        async with self.session_factory() as session:
            await AIQueryRepository(session).log_query(tenant_id, query, response)

        LOGGER.info(
            "Answered portfolio query",
            extra={
                "tenant_id": tenant_id,
                "query_length": len(query),
                "context_length": len(context),
                "response_length": len(response),
            },
        )

        return QueryAnswer(
            query=query,
            response=response,
            context=context,
            created_at=datetime.now(timezone.utc),
        )
