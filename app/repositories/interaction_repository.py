"""Repository for customer interactions."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import Interaction
from app.repositories.base_repository import BaseRepository


class InteractionRepository(BaseRepository[Interaction]):
    """Write-only log of customer touches; read back for the customer view."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Interaction)

    async def create_interaction(
        self,
        customer_id: int,
        channel: str,
        direction: str = "inbound",
        ticket_id: Optional[int] = None,
        comment_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Interaction:
        """Record an interaction.

        Args:
            customer_id: Owning customer
            channel: Channel the touch came through
            direction: ``inbound`` or ``outbound``
            ticket_id: Optional related ticket
            comment_id: Optional related ticket comment
            metadata: Free-form context
            occurred_at: When the touch happened; defaults to now

        Returns:
            Created Interaction
        """
        values: Dict[str, Any] = dict(
            customer_id=customer_id,
            channel=channel,
            direction=direction,
            ticket_id=ticket_id,
            comment_id=comment_id,
            additional_metadata=metadata or {},
        )
        if occurred_at is not None:
            values["occurred_at"] = occurred_at
        return await self.create(**values)

    async def list_for_customer(self, customer_id: int, limit: int = 50) -> List[Interaction]:
        stmt = (
            select(Interaction)
            .where(Interaction.customer_id == customer_id)
            .order_by(Interaction.occurred_at.desc(), Interaction.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
