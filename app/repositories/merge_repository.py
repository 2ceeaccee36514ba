"""Bulk re-pointing of customer-owned rows during a merge.

``DEPENDENT_MODELS`` and ``SINGLE_ROW_MODELS`` together are the complete
list of tables holding a ``customer_id`` foreign key that must follow a
customer into the survivor. A new table that references ``customers.id``
has to be added to one of them, otherwise merges leave its rows pointing at
a tombstone.
"""

from typing import Dict, Iterable, List, Optional, Type

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.base import Base
from app.database.models import (
    Call,
    Contact,
    CrmTask,
    Customer,
    CustomerIdentity,
    CustomerScore,
    CustomerSnapshot,
    Estimate,
    Interaction,
    Invoice,
    Opportunity,
    Order,
    RagSource,
    Shipment,
    Ticket,
)
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

DEPENDENT_MODELS: List[Type[Base]] = [
    CustomerIdentity,
    Order,
    Ticket,
    Interaction,
    Contact,
    Call,
    Opportunity,
    CrmTask,
    Invoice,
    Estimate,
    Shipment,
    RagSource,
]

# Unique on customer_id: reconciled to one row instead of re-pointed
SINGLE_ROW_MODELS: List[Type[Base]] = [
    CustomerScore,
    CustomerSnapshot,
]


class MergeRepository:
    """Re-points dependent rows from merged customers to the surviving one."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session holding the merge transaction
        """
        self.session = session

    async def repoint(self, model: Type[Base], from_ids: Iterable[int], to_id: int) -> int:
        """Move every row of ``model`` owned by ``from_ids`` to ``to_id``.

        Returns:
            Number of rows moved
        """
        ids = sorted(set(from_ids))
        stmt = (
            update(model)
            .where(model.customer_id.in_(ids))
            .values(customer_id=to_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def repoint_all(self, from_ids: Iterable[int], to_id: int) -> Dict[str, int]:
        """Re-point every dependent table, then reconcile single-row tables.

        Returns:
            Rows moved per table name
        """
        ids = sorted(set(from_ids))
        repointed: Dict[str, int] = {}
        for model in DEPENDENT_MODELS:
            repointed[model.__tablename__] = await self.repoint(model, ids, to_id)
        for model in SINGLE_ROW_MODELS:
            repointed[model.__tablename__] = await self.reconcile(model, ids, to_id)
        return repointed

    async def reconcile(self, model: Type[Base], from_ids: Iterable[int], to_id: int) -> int:
        """Keep exactly one row of ``model`` for the surviving customer.

        The survivor's own row wins. When it has none, the row of the lowest
        merged ID moves over. Every other merged row is deleted.

        Returns:
            1 if a row was moved to the survivor, else 0
        """
        ids = sorted(set(from_ids))
        existing = await self.session.execute(
            select(model.id).where(model.customer_id == to_id)
        )
        donor_id: Optional[int] = None
        if existing.scalar_one_or_none() is None:
            donor = await self.session.execute(
                select(model.customer_id)
                .where(model.customer_id.in_(ids))
                .order_by(model.customer_id)
                .limit(1)
            )
            donor_id = donor.scalar_one_or_none()

        stale = [customer_id for customer_id in ids if customer_id != donor_id]
        if stale:
            await self.session.execute(
                delete(model)
                .where(model.customer_id.in_(stale))
                .execution_options(synchronize_session=False)
            )

        if donor_id is None:
            return 0

        await self.session.execute(
            update(model)
            .where(model.customer_id == donor_id)
            .values(customer_id=to_id)
            .execution_options(synchronize_session=False)
        )
        LOGGER.info(
            f"Moved {model.__tablename__} row of customer {donor_id} to {to_id}",
            extra={"table": model.__tablename__, "from_customer_id": donor_id, "to_customer_id": to_id},
        )
        return 1

    async def redirect_tombstones(self, from_ids: Iterable[int], to_id: int) -> int:
        """Point customers previously merged into ``from_ids`` at ``to_id``.

        Keeps every tombstone one hop away from a live customer.

        Returns:
            Number of tombstones redirected
        """
        ids = sorted(set(from_ids))
        result = await self.session.execute(
            update(Customer)
            .where(Customer.merged_into_id.in_(ids))
            .values(merged_into_id=to_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
