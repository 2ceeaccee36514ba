"""Repository for canonical customer rows.

Every lookup used for resolution filters out merge tombstones so an absorbed
customer can never be matched, listed as a candidate or reported again.
"""

from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import Customer, Order
from app.repositories.base_repository import BaseRepository
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class CustomerRepository(BaseRepository[Customer]):
    """Repository for Customer entity operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Customer)

    async def get_live(self, customer_id: int) -> Optional[Customer]:
        """Get a customer that has not been merged into another one.

        Args:
            customer_id: Customer ID

        Returns:
            Customer instance or None if missing or tombstoned
        """
        stmt = select(Customer).where(
            Customer.id == customer_id,
            Customer.merged_into_id.is_(None),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_customer(
        self,
        primary_email: Optional[str] = None,
        primary_phone: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        company: Optional[str] = None,
    ) -> Customer:
        """Create a new customer from already-normalized primaries.

        Returns:
            Created Customer instance with its ID populated
        """
        customer = await self.create(
            primary_email=primary_email,
            primary_phone=primary_phone,
            first_name=first_name,
            last_name=last_name,
            company=company,
            is_vip=False,
        )
        LOGGER.info(
            f"Created customer: {customer.id}",
            extra={"customer_id": customer.id, "has_email": primary_email is not None},
        )
        return customer

    async def find_live_ids_by_primary_email(self, email: str) -> Set[int]:
        stmt = select(Customer.id).where(
            Customer.primary_email == email,
            Customer.merged_into_id.is_(None),
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def find_live_ids_by_primary_phone(self, phone: str) -> Set[int]:
        stmt = select(Customer.id).where(
            Customer.primary_phone == phone,
            Customer.merged_into_id.is_(None),
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def find_live_by_primary_values(
        self,
        emails: Iterable[str],
        phones: Iterable[str],
        exclude_id: Optional[int] = None,
    ) -> List[Customer]:
        """Find live customers whose primary email or phone is in the given sets.

        Args:
            emails: Normalized emails to match against primary_email
            phones: Normalized phones to match against primary_phone
            exclude_id: Customer ID to leave out of the result

        Returns:
            Matching customers ordered by ID
        """
        emails = list(emails)
        phones = list(phones)
        if not emails and not phones:
            return []

        conditions = []
        if emails:
            conditions.append(Customer.primary_email.in_(emails))
        if phones:
            conditions.append(Customer.primary_phone.in_(phones))

        stmt = select(Customer).where(Customer.merged_into_id.is_(None), or_(*conditions))
        if exclude_id is not None:
            stmt = stmt.where(Customer.id != exclude_id)
        stmt = stmt.order_by(Customer.id)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_live_many(self, customer_ids: Iterable[int]) -> List[Customer]:
        """Get live customers by ID, ordered by ID."""
        ids = sorted(set(customer_ids))
        if not ids:
            return []
        stmt = (
            select(Customer)
            .where(Customer.id.in_(ids), Customer.merged_into_id.is_(None))
            .order_by(Customer.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def lock_for_update(self, customer_ids: Iterable[int]) -> List[Customer]:
        """Lock customer rows in ascending ID order for the rest of the transaction.

        Concurrent merges over overlapping IDs acquire their locks in the same
        order, so they serialize instead of deadlocking.

        Args:
            customer_ids: IDs of every customer taking part in a merge

        Returns:
            Locked customers (tombstones included) ordered by ID
        """
        ids = sorted(set(customer_ids))
        stmt = (
            select(Customer)
            .where(Customer.id.in_(ids))
            .order_by(Customer.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def summarize(self, customer_ids: Iterable[int]) -> Dict[int, Tuple[str, int]]:
        """Get display name and order count for each customer.

        Returns:
            Mapping of customer ID to (name, order count); unnamed customers
            are shown as ``"Unknown"``
        """
        ids = sorted(set(customer_ids))
        if not ids:
            return {}
        stmt = (
            select(Customer.id, Customer.first_name, Customer.last_name, func.count(Order.id))
            .outerjoin(Order, Order.customer_id == Customer.id)
            .where(Customer.id.in_(ids))
            .group_by(Customer.id, Customer.first_name, Customer.last_name)
        )
        result = await self.session.execute(stmt)
        summary: Dict[int, Tuple[str, int]] = {}
        for customer_id, first_name, last_name, order_count in result.all():
            name = f"{first_name or ''} {last_name or ''}".strip()
            summary[customer_id] = (name or "Unknown", order_count)
        return summary
