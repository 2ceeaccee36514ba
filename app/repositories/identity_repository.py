"""Repository for provider identities attached to customers."""

from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import String, cast, func, null, or_, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import Customer, CustomerIdentity
from app.repositories.base_repository import BaseRepository
from app.schemas.identity import ADDRESS_HASH_PREFIX
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class IdentityRepository(BaseRepository[CustomerIdentity]):
    """Repository for CustomerIdentity entity operations.

    Owner lookups join back to ``customers`` and drop tombstoned owners, so
    callers always receive IDs of customers that can still be resolved to.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, CustomerIdentity)

    async def get_by_provider_external_id(
        self, provider: str, external_id: str
    ) -> Optional[CustomerIdentity]:
        """Get the identity for a (provider, external_id) key.

        Args:
            provider: Provider value
            external_id: Provider-native ID or ``address_hash:<hash>`` key

        Returns:
            CustomerIdentity or None if the key has never been seen
        """
        stmt = select(CustomerIdentity).where(
            CustomerIdentity.provider == provider,
            CustomerIdentity.external_id == external_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_owner_ids_by_email(self, email: str) -> Set[int]:
        return await self._live_owner_ids(CustomerIdentity.email == email)

    async def find_owner_ids_by_phone(self, phone: str) -> Set[int]:
        return await self._live_owner_ids(CustomerIdentity.phone == phone)

    async def find_owner_ids_by_external_id(self, provider: str, external_id: str) -> Set[int]:
        return await self._live_owner_ids(
            CustomerIdentity.provider == provider,
            CustomerIdentity.external_id == external_id,
        )

    async def _live_owner_ids(self, *conditions) -> Set[int]:
        stmt = (
            select(CustomerIdentity.customer_id)
            .join(Customer, Customer.id == CustomerIdentity.customer_id)
            .where(Customer.merged_into_id.is_(None), *conditions)
            .distinct()
        )
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    async def get_email_identity(
        self, customer_id: int, provider: str, email: str
    ) -> Optional[CustomerIdentity]:
        """Get the email-only identity (no external ID) for a customer and provider."""
        stmt = (
            select(CustomerIdentity)
            .where(
                CustomerIdentity.customer_id == customer_id,
                CustomerIdentity.provider == provider,
                CustomerIdentity.email == email,
                CustomerIdentity.external_id.is_(None),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_identity(
        self,
        customer_id: int,
        provider: str,
        external_id: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CustomerIdentity:
        """Insert an identity row.

        A duplicate (provider, external_id) raises ``IntegrityError`` on flush;
        callers run this inside a savepoint and translate that into a conflict.

        Returns:
            Created CustomerIdentity
        """
        identity = await self.create(
            customer_id=customer_id,
            provider=provider,
            external_id=external_id,
            email=email,
            phone=phone,
            additional_metadata=metadata or {},
        )
        LOGGER.info(
            f"Linked {provider} identity to customer {customer_id}",
            extra={
                "customer_id": customer_id,
                "provider": provider,
                "identity_type": (metadata or {}).get("identity_type"),
            },
        )
        return identity

    async def list_for_customer(self, customer_id: int) -> List[CustomerIdentity]:
        stmt = (
            select(CustomerIdentity)
            .where(CustomerIdentity.customer_id == customer_id)
            .order_by(CustomerIdentity.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def find_live_owners_by_values(
        self,
        emails: Iterable[str],
        phones: Iterable[str],
        exclude_id: Optional[int] = None,
    ) -> List[Tuple[int, Optional[str], Optional[str]]]:
        """Find live owners of identities carrying any of the given emails or phones.

        Args:
            emails: Normalized emails
            phones: Normalized phones
            exclude_id: Customer ID to leave out of the result

        Returns:
            (customer_id, email, phone) rows of the matching identities
        """
        emails = list(emails)
        phones = list(phones)
        if not emails and not phones:
            return []

        conditions = []
        if emails:
            conditions.append(CustomerIdentity.email.in_(emails))
        if phones:
            conditions.append(CustomerIdentity.phone.in_(phones))

        stmt = (
            select(CustomerIdentity.customer_id, CustomerIdentity.email, CustomerIdentity.phone)
            .join(Customer, Customer.id == CustomerIdentity.customer_id)
            .where(Customer.merged_into_id.is_(None), or_(*conditions))
        )
        if exclude_id is not None:
            stmt = stmt.where(CustomerIdentity.customer_id != exclude_id)

        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]

    def _value_owners(self, field: str):
        """Union of (value, customer_id, provider) from primaries and identities.

        Address hashes live only on identities, stored as
        ``address_hash:<hash>`` external IDs; the prefix is stripped so the
        same address groups across providers.
        """
        if field == "address_hash":
            return (
                select(
                    func.substr(
                        CustomerIdentity.external_id, len(ADDRESS_HASH_PREFIX) + 1
                    ).label("value"),
                    CustomerIdentity.customer_id.label("customer_id"),
                    CustomerIdentity.provider.label("provider"),
                )
                .join(Customer, Customer.id == CustomerIdentity.customer_id)
                .where(
                    Customer.merged_into_id.is_(None),
                    CustomerIdentity.external_id.startswith(ADDRESS_HASH_PREFIX, autoescape=True),
                )
                .subquery()
            )

        primary_column = Customer.primary_email if field == "email" else Customer.primary_phone
        identity_column = CustomerIdentity.email if field == "email" else CustomerIdentity.phone

        from_primaries = select(
            primary_column.label("value"),
            Customer.id.label("customer_id"),
            cast(null(), String(32)).label("provider"),
        ).where(Customer.merged_into_id.is_(None), primary_column.is_not(None))

        from_identities = (
            select(
                identity_column.label("value"),
                CustomerIdentity.customer_id.label("customer_id"),
                CustomerIdentity.provider.label("provider"),
            )
            .join(Customer, Customer.id == CustomerIdentity.customer_id)
            .where(Customer.merged_into_id.is_(None), identity_column.is_not(None))
        )
        return union_all(from_primaries, from_identities).subquery()

    async def find_shared_values(self, field: str, limit: int) -> List[str]:
        """List identifier values owned by more than one live customer.

        Args:
            field: ``"email"``, ``"phone"`` or ``"address_hash"``
            limit: Maximum number of values to return

        Returns:
            Shared values in ascending order
        """
        owners = self._value_owners(field)
        stmt = (
            select(owners.c.value)
            .group_by(owners.c.value)
            .having(func.count(func.distinct(owners.c.customer_id)) > 1)
            .order_by(owners.c.value)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_value_owners(
        self, field: str, values: Iterable[str]
    ) -> List[Tuple[str, int, Optional[str]]]:
        """List every (value, customer_id, provider) row for the given values."""
        values = list(values)
        if not values:
            return []
        owners = self._value_owners(field)
        stmt = select(owners.c.value, owners.c.customer_id, owners.c.provider).where(
            owners.c.value.in_(values)
        )
        result = await self.session.execute(stmt)
        return [tuple(row) for row in result.all()]
