"""Review queue of customers that share an identifier.

Each group is a set of live customers an operator should look at before
deciding whether to merge them.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.repositories.customer_repository import CustomerRepository
from app.repositories.identity_repository import IdentityRepository
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

MATCH_TYPES = ("email", "phone", "address_hash")


@dataclass(frozen=True)
class AmbiguousGroup:
    match_type: str
    value: str
    customer_ids: List[int]
    providers: List[str]
    # Aligned with customer_ids
    customer_names: List[str] = field(default_factory=list)
    order_counts: List[int] = field(default_factory=list)


class AmbiguityReport:
    """Groups of live customers sharing an email, a phone or an address hash."""

    def __init__(self, session: AsyncSession):
        self.customers = CustomerRepository(session)
        self.identities = IdentityRepository(session)

    async def find_ambiguous_groups(self, limit: Optional[int] = None) -> List[AmbiguousGroup]:
        """Build the merge-review queue.

        Args:
            limit: Maximum number of groups per match type; defaults to
                ``IDENTITY_AMBIGUITY_REPORT_LIMIT``

        Returns:
            Email groups, then phone groups, then address-hash groups, each
            ordered by value
        """
        limit = limit or settings.ambiguity_report_limit
        groups: List[AmbiguousGroup] = []

        for match_type in MATCH_TYPES:
            values = await self.identities.find_shared_values(match_type, limit)
            owners: Dict[str, Set[int]] = {value: set() for value in values}
            providers: Dict[str, Set[str]] = {value: set() for value in values}

            for value, customer_id, provider in await self.identities.list_value_owners(
                match_type, values
            ):
                owners[value].add(customer_id)
                if provider:
                    providers[value].add(provider)

            summary = await self.customers.summarize(
                customer_id for customer_ids in owners.values() for customer_id in customer_ids
            )
            for value in values:
                customer_ids = sorted(owners[value])
                groups.append(
                    AmbiguousGroup(
                        match_type=match_type,
                        value=value,
                        customer_ids=customer_ids,
                        providers=sorted(providers[value]),
                        customer_names=[summary[cid][0] for cid in customer_ids],
                        order_counts=[summary[cid][1] for cid in customer_ids],
                    )
                )

        LOGGER.info(
            f"Found {len(groups)} ambiguous customer groups",
            extra={"group_count": len(groups), "limit": limit},
        )
        return groups
