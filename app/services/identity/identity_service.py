"""Identity service: the entry point ingestion jobs and endpoints call.

Each public resolution method owns its transaction: it commits on success
and rolls back on any failure, so a caller never sees half an enrichment.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AmbiguousMatchError
from app.database.models import Customer, CustomerIdentity, Interaction
from app.repositories.customer_repository import CustomerRepository
from app.repositories.identity_repository import IdentityRepository
from app.repositories.interaction_repository import InteractionRepository
from app.schemas.identity import (
    AddressInput,
    IdentityObservation,
    InteractionChannel,
    InteractionDirection,
    MatchMethod,
    Provider,
)
from app.services.identity.normalizer import address_hash_external_id
from app.services.identity.resolver import IdentityResolver
from app.services.identity.results import ResolutionResult
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_LINKED = "linked"
ACTION_AMBIGUOUS = "ambiguous"
ACTION_UNLINKED = "unlinked"
ACTION_ERROR = "errors"


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of one upsert as reported to sync jobs."""

    action: str
    customer_id: Optional[int]
    matched_by: MatchMethod
    ambiguous_customer_ids: List[int] = field(default_factory=list)


@dataclass
class SyncMetrics:
    """Per-run counters for a provider sync job."""

    COUNTERS = ("created", "updated", "linked", "ambiguous", "unlinked", "errors")

    created: int = 0
    updated: int = 0
    linked: int = 0
    ambiguous: int = 0
    unlinked: int = 0
    errors: int = 0

    def record(self, action: str) -> None:
        if action not in self.COUNTERS:
            raise ValueError(f"Unknown sync action: {action}")
        setattr(self, action, getattr(self, action) + 1)

    @property
    def total(self) -> int:
        return sum(getattr(self, counter) for counter in self.COUNTERS)

    def as_dict(self) -> Dict[str, int]:
        counts = {counter: getattr(self, counter) for counter in self.COUNTERS}
        counts["total"] = self.total
        return counts


def log_sync_metrics(job_name: str, metrics: SyncMetrics) -> None:
    """Log the counters of a finished sync run once."""
    LOGGER.info(
        f"[{job_name}] sync complete: {metrics.created} created, {metrics.updated} updated, "
        f"{metrics.linked} linked, {metrics.ambiguous} ambiguous, {metrics.unlinked} unlinked, "
        f"{metrics.errors} errors",
        extra={"job_name": job_name, **metrics.as_dict()},
    )


class IdentityService:
    """Service for resolving provider observations to customers."""

    def __init__(self, session: AsyncSession):
        """Initialize service with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session
        self.resolver = IdentityResolver(session)
        self.customers = CustomerRepository(session)
        self.identities = IdentityRepository(session)
        self.interactions = InteractionRepository(session)

    async def resolve_customer_advanced(
        self,
        observation: IdentityObservation,
        address: Optional[AddressInput] = None,
    ) -> ResolutionResult:
        """Resolve with full ambiguity reporting.

        Args:
            observation: Provider view of the customer
            address: Optional shipping/billing address

        Returns:
            Resolved, Created or Ambiguous
        """
        try:
            result = await self.resolver.resolve(observation, address)
            await self.session.commit()
            return result
        except Exception:
            await self.session.rollback()
            raise

    async def resolve_or_create_customer(
        self,
        observation: IdentityObservation,
        address: Optional[AddressInput] = None,
    ) -> Customer:
        """Resolve for callers that cannot act on ambiguity themselves.

        Raises:
            AmbiguousMatchError: Several customers share the identifier
        """
        result = await self.resolve_customer_advanced(observation, address)
        if result.is_ambiguous:
            raise AmbiguousMatchError(
                f"Ambiguous {result.matched_by.value} match: {result.ambiguous_customer_ids}",
                matched_by=result.matched_by.value,
                candidate_ids=result.ambiguous_customer_ids,
            )
        return result.customer

    async def upsert_customer_with_metrics(
        self,
        observation: IdentityObservation,
        address: Optional[AddressInput] = None,
    ) -> UpsertResult:
        """Resolve and classify the outcome for sync-job metrics.

        ``updated`` means the provider's own external id matched; ``linked``
        means the observation attached to a customer found by email, phone
        or address.
        """
        result = await self.resolve_customer_advanced(observation, address)

        if result.is_ambiguous:
            action = ACTION_AMBIGUOUS
        elif result.is_new:
            action = ACTION_CREATED
        elif result.matched_by == MatchMethod.EXTERNAL_ID:
            action = ACTION_UPDATED
        else:
            action = ACTION_LINKED

        customer = result.customer
        return UpsertResult(
            action=action,
            customer_id=customer.id if customer is not None else None,
            matched_by=result.matched_by,
            ambiguous_customer_ids=result.ambiguous_customer_ids,
        )

    async def get_customer(self, customer_id: int) -> Optional[Customer]:
        return await self.customers.get_live(customer_id)

    async def list_identities(self, customer_id: int) -> List[CustomerIdentity]:
        return await self.identities.list_for_customer(customer_id)

    async def record_interaction(
        self,
        customer_id: int,
        channel: InteractionChannel,
        direction: InteractionDirection = InteractionDirection.INBOUND,
        ticket_id: Optional[int] = None,
        comment_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> Interaction:
        """Record a customer touch and commit it."""
        try:
            interaction = await self.interactions.create_interaction(
                customer_id=customer_id,
                channel=InteractionChannel(channel).value,
                direction=InteractionDirection(direction).value,
                ticket_id=ticket_id,
                comment_id=comment_id,
                metadata=metadata,
                occurred_at=occurred_at,
            )
            await self.session.commit()
            return interaction
        except Exception:
            await self.session.rollback()
            raise

    async def find_by_address_hash(
        self, provider: Provider, address_hash: str
    ) -> Optional[Customer]:
        """Get the customer owning an address-hash identity of this provider."""
        identity = await self.identities.get_by_provider_external_id(
            Provider(provider).value, address_hash_external_id(address_hash)
        )
        if identity is None:
            return None
        return await self.customers.get_live(identity.customer_id)
