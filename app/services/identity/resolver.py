"""Resolution of provider observations to canonical customers.

The resolver walks the matcher chain and stops at the first tier that finds
anyone. A tier that finds more than one live customer ends the resolution as
``Ambiguous`` without writing anything. A false-positive merge corrupts order
history and receivables, so "ambiguous, do nothing" always beats "probably
this one".
"""

from typing import Awaitable, Callable, List, Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, ValidationError
from app.database.models import Customer
from app.repositories.customer_repository import CustomerRepository
from app.repositories.identity_repository import IdentityRepository
from app.schemas.identity import AddressInput, IdentityObservation, MatchMethod, Provider
from app.services.identity.enricher import IdentityEnricher
from app.services.identity.matchers import MatchContext, Matcher, default_matchers
from app.services.identity.results import Ambiguous, Created, ResolutionResult, Resolved
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


def validate_observation(context: MatchContext) -> None:
    """Reject observations that cannot be resolved safely.

    Raises:
        ValidationError: No usable identifier, or a provider-specific field is missing
    """
    if not (context.external_id or context.email or context.phone or context.address_hash):
        raise ValidationError(
            f"{context.provider} observation has no external id, email, phone or usable address"
        )
    if context.provider == Provider.ACCOUNTING.value and not context.external_id:
        raise ValidationError("accounting observations require an external id")
    if context.provider == Provider.MARKETING.value and not context.email:
        raise ValidationError("marketing observations require an email")
    if context.provider == Provider.SELF_REPORTED.value and not (context.email or context.phone):
        raise ValidationError("self_reported observations require an email or a phone")


class IdentityResolver:
    """Tiered resolver over the identity store.

    The resolver writes through the caller's session and never commits;
    the caller owns the transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        matchers: Optional[List[Matcher]] = None,
    ):
        """Initialize resolver.

        Args:
            session: Database session shared with the caller's transaction
            matchers: Tier chain; defaults to external id, email, phone, address hash
        """
        self.session = session
        self.customers = CustomerRepository(session)
        self.identities = IdentityRepository(session)
        self.enricher = IdentityEnricher(self.customers, self.identities)
        self.matchers = matchers if matchers is not None else default_matchers(
            self.customers, self.identities
        )

    async def resolve(
        self,
        observation: IdentityObservation,
        address: Optional[AddressInput] = None,
    ) -> ResolutionResult:
        """Resolve an observation to a customer, creating one when nothing matches.

        A unique-constraint race on insert means another request just created
        the same identity; the resolution is re-run once and then finds it.

        Args:
            observation: Provider view of the customer
            address: Optional shipping/billing address

        Returns:
            Resolved, Created or Ambiguous

        Raises:
            ValidationError: Observation is unusable
            ConflictError: The retry conflicted again
        """
        context = MatchContext.from_observation(observation, address)
        validate_observation(context)

        try:
            return await self._resolve_once(context)
        except ConflictError as e:
            LOGGER.warning(
                f"Identity conflict for {context.provider}, retrying resolution: {e.message}",
                extra={"provider": context.provider, "external_id": context.external_id},
            )
            return await self._resolve_once(context)

    async def _resolve_once(self, context: MatchContext) -> ResolutionResult:
        for matcher in self.matchers:
            outcome = await matcher.match(context)
            if outcome is None:
                continue

            if outcome.is_ambiguous:
                candidate_ids = tuple(sorted(outcome.customer_ids))
                LOGGER.warning(
                    f"Ambiguous {outcome.method.value} match for {context.provider}: "
                    f"{list(candidate_ids)}",
                    extra={
                        "provider": context.provider,
                        "matched_by": outcome.method.value,
                        "candidate_ids": list(candidate_ids),
                    },
                )
                return Ambiguous(matched_by=outcome.method, candidate_ids=candidate_ids)

            customer = await self.customers.get_live(outcome.customer_id)
            if customer is None:
                continue

            matched_external_id = (
                context.address_external_id if outcome.method == MatchMethod.ADDRESS_HASH else None
            )
            await self._in_savepoint(
                lambda: self.enricher.enrich(customer, context, outcome.method, matched_external_id)
            )
            LOGGER.info(
                f"Resolved {context.provider} observation to customer {customer.id} "
                f"by {outcome.method.value}",
                extra={"customer_id": customer.id, "matched_by": outcome.method.value},
            )
            return Resolved(customer=customer, matched_by=outcome.method)

        customer = await self._in_savepoint(lambda: self._create(context))
        return Created(customer=customer)

    async def _create(self, context: MatchContext) -> Customer:
        customer = await self.customers.create_customer(
            primary_email=context.email,
            primary_phone=context.phone,
            first_name=context.first_name,
            last_name=context.last_name,
            company=context.company,
        )

        # Originating identity
        if context.external_id:
            await self.identities.create_identity(
                customer_id=customer.id,
                provider=context.provider,
                external_id=context.external_id,
                email=context.email,
                phone=context.phone,
                metadata={**context.metadata, "identity_type": context.identity_type or "external_id"},
            )
        elif context.address_hash and not context.email:
            await self.enricher.link_address(customer, context)
        else:
            await self.identities.create_identity(
                customer_id=customer.id,
                provider=context.provider,
                email=context.email,
                phone=context.phone,
                metadata={**context.metadata, "identity_type": "email" if context.email else "phone"},
            )

        await self.enricher.enrich(customer, context, MatchMethod.NONE)
        return customer

    async def _in_savepoint(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run a write inside a savepoint, turning unique violations into conflicts."""
        try:
            async with self.session.begin_nested():
                result = await operation()
                await self.session.flush()
            return result
        except IntegrityError as e:
            raise ConflictError(
                "Concurrent write on customer identity",
                original_error=e,
            ) from e
