"""Monotonic enrichment of a resolved customer.

Runs after every non-ambiguous resolution. Gaps on the customer are filled
from the observation but a stored value is never overwritten; only an
explicit merge may do that. Every provider that has observed the customer
ends up with a durable identity row.
"""

from typing import Any, Dict, Optional

from app.core.exceptions import ConflictError
from app.database.models import Customer, CustomerIdentity
from app.repositories.customer_repository import CustomerRepository
from app.repositories.identity_repository import IdentityRepository
from app.schemas.identity import MatchMethod
from app.services.identity.matchers import MatchContext
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

BACKFILL_FIELDS = {
    "primary_email": "email",
    "primary_phone": "phone",
    "first_name": "first_name",
    "last_name": "last_name",
    "company": "company",
}


class IdentityEnricher:
    """Backfills customer primaries and links identities."""

    def __init__(self, customers: CustomerRepository, identities: IdentityRepository):
        self.customers = customers
        self.identities = identities

    async def enrich(
        self,
        customer: Customer,
        context: MatchContext,
        matched_by: MatchMethod,
        matched_external_id: Optional[str] = None,
    ) -> None:
        """Apply an observation to the customer it resolved to.

        Args:
            customer: Resolved or freshly created customer
            context: Normalized observation
            matched_by: Tier that produced the match
            matched_external_id: Address-hash key the match was made on, if any

        Raises:
            ConflictError: The observation's (provider, external_id) now belongs
                to a different customer; the resolution must be re-run
        """
        changed = self.backfill(customer, context)
        if changed:
            LOGGER.info(
                f"Backfilled customer {customer.id}: {', '.join(changed)}",
                extra={"customer_id": customer.id, "fields": changed},
            )

        if context.external_id:
            await self._upsert_external_identity(customer, context, matched_by, matched_external_id)
        if context.email:
            await self._ensure_email_identity(customer, context)
        if context.address_external_id:
            await self.link_address(customer, context)

        await self.customers.session.flush()

    def backfill(self, customer: Customer, context: MatchContext) -> list:
        """Set null customer fields from the observation.

        Returns:
            Names of the fields that were filled
        """
        changed = []
        for attribute, source in BACKFILL_FIELDS.items():
            value = getattr(context, source)
            if value is not None and getattr(customer, attribute) is None:
                setattr(customer, attribute, value)
                changed.append(attribute)
        return changed

    async def _upsert_external_identity(
        self,
        customer: Customer,
        context: MatchContext,
        matched_by: MatchMethod,
        matched_external_id: Optional[str],
    ) -> CustomerIdentity:
        identity = await self.identities.get_by_provider_external_id(
            context.provider, context.external_id
        )
        if identity is None:
            metadata = self._metadata(context, context.identity_type or "external_id")
            if matched_by == MatchMethod.ADDRESS_HASH and matched_external_id:
                metadata["original_external_id"] = matched_external_id
            return await self.identities.create_identity(
                customer_id=customer.id,
                provider=context.provider,
                external_id=context.external_id,
                email=context.email,
                phone=context.phone,
                metadata=metadata,
            )

        if identity.customer_id != customer.id:
            raise ConflictError(
                f"{context.provider} identity {context.external_id} belongs to customer "
                f"{identity.customer_id}, not {customer.id}"
            )

        if context.email is not None and identity.email != context.email:
            identity.email = context.email
        if context.phone is not None and identity.phone != context.phone:
            identity.phone = context.phone
        if context.metadata:
            # Reassign so the JSON column is flagged dirty
            identity.additional_metadata = {**(identity.additional_metadata or {}), **context.metadata}
        return identity

    async def _ensure_email_identity(self, customer: Customer, context: MatchContext) -> None:
        existing = await self.identities.get_email_identity(
            customer.id, context.provider, context.email
        )
        if existing is not None:
            return
        await self.identities.create_identity(
            customer_id=customer.id,
            provider=context.provider,
            email=context.email,
            phone=context.phone,
            metadata=self._metadata(context, "email"),
        )

    async def link_address(self, customer: Customer, context: MatchContext) -> None:
        key = context.address_external_id
        identity = await self.identities.get_by_provider_external_id(context.provider, key)
        if identity is not None:
            if identity.customer_id != customer.id:
                LOGGER.warning(
                    f"Address hash {key} already belongs to customer {identity.customer_id}; "
                    f"not linking to {customer.id}",
                    extra={
                        "provider": context.provider,
                        "customer_id": customer.id,
                        "owner_customer_id": identity.customer_id,
                    },
                )
            return

        identity_type = "address_hash" if context.external_id else context.identity_type or "address_hash"
        metadata = self._metadata(context, identity_type)
        metadata["address"] = context.address.model_dump(exclude_none=True)
        await self.identities.create_identity(
            customer_id=customer.id,
            provider=context.provider,
            external_id=key,
            email=context.email,
            phone=context.phone,
            metadata=metadata,
        )

    @staticmethod
    def _metadata(context: MatchContext, identity_type: str) -> Dict[str, Any]:
        metadata = dict(context.metadata)
        metadata["identity_type"] = identity_type
        return metadata
