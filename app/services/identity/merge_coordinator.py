"""Operator-driven merging of duplicate customers.

Nothing here runs automatically. Candidates are a read-only report, and a
merge happens only when an admin or manager confirms it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppError, NotFoundError, TransactionFailure, ValidationError
from app.database.models import Customer
from app.repositories.customer_repository import CustomerRepository
from app.repositories.identity_repository import IdentityRepository
from app.repositories.merge_repository import MergeRepository
from app.services.base_service import BaseService
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Filled on the primary from merged customers, null-only
MERGE_BACKFILL_FIELDS = (
    "primary_email",
    "primary_phone",
    "first_name",
    "last_name",
    "company",
    "credit_risk_level",
)


@dataclass(frozen=True)
class MergeCandidate:
    customer: Customer
    matched_on: List[str]


@dataclass(frozen=True)
class MergeResult:
    merged_count: int
    repointed: Dict[str, int] = field(default_factory=dict)


class MergeCoordinator(BaseService):
    """Lists duplicate candidates and merges confirmed duplicates atomically."""

    def __init__(self, session: AsyncSession):
        super().__init__(session)
        self.customers = CustomerRepository(session)
        self.identities = IdentityRepository(session)
        self.merges = MergeRepository(session)

    async def list_merge_candidates(self, customer_id: int) -> List[MergeCandidate]:
        """Find other live customers sharing an email or phone with the target.

        The target's primary email and phone plus every email and phone on its
        identities are compared, by equality, against other customers'
        primaries and identities.

        Args:
            customer_id: Target customer

        Returns:
            Candidates ordered by customer ID

        Raises:
            NotFoundError: Target is missing or was merged away
        """
        target = await self.customers.get_live(customer_id)
        if target is None:
            raise NotFoundError(f"Customer {customer_id} not found")

        emails = {target.primary_email} if target.primary_email else set()
        phones = {target.primary_phone} if target.primary_phone else set()
        for identity in await self.identities.list_for_customer(customer_id):
            if identity.email:
                emails.add(identity.email)
            if identity.phone:
                phones.add(identity.phone)

        matched: Dict[int, set] = {}
        by_primary = await self.customers.find_live_by_primary_values(
            emails, phones, exclude_id=customer_id
        )
        for customer in by_primary:
            reasons = matched.setdefault(customer.id, set())
            if customer.primary_email and customer.primary_email in emails:
                reasons.add("email")
            if customer.primary_phone and customer.primary_phone in phones:
                reasons.add("phone")

        owners = await self.identities.find_live_owners_by_values(
            emails, phones, exclude_id=customer_id
        )
        for owner_id, email, phone in owners:
            reasons = matched.setdefault(owner_id, set())
            if email and email in emails:
                reasons.add("email")
            if phone and phone in phones:
                reasons.add("phone")

        customers = {c.id: c for c in by_primary}
        missing = [cid for cid in matched if cid not in customers]
        for customer in await self.customers.get_live_many(missing):
            customers[customer.id] = customer

        return [
            MergeCandidate(
                customer=customers[cid],
                matched_on=[reason for reason in ("email", "phone") if reason in matched[cid]],
            )
            for cid in sorted(matched)
            if cid in customers
        ]

    async def merge_customers(self, primary_id: int, merge_ids: Sequence[int]) -> MergeResult:
        """Merge duplicates into the primary customer in one transaction."""
        return await self.execute(primary_id, merge_ids)

    def validate(self, primary_id: int, merge_ids: Sequence[int]) -> None:
        if not merge_ids:
            raise ValidationError("At least one customer id to merge is required")
        if primary_id <= 0 or any(mid <= 0 for mid in merge_ids):
            raise ValidationError("Customer ids must be positive integers")
        if primary_id in merge_ids:
            raise ValidationError("Primary customer cannot be merged into itself")

    async def run(self, primary_id: int, merge_ids: Sequence[int]) -> MergeResult:
        """Re-point every dependent row, absorb primary-field gaps, tombstone the rest.

        Customer rows are locked in ascending ID order so overlapping merges
        serialize. Any failure rolls the whole merge back.

        Raises:
            NotFoundError: A customer is missing or already merged
            TransactionFailure: A write failed; nothing was changed
        """
        merge_ids = sorted(set(merge_ids))
        try:
            locked = await self.customers.lock_for_update([primary_id, *merge_ids])
            by_id = {customer.id: customer for customer in locked}

            primary = by_id.get(primary_id)
            if primary is None or primary.is_merged:
                raise NotFoundError(f"Primary customer {primary_id} not found")
            missing = [mid for mid in merge_ids if mid not in by_id or by_id[mid].is_merged]
            if missing:
                raise NotFoundError(f"Customers not found: {missing}")

            merged = [by_id[mid] for mid in merge_ids]
            repointed = await self.merges.repoint_all(merge_ids, primary_id)
            await self.merges.redirect_tombstones(merge_ids, primary_id)
            self._absorb(primary, merged)
            await self.session.flush()
            await self.session.commit()

        except AppError:
            await self.session.rollback()
            raise
        except Exception as e:
            await self.session.rollback()
            LOGGER.error(
                f"Merge into customer {primary_id} rolled back: {str(e)}",
                exc_info=True,
                extra={"primary_id": primary_id, "merge_ids": merge_ids},
            )
            raise TransactionFailure(
                f"Merge into customer {primary_id} failed and was rolled back",
                original_error=e,
            ) from e

        LOGGER.info(
            f"Merged {len(merge_ids)} customers into {primary_id}",
            extra={"primary_id": primary_id, "merge_ids": merge_ids, "repointed": repointed},
        )
        return MergeResult(merged_count=len(merge_ids), repointed=repointed)

    @staticmethod
    def _absorb(primary: Customer, merged: Iterable[Customer]) -> None:
        now = datetime.now(timezone.utc)
        for duplicate in merged:
            for attribute in MERGE_BACKFILL_FIELDS:
                value = getattr(duplicate, attribute)
                if value is not None and getattr(primary, attribute) is None:
                    setattr(primary, attribute, value)
            if duplicate.is_vip:
                primary.is_vip = True

            # Tombstone
            duplicate.merged_into_id = primary.id
            duplicate.merged_at = now
