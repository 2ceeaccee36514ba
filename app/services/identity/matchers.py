"""Tiered matchers consulted by the resolver, strongest identifier first.

Each matcher answers one question: which live customers own this
identifier? Adding an identifier type means appending one more matcher to
the chain returned by ``default_matchers``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from app.repositories.customer_repository import CustomerRepository
from app.repositories.identity_repository import IdentityRepository
from app.schemas.identity import AddressInput, IdentityObservation, MatchMethod
from app.services.identity.normalizer import (
    address_hash_external_id,
    compute_address_hash,
    normalize_email,
    normalize_phone,
)


@dataclass(frozen=True)
class MatchContext:
    """Observation with every identifier already normalized."""

    provider: str
    external_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    identity_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    address: Optional[AddressInput] = None
    address_hash: Optional[str] = None

    @classmethod
    def from_observation(
        cls, observation: IdentityObservation, address: Optional[AddressInput] = None
    ) -> "MatchContext":
        external_id = (observation.external_id or "").strip() or None
        return cls(
            provider=observation.provider.value,
            external_id=external_id,
            email=normalize_email(observation.email),
            phone=normalize_phone(observation.phone),
            first_name=_clean(observation.first_name),
            last_name=_clean(observation.last_name),
            company=_clean(observation.company),
            identity_type=observation.identity_type,
            metadata=dict(observation.metadata or {}),
            address=address,
            address_hash=compute_address_hash(address),
        )

    @property
    def address_external_id(self) -> Optional[str]:
        if not self.address_hash:
            return None
        return address_hash_external_id(self.address_hash)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


@dataclass(frozen=True)
class MatchOutcome:
    """Customers owning the identifier a matcher looked up."""

    method: MatchMethod
    customer_ids: FrozenSet[int]

    @property
    def is_ambiguous(self) -> bool:
        return len(self.customer_ids) > 1

    @property
    def customer_id(self) -> int:
        if self.is_ambiguous:
            raise ValueError(f"{self.method.value} match is ambiguous: {sorted(self.customer_ids)}")
        return next(iter(self.customer_ids))


class Matcher(ABC):
    """One resolution tier."""

    method: MatchMethod

    @abstractmethod
    async def match(self, context: MatchContext) -> Optional[MatchOutcome]:
        """Return the owners of this tier's identifier, or None when it finds nobody."""

    def _outcome(self, customer_ids) -> Optional[MatchOutcome]:
        if not customer_ids:
            return None
        return MatchOutcome(method=self.method, customer_ids=frozenset(customer_ids))


class ExternalIdMatcher(Matcher):
    """Exact (provider, external_id) lookup. Uniqueness makes it unambiguous."""

    method = MatchMethod.EXTERNAL_ID

    def __init__(self, identities: IdentityRepository):
        self.identities = identities

    async def match(self, context: MatchContext) -> Optional[MatchOutcome]:
        if not context.external_id:
            return None
        identity = await self.identities.get_by_provider_external_id(
            context.provider, context.external_id
        )
        if identity is None:
            return None
        return self._outcome({identity.customer_id})


class EmailMatcher(Matcher):
    """Customers whose primary email or any identity email equals the observation's."""

    method = MatchMethod.EMAIL

    def __init__(self, customers: CustomerRepository, identities: IdentityRepository):
        self.customers = customers
        self.identities = identities

    async def match(self, context: MatchContext) -> Optional[MatchOutcome]:
        if not context.email:
            return None
        ids = await self.customers.find_live_ids_by_primary_email(context.email)
        ids |= await self.identities.find_owner_ids_by_email(context.email)
        return self._outcome(ids)


class PhoneMatcher(Matcher):
    """Customers whose primary phone or any identity phone equals the observation's."""

    method = MatchMethod.PHONE

    def __init__(self, customers: CustomerRepository, identities: IdentityRepository):
        self.customers = customers
        self.identities = identities

    async def match(self, context: MatchContext) -> Optional[MatchOutcome]:
        if not context.phone:
            return None
        ids = await self.customers.find_live_ids_by_primary_phone(context.phone)
        ids |= await self.identities.find_owner_ids_by_phone(context.phone)
        return self._outcome(ids)


class AddressHashMatcher(Matcher):
    """Address-hash identities of the same provider.

    Hashes are never compared across providers: each provider formats
    addresses its own way and a coincidental collision must not link two
    households.
    """

    method = MatchMethod.ADDRESS_HASH

    def __init__(self, identities: IdentityRepository):
        self.identities = identities

    async def match(self, context: MatchContext) -> Optional[MatchOutcome]:
        if not context.address_external_id:
            return None
        ids = await self.identities.find_owner_ids_by_external_id(
            context.provider, context.address_external_id
        )
        return self._outcome(ids)


def default_matchers(
    customers: CustomerRepository, identities: IdentityRepository
) -> List[Matcher]:
    """Build the standard chain: external id, email, phone, address hash."""
    return [
        ExternalIdMatcher(identities),
        EmailMatcher(customers, identities),
        PhoneMatcher(customers, identities),
        AddressHashMatcher(identities),
    ]
