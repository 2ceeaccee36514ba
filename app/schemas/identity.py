"""Identity observation schemas shared by ingestion jobs and the resolver.

An observation is one provider's view of a customer. Values arrive raw;
normalization happens inside the resolver, never in the caller.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Provider(str, Enum):
    """Systems that observe customers."""

    STOREFRONT = "storefront"
    ACCOUNTING = "accounting"
    MARKETPLACE = "marketplace"
    FULFILLMENT = "fulfillment"
    MARKETING = "marketing"
    MANUAL = "manual"
    SELF_REPORTED = "self_reported"


class MatchMethod(str, Enum):
    """Identifier that produced a resolution."""

    EXTERNAL_ID = "external_id"
    EMAIL = "email"
    PHONE = "phone"
    ADDRESS_HASH = "address_hash"
    NONE = "none"


# external_id prefix of keys derived from a shipping address
ADDRESS_HASH_PREFIX = "address_hash:"


class InteractionChannel(str, Enum):
    EMAIL = "email"
    TICKET = "ticket"
    SELF_ID_FORM = "self_id_form"
    MARKETPLACE_API = "marketplace_api"
    STOREFRONT_WEBHOOK = "storefront_webhook"
    MARKETING = "marketing"
    TELEPHONY = "telephony"


class InteractionDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class AddressInput(BaseModel):
    """Shipping or billing address as supplied by a provider."""

    name: Optional[str] = Field(None, description="Recipient name")
    address1: Optional[str] = Field(None, description="Street address line 1")
    address2: Optional[str] = Field(None, description="Apartment, suite, unit")
    city: Optional[str] = Field(None, description="City")
    state: Optional[str] = Field(None, description="State or province")
    postal_code: Optional[str] = Field(None, description="Postal or ZIP code")
    country: Optional[str] = Field(None, description="Country code; defaults to US when hashing")


class IdentityObservation(BaseModel):
    """A single provider's view of a customer."""

    provider: Provider = Field(..., description="Provider that observed the customer")
    external_id: Optional[str] = Field(None, description="Provider-native customer ID")
    email: Optional[str] = Field(None, description="Raw email address")
    phone: Optional[str] = Field(None, description="Raw phone number")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    company: Optional[str] = Field(None, description="Company name")
    identity_type: Optional[str] = Field(
        None, description="Provider-specific identity tag, e.g. shipment_address_hash"
    )
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Free-form provider context")
