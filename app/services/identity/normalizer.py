"""Normalization of identifiers before they are stored or compared.

Every ingestion path goes through these functions, so plain equality is
enough to match an email, a phone or an address hash anywhere in the system.
"""

import hashlib
import re
from typing import Optional

from app.schemas.identity import ADDRESS_HASH_PREFIX, AddressInput

ADDRESS_HASH_LENGTH = 16
DEFAULT_COUNTRY = "us"

_NON_PHONE_CHARS = re.compile(r"[^\d+]")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_email(value: Optional[str]) -> Optional[str]:
    """Trim and lower-case an email address.

    Args:
        value: Raw email as received from a provider

    Returns:
        Normalized email, or None when empty
    """
    if value is None:
        return None
    email = value.strip().lower()
    return email or None


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Reduce a phone number to an E.164-like form.

    Only digits and a leading ``+`` survive. Ten digits are treated as a
    North American local number and get ``+1``; eleven digits starting with
    ``1`` and any other run longer than ten digits already carry a country
    code and get ``+``. Shorter runs such as extensions stay bare digits.

    Args:
        value: Raw phone as received from a provider

    Returns:
        Normalized phone, or None when nothing usable remains
    """
    if value is None:
        return None

    cleaned = _NON_PHONE_CHARS.sub("", value.strip())
    has_plus = cleaned.startswith("+")
    digits = cleaned.replace("+", "")
    if not digits:
        return None

    if has_plus:
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) > 10:
        return f"+{digits}"
    return digits


def _normalize_address_part(value: Optional[str]) -> str:
    if not value:
        return ""
    text = _PUNCTUATION.sub("", value.lower()).replace("_", "")
    return _WHITESPACE.sub(" ", text).strip()


def compute_address_hash(address: Optional[AddressInput]) -> Optional[str]:
    """Derive a deterministic digest of a postal address.

    The address needs a name or first line and a city or postal code,
    otherwise there is too little to identify a household and None is
    returned. Line 2 is part of the digest, so two apartments in the same
    building hash differently.

    Args:
        address: Address as supplied by the provider

    Returns:
        16 lowercase hex characters, or None
    """
    if address is None:
        return None

    name = _normalize_address_part(address.name)
    line1 = _normalize_address_part(address.address1)
    city = _normalize_address_part(address.city)
    postal_code = _normalize_address_part(address.postal_code).replace(" ", "").lstrip("0")

    if not (name or line1) or not (city or postal_code):
        return None

    parts = [
        name,
        line1,
        _normalize_address_part(address.address2),
        city,
        _normalize_address_part(address.state),
        postal_code,
        _normalize_address_part(address.country) or DEFAULT_COUNTRY,
    ]
    digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
    return digest[:ADDRESS_HASH_LENGTH]


def address_hash_external_id(address_hash: str) -> str:
    return f"{ADDRESS_HASH_PREFIX}{address_hash}"


def is_address_hash_external_id(external_id: Optional[str]) -> bool:
    return bool(external_id) and external_id.startswith(ADDRESS_HASH_PREFIX)
