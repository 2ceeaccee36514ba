"""Request and response models for the customer identity endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, model_validator

from app.schemas.identity import AddressInput, IdentityObservation, MatchMethod


class ResolveCustomerRequest(BaseModel):
    """Request body for resolving an observation to a customer."""

    observation: IdentityObservation = Field(..., description="Provider observation")
    address: Optional[AddressInput] = Field(None, description="Optional shipping/billing address")


class ResolveCustomerResponse(BaseModel):
    """Outcome of a resolution. ``customer_id`` is null when ambiguous."""

    customer_id: Optional[int] = Field(None, description="Resolved or created customer ID")
    matched_by: MatchMethod = Field(..., description="Identifier tier that matched")
    is_new: bool = Field(..., description="True when a customer was created")
    is_ambiguous: bool = Field(..., description="True when several customers matched")
    ambiguous_customer_ids: List[int] = Field(
        default_factory=list, description="Candidate customers needing manual review"
    )


class IdentityResponse(BaseModel):
    """A provider identity attached to a customer."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    provider: str
    external_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="additional_metadata")
    created_at: datetime


class CustomerResponse(BaseModel):
    """Canonical customer."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    primary_email: Optional[str] = None
    primary_phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    is_vip: bool = False
    credit_risk_level: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CustomerDetailResponse(CustomerResponse):
    """Customer together with every identity that resolves to it."""

    identities: List[IdentityResponse] = Field(default_factory=list)


class MergeCustomersRequest(BaseModel):
    """Request body for merging duplicate customers into a primary one."""

    primary_customer_id: PositiveInt = Field(..., description="Surviving customer ID")
    merge_customer_ids: List[PositiveInt] = Field(
        ..., min_length=1, description="Customer IDs absorbed into the primary"
    )

    @model_validator(mode="after")
    def primary_not_in_merge_ids(self) -> "MergeCustomersRequest":
        if self.primary_customer_id in self.merge_customer_ids:
            raise ValueError("primary_customer_id must not appear in merge_customer_ids")
        return self


class MergeCustomersResponse(BaseModel):
    merged_count: int = Field(..., description="Number of customers absorbed")
    repointed: Dict[str, int] = Field(default_factory=dict, description="Rows moved per table")


class MergeCandidateResponse(BaseModel):
    """Another customer sharing an email or phone with the target."""

    customer_id: int
    primary_email: Optional[str] = None
    primary_phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    matched_on: List[str] = Field(..., description="Subset of email, phone")


class AmbiguousGroupResponse(BaseModel):
    """Live customers sharing one identifier value; the merge-review queue."""

    match_type: str = Field(..., description="email, phone or address_hash")
    value: str
    customer_ids: List[int]
    providers: List[str] = Field(default_factory=list)
    customer_names: List[str] = Field(default_factory=list, description="Aligned with customer_ids")
    order_counts: List[int] = Field(default_factory=list, description="Aligned with customer_ids")


class ErrorResponse(BaseModel):
    """Standardized error response model."""

    error: str = Field(..., description="Error type/code")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[Any] = Field(None, description="Additional error details")
