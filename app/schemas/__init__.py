from .identity import (
    AddressInput,
    IdentityObservation,
    InteractionChannel,
    InteractionDirection,
    MatchMethod,
    Provider,
)
from .customers import (
    AmbiguousGroupResponse,
    CustomerDetailResponse,
    CustomerResponse,
    ErrorResponse,
    IdentityResponse,
    MergeCandidateResponse,
    MergeCustomersRequest,
    MergeCustomersResponse,
    ResolveCustomerRequest,
    ResolveCustomerResponse,
)

__all__ = [
    "AddressInput",
    "IdentityObservation",
    "InteractionChannel",
    "InteractionDirection",
    "MatchMethod",
    "Provider",
    "AmbiguousGroupResponse",
    "CustomerDetailResponse",
    "CustomerResponse",
    "ErrorResponse",
    "IdentityResponse",
    "MergeCandidateResponse",
    "MergeCustomersRequest",
    "MergeCustomersResponse",
    "ResolveCustomerRequest",
    "ResolveCustomerResponse",
]
