"""Customer identity endpoints.

Resolution is open to any authenticated user. Merge review and merging
require an admin or manager role.
"""

from typing import Annotated, Any, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from app.core.auth import get_current_user, require_admin
from app.core.exceptions import (
    AmbiguousMatchError,
    AppError,
    ConflictError,
    NotFoundError,
    TransactionFailure,
    ValidationError,
)
from app.dependencies import get_ambiguity_report, get_identity_service, get_merge_coordinator
from app.schemas.auth import CurrentUser
from app.schemas.customers import (
    AmbiguousGroupResponse,
    CustomerDetailResponse,
    ErrorResponse,
    IdentityResponse,
    MergeCandidateResponse,
    MergeCustomersRequest,
    MergeCustomersResponse,
    ResolveCustomerRequest,
    ResolveCustomerResponse,
)
from app.services.identity.ambiguity_report import AmbiguityReport
from app.services.identity.identity_service import IdentityService
from app.services.identity.merge_coordinator import MergeCoordinator
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


def _raise_http(e: Exception) -> NoReturn:
    """Translate a service exception into the standard error payload."""
    if isinstance(e, ValidationError):
        code, error = status.HTTP_400_BAD_REQUEST, "ValidationError"
    elif isinstance(e, NotFoundError):
        code, error = status.HTTP_404_NOT_FOUND, "NotFound"
    elif isinstance(e, (AmbiguousMatchError, ConflictError)):
        code, error = status.HTTP_409_CONFLICT, e.__class__.__name__
    elif isinstance(e, TransactionFailure):
        code, error = status.HTTP_500_INTERNAL_SERVER_ERROR, "TransactionFailure"
    else:
        LOGGER.error(f"Unexpected error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "InternalError",
                "message": "An unexpected error occurred",
                "detail": "Please contact support if this persists",
            },
        ) from e

    detail: Any = None
    if isinstance(e, AmbiguousMatchError):
        detail = {"matched_by": e.matched_by, "candidate_ids": e.candidate_ids}
    raise HTTPException(
        status_code=code,
        detail={"error": error, "message": e.message, "detail": detail},
    ) from e


@router.post(
    "/resolve",
    response_model=ResolveCustomerResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Observation has no usable identifier"},
        409: {"model": ErrorResponse, "description": "Identity conflict persisted after retry"},
    },
    summary="Resolve an observation to a customer",
    description=(
        "Match a provider observation by external id, email, phone or address hash, "
        "creating a customer when nothing matches. Ambiguous matches are returned "
        "with their candidate ids and change nothing."
    ),
    operation_id="resolve_customer",
)
async def resolve_customer(
    request: ResolveCustomerRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    identity_service: Annotated[IdentityService, Depends(get_identity_service)],
) -> ResolveCustomerResponse:
    """Resolve a provider observation.

    Args:
        request: Observation and optional address
        current_user: Authenticated user
        identity_service: Identity service bound to the request session

    Returns:
        ResolveCustomerResponse: Resolution outcome
    """
    try:
        result = await identity_service.resolve_customer_advanced(
            request.observation, request.address
        )
    except AppError as e:
        _raise_http(e)

    customer = result.customer
    LOGGER.info(
        "Observation resolved",
        extra={
            "user_id": current_user.id,
            "provider": request.observation.provider.value,
            "matched_by": result.matched_by.value,
            "is_ambiguous": result.is_ambiguous,
        },
    )
    return ResolveCustomerResponse(
        customer_id=customer.id if customer is not None else None,
        matched_by=result.matched_by,
        is_new=result.is_new,
        is_ambiguous=result.is_ambiguous,
        ambiguous_customer_ids=result.ambiguous_customer_ids,
    )


@router.get(
    "/ambiguous",
    response_model=List[AmbiguousGroupResponse],
    summary="List ambiguous customer groups",
    description="Groups of live customers sharing an email or phone, awaiting merge review",
    operation_id="list_ambiguous_customers",
)
async def list_ambiguous_customers(
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    report: Annotated[AmbiguityReport, Depends(get_ambiguity_report)],
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Maximum groups per match type"),
) -> List[AmbiguousGroupResponse]:
    groups = await report.find_ambiguous_groups(limit)
    return [
        AmbiguousGroupResponse(
            match_type=group.match_type,
            value=group.value,
            customer_ids=group.customer_ids,
            providers=group.providers,
            customer_names=group.customer_names,
            order_counts=group.order_counts,
        )
        for group in groups
    ]


@router.post(
    "/merge",
    response_model=MergeCustomersResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid merge request"},
        404: {"model": ErrorResponse, "description": "Customer not found"},
        500: {"model": ErrorResponse, "description": "Merge rolled back"},
    },
    summary="Merge duplicate customers",
    description=(
        "Re-point every record of the merged customers to the primary customer, "
        "fill the primary's missing fields and tombstone the merged customers. "
        "All-or-nothing."
    ),
    operation_id="merge_customers",
)
async def merge_customers(
    request: MergeCustomersRequest,
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    coordinator: Annotated[MergeCoordinator, Depends(get_merge_coordinator)],
) -> MergeCustomersResponse:
    """Merge customers into a primary customer.

    Args:
        request: Primary id and ids to absorb
        current_user: Authenticated admin or manager
        coordinator: Merge coordinator bound to the request session

    Returns:
        MergeCustomersResponse: Merged count and rows moved per table
    """
    try:
        result = await coordinator.merge_customers(
            request.primary_customer_id, request.merge_customer_ids
        )
    except AppError as e:
        _raise_http(e)

    LOGGER.info(
        "Customers merged",
        extra={
            "user_id": current_user.id,
            "primary_id": request.primary_customer_id,
            "merged_count": result.merged_count,
        },
    )
    return MergeCustomersResponse(merged_count=result.merged_count, repointed=result.repointed)


@router.get(
    "/{customer_id}",
    response_model=CustomerDetailResponse,
    responses={404: {"model": ErrorResponse, "description": "Customer not found"}},
    summary="Get a customer",
    description="Get a customer together with all linked provider identities",
    operation_id="get_customer",
)
async def get_customer(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    identity_service: Annotated[IdentityService, Depends(get_identity_service)],
    customer_id: int = Path(..., gt=0),
) -> CustomerDetailResponse:
    customer = await identity_service.get_customer(customer_id)
    if customer is None:
        _raise_http(NotFoundError(f"Customer {customer_id} not found"))

    identities = await identity_service.list_identities(customer_id)
    response = CustomerDetailResponse.model_validate(customer)
    response.identities = [IdentityResponse.model_validate(identity) for identity in identities]
    return response


@router.get(
    "/{customer_id}/merge-candidates",
    response_model=List[MergeCandidateResponse],
    responses={404: {"model": ErrorResponse, "description": "Customer not found"}},
    summary="List merge candidates",
    description="Other customers sharing an email or phone with this customer",
    operation_id="list_merge_candidates",
)
async def list_merge_candidates(
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    coordinator: Annotated[MergeCoordinator, Depends(get_merge_coordinator)],
    customer_id: int = Path(..., gt=0),
) -> List[MergeCandidateResponse]:
    try:
        candidates = await coordinator.list_merge_candidates(customer_id)
    except AppError as e:
        _raise_http(e)

    return [
        MergeCandidateResponse(
            customer_id=candidate.customer.id,
            primary_email=candidate.customer.primary_email,
            primary_phone=candidate.customer.primary_phone,
            first_name=candidate.customer.first_name,
            last_name=candidate.customer.last_name,
            company=candidate.customer.company,
            matched_on=candidate.matched_on,
        )
        for candidate in candidates
    ]
