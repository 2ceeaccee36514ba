"""Customer identity resolution, enrichment and merging."""

from app.services.identity.ambiguity_report import AmbiguityReport, AmbiguousGroup
from app.services.identity.identity_service import (
    IdentityService,
    SyncMetrics,
    UpsertResult,
    log_sync_metrics,
)
from app.services.identity.merge_coordinator import MergeCandidate, MergeCoordinator, MergeResult
from app.services.identity.resolver import IdentityResolver
from app.services.identity.results import Ambiguous, Created, ResolutionResult, Resolved

__all__ = [
    "AmbiguityReport",
    "AmbiguousGroup",
    "IdentityService",
    "SyncMetrics",
    "UpsertResult",
    "log_sync_metrics",
    "MergeCandidate",
    "MergeCoordinator",
    "MergeResult",
    "IdentityResolver",
    "Ambiguous",
    "Created",
    "ResolutionResult",
    "Resolved",
]
