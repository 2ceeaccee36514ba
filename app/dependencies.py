"""Centralized dependency injection for FastAPI application.

This module provides factory functions for creating service instances bound
to the request's database session.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.session import get_async_session
from app.services.identity.ambiguity_report import AmbiguityReport
from app.services.identity.identity_service import IdentityService
from app.services.identity.merge_coordinator import MergeCoordinator


async def get_identity_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> IdentityService:
    """Get identity service instance.

    Args:
        db_session: Database session from dependency injection

    Returns:
        IdentityService: Service resolving observations to customers
    """
    return IdentityService(db_session)


async def get_merge_coordinator(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> MergeCoordinator:
    """Get merge coordinator instance.

    Args:
        db_session: Database session from dependency injection

    Returns:
        MergeCoordinator: Service listing and merging duplicate customers
    """
    return MergeCoordinator(db_session)


async def get_ambiguity_report(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> AmbiguityReport:
    return AmbiguityReport(db_session)
