"""Repository layer modules."""

from app.repositories.customer_repository import CustomerRepository
from app.repositories.identity_repository import IdentityRepository
from app.repositories.interaction_repository import InteractionRepository
from app.repositories.merge_repository import DEPENDENT_MODELS, MergeRepository

__all__ = [
    "CustomerRepository",
    "IdentityRepository",
    "InteractionRepository",
    "MergeRepository",
    "DEPENDENT_MODELS",
]
