"""Resolution outcomes.

A resolution ends in exactly one of three states. ``Ambiguous`` carries no
customer at all, so a caller cannot act on a guess by accident.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from app.database.models import Customer
from app.schemas.identity import MatchMethod


@dataclass(frozen=True)
class Resolved:
    """An existing customer matched on ``matched_by``."""

    customer: Customer
    matched_by: MatchMethod

    is_new = False
    is_ambiguous = False

    @property
    def ambiguous_customer_ids(self) -> List[int]:
        return []


@dataclass(frozen=True)
class Created:
    """No tier matched; a new customer was created."""

    customer: Customer
    matched_by: MatchMethod = MatchMethod.NONE

    is_new = True
    is_ambiguous = False

    @property
    def ambiguous_customer_ids(self) -> List[int]:
        return []


@dataclass(frozen=True)
class Ambiguous:
    """More than one live customer shares the identifier; nothing was written."""

    matched_by: MatchMethod
    candidate_ids: Tuple[int, ...] = field(default_factory=tuple)

    is_new = False
    is_ambiguous = True

    @property
    def customer(self) -> Optional[Customer]:
        return None

    @property
    def ambiguous_customer_ids(self) -> List[int]:
        return list(self.candidate_ids)


ResolutionResult = Union[Resolved, Created, Ambiguous]
