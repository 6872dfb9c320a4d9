"""Domain layer for the grouping engine.

Contains the combination key value object, the facet enumeration and the
domain error taxonomy. Nothing in this package touches the database.
"""

from storefront.domain.combination import CombinationKey, Facet
from storefront.domain.exceptions import (
    ConflictingStateError,
    DomainError,
    InsufficientStockError,
    InvalidCombinationError,
    InvalidPayloadError,
    NotFoundError,
    PartialFailureError,
    PricingNotConfiguredError,
)

__all__ = [
    # Value objects
    "CombinationKey",
    "Facet",
    # Exceptions
    "ConflictingStateError",
    "DomainError",
    "InsufficientStockError",
    "InvalidCombinationError",
    "InvalidPayloadError",
    "NotFoundError",
    "PartialFailureError",
    "PricingNotConfiguredError",
]
