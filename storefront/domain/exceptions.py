"""Domain exceptions.

All domain-level errors raised by the grouping engine. Each error carries
a machine-readable ``error_code`` and a ``details`` dictionary naming the
offending ids so the API layer can render a structured response.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# Lookup Errors
# ============================================================================


class NotFoundError(DomainError):
    """Raised when a referenced product, attribute, value, variant, group or media is missing."""

    error_code = "NOT_FOUND"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize not found error.

        Args:
            entity_type: Type of entity (e.g., "Product", "Media").
            entity_id: ID that could not be resolved.
            context: Extra identifiers scoping the lookup.
        """
        details = {"entity_type": entity_type, "entity_id": entity_id}
        if context:
            details.update(context)
        super().__init__(f"{entity_type} with ID {entity_id} not found", details=details)


# ============================================================================
# Input Errors
# ============================================================================


class InvalidCombinationError(DomainError):
    """Raised when a combination cannot be applied to a product.

    Covers attributes that are not bound to the product, attributes that do
    not control the facet being written, values that belong to a different
    attribute, and ambiguous requests.
    """

    error_code = "INVALID_COMBINATION"

    def __init__(
        self,
        reason: str,
        product_id: int | None = None,
        combination: dict[int, int] | None = None,
    ) -> None:
        """Initialize invalid combination error.

        Args:
            reason: Explanation of why the combination is invalid.
            product_id: Product the combination was submitted for.
            combination: The offending combination.
        """
        super().__init__(
            f"Invalid combination: {reason}",
            details={
                "reason": reason,
                "product_id": product_id,
                "combination": {str(k): v for k, v in (combination or {}).items()},
            },
        )


class InvalidPayloadError(DomainError):
    """Raised when facet payload numbers break a business rule."""

    error_code = "INVALID_PAYLOAD"

    def __init__(self, field: str, reason: str) -> None:
        """Initialize invalid payload error.

        Args:
            field: Payload field that failed validation.
            reason: Explanation of the failure.
        """
        super().__init__(
            f"Invalid value for '{field}': {reason}",
            details={"field": field, "reason": reason},
        )


class PartialFailureError(DomainError):
    """Raised when one item of a bulk operation is invalid.

    The whole batch is rejected; ``details["failures"]`` lists every
    offending item rather than only the first.
    """

    error_code = "PARTIAL_FAILURE"

    def __init__(self, operation: str, failures: list[dict[str, Any]]) -> None:
        """Initialize partial failure error.

        Args:
            operation: Name of the bulk operation.
            failures: One entry per rejected item.
        """
        super().__init__(
            f"{operation} rejected: {len(failures)} invalid item(s)",
            details={"operation": operation, "failures": failures},
        )


# ============================================================================
# State Errors
# ============================================================================


class ConflictingStateError(DomainError):
    """Raised when a write would violate a catalog invariant."""

    error_code = "CONFLICTING_STATE"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details=details)


class InsufficientStockError(DomainError):
    """Raised when a deduction exceeds the available quantity."""

    error_code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, variant_id: int | None, available: int, requested: int) -> None:
        """Initialize insufficient stock error.

        Args:
            product_id: Product ID.
            variant_id: Variant ID, None for the simple stock row.
            available: Quantity on hand.
            requested: Quantity requested.
        """
        super().__init__(
            f"Insufficient stock. Available: {available}, Requested: {requested}",
            details={
                "product_id": product_id,
                "variant_id": variant_id,
                "available": available,
                "requested": requested,
            },
        )


class PricingNotConfiguredError(DomainError):
    """Raised when a checkout needs a price or weight the variant does not have."""

    error_code = "PRICING_NOT_CONFIGURED"

    def __init__(self, facet: str, variant_id: int) -> None:
        """Initialize pricing not configured error.

        Args:
            facet: Facet that has no group ("price" or "weight").
            variant_id: Variant being resolved.
        """
        super().__init__(
            f"No {facet} group configured for variant {variant_id}",
            details={"facet": facet, "variant_id": variant_id},
        )
