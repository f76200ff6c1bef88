# Overview: Typed domain failures shared by every service and mapped to HTTP by the routes.

"""
Domain error kinds.

Every service operation either returns the updated aggregate or raises one
of these. Because each operation runs inside a single unit of work, a raised
DomainError always means "nothing was committed".

HTTP MAPPING (see routes/_responses.py):
- ValidationError   -> 400
- NotFound          -> 404
- InvalidTransition -> 409
- InsufficientStock -> 409
- ConsistencyFault  -> 500
"""

from __future__ import annotations


class DomainError(Exception):
    """Base class for all typed domain failures."""

    kind = "domain_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "kind": self.kind,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Malformed or out-of-range input, missing field, duplicate unique key."""

    kind = "validation_error"
    http_status = 400


class NotFound(DomainError):
    """Referenced product, location, order or invoice does not exist."""

    kind = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id, message: str | None = None):
        super().__init__(
            message or f"{entity} {entity_id} not found",
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(DomainError):
    """
    Requested status change (or state-gated operation) is not a legal edge
    from the aggregate's current status.
    """

    kind = "invalid_transition"
    http_status = 409

    def __init__(
        self,
        aggregate: str,
        current: str,
        requested: str,
        message: str | None = None,
    ):
        super().__init__(
            message or f"Cannot move {aggregate} from {current} to {requested}",
            {"aggregate": aggregate, "current_status": current, "requested": requested},
        )
        self.aggregate = aggregate
        self.current = current
        self.requested = requested


class InsufficientStock(DomainError):
    """Issue/shipment asked for more than the location holds."""

    kind = "insufficient_stock"
    http_status = 409

    def __init__(
        self,
        *,
        product_id: int,
        location_id: int,
        available: int,
        required: int,
        product_name: str | None = None,
    ):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Required: {required}",
            {
                "product_id": product_id,
                "product_name": product_name,
                "location_id": location_id,
                "available": available,
                "required": required,
            },
        )
        self.product_id = product_id
        self.location_id = location_id
        self.available = available
        self.required = required


class ConsistencyFault(DomainError):
    """
    The cached stock counters disagree with the movement log.

    This is a bug, never a recoverable runtime condition.
    """

    kind = "consistency_fault"
    http_status = 500
