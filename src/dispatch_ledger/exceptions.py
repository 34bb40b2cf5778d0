"""
Exception hierarchy for the route lifecycle and cash reconciliation engine.

Every error carries a machine-readable ``code`` and a ``details`` mapping so the
HTTP layer can render it without inspecting the message.
"""

from typing import Any, Dict, Optional


class DispatchError(Exception):
    """Base exception for domain errors."""

    code = "DISPATCH_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(DispatchError):
    """Bad input, rejected before any write."""

    code = "VALIDATION_ERROR"


class NotFoundError(DispatchError):
    """Unknown stop, order or route id."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            f"{resource} '{identifier}' not found",
            {"resource": resource, "id": identifier},
        )


class ConflictError(DispatchError):
    """The target is already in a state that makes the request a replay or a no-op."""

    code = "CONFLICT"


class InvalidStateError(ConflictError):
    """The target exists but is not in a state that allows the operation."""

    code = "INVALID_STATE"


class InvalidTransitionError(InvalidStateError):
    """Raised when a status change is not in the transition table."""

    def __init__(self, entity_type: str, current_status: str, attempted_status: str):
        super().__init__(
            f"Invalid transition for {entity_type}: cannot move from {current_status} to {attempted_status}",
            {
                "entity_type": entity_type,
                "current_status": current_status,
                "attempted_status": attempted_status,
            },
        )


class ExternalServiceError(DispatchError):
    """The routing service timed out or answered with something unusable."""

    code = "EXTERNAL_SERVICE_ERROR"


class PersistenceError(DispatchError):
    """A storage write failed. Atomic operations leave no partial state behind."""

    code = "PERSISTENCE_ERROR"
