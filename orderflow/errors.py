"""
Error taxonomy for the order workflow. Every OrderWorkflowError is recoverable by the
caller and carries the HTTP status it maps to; StoreError is the generic internal failure.
"""


class OrderWorkflowError(Exception):
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(OrderWorkflowError):
    status_code = 404


class InvalidLineItemsError(OrderWorkflowError):
    status_code = 400


class RestaurantUnavailableError(OrderWorkflowError):
    status_code = 404


class InvalidTransitionError(OrderWorkflowError):
    """Raised when a status change is not an edge of the transition graph."""
    status_code = 400

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid status transition from {current.value} to {requested.value}")


class ForbiddenError(OrderWorkflowError):
    """Raised when a graph-legal change is not allowed for this actor."""
    status_code = 403


class InvalidAssignmentStateError(OrderWorkflowError):
    status_code = 400


class InvalidRiderError(OrderWorkflowError):
    status_code = 400


class InvalidRiderStatusError(OrderWorkflowError):
    """Raised when a rider-facing status has no internal counterpart."""
    status_code = 400


class ConflictError(OrderWorkflowError):
    """Raised when concurrent mutations kept winning the compare-and-swap on an order."""
    status_code = 409


class StoreError(Exception):
    """Unexpected datastore failure. The failed write was rolled back."""
