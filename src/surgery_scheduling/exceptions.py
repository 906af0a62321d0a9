"""Custom exceptions used across the surgery scheduling package."""

from decimal import Decimal


class SchedulingError(Exception):
    """Base class for every failure surfaced by the scheduling core."""


class DatabaseConnectionError(SchedulingError):
    """Raised when the database connection cannot be established."""


class ValidationError(SchedulingError):
    """Raised when incoming data fails domain or business validation."""


class ResourceNotFoundError(SchedulingError):
    """Raised when an entity lookup returns no result."""

    def __init__(self, resource: str, ident=None, message: str | None = None):
        self.resource = resource
        self.ident = ident
        if message is None:
            message = f"{resource.capitalize()} not found."
            if ident is not None:
                message = f"{resource.capitalize()} {ident} not found."
        super().__init__(message)


class NoResourceAvailableError(SchedulingError):
    """Raised when no row of the requested kind is currently free."""

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f"No available {resource} found.")


class ResourceBusyError(SchedulingError):
    """Raised when the requested resource is already held by another booking."""

    def __init__(self, resource: str, ident=None):
        self.resource = resource
        self.ident = ident
        label = resource if ident is None else f"{resource} {ident}"
        super().__init__(f"The {label} already has an active booking.")


class InsufficientFundsError(SchedulingError):
    """Raised when a patient's deposit cannot cover the required amount."""

    def __init__(self, available: Decimal, required: Decimal):
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient patient deposit for surgery (has {available}, needs {required})."
        )


class InvalidTransitionError(SchedulingError):
    """Raised when a surgery's status does not allow the requested action."""

    def __init__(self, action: str, current):
        self.action = action
        self.current = current
        super().__init__(f"Cannot {action} a surgery whose status is {current}.")


class ConflictError(SchedulingError):
    """Raised when a record cannot be saved or removed in its current state."""


__all__ = [
    "SchedulingError",
    "DatabaseConnectionError",
    "ValidationError",
    "ResourceNotFoundError",
    "NoResourceAvailableError",
    "ResourceBusyError",
    "InsufficientFundsError",
    "InvalidTransitionError",
    "ConflictError",
]
