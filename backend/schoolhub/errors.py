"""Failure taxonomy shared by every service module.

Expected failures (bad input, missing rows, uniqueness or lifecycle
violations) are raised as ``ServiceError`` subclasses inside a service and
turned into a failure envelope by ``service_operation``. Unexpected database
faults surface as ``TransactionFailure``.
"""


class ServiceError(Exception):
    error_type = "error"

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    error_type = "validation"


class NotFoundError(ServiceError):
    error_type = "not_found"


class ConflictError(ServiceError):
    error_type = "conflict"


class InvalidStateError(ServiceError):
    error_type = "invalid_state"


class TransactionFailure(Exception):
    """A database fault aborted the operation after its transaction was rolled back."""
