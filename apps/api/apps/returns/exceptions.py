"""
Return error taxonomy.

Every error subclasses django ValidationError, so callers that only care
about "the request was refused" keep catching ValidationError, while views
map ``error_type`` and ``status_code`` onto the response.
"""
from django.core.exceptions import ValidationError


class ReturnError(ValidationError):
    """Base class for return engine errors."""
    error_type = 'return_error'
    status_code = 400

    def __init__(self, message, **details):
        super().__init__(message, code=self.error_type)
        self.reason = message
        self.details = details

    def __str__(self):
        return self.reason

    def as_dict(self):
        """Payload for API responses: reason, error type and details."""
        payload = {'error': self.reason, 'error_type': self.error_type}
        payload.update({k: v for k, v in self.details.items() if v is not None})
        return payload


class ReturnNotFound(ReturnError):
    """Sale, sale line, return or medicine does not exist."""
    error_type = 'not_found'
    status_code = 404


class SaleAlreadyFullyReturned(ReturnError):
    error_type = 'already_fully_returned'


class ReturnWindowExpired(ReturnError):
    error_type = 'return_window_expired'


class OverReturnRequested(ReturnError):
    """
    Requested quantity exceeds what remains returnable on a sale line.

    Carries medicine_name, requested_quantity, unit_type and
    available_quantity in ``details``.
    """
    error_type = 'over_return_requested'

    def __init__(self, medicine_name, requested_quantity, unit_type, available_quantity, sale_line_id=None):
        message = (
            f'Cannot return {requested_quantity} {unit_type} of {medicine_name}: '
            f'only {available_quantity} {unit_type} available for return.'
        )
        super().__init__(
            message,
            medicine_name=medicine_name,
            requested_quantity=requested_quantity,
            unit_type=unit_type,
            available_quantity=available_quantity,
            sale_line_id=str(sale_line_id) if sale_line_id else None,
        )


class ValidationFailed(ReturnError):
    """Malformed or policy-violating input."""
    error_type = 'validation_failed'


class InvalidStatusTransition(ValidationFailed):
    error_type = 'invalid_status_transition'


class ReturnLimitExceeded(ValidationFailed):
    """Actor reached the daily return limit."""
    error_type = 'return_limit_exceeded'
    status_code = 429


class InventoryWriteFailed(ReturnError):
    """A stock counter could not be updated during restoration or reversal."""
    error_type = 'inventory_write_failed'
    status_code = 500


class PersistenceFailed(ReturnError):
    """Saving a return failed; safe to retry."""
    error_type = 'persistence_failed'
    status_code = 503
