"""Custom exceptions for the marketplace ordering backend."""


class MarketplaceError(Exception):
    """Base exception for all application errors."""
    code = 'INTERNAL_ERROR'

    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['code'] = self.code
        rv['status'] = 'error'
        return rv


class ValidationError(MarketplaceError):
    """Malformed or missing input, or a cart that fails validation."""
    code = 'VALIDATION_ERROR'

    def __init__(self, message, errors=None, payload=None):
        payload = dict(payload or ())
        if errors:
            payload['errors'] = list(errors)
        super().__init__(message, 400, payload)
        self.errors = list(errors or [])


class NotFoundError(MarketplaceError):
    """Exception raised when a resource is not found."""
    code = 'NOT_FOUND'

    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class ConflictError(MarketplaceError):
    """The request conflicts with the current state of a resource."""
    code = 'CONFLICT'

    def __init__(self, message, status_code=409, payload=None):
        super().__init__(message, status_code, payload)


class InsufficientStockError(ConflictError):
    """Raised when an operation fails due to lack of stock."""
    code = 'INSUFFICIENT_STOCK'

    def __init__(self, product_name, required, available):
        message = f'Insufficient stock for "{product_name}": requested {required}, available {available}'
        super().__init__(message, payload={
            'required': required,
            'available': available
        })
        self.product_name = product_name
        self.required = required
        self.available = available


class InvalidStatusTransitionError(ConflictError):
    """Raised when an order status change is not in the transition table."""
    code = 'INVALID_STATUS_TRANSITION'

    def __init__(self, current_status, new_status):
        current = getattr(current_status, 'value', current_status)
        new = getattr(new_status, 'value', new_status)
        super().__init__(
            f'Invalid status transition from {current} to {new}',
            status_code=400,
            payload={'from_status': current, 'to_status': new}
        )


class CashAmountMismatchError(ConflictError):
    """Raised when the collected cash does not match the order total."""
    code = 'AMOUNT_MISMATCH'

    def __init__(self, amount, expected):
        super().__init__(
            f'Cash amount ({amount}) does not match order total ({expected})',
            status_code=400,
            payload={'amount': str(amount), 'expected': str(expected)}
        )


class UnauthorizedError(MarketplaceError):
    """Raised when the request carries no authenticated user."""
    code = 'UNAUTHORIZED'

    def __init__(self, message="Authentication required"):
        super().__init__(message, 401)


class ForbiddenError(MarketplaceError):
    """Raised when a user lacks permission for an action."""
    code = 'FORBIDDEN'

    def __init__(self, message="You do not have access to this resource"):
        super().__init__(message, 403)
