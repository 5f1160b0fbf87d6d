"""
Marketplace error taxonomy

Each error carries the HTTP status it maps to; app.py registers a single
handler that turns them into JSON responses.
"""


class MarketplaceError(Exception):
    """Base class for business errors raised by the service modules"""
    status_code = 500
    default_message = 'Internal server error'

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self):
        payload = {'error': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


class Unauthorized(MarketplaceError):
    status_code = 401
    default_message = 'Unauthorized'


class Forbidden(MarketplaceError):
    status_code = 403
    default_message = 'Forbidden'


class NotFound(MarketplaceError):
    status_code = 404
    default_message = 'Not found'


class InvalidState(MarketplaceError):
    status_code = 400
    default_message = 'Invalid state'


class InvalidOperation(MarketplaceError):
    status_code = 400
    default_message = 'Operation not allowed'


class InvalidInput(MarketplaceError):
    status_code = 400
    default_message = 'Invalid input'


class InternalError(MarketplaceError):
    status_code = 500
    default_message = 'Internal server error'
