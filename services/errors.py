"""
Service-layer exceptions.

Repositories raise these; security.setup_error_handlers maps them to JSON
responses with the matching HTTP status code.
"""


class ServiceError(Exception):
    """Base class for business rule failures."""
    status_code = 400

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self):
        data = {'success': False, 'error': self.message}
        if self.details:
            data['details'] = self.details
        return data


class NotFoundError(ServiceError):
    status_code = 404

    def __init__(self, entity: str, entity_id=None):
        message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message)


class PermissionDeniedError(ServiceError):
    status_code = 403


class ConflictError(ServiceError):
    status_code = 409


class ExternalServiceError(ServiceError):
    """A third-party call (SMTP, Stripe) failed."""
    status_code = 502
