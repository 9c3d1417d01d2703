"""Errors raised by route handlers and the auth layer.

Each maps to one HTTP status; ``create_app`` turns them into
``{"error": message}`` responses.
"""


class ApiError(Exception):
    status_code = 500
    message = 'Server error.'

    def __init__(self, message=None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self):
        return {'error': self.message}


class ValidationError(ApiError):
    """Missing or malformed request input."""
    status_code = 400
    message = 'Invalid request.'


class ConflictError(ApiError):
    """A unique name, code or email is already taken."""
    status_code = 400
    message = 'Resource already exists.'


class AuthenticationError(ApiError):
    status_code = 401
    message = 'Invalid or expired token.'


class AuthorizationError(ApiError):
    status_code = 403
    message = 'Access denied.'

    def __init__(self, message=None, permission=None):
        self.permission = permission
        if message is None and permission:
            message = f'Access denied. Requires permission: {permission}'
        super().__init__(message)


class NotFoundError(ApiError):
    status_code = 404
    message = 'Resource not found.'


class DependencyError(ApiError):
    status_code = 500
    message = 'Server error.'
