"""
Application error taxonomy and Flask error handlers

Every error raised by the services carries the HTTP status it maps to at the
request boundary. Routes use handle_errors() so that anything outside this
taxonomy is logged and answered with a route-specific generic message.
"""

import logging
from functools import wraps

from flask import jsonify

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map onto an HTTP response"""
    status_code = 500
    default_message = 'Something went wrong'

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AppError):
    status_code = 401
    default_message = 'Unauthorized'


class Forbidden(AppError):
    status_code = 403
    default_message = 'Access denied'


class NotFound(AppError):
    status_code = 404
    default_message = 'Not found'


class ValidationError(AppError):
    status_code = 400
    default_message = 'Invalid request'

    def __init__(self, message: str = None, details: list = None):
        super().__init__(message)
        self.details = details or []


class Conflict(AppError):
    status_code = 409
    default_message = 'Conflict'


class UpstreamProviderError(AppError):
    """A music provider call failed (transport error or non-2xx response)"""
    status_code = 502
    default_message = 'Music provider request failed'

    def __init__(self, message: str = None, provider: str = None):
        super().__init__(message)
        self.provider = provider


class ProviderAuthError(UpstreamProviderError):
    """No usable provider credentials (missing refresh token, refresh failed)"""
    default_message = 'Music provider authentication failed'


class OracleError(AppError):
    """Playlist generation failed or returned something other than a JSON array"""
    status_code = 502
    default_message = 'Failed to generate playlist'


def register_error_handlers(app):
    """Convert AppError subclasses into JSON responses"""

    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error.message}", exc_info=error.__cause__ is not None)
        else:
            logger.info(f"{type(error).__name__}: {error.message}")

        body = {'error': error.message}
        if isinstance(error, ValidationError) and error.details:
            body['details'] = error.details
        return jsonify(body), error.status_code


def handle_errors(failure_message: str):
    """
    Decorator for route handlers

    AppError subclasses propagate to the registered handler; any other
    exception is logged and answered with a 500 carrying failure_message.

    Usage:
        @events_bp.route('', methods=['POST'])
        @require_auth
        @handle_errors('Error creating event')
        def create_event():
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except AppError:
                raise
            except Exception as e:
                logger.error(f"{failure_message}: {e}", exc_info=True)
                return jsonify({'error': failure_message}), 500
        return decorated_function
    return decorator
