"""
Authentication middleware for protecting Flask routes

This module provides the require_auth decorator: a valid bearer JWT is
required and the matching user is loaded into g.current_user.
"""

from functools import wraps
import logging

from flask import request, jsonify, g

from auth_utils import decode_token
from service_registry import get_services

logger = logging.getLogger(__name__)


def require_auth(f):
    """
    Decorator to require valid JWT access token

    Usage:
        @events_bp.route('/<event_id>')
        @require_auth
        def get_event(event_id):
            user = g.current_user
            ...

    The decorated function will have access to g.current_user, a models.User.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get('Authorization')

        if not auth_header:
            return jsonify({'error': 'No authorization header'}), 401

        # Expected format: "Bearer <token>"
        parts = auth_header.split(' ')
        if len(parts) != 2 or parts[0] != 'Bearer':
            return jsonify({'error': 'Invalid authorization header format'}), 401

        try:
            payload = decode_token(parts[1])
        except ValueError as e:
            return jsonify({'error': f'Invalid token: {str(e)}'}), 401

        if payload.get('type') != 'access' or not payload.get('user_id'):
            return jsonify({'error': 'Invalid token type'}), 401

        try:
            user = get_services().store.find_user(payload['user_id'])
        except Exception as e:
            logger.error(f"Authentication lookup failed: {e}", exc_info=True)
            return jsonify({'error': 'Authentication failed'}), 500

        if not user:
            return jsonify({'error': 'User not found'}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
