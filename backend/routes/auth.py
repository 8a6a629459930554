"""
Authentication routes: register, login, current user, provider sign-in

This module handles:
- User registration and login with email/password
- Current user information retrieval
- OAuth sign-in with Spotify, Apple Music or YouTube; the callback redirects
  back to the frontend with an app JWT and a user summary
"""

from flask import Blueprint, request, jsonify, g, redirect, current_app
from urllib.parse import urlencode
import logging
import re

from auth_utils import hash_password, verify_password, generate_access_token
from errors import AppError, Conflict, NotFound, Unauthenticated, ValidationError, handle_errors
from middleware.auth_middleware import require_auth
from models import Provider
from provider_auth import PROVIDER_LABELS, encode_user_blob
from service_registry import get_services
from utils.helpers import json_object, text_field

logger = logging.getLogger(__name__)
auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2


def _provider_or_404(provider: str) -> Provider:
    if provider not in Provider.values():
        raise NotFound('Unsupported music provider')
    return Provider(provider)


def _auth_response(user, status=200):
    return jsonify({
        'user': user.to_public_dict(),
        'token': generate_access_token(user.id),
    }), status


@auth_bp.route('/register', methods=['POST'])
@handle_errors('Error creating user')
def register():
    """
    Register new user with email and password

    Request body:
        {
            "email": "user@example.com",
            "name": "Jane Doe",
            "password": "secret1",
            "music_provider": "spotify" | "apple" | "youtube"
        }

    Returns:
        201: {"user": {...}, "token": "..."}
        400: Invalid input
        409: Email already registered
    """
    data = json_object(request.get_json(silent=True))

    email = text_field(data, 'email').strip().lower()
    name = text_field(data, 'name').strip()
    password = text_field(data, 'password')
    music_provider = data.get('music_provider')

    errors = []
    if not EMAIL_PATTERN.match(email):
        errors.append('email: invalid email format')
    if len(name) < MIN_NAME_LENGTH:
        errors.append(f'name: must be at least {MIN_NAME_LENGTH} characters')
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f'password: must be at least {MIN_PASSWORD_LENGTH} characters')
    if music_provider not in Provider.values():
        errors.append(f"music_provider: must be one of {', '.join(Provider.values())}")
    if errors:
        raise ValidationError('Invalid registration data', details=errors)

    store = get_services().store
    if store.find_user_by_email(email):
        raise Conflict('User already exists')

    user = store.create_user(
        email=email,
        name=name,
        music_provider=music_provider,
        password_hash=hash_password(password),
    )
    logger.info(f"User registered: {user.id}")
    return _auth_response(user, 201)


@auth_bp.route('/login', methods=['POST'])
@handle_errors('Error logging in')
def login():
    """
    Login with email and password

    Returns:
        200: {"user": {...}, "token": "..."}
        401: Invalid credentials
    """
    data = json_object(request.get_json(silent=True))

    email = text_field(data, 'email').strip().lower()
    password = text_field(data, 'password')
    if not email or not password:
        raise ValidationError('Email and password required')

    user = get_services().store.find_user_by_email(email)
    if not user or not verify_password(password, user.password_hash):
        raise Unauthenticated('Invalid credentials')

    logger.info(f"User logged in: {user.id}")
    return _auth_response(user)


@auth_bp.route('/me', methods=['GET'])
@require_auth
def get_current_user():
    """Get current authenticated user's information"""
    return jsonify(g.current_user.to_public_dict())


# ============================================================================
# PROVIDER SIGN-IN
# ============================================================================

@auth_bp.route('/<provider>', methods=['GET'])
@handle_errors('Error starting sign-in')
def provider_sign_in(provider):
    """
    Start provider sign-in

    Returns:
        200: {"url": "<provider authorization URL>"}
    """
    provider = _provider_or_404(provider)
    return jsonify({'url': get_services().token_broker.authorize_url(provider)})


@auth_bp.route('/<provider>/callback', methods=['GET'])
def provider_callback(provider):
    """
    Provider redirect target

    Always answers with a redirect to the frontend: either
    /auth/<provider>/callback?token=...&user=... or /auth?error=...
    """
    provider = _provider_or_404(provider)
    frontend_url = current_app.config['FRONTEND_URL'].rstrip('/')

    code = request.args.get('code')
    if not code:
        return redirect(f"{frontend_url}/auth?{urlencode({'error': 'Invalid code'})}")

    try:
        user = get_services().token_broker.complete_sign_in(provider, code)
    except Exception as e:
        logger.error(f"{provider.value} sign-in failed: {e}", exc_info=not isinstance(e, AppError))
        message = f"Error authenticating with {PROVIDER_LABELS[provider]}"
        return redirect(f"{frontend_url}/auth?{urlencode({'error': message})}")

    logger.info(f"User {user.id} signed in with {provider.value}")
    query = urlencode({'token': generate_access_token(user.id), 'user': encode_user_blob(user)})
    return redirect(f"{frontend_url}/auth/{provider.value}/callback?{query}")
