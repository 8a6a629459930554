"""
Authentication utilities for JWT token management and password hashing

This module provides core authentication functionality including:
- JWT access token generation for app sessions
- Password hashing with bcrypt
- Token validation and decoding
"""

import jwt
import bcrypt
from datetime import datetime, timedelta, timezone

from flask import current_app

JWT_ALGORITHM = 'HS256'


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with work factor 12

    Args:
        password: Plain text password to hash

    Returns:
        Bcrypt hashed password as string
    """
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash

    Users created through a provider login have no password hash and can
    never log in with a password.

    Returns:
        True if password matches hash, False otherwise
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def generate_access_token(user_id: str) -> str:
    """
    Generate JWT access token (JWT_EXPIRY_DAYS, 7 days by default)

    Args:
        user_id: UUID of the user

    Returns:
        JWT token as string
    """
    now = datetime.now(timezone.utc)
    payload = {
        'user_id': str(user_id),
        'exp': now + timedelta(days=current_app.config.get('JWT_EXPIRY_DAYS', 7)),
        'iat': now,
        'type': 'access'
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """
    Decode and validate JWT token

    Raises:
        ValueError: If token is expired or invalid
    """
    try:
        return jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise ValueError('Token has expired')
    except jwt.InvalidTokenError:
        raise ValueError('Invalid token')
