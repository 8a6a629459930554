"""
User profile routes
"""

from flask import Blueprint, request, jsonify, g
import logging

from errors import AppError, NotFound, ValidationError, handle_errors
from middleware.auth_middleware import require_auth
from models import Provider
from service_registry import get_services
from utils.helpers import json_object

logger = logging.getLogger(__name__)
users_bp = Blueprint('users', __name__, url_prefix='/api/users')

MIN_NAME_LENGTH = 2


@users_bp.route('/profile', methods=['GET'])
@require_auth
@handle_errors('Error fetching user profile')
def get_profile():
    """
    Profile with events, listening history and the provider library

    A provider failure does not fail the profile: liked songs and playlists
    come back empty and provider_error carries the reason.
    """
    services = get_services()
    user = services.store.find_user(g.current_user.id, with_history=True)
    if not user:
        raise NotFound('User not found')

    events = services.store.list_user_events(user.id)
    profile = user.to_public_dict()
    profile.update({
        'created_events': [event.to_dict(include_playlist=False) for event in events['created']],
        'joined_events': [event.to_dict(include_playlist=False) for event in events['joined']],
        'liked_songs': [],
        'playlists': [],
        'provider_error': None,
    })

    try:
        liked = services.provider_service.fetch_liked_songs(user)
        playlists = services.provider_service.fetch_playlists(user)
    except AppError as e:
        logger.warning(f"Provider library unavailable for user {user.id}: {e.message}")
        profile['provider_error'] = e.message
    else:
        profile['liked_songs'] = [track.to_dict() for track in liked]
        profile['playlists'] = [summary.to_dict() for summary in playlists]

    # History is read before the fetch above, which may have added to it
    profile['listening_history'] = [track.to_dict() for track in user.listening_history]
    return jsonify(profile)


@users_bp.route('/profile', methods=['PUT'])
@require_auth
@handle_errors('Error updating user profile')
def update_profile():
    """
    Update name and/or music provider

    Request body:
        {"name": "...", "music_provider": "spotify"}  (both optional)
    """
    data = json_object(request.get_json(silent=True))
    name = data.get('name')
    music_provider = data.get('music_provider')

    errors = []
    if name is not None and (not isinstance(name, str) or len(name.strip()) < MIN_NAME_LENGTH):
        errors.append(f'name: must be a string of at least {MIN_NAME_LENGTH} characters')
    if music_provider is not None and music_provider not in Provider.values():
        errors.append(f"music_provider: must be one of {', '.join(Provider.values())}")
    if errors:
        raise ValidationError('Invalid profile data', details=errors)

    user = get_services().store.update_user_profile(
        g.current_user.id,
        name=name.strip() if name else None,
        music_provider=music_provider,
    )
    return jsonify(user.to_public_dict())


@users_bp.route('/upgrade-to-premium', methods=['POST'])
@require_auth
@handle_errors('Error upgrading to premium')
def upgrade_to_premium():
    """Mark the current user as a super user (can create events)"""
    user = get_services().store.set_super_user(g.current_user.id)
    logger.info(f"User {user.id} upgraded to super user")
    return jsonify(user.to_public_dict())
