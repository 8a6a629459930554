"""
Event playlist routes: view, regenerate, generate next
"""

from flask import Blueprint, jsonify, g
import logging

import event_access
from errors import handle_errors
from middleware.auth_middleware import require_auth
from routes.events import load_event
from service_registry import get_services

logger = logging.getLogger(__name__)
playlists_bp = Blueprint('playlists', __name__, url_prefix='/api/playlists')


@playlists_bp.route('/events/<event_id>', methods=['GET'])
@require_auth
@handle_errors('Error fetching playlist')
def get_playlist(event_id):
    event = load_event(event_id)
    event_access.ensure(event_access.can_view(event, g.current_user))
    return jsonify([track.to_dict() for track in event.playlist])


@playlists_bp.route('/events/<event_id>/regenerate', methods=['POST'])
@require_auth
@handle_errors('Error regenerating playlist')
def regenerate_playlist(event_id):
    """
    Regenerate the playlist, keeping the current and next tracks (creator only)

    Returns:
        200: {"message": "...", "playlist": [...]}
        502: Playlist generation failed
    """
    event = load_event(event_id)
    event_access.ensure(event_access.can_regenerate(event, g.current_user),
                        'Only the creator can regenerate the playlist')

    playlist = get_services().reconciler.regenerate(event.id)
    return jsonify({
        'message': 'Playlist regenerated successfully',
        'playlist': [track.to_dict() for track in playlist],
    })


@playlists_bp.route('/events/<event_id>/generate-next', methods=['POST'])
@require_auth
@handle_errors('Error generating next song')
def generate_next(event_id):
    """Append one generated track for DJ mode (creator only)"""
    event = load_event(event_id)
    event_access.ensure(event_access.can_control_playback(event, g.current_user),
                        'Only the creator can control playback')

    track = get_services().reconciler.generate_next(event.id)
    return jsonify(track.to_dict())
