"""
Music library routes

Read the current user's library from their music provider, resolve tracks to
playable handles, and hand out playback tokens for the web players.
"""

from flask import Blueprint, request, jsonify, g
import logging

from errors import NotFound, ValidationError, handle_errors
from middleware.auth_middleware import require_auth
from models import Provider, Track
from provider_auth import PROVIDER_LABELS
from service_registry import get_services

logger = logging.getLogger(__name__)
music_bp = Blueprint('music', __name__, url_prefix='/api/music')

# Provider access tokens are issued for an hour
PLAYBACK_TOKEN_TTL = 3600


@music_bp.route('/liked-songs', methods=['GET'])
@require_auth
@handle_errors('Failed to fetch liked songs')
def liked_songs():
    """Liked songs from the user's provider (also recorded in listening history)"""
    tracks = get_services().provider_service.fetch_liked_songs(g.current_user)
    return jsonify([track.to_dict() for track in tracks])


@music_bp.route('/playlists', methods=['GET'])
@require_auth
@handle_errors('Failed to fetch playlists')
def playlists():
    summaries = get_services().provider_service.fetch_playlists(g.current_user)
    return jsonify([summary.to_dict() for summary in summaries])


@music_bp.route('/playlists/<playlist_id>/tracks', methods=['GET'])
@require_auth
@handle_errors('Failed to fetch playlist tracks')
def playlist_tracks(playlist_id):
    tracks = get_services().provider_service.fetch_playlist_tracks(g.current_user, playlist_id)
    return jsonify([track.to_dict() for track in tracks])


@music_bp.route('/resolve-uri', methods=['GET'])
@require_auth
@handle_errors('Failed to resolve track')
def resolve_uri():
    """
    Resolve a track to a playable handle on the user's provider

    Query parameters:
        title, artist (required), album, provider (defaults to the user's)

    Returns:
        200: {"uri": "...", "provider": "..."}
        404: No confident match
    """
    user = g.current_user
    title = (request.args.get('title') or '').strip()
    artist = (request.args.get('artist') or '').strip()
    if not title or not artist:
        raise ValidationError('Missing required song information')

    provider = request.args.get('provider') or Provider(user.music_provider).value
    if provider not in Provider.values():
        raise ValidationError('Unsupported music provider')
    if Provider(provider) is not Provider(user.music_provider):
        raise ValidationError(f"User is not connected to {PROVIDER_LABELS[Provider(provider)]}")

    track = Track(
        title=title,
        artist=artist,
        album=request.args.get('album') or None,
        provider_track_id='',
        provider=Provider(provider),
    )
    uri = get_services().matcher.find_playable_uri(user, track, provider)
    if not uri:
        raise NotFound('No matching track found')

    return jsonify({'uri': uri, 'provider': provider})


@music_bp.route('/<provider>/token', methods=['GET'])
@require_auth
@handle_errors('Failed to get playback token')
def playback_token(provider):
    """
    Access token for the provider's web player

    Apple responses also carry the developer token MusicKit JS needs.
    """
    if provider not in Provider.values():
        raise NotFound('Unsupported music provider')

    user = g.current_user
    provider = Provider(provider)
    if provider is not Provider(user.music_provider):
        raise ValidationError(f"User is not connected to {PROVIDER_LABELS[provider]}")

    broker = get_services().token_broker
    body = {
        'access_token': broker.get_valid_access_token(user),
        'token_type': 'Bearer',
        'expires_in': PLAYBACK_TOKEN_TTL,
    }
    if provider is Provider.APPLE:
        body['developer_token'] = broker.apple_developer_token()
    return jsonify(body)
