"""
Event routes: create, list, view, update, join, share

Creating an event requires a super user; everything else is governed by the
rules in event_access. Joining regenerates the playlist so the newcomer's
listening history is taken into account.
"""

from flask import Blueprint, request, jsonify, g, current_app
import logging

import event_access
from errors import AppError, NotFound, ValidationError, handle_errors
from middleware.auth_middleware import require_auth
from service_registry import get_services
from sharing import build_share_info

logger = logging.getLogger(__name__)
events_bp = Blueprint('events', __name__, url_prefix='/api/events')

MIN_NAME_LENGTH = 2


def validate_event_payload(data, partial=False):
    """
    Validate an event create/update body

    Args:
        data: Parsed JSON body
        partial: Only validate fields that are present (updates)

    Returns:
        Dict of clean fields (is_public defaults to True on create)

    Raises:
        ValidationError: with one detail line per invalid field
    """
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    errors = []
    clean = {}

    if 'name' in data or not partial:
        name = data.get('name')
        if not isinstance(name, str) or len(name.strip()) < MIN_NAME_LENGTH:
            errors.append(f'name: must be a string of at least {MIN_NAME_LENGTH} characters')
        else:
            clean['name'] = name.strip()

    for field in ('description', 'theme'):
        if field in data or not partial:
            value = data.get(field)
            if not isinstance(value, str):
                errors.append(f'{field}: must be a string')
            else:
                clean[field] = value

    if 'is_public' in data:
        if not isinstance(data['is_public'], bool):
            errors.append('is_public: must be a boolean')
        else:
            clean['is_public'] = data['is_public']
    elif not partial:
        clean['is_public'] = True

    if errors:
        raise ValidationError('Invalid event data', details=errors)
    return clean


def load_event(event_id):
    event = get_services().store.find_event(event_id)
    if not event:
        raise NotFound('Event not found')
    return event


@events_bp.route('', methods=['POST'])
@require_auth
@handle_errors('Error creating event')
def create_event():
    """
    Create an event (super users only)

    Request body:
        {"name": "...", "description": "...", "theme": "...", "is_public": true}

    Returns:
        201: The event
    """
    user = g.current_user
    event_access.ensure(event_access.can_create_event(user), 'Only super users can create events')

    fields = validate_event_payload(request.get_json(silent=True))
    event = get_services().store.create_event(creator_id=user.id, **fields)

    logger.info(f"Event {event.id} created by {user.id}")
    return jsonify(event.to_dict()), 201


@events_bp.route('', methods=['GET'])
@require_auth
@handle_errors('Error fetching events')
def list_events():
    """Events the current user can see, newest first"""
    events = get_services().store.list_events(g.current_user.id)
    return jsonify([event.to_dict(include_playlist=False) for event in events])


@events_bp.route('/<event_id>', methods=['GET'])
@require_auth
@handle_errors('Error fetching event')
def get_event(event_id):
    event = load_event(event_id)
    event_access.ensure(event_access.can_view(event, g.current_user))
    return jsonify(event.to_dict())


@events_bp.route('/<event_id>', methods=['PUT'])
@require_auth
@handle_errors('Error updating event')
def update_event(event_id):
    """Partial metadata update (creator only)"""
    event = load_event(event_id)
    event_access.ensure(event_access.can_update_metadata(event, g.current_user),
                        'Only the creator can update the event')

    fields = validate_event_payload(request.get_json(silent=True), partial=True)
    updated = get_services().store.update_event(event.id, fields)
    return jsonify(updated.to_dict())


@events_bp.route('/<event_id>/join', methods=['POST'])
@require_auth
@handle_errors('Error joining event')
def join_event(event_id):
    """
    Join a public event and regenerate its playlist

    Joining succeeds even when regeneration fails; the response reports
    whether the playlist was regenerated.
    """
    services = get_services()
    user = g.current_user

    event = load_event(event_id)
    event_access.ensure(event_access.can_join(event, user), 'This is a private event')

    if not event_access.is_creator(event, user):
        services.store.add_participant(event.id, user.id)
    logger.info(f"User {user.id} joined event {event.id}")

    regenerated = True
    try:
        services.reconciler.regenerate(event.id)
    except AppError as e:
        logger.error(f"Playlist regeneration after join failed for event {event.id}: {e.message}")
        regenerated = False

    return jsonify({
        'message': 'Successfully joined event',
        'playlist_regenerated': regenerated,
    })


@events_bp.route('/<event_id>/share', methods=['GET'])
@require_auth
@handle_errors('Error generating share info')
def share_event(event_id):
    """Shareable link and QR code for a public event"""
    event = load_event(event_id)
    event_access.ensure(event_access.can_share(event, g.current_user), 'Cannot share private events')
    return jsonify(build_share_info(event, current_app.config['FRONTEND_URL']))
