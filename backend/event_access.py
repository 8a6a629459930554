"""
Event access rules

Stateless predicates over (event, user). The creator is always treated as a
member of their own event even though they are never stored as a participant.
"""

from errors import Forbidden
from models import Event, User


def is_creator(event: Event, user: User) -> bool:
    return user is not None and str(event.creator_id) == str(user.id)


def is_member(event: Event, user: User) -> bool:
    return is_creator(event, user) or (user is not None and str(user.id) in event.participant_ids)


def can_view(event: Event, user: User) -> bool:
    return event.is_public or is_member(event, user)


def can_join(event: Event, user: User) -> bool:
    """Only public events can be joined; there is no invitation flow"""
    return event.is_public


def can_update_metadata(event: Event, user: User) -> bool:
    return is_creator(event, user)


def can_regenerate(event: Event, user: User) -> bool:
    return is_creator(event, user)


def can_control_playback(event: Event, user: User) -> bool:
    return is_creator(event, user)


def can_create_event(user: User) -> bool:
    return user is not None and user.is_super_user


def can_share(event: Event, user: User) -> bool:
    return event.is_public


def ensure(allowed: bool, message: str = None):
    """Raise Forbidden unless allowed"""
    if not allowed:
        raise Forbidden(message)
