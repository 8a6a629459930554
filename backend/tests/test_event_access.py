from __future__ import annotations

import pytest

import event_access
from errors import Forbidden
from models import Event, Provider, User


def _user(user_id, super_user=False):
    return User(id=user_id, email=f'{user_id}@example.com', name=user_id,
                music_provider=Provider.SPOTIFY, is_super_user=super_user)


def _event(is_public, participants=()):
    return Event(id='e1', name='Party', description='', theme='Disco', is_public=is_public,
                 creator_id='creator', participant_ids=set(participants))


creator = _user('creator', super_user=True)
member = _user('member')
stranger = _user('stranger')


@pytest.mark.parametrize('is_public, user, expected', [
    (True, stranger, True),
    (False, stranger, False),
    (False, member, True),
    (False, creator, True),
])
def test_can_view(is_public, user, expected):
    assert event_access.can_view(_event(is_public, ['member']), user) is expected


def test_creator_is_member_without_being_stored_as_participant():
    event = _event(False)
    assert 'creator' not in event.participant_ids
    assert event_access.is_member(event, creator)
    assert event_access.can_view(event, creator)


def test_only_public_events_can_be_joined_or_shared():
    assert event_access.can_join(_event(True), stranger)
    assert not event_access.can_join(_event(False), stranger)
    assert not event_access.can_join(_event(False), creator)
    assert event_access.can_share(_event(True), member)
    assert not event_access.can_share(_event(False), creator)


@pytest.mark.parametrize('predicate', [
    event_access.can_update_metadata,
    event_access.can_regenerate,
    event_access.can_control_playback,
])
def test_creator_only_predicates(predicate):
    event = _event(True, ['member'])
    assert predicate(event, creator)
    assert not predicate(event, member)
    assert not predicate(event, stranger)


def test_can_create_event_requires_super_user():
    assert event_access.can_create_event(creator)
    assert not event_access.can_create_event(member)


def test_ensure_raises_forbidden_with_message():
    event_access.ensure(True)
    with pytest.raises(Forbidden) as excinfo:
        event_access.ensure(False, 'This is a private event')
    assert excinfo.value.status_code == 403
    assert excinfo.value.message == 'This is a private event'

    with pytest.raises(Forbidden) as excinfo:
        event_access.ensure(False)
    assert excinfo.value.message == 'Access denied'
