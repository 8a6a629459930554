from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone

import pytest
import requests

from app import create_app
from auth_utils import hash_password
from errors import NotFound, OracleError
from models import Event, Provider, Track, User


def make_track(title, artist, provider=Provider.SPOTIFY, album=None, provider_track_id=''):
    return Track(title=title, artist=artist, album=album,
                 provider_track_id=provider_track_id, provider=Provider(provider))


def oracle_tracks(count=10, provider=Provider.SPOTIFY):
    return [make_track(f"Generated {i}", f"Artist {i}", provider) for i in range(count)]


class InMemoryStore:
    """Same operations as EventStore, backed by dicts"""

    def __init__(self):
        self.users = {}
        self.events = {}
        self.participants = {}
        self.history = {}
        self.playlist_writes = []

    def health(self):
        return {'db_version': 'in-memory', 'db_time': 'now', 'pool_stats': None}

    # users

    def _copy_user(self, user, with_history=False):
        history = list(self.history.get(user.id, {}).values()) if with_history else []
        return replace(user, listening_history=history)

    def find_user(self, user_id, with_history=False):
        user = self.users.get(str(user_id))
        return self._copy_user(user, with_history) if user else None

    def find_user_by_email(self, email):
        for user in self.users.values():
            if user.email.lower() == email.lower():
                return self._copy_user(user)
        return None

    def find_user_by_provider_account(self, provider, account_id):
        for user in self.users.values():
            if user.music_provider == Provider(provider) and user.provider_account_id == account_id:
                return self._copy_user(user)
        return None

    def create_user(self, email, name, music_provider, password_hash=None,
                    provider_account_id=None, access_token=None, refresh_token=None,
                    is_super_user=False):
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            name=name,
            music_provider=Provider(music_provider),
            is_super_user=is_super_user,
            password_hash=password_hash,
            provider_account_id=provider_account_id,
            access_token=access_token,
            refresh_token=refresh_token,
            created_at=datetime.now(timezone.utc),
        )
        self.users[user.id] = user
        return self._copy_user(user)

    def update_user_profile(self, user_id, name=None, music_provider=None):
        user = self.users.get(str(user_id))
        if not user:
            return None
        if name:
            user.name = name
        if music_provider:
            user.music_provider = Provider(music_provider)
        return self._copy_user(user)

    def update_user_credentials(self, user_id, access_token, refresh_token=None,
                                music_provider=None, provider_account_id=None):
        user = self.users.get(str(user_id))
        if not user:
            return None
        user.access_token = access_token
        user.refresh_token = refresh_token or user.refresh_token
        if music_provider:
            user.music_provider = Provider(music_provider)
        user.provider_account_id = provider_account_id or user.provider_account_id
        return self._copy_user(user)

    def set_super_user(self, user_id):
        user = self.users.get(str(user_id))
        if not user:
            return None
        user.is_super_user = True
        return self._copy_user(user)

    def upsert_listening_history(self, user_id, tracks):
        unique = Track.deduplicate(tracks)
        entries = self.history.setdefault(str(user_id), {})
        for track in unique:
            entries.setdefault(track.history_key, track)
        return len(unique)

    # events

    def _copy_event(self, event, with_playlist=True):
        return replace(
            event,
            participant_ids=set(self.participants.get(event.id, [])),
            playlist=list(event.playlist) if with_playlist else [],
        )

    def find_event(self, event_id):
        event = self.events.get(str(event_id))
        return self._copy_event(event) if event else None

    def list_events(self, user_id):
        visible = [
            event for event in self.events.values()
            if event.is_public or event.creator_id == str(user_id)
            or str(user_id) in self.participants.get(event.id, [])
        ]
        return [self._copy_event(event, with_playlist=False) for event in visible]

    def list_user_events(self, user_id):
        return {
            'created': [self._copy_event(e, False) for e in self.events.values()
                        if e.creator_id == str(user_id)],
            'joined': [self._copy_event(e, False) for e in self.events.values()
                       if str(user_id) in self.participants.get(e.id, [])],
        }

    def create_event(self, name, description, theme, is_public, creator_id):
        now = datetime.now(timezone.utc)
        event = Event(id=str(uuid.uuid4()), name=name, description=description, theme=theme,
                      is_public=is_public, creator_id=str(creator_id),
                      created_at=now, updated_at=now)
        self.events[event.id] = event
        return self._copy_event(event)

    def update_event(self, event_id, updates):
        event = self.events.get(str(event_id))
        if not event:
            return None
        for column in ('name', 'description', 'theme', 'is_public'):
            if column in updates:
                setattr(event, column, updates[column])
        return self._copy_event(event)

    def add_participant(self, event_id, user_id):
        members = self.participants.setdefault(str(event_id), [])
        if str(user_id) not in members:
            members.append(str(user_id))

    def list_participants(self, event_id):
        return [self.find_user(user_id, with_history=True)
                for user_id in self.participants.get(str(event_id), [])]

    def update_event_playlist(self, event_id, append, delete_all=False):
        event = self.events.get(str(event_id))
        if not event:
            raise NotFound("Event not found")
        tracks = list(append)
        event.playlist = tracks if delete_all else event.playlist + tracks
        self.playlist_writes.append((str(event_id), delete_all, len(tracks)))


class FakeOracle:
    def __init__(self, tracks=None, error=None):
        self.tracks = tracks if tracks is not None else oracle_tracks()
        self.error = error
        self.calls = []

    def generate(self, theme, participant_histories, creator_provider):
        self.calls.append({
            'theme': theme,
            'histories': [list(history) for history in participant_histories],
            'provider': Provider(creator_provider),
        })
        if self.error:
            raise self.error
        return [replace(track, provider=Provider(creator_provider)) for track in self.tracks]


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """Replays queued responses and records every request"""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []

    def _next(self, method, url, **kwargs):
        self.requests.append({'method': method, 'url': url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self._next('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self._next('POST', url, **kwargs)


TEST_CONFIG = {
    'TESTING': True,
    'JWT_SECRET': 'test-jwt-secret-123456789012345678901234567890',
    'FRONTEND_URL': 'http://frontend.test',
    'RESOLVE_TRACK_URIS': False,
}


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def oracle():
    return FakeOracle()


@pytest.fixture()
def app(store, oracle):
    return create_app(dict(TEST_CONFIG), store=store, oracle=oracle)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(store):
    def _make_user(email='listener@example.com', name='Listener', provider=Provider.SPOTIFY,
                   super_user=False, password='secret123', refresh_token='refresh-token'):
        return store.create_user(
            email=email,
            name=name,
            music_provider=provider,
            password_hash=hash_password(password),
            refresh_token=refresh_token,
            is_super_user=super_user,
        )
    return _make_user


@pytest.fixture()
def auth_headers(app):
    from auth_utils import generate_access_token

    def _auth(user):
        with app.app_context():
            token = generate_access_token(user.id)
        return {'Authorization': f'Bearer {token}'}
    return _auth


@pytest.fixture()
def failing_oracle():
    return FakeOracle(error=OracleError())
