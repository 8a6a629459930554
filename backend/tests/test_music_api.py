from __future__ import annotations

import pytest

from app import create_app
from errors import ProviderAuthError, UpstreamProviderError
from models import CatalogSearchResult, PlaylistSummary, Provider

from conftest import TEST_CONFIG, make_track


class FakeBroker:
    def __init__(self, error=None):
        self.error = error

    def get_valid_access_token(self, user):
        if self.error:
            raise self.error
        return f'access-{user.id}'

    def apple_developer_token(self):
        return 'developer-token'


class FakeCatalog:
    def __init__(self, provider, search_results=None, error=None):
        self.provider = provider
        self.search_results = list(search_results or [])
        self.error = error
        self.queries = []

    def _check(self):
        if self.error:
            raise self.error

    def fetch_liked_songs(self):
        self._check()
        return [make_track('Liked', 'Band', self.provider), make_track('Liked', 'Band', self.provider)]

    def fetch_playlists(self):
        self._check()
        return [PlaylistSummary(id='pl1', name='Mix', description=None, track_count=2)]

    def fetch_playlist_tracks(self, playlist_id):
        self._check()
        return [make_track(f'{playlist_id} track', 'Band', self.provider)]

    def search_tracks(self, query, limit=5):
        self._check()
        self.queries.append((query, limit))
        return self.search_results.pop(0) if self.search_results else []


@pytest.fixture()
def catalog():
    return FakeCatalog(Provider.SPOTIFY)


@pytest.fixture()
def broker():
    return FakeBroker()


@pytest.fixture()
def app(store, oracle, broker, catalog):
    def factory(provider, access_token, config, developer_token=None):
        catalog.provider = Provider(provider)
        catalog.access_token = access_token
        catalog.developer_token = developer_token
        return catalog

    return create_app(dict(TEST_CONFIG), store=store, oracle=oracle,
                      token_broker=broker, client_factory=factory)


@pytest.fixture()
def user(make_user):
    return make_user()


def test_liked_songs_are_returned_and_recorded_in_history(client, store, user, catalog, auth_headers):
    response = client.get('/api/music/liked-songs', headers=auth_headers(user))

    assert response.status_code == 200
    assert [t['title'] for t in response.get_json()] == ['Liked', 'Liked']
    assert catalog.access_token == f'access-{user.id}'
    history = store.find_user(user.id, with_history=True).listening_history
    assert [t.title for t in history] == ['Liked']


def test_playlists(client, user, auth_headers):
    response = client.get('/api/music/playlists', headers=auth_headers(user))
    assert response.get_json() == [{'id': 'pl1', 'name': 'Mix', 'description': None, 'track_count': 2}]


def test_playlist_tracks_are_recorded_in_history(client, store, user, auth_headers):
    response = client.get('/api/music/playlists/pl9/tracks', headers=auth_headers(user))

    assert response.status_code == 200
    assert response.get_json()[0]['title'] == 'pl9 track'
    assert store.find_user(user.id, with_history=True).listening_history[0].title == 'pl9 track'


def test_provider_failure_is_502(client, user, catalog, auth_headers):
    catalog.error = UpstreamProviderError('Failed to fetch liked songs', provider='spotify')
    response = client.get('/api/music/liked-songs', headers=auth_headers(user))
    assert response.status_code == 502
    assert response.get_json() == {'error': 'Failed to fetch liked songs'}


def test_missing_refresh_token_is_reported(client, user, broker, auth_headers):
    broker.error = ProviderAuthError('No refresh token found', provider='spotify')
    response = client.get('/api/music/playlists', headers=auth_headers(user))
    assert response.status_code == 502
    assert response.get_json()['error'] == 'No refresh token found'


# ============================================================================
# RESOLVE
# ============================================================================

def test_resolve_uri_returns_confident_match(client, user, catalog, auth_headers):
    catalog.search_results = [[CatalogSearchResult(
        title="Don't Stop Me Now", artists=('Queen',), uri='spotify:track:dsmn')]]

    response = client.get('/api/music/resolve-uri', query_string={
        'title': "Don't Stop Me Now", 'artist': 'Queen'}, headers=auth_headers(user))

    assert response.status_code == 200
    assert response.get_json() == {'uri': 'spotify:track:dsmn', 'provider': 'spotify'}
    assert catalog.queries == [('"dont stop me now queen"', 5)]


def test_resolve_uri_without_match_is_404(client, user, catalog, auth_headers):
    catalog.search_results = [[], [CatalogSearchResult(
        title='Something Else', artists=('Other',), uri='spotify:track:x')]]

    response = client.get('/api/music/resolve-uri', query_string={
        'title': 'Song', 'artist': 'Artist'}, headers=auth_headers(user))

    assert response.status_code == 404
    assert response.get_json() == {'error': 'No matching track found'}
    assert [query for query, _ in catalog.queries] == ['"song artist"', 'song artist']


@pytest.mark.parametrize('params', [
    {'title': 'Song'},
    {'artist': 'Artist'},
    {'title': 'Song', 'artist': 'Artist', 'provider': 'youtube'},
    {'title': 'Song', 'artist': 'Artist', 'provider': 'tidal'},
])
def test_resolve_uri_bad_requests(client, user, params, auth_headers):
    response = client.get('/api/music/resolve-uri', query_string=params, headers=auth_headers(user))
    assert response.status_code == 400


# ============================================================================
# PLAYBACK TOKENS
# ============================================================================

def test_spotify_playback_token(client, user, auth_headers):
    response = client.get('/api/music/spotify/token', headers=auth_headers(user))
    assert response.status_code == 200
    assert response.get_json() == {
        'access_token': f'access-{user.id}',
        'token_type': 'Bearer',
        'expires_in': 3600,
    }


def test_apple_playback_token_includes_developer_token(client, make_user, auth_headers):
    user = make_user(email='apple@example.com', provider=Provider.APPLE)
    response = client.get('/api/music/apple/token', headers=auth_headers(user))
    assert response.get_json()['developer_token'] == 'developer-token'


def test_playback_token_for_other_provider_is_rejected(client, user, auth_headers):
    response = client.get('/api/music/youtube/token', headers=auth_headers(user))
    assert response.status_code == 400
    assert response.get_json()['error'] == 'User is not connected to YouTube'


def test_playback_token_for_unknown_provider_is_404(client, user, auth_headers):
    assert client.get('/api/music/tidal/token', headers=auth_headers(user)).status_code == 404


# ============================================================================
# PROFILE
# ============================================================================

def test_profile_includes_library_and_events(client, store, user, auth_headers):
    event = store.create_event(name='Party', description='', theme='Disco', is_public=True,
                               creator_id=user.id)

    response = client.get('/api/users/profile', headers=auth_headers(user))

    body = response.get_json()
    assert response.status_code == 200
    assert [e['id'] for e in body['created_events']] == [event.id]
    assert body['joined_events'] == []
    assert body['playlists'][0]['id'] == 'pl1'
    assert body['provider_error'] is None
    assert 'refresh_token' not in body


def test_profile_survives_provider_failure(client, user, broker, auth_headers):
    broker.error = ProviderAuthError('Failed to refresh Spotify token', provider='spotify')

    response = client.get('/api/users/profile', headers=auth_headers(user))

    body = response.get_json()
    assert response.status_code == 200
    assert body['liked_songs'] == []
    assert body['playlists'] == []
    assert body['provider_error'] == 'Failed to refresh Spotify token'


def test_repeated_fetches_do_not_grow_history(client, store, user, auth_headers):
    for _ in range(3):
        client.get('/api/music/liked-songs', headers=auth_headers(user))
    assert len(store.find_user(user.id, with_history=True).listening_history) == 1
