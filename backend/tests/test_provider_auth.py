from __future__ import annotations

import json

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from errors import ProviderAuthError
from models import Provider
from provider_auth import (
    GOOGLE_TOKEN_URL,
    SPOTIFY_ME_URL,
    SPOTIFY_TOKEN_URL,
    TokenBroker,
    encode_user_blob,
)

from conftest import FakeResponse, FakeSession

CONFIG = {
    'FRONTEND_URL': 'http://frontend.test',
    'SPOTIFY_CLIENT_ID': 'spotify-id',
    'SPOTIFY_CLIENT_SECRET': 'spotify-secret',
    'YOUTUBE_CLIENT_ID': 'google-id',
    'YOUTUBE_CLIENT_SECRET': 'google-secret',
    'YOUTUBE_REDIRECT_URI': 'http://api.test/api/auth/youtube/callback',
}


def _broker(store, responses=(), config=None):
    session = FakeSession(responses)
    return TokenBroker(store, dict(config or CONFIG), session=session), session


def _ec_private_key_pem():
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


# ============================================================================
# ACCESS TOKENS
# ============================================================================

def test_spotify_refresh_persists_new_tokens(store, make_user):
    user = make_user(refresh_token='old-refresh')
    broker, session = _broker(store, [FakeResponse({'access_token': 'fresh', 'refresh_token': 'rotated'})])

    assert broker.get_valid_access_token(user) == 'fresh'

    [request] = session.requests
    assert request['url'] == SPOTIFY_TOKEN_URL
    assert request['data'] == {'grant_type': 'refresh_token', 'refresh_token': 'old-refresh'}
    assert request['auth'] == ('spotify-id', 'spotify-secret')
    stored = store.find_user(user.id)
    assert (stored.access_token, stored.refresh_token) == ('fresh', 'rotated')
    assert user.refresh_token == 'rotated'


def test_refresh_without_rotation_keeps_refresh_token(store, make_user):
    user = make_user(provider=Provider.YOUTUBE, refresh_token='keep-me')
    broker, session = _broker(store, [FakeResponse({'access_token': 'fresh'})])

    broker.get_valid_access_token(user)

    assert session.requests[0]['url'] == GOOGLE_TOKEN_URL
    assert store.find_user(user.id).refresh_token == 'keep-me'


def test_missing_refresh_token(store, make_user):
    user = make_user(refresh_token=None)
    broker, session = _broker(store)

    with pytest.raises(ProviderAuthError) as excinfo:
        broker.get_valid_access_token(user)

    assert excinfo.value.message == 'No refresh token found'
    assert session.requests == []


@pytest.mark.parametrize('provider, message', [
    (Provider.SPOTIFY, 'Failed to refresh Spotify token'),
    (Provider.YOUTUBE, 'Failed to refresh YouTube token'),
])
def test_failed_refresh(store, make_user, provider, message):
    user = make_user(provider=provider)
    broker, _ = _broker(store, [FakeResponse({'error': 'invalid_grant'}, status_code=400)])

    with pytest.raises(ProviderAuthError) as excinfo:
        broker.get_valid_access_token(user)

    assert excinfo.value.message == message
    assert excinfo.value.status_code == 502


def test_apple_uses_stored_music_user_token(store):
    user = store.create_user(email='a@example.com', name='Apple Fan', music_provider=Provider.APPLE,
                             access_token='music-user-token')
    broker, session = _broker(store)

    assert broker.get_valid_access_token(user) == 'music-user-token'
    assert session.requests == []


def test_apple_without_token(store):
    user = store.create_user(email='a@example.com', name='Apple Fan', music_provider=Provider.APPLE)
    broker, _ = _broker(store)

    with pytest.raises(ProviderAuthError) as excinfo:
        broker.get_valid_access_token(user)
    assert excinfo.value.message == 'No access token found'


def test_apple_developer_token_is_signed_and_cached(store):
    config = dict(CONFIG, APPLE_MUSIC_TEAM_ID='TEAM123', APPLE_MUSIC_KEY_ID='KEY456',
                  APPLE_MUSIC_PRIVATE_KEY=_ec_private_key_pem().replace('\n', '\\n'))
    broker, _ = _broker(store, config=config)

    token = broker.apple_developer_token()

    assert broker.apple_developer_token() == token
    header = jwt.get_unverified_header(token)
    assert header['alg'] == 'ES256'
    assert header['kid'] == 'KEY456'
    claims = jwt.decode(token, options={'verify_signature': False})
    assert claims['iss'] == 'TEAM123'
    assert claims['exp'] - claims['iat'] == 3600


def test_apple_developer_token_requires_configuration(store):
    broker, _ = _broker(store)
    with pytest.raises(ProviderAuthError):
        broker.apple_developer_token()


# ============================================================================
# SIGN-IN
# ============================================================================

def test_authorize_url_for_spotify(store):
    broker, _ = _broker(store)
    url = broker.authorize_url('spotify')

    assert url.startswith('https://accounts.spotify.com/authorize?')
    assert 'client_id=spotify-id' in url
    assert 'response_type=code' in url


def test_authorize_url_requires_client_id(store):
    broker, _ = _broker(store)
    with pytest.raises(ProviderAuthError) as excinfo:
        broker.authorize_url(Provider.APPLE)
    assert excinfo.value.message == 'Apple Music sign-in is not configured'


def test_spotify_sign_in_creates_user(store):
    broker, session = _broker(store, [
        FakeResponse({'access_token': 'access', 'refresh_token': 'refresh'}),
        FakeResponse({'id': 'spotify-user', 'email': 'new@example.com', 'display_name': 'New'}),
    ])

    user = broker.complete_sign_in('spotify', 'auth-code')

    assert user.email == 'new@example.com'
    assert user.provider_account_id == 'spotify-user'
    assert user.music_provider is Provider.SPOTIFY
    assert session.requests[0]['data']['code'] == 'auth-code'
    assert session.requests[1]['url'] == SPOTIFY_ME_URL
    assert session.requests[1]['headers'] == {'Authorization': 'Bearer access'}


def test_sign_in_switches_existing_user_to_provider(store, make_user):
    existing = make_user(email='fan@example.com', provider=Provider.SPOTIFY)
    broker, _ = _broker(store, [
        FakeResponse({'access_token': 'yt-access', 'refresh_token': 'yt-refresh'}),
        FakeResponse({'sub': 'google-1', 'email': 'fan@example.com', 'name': 'Fan'}),
    ])

    user = broker.complete_sign_in(Provider.YOUTUBE, 'code')

    assert user.id == existing.id
    assert user.music_provider is Provider.YOUTUBE
    assert user.refresh_token == 'yt-refresh'
    assert len(store.users) == 1


def test_apple_sign_in_reads_id_token(store):
    id_token = jwt.encode({'sub': 'apple-1', 'email': 'fan@icloud.com'}, 'irrelevant', algorithm='HS256')
    config = dict(CONFIG, APPLE_CLIENT_ID='apple-id', APPLE_REDIRECT_URI='http://api.test/cb')
    broker, session = _broker(store, [FakeResponse({'access_token': 'a', 'id_token': id_token})], config)

    user = broker.complete_sign_in('apple', 'code')

    assert user.provider_account_id == 'apple-1'
    assert user.email == 'fan@icloud.com'
    assert len(session.requests) == 1


def test_failed_code_exchange(store):
    broker, _ = _broker(store, [FakeResponse({}, status_code=400)])
    with pytest.raises(ProviderAuthError) as excinfo:
        broker.complete_sign_in('spotify', 'bad')
    assert excinfo.value.message == 'Error authenticating with Spotify'


def test_encode_user_blob_has_no_credentials(make_user):
    blob = json.loads(encode_user_blob(make_user()))
    assert set(blob) == {'id', 'email', 'name', 'is_super_user', 'music_provider'}
    assert blob['music_provider'] == 'spotify'
