"""
Music provider OAuth and token management

TokenBroker owns every provider credential flow:
- Authorization URLs and authorization-code exchange for sign-in
- Creating or updating the local user after a provider sign-in
- A valid access token for catalog calls (Spotify and YouTube refresh on
  every use; Apple's music-user-token is used as stored)
- The MusicKit developer token (ES256 JWT) for Apple Music API calls
"""

import json
import logging
import threading
import time
from typing import Mapping
from urllib.parse import urlencode

import jwt
import requests

from errors import ProviderAuthError
from models import Provider, User
from provider_http import REQUEST_TIMEOUT, new_session

logger = logging.getLogger(__name__)

PROVIDER_LABELS = {
    Provider.SPOTIFY: 'Spotify',
    Provider.APPLE: 'Apple Music',
    Provider.YOUTUBE: 'YouTube',
}

SPOTIFY_AUTHORIZE_URL = 'https://accounts.spotify.com/authorize'
SPOTIFY_TOKEN_URL = 'https://accounts.spotify.com/api/token'
SPOTIFY_ME_URL = 'https://api.spotify.com/v1/me'
SPOTIFY_SCOPES = ('user-read-email user-read-private user-library-read '
                  'playlist-read-private streaming')

GOOGLE_AUTHORIZE_URL = 'https://accounts.google.com/o/oauth2/v2/auth'
GOOGLE_TOKEN_URL = 'https://oauth2.googleapis.com/token'
GOOGLE_USERINFO_URL = 'https://openidconnect.googleapis.com/v1/userinfo'
YOUTUBE_SCOPES = 'openid email profile https://www.googleapis.com/auth/youtube.readonly'

APPLE_AUTHORIZE_URL = 'https://appleid.apple.com/auth/authorize'
APPLE_TOKEN_URL = 'https://appleid.apple.com/auth/token'
APPLE_SCOPES = 'name email'

# Developer tokens are signed for an hour and reused until five minutes before expiry
DEVELOPER_TOKEN_TTL = 3600
DEVELOPER_TOKEN_REFRESH_MARGIN = 300


class TokenBroker:
    """Provider credential flows backed by the user store"""

    def __init__(self, store, config: Mapping, session=None):
        """
        Args:
            store: EventStore (or anything with the same user operations)
            config: Flask app.config or an equivalent mapping
            session: Optional requests.Session, mainly for tests
        """
        self.store = store
        self.config = config
        self.session = session or new_session()
        self._developer_token = None
        self._developer_token_expires = 0
        self._lock = threading.Lock()

    # ========================================================================
    # SIGN-IN
    # ========================================================================

    def _spotify_redirect_uri(self) -> str:
        return (self.config.get('SPOTIFY_REDIRECT_URI')
                or f"{self.config.get('FRONTEND_URL')}/api/auth/spotify/callback")

    def authorize_url(self, provider) -> str:
        """
        Build the provider's authorization URL

        Raises:
            ProviderAuthError: if the provider's client id is not configured
        """
        provider = Provider(provider)
        if provider is Provider.SPOTIFY:
            client_id, base = self.config.get('SPOTIFY_CLIENT_ID'), SPOTIFY_AUTHORIZE_URL
            params = {'redirect_uri': self._spotify_redirect_uri(), 'scope': SPOTIFY_SCOPES}
        elif provider is Provider.YOUTUBE:
            client_id, base = self.config.get('YOUTUBE_CLIENT_ID'), GOOGLE_AUTHORIZE_URL
            params = {
                'redirect_uri': self.config.get('YOUTUBE_REDIRECT_URI'),
                'scope': YOUTUBE_SCOPES,
                'access_type': 'offline',
                'prompt': 'consent',
            }
        else:
            client_id, base = self.config.get('APPLE_CLIENT_ID'), APPLE_AUTHORIZE_URL
            params = {
                'redirect_uri': self.config.get('APPLE_REDIRECT_URI'),
                'scope': APPLE_SCOPES,
                'response_mode': 'query',
            }

        if not client_id or not params['redirect_uri']:
            raise ProviderAuthError(f"{PROVIDER_LABELS[provider]} sign-in is not configured",
                                    provider=provider.value)

        params.update({'client_id': client_id, 'response_type': 'code'})
        return f"{base}?{urlencode(params)}"

    def _post_token(self, provider: Provider, url: str, data: dict, client_id: str,
                    client_secret: str, failure_message: str) -> dict:
        try:
            response = self.session.post(
                url,
                data=data,
                auth=(client_id or '', client_secret or ''),
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            payload = response.json()
            if not payload.get('access_token'):
                raise ValueError('token response has no access_token')
            return payload
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"{failure_message}: {e}")
            raise ProviderAuthError(failure_message, provider=provider.value) from e

    def exchange_code(self, provider, code: str) -> dict:
        """
        Trade an authorization code for tokens

        Returns:
            Token response dict (access_token, refresh_token, and id_token for Apple)
        """
        provider = Provider(provider)
        label = PROVIDER_LABELS[provider]
        if provider is Provider.SPOTIFY:
            url, redirect_uri = SPOTIFY_TOKEN_URL, self._spotify_redirect_uri()
            prefix = 'SPOTIFY'
        elif provider is Provider.YOUTUBE:
            url, redirect_uri = GOOGLE_TOKEN_URL, self.config.get('YOUTUBE_REDIRECT_URI')
            prefix = 'YOUTUBE'
        else:
            url, redirect_uri = APPLE_TOKEN_URL, self.config.get('APPLE_REDIRECT_URI')
            prefix = 'APPLE'

        return self._post_token(
            provider, url,
            {'grant_type': 'authorization_code', 'code': code, 'redirect_uri': redirect_uri},
            self.config.get(f'{prefix}_CLIENT_ID'),
            self.config.get(f'{prefix}_CLIENT_SECRET'),
            f"Error authenticating with {label}",
        )

    def fetch_account(self, provider, tokens: dict) -> dict:
        """
        Identify the provider account behind a fresh token set

        Returns:
            Dict with id, email and name
        """
        provider = Provider(provider)
        failure_message = f"Error authenticating with {PROVIDER_LABELS[provider]}"
        try:
            if provider is Provider.APPLE:
                # The id_token comes straight from Apple's token endpoint over TLS
                claims = jwt.decode(tokens['id_token'], options={'verify_signature': False})
                email = claims.get('email') or f"{claims['sub']}@privaterelay.appleid.com"
                return {'id': claims['sub'], 'email': email, 'name': email.split('@')[0]}

            url = SPOTIFY_ME_URL if provider is Provider.SPOTIFY else GOOGLE_USERINFO_URL
            response = self.session.get(
                url,
                headers={'Authorization': f"Bearer {tokens['access_token']}"},
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
            profile = response.json()
            if provider is Provider.SPOTIFY:
                return {
                    'id': profile['id'],
                    'email': profile['email'],
                    'name': profile.get('display_name') or profile['id'],
                }
            return {
                'id': profile['sub'],
                'email': profile['email'],
                'name': profile.get('name') or profile['email'],
            }
        except (requests.exceptions.RequestException, jwt.InvalidTokenError,
                KeyError, ValueError) as e:
            logger.error(f"{failure_message}: could not read account ({e})")
            raise ProviderAuthError(failure_message, provider=provider.value) from e

    def complete_sign_in(self, provider, code: str) -> User:
        """
        Finish a provider sign-in: exchange the code, then create or update the user

        An existing user is matched by email first, then by provider account
        id; signing in through a provider switches the user to it.
        """
        provider = Provider(provider)
        tokens = self.exchange_code(provider, code)
        account = self.fetch_account(provider, tokens)

        user = (self.store.find_user_by_email(account['email'])
                or self.store.find_user_by_provider_account(provider, account['id']))
        if user is None:
            logger.info(f"Creating user for {provider.value} account {account['id']}")
            return self.store.create_user(
                email=account['email'],
                name=account['name'],
                music_provider=provider,
                provider_account_id=account['id'],
                access_token=tokens['access_token'],
                refresh_token=tokens.get('refresh_token'),
            )

        return self.store.update_user_credentials(
            user.id,
            access_token=tokens['access_token'],
            refresh_token=tokens.get('refresh_token'),
            music_provider=provider,
            provider_account_id=account['id'],
        )

    # ========================================================================
    # ACCESS TOKENS
    # ========================================================================

    def get_valid_access_token(self, user: User) -> str:
        """
        Return a usable access token for the user's own provider

        Raises:
            ProviderAuthError: no stored token, or the refresh failed
        """
        provider = Provider(user.music_provider)

        if provider is Provider.APPLE:
            if not user.access_token:
                raise ProviderAuthError('No access token found', provider=provider.value)
            return user.access_token

        if not user.refresh_token:
            raise ProviderAuthError('No refresh token found', provider=provider.value)

        prefix = 'SPOTIFY' if provider is Provider.SPOTIFY else 'YOUTUBE'
        url = SPOTIFY_TOKEN_URL if provider is Provider.SPOTIFY else GOOGLE_TOKEN_URL
        tokens = self._post_token(
            provider, url,
            {'grant_type': 'refresh_token', 'refresh_token': user.refresh_token},
            self.config.get(f'{prefix}_CLIENT_ID'),
            self.config.get(f'{prefix}_CLIENT_SECRET'),
            f"Failed to refresh {PROVIDER_LABELS[provider]} token",
        )

        # Providers only sometimes rotate the refresh token
        self.store.update_user_credentials(
            user.id,
            access_token=tokens['access_token'],
            refresh_token=tokens.get('refresh_token'),
        )
        user.access_token = tokens['access_token']
        if tokens.get('refresh_token'):
            user.refresh_token = tokens['refresh_token']
        return user.access_token

    def apple_developer_token(self) -> str:
        """
        Sign (or reuse) the MusicKit developer token

        Raises:
            ProviderAuthError: if the team id, key id or private key is missing
        """
        with self._lock:
            now = int(time.time())
            if self._developer_token and now < self._developer_token_expires - DEVELOPER_TOKEN_REFRESH_MARGIN:
                return self._developer_token

            team_id = self.config.get('APPLE_MUSIC_TEAM_ID')
            key_id = self.config.get('APPLE_MUSIC_KEY_ID')
            private_key = self.config.get('APPLE_MUSIC_PRIVATE_KEY')
            if not (team_id and key_id and private_key):
                raise ProviderAuthError('Apple Music developer token is not configured',
                                        provider=Provider.APPLE.value)

            # Keys pasted into .env usually carry literal \n sequences
            private_key = private_key.replace('\\n', '\n')
            expires = now + DEVELOPER_TOKEN_TTL
            try:
                token = jwt.encode(
                    {'iss': team_id, 'iat': now, 'exp': expires},
                    private_key,
                    algorithm='ES256',
                    headers={'kid': key_id},
                )
            except (ValueError, TypeError, jwt.PyJWTError) as e:
                logger.error(f"Could not sign Apple Music developer token: {e}")
                raise ProviderAuthError('Apple Music developer token is not configured',
                                        provider=Provider.APPLE.value) from e

            self._developer_token = token
            self._developer_token_expires = expires
            return token


def encode_user_blob(user: User) -> str:
    """Compact JSON user summary handed to the frontend after sign-in"""
    return json.dumps({
        'id': user.id,
        'email': user.email,
        'name': user.name,
        'is_super_user': user.is_super_user,
        'music_provider': Provider(user.music_provider).value,
    })
