"""
Provider-agnostic access to a user's music library

CATALOG_CLIENTS maps each Provider to its client class; MusicProviderService
picks the user's provider, obtains a valid token from the TokenBroker, and
records every fetched track in the user's listening history.
"""

import logging
from typing import Callable, List, Mapping

from apple_music_client import AppleMusicClient
from errors import ProviderAuthError
from models import CatalogSearchResult, PlaylistSummary, Provider, Track, User
from spotify_client import SpotifyClient
from youtube_music_client import YouTubeMusicClient

logger = logging.getLogger(__name__)

CATALOG_CLIENTS = {
    Provider.SPOTIFY: SpotifyClient,
    Provider.APPLE: AppleMusicClient,
    Provider.YOUTUBE: YouTubeMusicClient,
}


def build_catalog_client(provider, access_token: str, config: Mapping,
                         developer_token: str = None, session=None):
    """
    Construct the catalog client for a provider

    Args:
        provider: Provider member or its string value
        access_token: User's provider access token
        config: App config (Apple storefront, YouTube API key)
        developer_token: MusicKit developer token, Apple only
        session: Optional requests.Session shared with the client
    """
    provider = Provider(provider)
    client_class = CATALOG_CLIENTS[provider]
    if provider is Provider.APPLE:
        return client_class(
            access_token,
            developer_token=developer_token,
            storefront=config.get('APPLE_MUSIC_STOREFRONT', 'us'),
            session=session,
        )
    if provider is Provider.YOUTUBE:
        return client_class(access_token, api_key=config.get('YOUTUBE_API_KEY'), session=session)
    return client_class(access_token, session=session)


class MusicProviderService:
    """Fetches and searches a user's provider library"""

    def __init__(self, store, token_broker, config: Mapping,
                 client_factory: Callable = build_catalog_client):
        self.store = store
        self.token_broker = token_broker
        self.config = config
        self.client_factory = client_factory

    def client_for(self, user: User, provider=None):
        """
        Catalog client authorised as the user

        Raises:
            ProviderAuthError: provider is not the user's own (no credentials for it)
        """
        provider = Provider(provider or user.music_provider)
        if provider is not Provider(user.music_provider):
            raise ProviderAuthError(f"No {provider.value} credentials for this user",
                                    provider=provider.value)
        access_token = self.token_broker.get_valid_access_token(user)
        developer_token = None
        if provider is Provider.APPLE:
            developer_token = self.token_broker.apple_developer_token()
        return self.client_factory(provider, access_token, self.config,
                                   developer_token=developer_token)

    def _record_history(self, user: User, tracks: List[Track]):
        added = self.store.upsert_listening_history(user.id, tracks)
        logger.debug(f"Listening history for user {user.id}: {added} new of {len(tracks)} fetched")

    def fetch_liked_songs(self, user: User) -> List[Track]:
        tracks = self.client_for(user).fetch_liked_songs()
        self._record_history(user, tracks)
        return tracks

    def fetch_playlists(self, user: User) -> List[PlaylistSummary]:
        return self.client_for(user).fetch_playlists()

    def fetch_playlist_tracks(self, user: User, playlist_id: str) -> List[Track]:
        tracks = self.client_for(user).fetch_playlist_tracks(playlist_id)
        self._record_history(user, tracks)
        return tracks

    def search_tracks(self, user: User, query: str, provider=None,
                      limit: int = 5) -> List[CatalogSearchResult]:
        return self.client_for(user, provider).search_tracks(query, limit=limit)
