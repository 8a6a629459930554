"""
Apple Music API Client

Reads a signed-in user's library through the Apple Music API. Every request
carries two credentials:
- Authorization: Bearer <developer token> (ES256 JWT signed with the team's
  MusicKit key, see provider_auth.TokenBroker.apple_developer_token)
- Music-User-Token: the user's own token

Library endpoints page with offset/limit; a page shorter than the limit is
the last one.

API Documentation: https://developer.apple.com/documentation/applemusicapi
"""

import logging
from typing import Iterator, List

from models import CatalogSearchResult, PlaylistSummary, Provider, Track
from provider_http import get_json, new_session, upstream_errors

logger = logging.getLogger(__name__)

SERVICE_NAME = Provider.APPLE.value


class AppleMusicClient:
    """
    Apple Music API client bound to one user's music-user-token.

    Endpoints:
    - Liked songs: GET /me/library/songs
    - Playlists: GET /me/library/playlists
    - Playlist tracks: GET /me/library/playlists/{id}/tracks
    - Search: GET /catalog/{storefront}/search?types=songs
    """

    BASE_URL = "https://api.music.apple.com/v1"
    PAGE_SIZE = 100

    def __init__(self, access_token: str, developer_token: str = None,
                 storefront: str = 'us', session=None, logger: logging.Logger = None):
        """
        Args:
            access_token: User's music-user-token
            developer_token: Signed MusicKit developer token
            storefront: Catalog storefront used for search (default: us)
            session: Optional requests.Session, mainly for tests
            logger: Optional logger instance
        """
        self.access_token = access_token
        self.developer_token = developer_token
        self.storefront = storefront
        self.session = session or new_session()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def _headers(self) -> dict:
        headers = {'Music-User-Token': self.access_token}
        # Without a developer token the user token is sent as the bearer
        headers['Authorization'] = f'Bearer {self.developer_token or self.access_token}'
        return headers

    def _paginate(self, path: str) -> Iterator[dict]:
        """Yield every resource, advancing offset until a short page"""
        offset = 0
        while True:
            data = get_json(
                self.session,
                f"{self.BASE_URL}{path}",
                headers=self._headers,
                params={'limit': self.PAGE_SIZE, 'offset': offset},
            )
            items = data.get('data', [])
            yield from items
            if len(items) < self.PAGE_SIZE:
                return
            offset += self.PAGE_SIZE

    @staticmethod
    def _to_track(item: dict) -> Track:
        attributes = item['attributes']
        return Track(
            title=attributes['name'],
            artist=attributes['artistName'],
            album=attributes.get('albumName'),
            provider_track_id=item['id'],
            provider=Provider.APPLE,
        )

    # ========================================================================
    # LIBRARY
    # ========================================================================

    def fetch_liked_songs(self) -> List[Track]:
        with upstream_errors('Failed to fetch liked songs', SERVICE_NAME):
            tracks = [self._to_track(item) for item in self._paginate('/me/library/songs')]

        self.logger.info(f"Fetched {len(tracks)} library songs from Apple Music")
        return tracks

    def fetch_playlists(self) -> List[PlaylistSummary]:
        with upstream_errors('Failed to fetch playlists', SERVICE_NAME):
            summaries = []
            for item in self._paginate('/me/library/playlists'):
                attributes = item['attributes']
                description = attributes.get('description')
                if isinstance(description, dict):
                    description = description.get('standard')
                summaries.append(PlaylistSummary(
                    id=item['id'],
                    name=attributes['name'],
                    description=description,
                    track_count=attributes.get('trackCount', 0),
                ))
            return summaries

    def fetch_playlist_tracks(self, playlist_id: str) -> List[Track]:
        path = f'/me/library/playlists/{playlist_id}/tracks'
        with upstream_errors('Failed to fetch playlist tracks', SERVICE_NAME):
            return [self._to_track(item) for item in self._paginate(path)]

    # ========================================================================
    # SEARCH
    # ========================================================================

    def search_tracks(self, query: str, limit: int = 5) -> List[CatalogSearchResult]:
        """
        Search the storefront catalog for songs

        Returns:
            Results whose uri is the catalog song id (what MusicKit plays)
        """
        with upstream_errors('Failed to search tracks', SERVICE_NAME):
            data = get_json(
                self.session,
                f"{self.BASE_URL}/catalog/{self.storefront}/search",
                headers=self._headers,
                params={'term': query, 'types': 'songs', 'limit': limit},
            )
            songs = data.get('results', {}).get('songs', {}).get('data', [])
            return [
                CatalogSearchResult(
                    title=song['attributes']['name'],
                    artists=(song['attributes']['artistName'],),
                    uri=song['id'],
                    album=song['attributes'].get('albumName'),
                )
                for song in songs
            ]
