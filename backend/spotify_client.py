"""
Spotify Web API Client

Reads a signed-in user's library through the Web API:
- Liked songs (/me/tracks)
- Playlists and their tracks
- Catalog search, used by the track matcher to find a playable URI

Pagination follows the absolute `next` URL Spotify returns with every page
until it comes back null.

API Documentation: https://developer.spotify.com/documentation/web-api
"""

import logging
from typing import Iterator, List

from models import CatalogSearchResult, PlaylistSummary, Provider, Track
from provider_http import get_json, new_session, upstream_errors

logger = logging.getLogger(__name__)

# Service identifier used in logs and errors
SERVICE_NAME = Provider.SPOTIFY.value


class SpotifyClient:
    """
    Spotify Web API client bound to one user's access token.

    Endpoints:
    - Liked songs: GET /me/tracks (limit 50)
    - Playlists: GET /me/playlists (limit 50)
    - Playlist tracks: GET /playlists/{id}/tracks (limit 100)
    - Search: GET /search?type=track
    """

    BASE_URL = "https://api.spotify.com/v1"
    PAGE_SIZE = 50
    PLAYLIST_TRACKS_PAGE_SIZE = 100

    def __init__(self, access_token: str, session=None, logger: logging.Logger = None):
        """
        Args:
            access_token: User's OAuth access token (assumed valid)
            session: Optional requests.Session, mainly for tests
            logger: Optional logger instance
        """
        self.access_token = access_token
        self.session = session or new_session()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def _headers(self) -> dict:
        return {'Authorization': f'Bearer {self.access_token}'}

    def _paginate(self, url: str) -> Iterator[dict]:
        """Yield every item across pages, following `next` until it is null"""
        while url:
            data = get_json(self.session, url, headers=self._headers)
            yield from data['items']
            url = data.get('next')

    # ========================================================================
    # NORMALIZATION
    # ========================================================================

    @staticmethod
    def _to_track(track: dict) -> Track:
        return Track(
            title=track['name'],
            artist=', '.join(artist['name'] for artist in track['artists']),
            album=(track.get('album') or {}).get('name'),
            provider_track_id=track['id'],
            provider=Provider.SPOTIFY,
        )

    # ========================================================================
    # LIBRARY
    # ========================================================================

    def fetch_liked_songs(self) -> List[Track]:
        """
        Fetch every saved track of the user

        Raises:
            UpstreamProviderError: if any page fails
        """
        url = f"{self.BASE_URL}/me/tracks?limit={self.PAGE_SIZE}"
        with upstream_errors('Failed to fetch liked songs', SERVICE_NAME):
            tracks = [self._to_track(item['track']) for item in self._paginate(url)]

        self.logger.info(f"Fetched {len(tracks)} liked songs from Spotify")
        return tracks

    def fetch_playlists(self) -> List[PlaylistSummary]:
        url = f"{self.BASE_URL}/me/playlists?limit={self.PAGE_SIZE}"
        with upstream_errors('Failed to fetch playlists', SERVICE_NAME):
            return [
                PlaylistSummary(
                    id=item['id'],
                    name=item['name'],
                    description=item.get('description'),
                    track_count=item['tracks']['total'],
                )
                for item in self._paginate(url)
            ]

    def fetch_playlist_tracks(self, playlist_id: str) -> List[Track]:
        """
        Fetch every track of one playlist

        Local files and removed tracks come back with a null `track` and are
        skipped.
        """
        url = f"{self.BASE_URL}/playlists/{playlist_id}/tracks?limit={self.PLAYLIST_TRACKS_PAGE_SIZE}"
        with upstream_errors('Failed to fetch playlist tracks', SERVICE_NAME):
            return [
                self._to_track(item['track'])
                for item in self._paginate(url)
                if item.get('track') and item['track'].get('id')
            ]

    # ========================================================================
    # SEARCH
    # ========================================================================

    def search_tracks(self, query: str, limit: int = 5) -> List[CatalogSearchResult]:
        """
        Search the Spotify catalog for tracks

        Args:
            query: Free-text query
            limit: Maximum number of results

        Returns:
            Results whose uri is the playable `spotify:track:...` handle
        """
        with upstream_errors('Failed to search tracks', SERVICE_NAME):
            data = get_json(
                self.session,
                f"{self.BASE_URL}/search",
                headers=self._headers,
                params={'q': query, 'type': 'track', 'limit': limit},
            )
            return [
                CatalogSearchResult(
                    title=item['name'],
                    artists=tuple(artist['name'] for artist in item['artists']),
                    uri=item['uri'],
                    album=(item.get('album') or {}).get('name'),
                )
                for item in data['tracks']['items']
            ]
