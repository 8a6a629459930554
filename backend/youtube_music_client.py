"""
YouTube Data API Client (YouTube Music)

YouTube Music has no public API of its own; the user's library is read
through the YouTube Data API v3:
- Liked songs are liked videos (/videos?myRating=like)
- Playlists and playlist items
- Catalog search restricted to embeddable videos

Only videos that can be played in the embedded player are kept: an item must
report status.embeddable and carry a well-formed 11-character video id.
Playlist items carry neither, so each page is followed by one batch
/videos?id=a,b,c lookup before filtering.

API Documentation: https://developers.google.com/youtube/v3/docs
"""

import logging
import re
from typing import Iterator, List

from models import CatalogSearchResult, PlaylistSummary, Provider, Track
from provider_http import get_json, new_session, upstream_errors

logger = logging.getLogger(__name__)

SERVICE_NAME = Provider.YOUTUBE.value

VIDEO_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]{11}$')


def is_valid_video_id(video_id) -> bool:
    return isinstance(video_id, str) and bool(VIDEO_ID_PATTERN.match(video_id))


def is_playable(video: dict) -> bool:
    """Embeddable and carrying a valid video id"""
    status = video.get('status') or {}
    return status.get('embeddable') is True and is_valid_video_id(video.get('id'))


class YouTubeMusicClient:
    """
    YouTube Data API client bound to one user's access token.

    Endpoints:
    - Liked songs: GET /videos?myRating=like
    - Playlists: GET /playlists?mine=true
    - Playlist tracks: GET /playlistItems, then GET /videos?id=...
    - Search: GET /search?type=video&videoEmbeddable=true
    """

    BASE_URL = "https://www.googleapis.com/youtube/v3"
    PAGE_SIZE = 50

    def __init__(self, access_token: str, api_key: str = None, session=None,
                 logger: logging.Logger = None):
        """
        Args:
            access_token: User's Google OAuth access token
            api_key: Optional YouTube Data API key sent as `key`
            session: Optional requests.Session, mainly for tests
            logger: Optional logger instance
        """
        self.access_token = access_token
        self.api_key = api_key
        self.session = session or new_session()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def _headers(self) -> dict:
        return {'Authorization': f'Bearer {self.access_token}'}

    def _get(self, path: str, params: dict) -> dict:
        if self.api_key:
            params = dict(params, key=self.api_key)
        return get_json(self.session, f"{self.BASE_URL}{path}", headers=self._headers, params=params)

    def _pages(self, path: str, params: dict) -> Iterator[dict]:
        """Yield each page, following nextPageToken until it is absent"""
        page_token = None
        while True:
            page_params = dict(params, maxResults=self.PAGE_SIZE)
            if page_token:
                page_params['pageToken'] = page_token
            data = self._get(path, page_params)
            yield data
            page_token = data.get('nextPageToken')
            if not page_token:
                return

    @staticmethod
    def _to_track(video: dict) -> Track:
        return Track(
            title=video['snippet']['title'],
            artist=video['snippet']['channelTitle'],
            album=None,
            provider_track_id=video['id'],
            provider=Provider.YOUTUBE,
        )

    # ========================================================================
    # LIBRARY
    # ========================================================================

    def fetch_liked_songs(self) -> List[Track]:
        params = {'part': 'snippet,contentDetails,status', 'myRating': 'like'}
        with upstream_errors('Failed to fetch liked songs', SERVICE_NAME):
            tracks = [
                self._to_track(video)
                for page in self._pages('/videos', params)
                for video in page.get('items', [])
                if is_playable(video)
            ]

        self.logger.info(f"Fetched {len(tracks)} liked videos from YouTube")
        return tracks

    def fetch_playlists(self) -> List[PlaylistSummary]:
        params = {'part': 'snippet,contentDetails', 'mine': 'true'}
        with upstream_errors('Failed to fetch playlists', SERVICE_NAME):
            return [
                PlaylistSummary(
                    id=item['id'],
                    name=item['snippet']['title'],
                    description=item['snippet'].get('description'),
                    track_count=item['contentDetails']['itemCount'],
                )
                for page in self._pages('/playlists', params)
                for item in page.get('items', [])
            ]

    def fetch_playlist_tracks(self, playlist_id: str) -> List[Track]:
        params = {'part': 'snippet,contentDetails', 'playlistId': playlist_id}
        tracks = []
        with upstream_errors('Failed to fetch playlist tracks', SERVICE_NAME):
            for page in self._pages('/playlistItems', params):
                video_ids = [
                    item['snippet']['resourceId'].get('videoId')
                    for item in page.get('items', [])
                    if item['snippet']['resourceId'].get('kind') == 'youtube#video'
                ]
                video_ids = [video_id for video_id in video_ids if is_valid_video_id(video_id)]
                if not video_ids:
                    continue

                details = self._get('/videos', {
                    'part': 'snippet,contentDetails,status',
                    'id': ','.join(video_ids),
                })
                tracks.extend(
                    self._to_track(video)
                    for video in details.get('items', [])
                    if is_playable(video)
                )
        return tracks

    # ========================================================================
    # SEARCH
    # ========================================================================

    def search_tracks(self, query: str, limit: int = 5) -> List[CatalogSearchResult]:
        """
        Search embeddable videos

        Returns:
            Results whose uri is the 11-character video id
        """
        with upstream_errors('Failed to search tracks', SERVICE_NAME):
            data = self._get('/search', {
                'part': 'snippet',
                'q': query,
                'type': 'video',
                'videoEmbeddable': 'true',
                'maxResults': limit,
            })
            results = []
            for item in data.get('items', []):
                video_id = item.get('id', {}).get('videoId')
                if not is_valid_video_id(video_id):
                    continue
                results.append(CatalogSearchResult(
                    title=item['snippet']['title'],
                    artists=(item['snippet']['channelTitle'],),
                    uri=video_id,
                ))
            return results
