"""
Domain records shared by the catalog clients, the matcher and the playlist engine

Rows come back from psycopg as dicts (dict_row); the from_row constructors
turn them into these records and to_dict turns them back into JSON payloads.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Set, Tuple

from utils.helpers import normalize


class Provider(str, Enum):
    SPOTIFY = 'spotify'
    APPLE = 'apple'
    YOUTUBE = 'youtube'

    @classmethod
    def values(cls) -> Tuple[str, ...]:
        return tuple(member.value for member in cls)


@dataclass(frozen=True)
class Track:
    """Normalized track representation used across providers."""

    title: str
    artist: str
    provider_track_id: str
    provider: Provider
    album: Optional[str] = None
    resolved_uri: Optional[str] = None

    @property
    def identity(self) -> Tuple[str, str]:
        """Logical song identity, independent of provider ids"""
        return normalize(self.title), normalize(self.artist)

    @property
    def history_key(self) -> str:
        """Dedup key for a user's listening history"""
        title, artist = self.identity
        return f"{title}::{artist}::{Provider(self.provider).value}"

    def with_resolved_uri(self, uri: Optional[str]) -> 'Track':
        return replace(self, resolved_uri=uri)

    @classmethod
    def deduplicate(cls, tracks: Iterable['Track'], key=None) -> List['Track']:
        key = key or (lambda track: track.history_key)
        seen: Set[str] = set()
        unique: List[Track] = []
        for track in tracks:
            signature = key(track)
            if signature in seen:
                continue
            seen.add(signature)
            unique.append(track)
        return unique

    @classmethod
    def from_row(cls, row: dict) -> 'Track':
        return cls(
            title=row['title'],
            artist=row['artist'],
            album=row.get('album'),
            provider_track_id=row.get('provider_track_id') or '',
            provider=Provider(row['provider']),
            resolved_uri=row.get('resolved_uri'),
        )

    def to_dict(self) -> dict:
        return {
            'title': self.title,
            'artist': self.artist,
            'album': self.album,
            'provider_track_id': self.provider_track_id,
            'provider': Provider(self.provider).value,
            'resolved_uri': self.resolved_uri,
        }


@dataclass(frozen=True)
class PlaylistSummary:
    id: str
    name: str
    description: Optional[str]
    track_count: int

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'track_count': self.track_count,
        }


@dataclass(frozen=True)
class CatalogSearchResult:
    """One hit from a provider's catalog search"""

    title: str
    artists: Tuple[str, ...]
    uri: str
    album: Optional[str] = None

    @property
    def primary_artist(self) -> str:
        return self.artists[0] if self.artists else ''


@dataclass(frozen=True)
class MatchCandidate:
    """A search result scored against the queried track. Never persisted."""

    result: CatalogSearchResult
    title_similarity: float
    artist_similarity: float


@dataclass
class User:
    id: str
    email: str
    name: str
    music_provider: Provider
    is_super_user: bool = False
    password_hash: Optional[str] = None
    provider_account_id: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    listening_history: List[Track] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict, listening_history: Optional[List[Track]] = None) -> 'User':
        return cls(
            id=str(row['id']),
            email=row['email'],
            name=row['name'],
            music_provider=Provider(row['music_provider']),
            is_super_user=bool(row.get('is_super_user')),
            password_hash=row.get('password_hash'),
            provider_account_id=row.get('provider_account_id'),
            access_token=row.get('access_token'),
            refresh_token=row.get('refresh_token'),
            listening_history=listening_history or [],
            created_at=row.get('created_at'),
        )

    def to_public_dict(self) -> dict:
        """User fields safe to send to the client (no credentials)"""
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'is_super_user': self.is_super_user,
            'music_provider': Provider(self.music_provider).value,
            'created_at': self.created_at,
        }


@dataclass
class Event:
    id: str
    name: str
    description: str
    theme: str
    is_public: bool
    creator_id: str
    participant_ids: Set[str] = field(default_factory=set)
    playlist: List[Track] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict, participant_ids: Iterable[str] = (),
                 playlist: Optional[List[Track]] = None) -> 'Event':
        return cls(
            id=str(row['id']),
            name=row['name'],
            description=row.get('description') or '',
            theme=row.get('theme') or '',
            is_public=bool(row['is_public']),
            creator_id=str(row['creator_id']),
            participant_ids={str(pid) for pid in participant_ids},
            playlist=playlist or [],
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
        )

    def to_dict(self, include_playlist: bool = True) -> dict:
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'theme': self.theme,
            'is_public': self.is_public,
            'creator_id': self.creator_id,
            'participant_ids': sorted(self.participant_ids),
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }
        if include_playlist:
            data['playlist'] = [track.to_dict() for track in self.playlist]
        return data
