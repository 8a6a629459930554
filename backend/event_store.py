"""
Event Store

PostgreSQL implementation of the storage boundary used by the routes and the
playlist engine: users, events, participants, event playlists and each user's
listening history.

Playlist rows carry an explicit position; insertion order is play order.
Listening history is append-only and deduplicated on write through a unique
(user_id, dedup_key) constraint, so concurrent writers need no extra locking.
"""

import logging
from typing import Iterable, List, Optional
from uuid import UUID

from db_utils import Database
from errors import NotFound
from models import Event, Provider, Track, User

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    password_hash TEXT,
    is_super_user BOOLEAN NOT NULL DEFAULT FALSE,
    music_provider TEXT NOT NULL,
    provider_account_id TEXT,
    access_token TEXT,
    refresh_token TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_users_provider_account
    ON users (music_provider, provider_account_id);

CREATE TABLE IF NOT EXISTS events (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    theme TEXT NOT NULL DEFAULT '',
    is_public BOOLEAN NOT NULL DEFAULT TRUE,
    creator_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS event_participants (
    event_id UUID NOT NULL REFERENCES events(id) ON DELETE CASCADE,
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (event_id, user_id)
);

CREATE TABLE IF NOT EXISTS playlist_tracks (
    id BIGSERIAL PRIMARY KEY,
    event_id UUID NOT NULL REFERENCES events(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    album TEXT,
    provider_track_id TEXT NOT NULL DEFAULT '',
    provider TEXT NOT NULL,
    resolved_uri TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_playlist_tracks_event
    ON playlist_tracks (event_id, position);

CREATE TABLE IF NOT EXISTS listening_history (
    id BIGSERIAL PRIMARY KEY,
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    artist TEXT NOT NULL,
    album TEXT,
    provider_track_id TEXT NOT NULL DEFAULT '',
    provider TEXT NOT NULL,
    dedup_key TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, dedup_key)
);
"""

USER_COLUMNS = """
    id, email, name, password_hash, is_super_user, music_provider,
    provider_account_id, access_token, refresh_token, created_at
"""

EVENT_COLUMNS = """
    id, name, description, theme, is_public, creator_id, created_at, updated_at
"""

TRACK_COLUMNS = "title, artist, album, provider_track_id, provider, resolved_uri"

HISTORY_COLUMNS = "title, artist, album, provider_track_id, provider"


def _valid_uuid(value) -> bool:
    """Ids arrive from URLs and tokens; anything that is not a UUID cannot exist"""
    try:
        UUID(str(value))
        return True
    except (ValueError, TypeError):
        return False


class EventStore:
    """SQL storage for users, events, playlists and listening history"""

    def __init__(self, database: Database):
        self.database = database

    def init_schema(self):
        """Create tables and indexes if they do not exist"""
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
        logger.info("Database schema ready")

    def health(self):
        return self.database.health()

    # ========================================================================
    # USERS
    # ========================================================================

    def find_user(self, user_id, with_history: bool = False) -> Optional[User]:
        if not _valid_uuid(user_id):
            return None

        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = %s", (user_id,))
                row = cur.fetchone()
                if not row:
                    return None

                history = self._load_history(cur, [row['id']]).get(str(row['id']), []) if with_history else []
                return User.from_row(row, history)

    def find_user_by_email(self, email: str) -> Optional[User]:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {USER_COLUMNS} FROM users WHERE lower(email) = lower(%s)", (email,))
                row = cur.fetchone()
                return User.from_row(row) if row else None

    def find_user_by_provider_account(self, provider, account_id: str) -> Optional[User]:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    SELECT {USER_COLUMNS} FROM users
                    WHERE music_provider = %s AND provider_account_id = %s
                """, (Provider(provider).value, account_id))
                row = cur.fetchone()
                return User.from_row(row) if row else None

    def create_user(self, email: str, name: str, music_provider, password_hash: str = None,
                    provider_account_id: str = None, access_token: str = None,
                    refresh_token: str = None, is_super_user: bool = False) -> User:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    INSERT INTO users (email, name, password_hash, is_super_user, music_provider,
                                       provider_account_id, access_token, refresh_token)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {USER_COLUMNS}
                """, (email, name, password_hash, is_super_user, Provider(music_provider).value,
                      provider_account_id, access_token, refresh_token))
                return User.from_row(cur.fetchone())

    def update_user_profile(self, user_id, name: str = None, music_provider=None) -> Optional[User]:
        provider_value = Provider(music_provider).value if music_provider else None
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    UPDATE users
                    SET name = COALESCE(%s, name),
                        music_provider = COALESCE(%s, music_provider)
                    WHERE id = %s
                    RETURNING {USER_COLUMNS}
                """, (name, provider_value, user_id))
                row = cur.fetchone()
                return User.from_row(row) if row else None

    def update_user_credentials(self, user_id, access_token: str, refresh_token: str = None,
                                music_provider=None, provider_account_id: str = None) -> Optional[User]:
        """Store fresh provider tokens; a missing refresh token keeps the old one"""
        provider_value = Provider(music_provider).value if music_provider else None
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    UPDATE users
                    SET access_token = %s,
                        refresh_token = COALESCE(%s, refresh_token),
                        music_provider = COALESCE(%s, music_provider),
                        provider_account_id = COALESCE(%s, provider_account_id)
                    WHERE id = %s
                    RETURNING {USER_COLUMNS}
                """, (access_token, refresh_token, provider_value, provider_account_id, user_id))
                row = cur.fetchone()
                return User.from_row(row) if row else None

    def set_super_user(self, user_id) -> Optional[User]:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    UPDATE users SET is_super_user = TRUE
                    WHERE id = %s
                    RETURNING {USER_COLUMNS}
                """, (user_id,))
                row = cur.fetchone()
                return User.from_row(row) if row else None

    # ========================================================================
    # LISTENING HISTORY
    # ========================================================================

    def upsert_listening_history(self, user_id, tracks: Iterable[Track]) -> int:
        """
        Insert tracks that are not already in the user's history

        Duplicates are suppressed on normalized (title, artist, provider),
        both within the batch and against what is already stored.

        Returns:
            Number of distinct tracks submitted
        """
        unique = Track.deduplicate(tracks)
        if not unique:
            return 0

        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.executemany(f"""
                    INSERT INTO listening_history (user_id, {HISTORY_COLUMNS}, dedup_key)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, dedup_key) DO NOTHING
                """, [
                    (user_id, track.title, track.artist, track.album,
                     track.provider_track_id, Provider(track.provider).value, track.history_key)
                    for track in unique
                ])

        logger.debug(f"Upserted {len(unique)} history tracks for user {user_id}")
        return len(unique)

    def _load_history(self, cur, user_ids) -> dict:
        cur.execute(f"""
            SELECT user_id, {HISTORY_COLUMNS}
            FROM listening_history
            WHERE user_id = ANY(%s)
            ORDER BY id
        """, (list(user_ids),))

        history = {}
        for row in cur.fetchall():
            history.setdefault(str(row['user_id']), []).append(Track.from_row(row))
        return history

    # ========================================================================
    # EVENTS
    # ========================================================================

    def find_event(self, event_id) -> Optional[Event]:
        if not _valid_uuid(event_id):
            return None

        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT {EVENT_COLUMNS} FROM events WHERE id = %s", (event_id,))
                row = cur.fetchone()
                if not row:
                    return None

                participants = self._load_participant_ids(cur, [row['id']])
                playlist = self._load_playlist(cur, row['id'])
                return Event.from_row(row, participants.get(str(row['id']), ()), playlist)

    def list_events(self, user_id) -> List[Event]:
        """Events visible to the user: public, created by them, or joined"""
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    SELECT {EVENT_COLUMNS} FROM events e
                    WHERE e.is_public
                       OR e.creator_id = %s
                       OR EXISTS (
                           SELECT 1 FROM event_participants p
                           WHERE p.event_id = e.id AND p.user_id = %s
                       )
                    ORDER BY e.created_at DESC
                """, (user_id, user_id))
                rows = cur.fetchall()

                participants = self._load_participant_ids(cur, [row['id'] for row in rows])
                return [
                    Event.from_row(row, participants.get(str(row['id']), ()))
                    for row in rows
                ]

    def list_user_events(self, user_id) -> dict:
        """Events the user created and events they joined, for the profile view"""
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    SELECT {EVENT_COLUMNS} FROM events
                    WHERE creator_id = %s
                    ORDER BY created_at DESC
                """, (user_id,))
                created = [Event.from_row(row) for row in cur.fetchall()]

                cur.execute(f"""
                    SELECT {', '.join('e.' + c.strip() for c in EVENT_COLUMNS.split(','))}
                    FROM events e
                    INNER JOIN event_participants p ON p.event_id = e.id
                    WHERE p.user_id = %s
                    ORDER BY p.joined_at DESC
                """, (user_id,))
                joined = [Event.from_row(row) for row in cur.fetchall()]

        return {'created': created, 'joined': joined}

    def create_event(self, name: str, description: str, theme: str, is_public: bool,
                     creator_id) -> Event:
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    INSERT INTO events (name, description, theme, is_public, creator_id)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING {EVENT_COLUMNS}
                """, (name, description, theme, is_public, creator_id))
                return Event.from_row(cur.fetchone())

    def update_event(self, event_id, updates: dict) -> Optional[Event]:
        """Apply a partial metadata update (name, description, theme, is_public)"""
        allowed = ('name', 'description', 'theme', 'is_public')
        fields = [(column, updates[column]) for column in allowed if column in updates]
        if fields:
            assignments = ', '.join(f"{column} = %s" for column, _ in fields)
            with self.database.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        f"UPDATE events SET {assignments}, updated_at = NOW() WHERE id = %s",
                        [value for _, value in fields] + [event_id]
                    )
        return self.find_event(event_id)

    def add_participant(self, event_id, user_id):
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO event_participants (event_id, user_id)
                    VALUES (%s, %s)
                    ON CONFLICT (event_id, user_id) DO NOTHING
                """, (event_id, user_id))

    def list_participants(self, event_id) -> List[User]:
        """Participants (creator excluded unless they joined) with their listening history"""
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    SELECT {', '.join('u.' + c.strip() for c in USER_COLUMNS.split(','))}
                    FROM users u
                    INNER JOIN event_participants p ON p.user_id = u.id
                    WHERE p.event_id = %s
                    ORDER BY p.joined_at
                """, (event_id,))
                rows = cur.fetchall()

                history = self._load_history(cur, [row['id'] for row in rows])
                return [User.from_row(row, history.get(str(row['id']), [])) for row in rows]

    def update_event_playlist(self, event_id, append: Iterable[Track], delete_all: bool = False):
        """
        Replace or extend an event's playlist in one transaction

        The event row is locked for the duration so concurrent replacements of
        the same playlist are applied one after the other.

        Args:
            event_id: Event UUID
            append: Tracks to insert, in play order
            delete_all: Remove the existing playlist first
        """
        tracks = list(append)
        with self.database.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM events WHERE id = %s FOR UPDATE", (event_id,))
                if not cur.fetchone():
                    raise NotFound("Event not found")

                if delete_all:
                    cur.execute("DELETE FROM playlist_tracks WHERE event_id = %s", (event_id,))
                    start = 0
                else:
                    cur.execute("""
                        SELECT COALESCE(MAX(position) + 1, 0) AS next_position
                        FROM playlist_tracks WHERE event_id = %s
                    """, (event_id,))
                    start = cur.fetchone()['next_position']

                if tracks:
                    cur.executemany(f"""
                        INSERT INTO playlist_tracks (event_id, position, {TRACK_COLUMNS})
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """, [
                        (event_id, start + offset, track.title, track.artist, track.album,
                         track.provider_track_id, Provider(track.provider).value, track.resolved_uri)
                        for offset, track in enumerate(tracks)
                    ])

                cur.execute("UPDATE events SET updated_at = NOW() WHERE id = %s", (event_id,))

        logger.info(f"Playlist for event {event_id}: {'replaced with' if delete_all else 'appended'} {len(tracks)} tracks")

    def _load_participant_ids(self, cur, event_ids) -> dict:
        if not event_ids:
            return {}
        cur.execute("""
            SELECT event_id, user_id FROM event_participants
            WHERE event_id = ANY(%s)
        """, (list(event_ids),))

        participants = {}
        for row in cur.fetchall():
            participants.setdefault(str(row['event_id']), []).append(str(row['user_id']))
        return participants

    def _load_playlist(self, cur, event_id) -> List[Track]:
        cur.execute(f"""
            SELECT {TRACK_COLUMNS} FROM playlist_tracks
            WHERE event_id = %s
            ORDER BY position, id
        """, (event_id,))
        return [Track.from_row(row) for row in cur.fetchall()]
