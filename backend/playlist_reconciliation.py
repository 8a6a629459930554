"""
Playlist reconciliation

Merges a freshly generated playlist into an event's live playlist without
interrupting playback: the track at position 0 (now playing) and position 1
(up next) are kept, and the generated tracks follow.

Historically the first two generated tracks are always dropped, whether or
not two slots were retained, so an event with an empty playlist ends up with
eight tracks instead of ten. That behaviour is the default; setting
PLAYLIST_DROP_RETAINED_ONLY drops only as many generated tracks as slots were
actually kept.
"""

import logging
import threading
from collections import defaultdict
from typing import Callable, List, Optional, Sequence

from errors import NotFound, OracleError, UpstreamProviderError
from models import Event, Track, User

logger = logging.getLogger(__name__)

RETAINED_SLOTS = 2
FIXED_DROP_COUNT = 2


def build_regenerated_playlist(current: Sequence[Track], generated: Sequence[Track],
                               drop_retained_only: bool = False) -> List[Track]:
    """
    Compose the replacement playlist

    Args:
        current: The event's playlist as it stands
        generated: Oracle output in order
        drop_retained_only: Drop len(retained) generated tracks instead of
            the fixed two

    Returns:
        retained slots followed by the remaining generated tracks
    """
    retained = list(current[:RETAINED_SLOTS])
    drop = len(retained) if drop_retained_only else FIXED_DROP_COUNT
    return retained + list(generated[drop:])


class EventLockRegistry:
    """One lock per event id, created on first use"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = defaultdict(threading.Lock)

    def lock_for(self, event_id) -> threading.Lock:
        with self._guard:
            return self._locks[str(event_id)]


class PlaylistReconciler:
    """Regenerates and extends event playlists"""

    def __init__(self, store, oracle, resolver_factory: Optional[Callable] = None,
                 drop_retained_only: bool = False, locks: EventLockRegistry = None):
        """
        Args:
            store: EventStore
            oracle: PlaylistOracle (anything with generate(theme, histories, provider))
            resolver_factory: Optional callable (creator) -> resolver, where the
                resolver maps a track to a playable handle or None
            drop_retained_only: See module docstring
            locks: Shared per-event lock registry
        """
        self.store = store
        self.oracle = oracle
        self.resolver_factory = resolver_factory
        self.drop_retained_only = drop_retained_only
        self.locks = locks or EventLockRegistry()

    def _load(self, event_id):
        event = self.store.find_event(event_id)
        if not event:
            raise NotFound("Event not found")
        creator = self.store.find_user(event.creator_id)
        if not creator:
            raise NotFound("Event creator not found")
        return event, creator

    def _generate(self, event: Event, creator: User) -> List[Track]:
        participants = self.store.list_participants(event.id)
        histories = [participant.listening_history for participant in participants]
        return self.oracle.generate(event.theme, histories, creator.music_provider)

    def _resolve(self, creator: User, tracks: List[Track]) -> List[Track]:
        """
        Attach playable handles; a failed lookup leaves the track unresolved

        One resolver (one provider token) serves the whole batch.
        """
        if self.resolver_factory is None or not tracks:
            return tracks

        try:
            resolve = self.resolver_factory(creator)
        except UpstreamProviderError as e:
            logger.warning(f"Track resolution unavailable for user {creator.id}: {e.message}")
            return tracks

        resolved = []
        for track in tracks:
            try:
                uri = resolve(track)
            except UpstreamProviderError as e:
                logger.warning(f"Could not resolve '{track.title}' by {track.artist}: {e.message}")
                uri = None
            resolved.append(track.with_resolved_uri(uri))
        return resolved

    def regenerate(self, event_id) -> List[Track]:
        """
        Replace an event's playlist, keeping now-playing and up-next

        Nothing is written if loading, generation or resolution fails.

        Returns:
            The new playlist
        """
        with self.locks.lock_for(event_id):
            event, creator = self._load(event_id)
            generated = self._generate(event, creator)

            playlist = build_regenerated_playlist(
                event.playlist, generated, drop_retained_only=self.drop_retained_only,
            )
            # Retained slots are already playing or queued; only new tracks are resolved
            retained_count = min(len(event.playlist), RETAINED_SLOTS)
            playlist = playlist[:retained_count] + self._resolve(creator, playlist[retained_count:])
            self.store.update_event_playlist(event.id, playlist, delete_all=True)

        logger.info(
            f"Regenerated playlist for event {event_id}: kept {retained_count}, "
            f"{len(playlist)} tracks total"
        )
        return playlist

    def generate_next(self, event_id) -> Track:
        """
        Append one generated track to the end of the playlist

        Raises:
            OracleError: if the oracle returns no tracks
        """
        with self.locks.lock_for(event_id):
            event, creator = self._load(event_id)
            generated = self._generate(event, creator)
            if not generated:
                raise OracleError('Failed to generate next song')

            track = self._resolve(creator, generated[:1])[0]
            self.store.update_event_playlist(event.id, [track])

        logger.info(f"Appended '{track.title}' by {track.artist} to event {event_id}")
        return track
