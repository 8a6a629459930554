"""
AI playlist generation

PlaylistOracle asks an OpenAI chat model for ten songs that fit an event's
theme, seeded with a compact list of what the participants have been
listening to. The reply must be a JSON array of song records; anything else
fails the whole generation with OracleError (no partial acceptance).
"""

import json
import logging
from typing import Iterable, List, Sequence

import openai
from openai import OpenAI

from errors import OracleError
from models import Provider, Track

logger = logging.getLogger(__name__)

HISTORY_SAMPLE_SIZE = 15
PLAYLIST_LENGTH = 10
DEFAULT_MODEL = 'gpt-4o'
TEMPERATURE = 0.6
MAX_TOKENS = 600


def summarize_listening_history(histories: Iterable[Sequence[Track]],
                                limit: int = HISTORY_SAMPLE_SIZE) -> List[Track]:
    """
    Most recent distinct songs across all participants

    Histories are flattened in participant order and reversed, so later
    entries come first; duplicates by normalized "title-artist" keep their first
    occurrence in that reversed order.
    """
    flattened = [track for history in histories for track in history]
    flattened.reverse()
    unique = Track.deduplicate(flattened, key=lambda track: '-'.join(track.identity))
    return unique[:limit]


def render_history(tracks: Sequence[Track]) -> str:
    return ', '.join(f"{track.title} - {track.artist}" for track in tracks)


def build_messages(theme: str, tracks: Sequence[Track], provider) -> list:
    provider = Provider(provider).value
    record_format = (
        '[{"title":"", "artist":"", "album":"", "providerId":"", '
        f'"provider":"{provider}"}}]'
    )
    prompt = (
        f'You are a music assistant. Based on the theme "{theme}" and songs: '
        f'{render_history(tracks)}, generate a JSON array of {PLAYLIST_LENGTH} songs. '
        f'Format:\n{record_format}\n'
        'Return ONLY the array, no markdown, no code blocks, no json prefix.'
    )
    return [
        {
            'role': 'system',
            'content': (
                f'You are a music assistant. Return ONLY a raw JSON array of {PLAYLIST_LENGTH} '
                f'songs, each with title, artist, album, providerId, and provider ({provider}). '
                'No markdown, no code blocks, no json prefix, no extra text.'
            ),
        },
        {'role': 'user', 'content': prompt},
    ]


def parse_playlist(text: str, provider) -> List[Track]:
    """
    Parse the model's reply into Tracks for the creator's provider

    Raises:
        OracleError: empty reply, invalid JSON, not an array, or a record
            without title and artist
    """
    if not text or not text.strip():
        raise OracleError()

    body = text.strip()
    try:
        records = json.loads(body)
    except ValueError as e:
        logger.error(f"Playlist reply is not valid JSON: {e}")
        raise OracleError() from e

    if not isinstance(records, list):
        logger.error(f"Playlist reply is a {type(records).__name__}, not an array")
        raise OracleError()

    provider = Provider(provider)
    tracks = []
    for record in records:
        if not isinstance(record, dict) or not record.get('title') or not record.get('artist'):
            logger.error(f"Playlist reply contains an invalid record: {record!r}")
            raise OracleError()
        tracks.append(Track(
            title=str(record['title']),
            artist=str(record['artist']),
            album=record.get('album') or None,
            provider_track_id=str(record.get('providerId') or ''),
            provider=provider,
        ))
    return tracks


class PlaylistOracle:
    """OpenAI-backed playlist generator"""

    def __init__(self, api_key: str = None, model: str = DEFAULT_MODEL,
                 timeout: float = 20, max_retries: int = 1, client=None):
        """
        Args:
            api_key: OpenAI API key
            model: Chat model name
            timeout: Request timeout in seconds
            max_retries: Transport-level retries done by the SDK
            client: Optional pre-built OpenAI client, mainly for tests
        """
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise OracleError('Playlist generation is not configured')
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout,
                                  max_retries=self.max_retries)
        return self._client

    def generate(self, theme: str, participant_histories: Iterable[Sequence[Track]],
                 creator_provider) -> List[Track]:
        """
        Generate a playlist for an event

        Args:
            theme: Event theme
            participant_histories: One listening history per participant
            creator_provider: Provider every generated track is tagged with

        Returns:
            Generated tracks in the model's order (normally ten)

        Raises:
            OracleError: on transport failure or an unusable reply
        """
        sample = summarize_listening_history(participant_histories)
        logger.info(f"Generating playlist for theme '{theme}' from {len(sample)} seed songs")

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(theme, sample, creator_provider),
                temperature=TEMPERATURE,
                max_tokens=MAX_TOKENS,
            )
        except openai.OpenAIError as e:
            logger.error(f"Playlist generation request failed: {e}")
            raise OracleError() from e

        content = completion.choices[0].message.content if completion.choices else None
        tracks = parse_playlist(content, creator_provider)
        logger.info(f"Generated {len(tracks)} tracks")
        return tracks
