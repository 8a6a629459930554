"""
Track matching against a provider catalog

Given a track by title and artist, search the target provider and accept the
top hit only when both the title and the primary artist are near-identical
word sets (Jaccard similarity strictly above MATCH_THRESHOLD).

No match is a normal outcome and returns None.
"""

import logging
from typing import Callable, Optional

from models import CatalogSearchResult, MatchCandidate, Provider, Track, User
from utils.helpers import normalize

logger = logging.getLogger(__name__)

MATCH_THRESHOLD = 0.8
SEARCH_LIMIT = 5


def word_set(text: str) -> set:
    """Normalized whitespace-separated words of text"""
    return set(normalize(text).split())


def similarity(a: str, b: str) -> float:
    """
    Jaccard similarity of the normalized word sets of a and b

    Returns:
        |A ∩ B| / |A ∪ B|, or 0.0 when both are empty
    """
    words_a, words_b = word_set(a), word_set(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def score_candidate(result: CatalogSearchResult, track: Track) -> MatchCandidate:
    """Title against title, artist against the result's primary artist only"""
    return MatchCandidate(
        result=result,
        title_similarity=similarity(result.title, track.title),
        artist_similarity=similarity(result.primary_artist, track.artist),
    )


def is_good_match(candidate: MatchCandidate) -> bool:
    return (candidate.title_similarity > MATCH_THRESHOLD
            and candidate.artist_similarity > MATCH_THRESHOLD)


class TrackMatcher:
    """Resolves tracks to playable handles on a target provider"""

    def __init__(self, provider_service):
        """
        Args:
            provider_service: MusicProviderService used for catalog search
        """
        self.provider_service = provider_service

    def _match(self, search: Callable[[str], list], track: Track, provider: Provider) -> Optional[str]:
        query = f"{normalize(track.title)} {normalize(track.artist)}".strip()
        if not query:
            return None

        results = search(f'"{query}"')
        if not results:
            results = search(query)
        if not results:
            logger.info(f"No {provider.value} results for: {query}")
            return None

        candidate = score_candidate(results[0], track)
        if not is_good_match(candidate):
            logger.info(
                f"Rejected {provider.value} match for '{query}': "
                f"title={candidate.title_similarity:.2f} artist={candidate.artist_similarity:.2f}"
            )
            return None

        return candidate.result.uri

    def find_playable_uri(self, user: User, track: Track, target_provider=None) -> Optional[str]:
        """
        Find a playable handle for track on target_provider

        Searches with the quoted normalized "title artist" first and falls
        back to the unquoted query when that returns nothing.

        Args:
            user: User whose credentials authorise the search
            track: Track to resolve
            target_provider: Provider to search (defaults to the user's)

        Returns:
            Provider handle (Spotify URI, Apple catalog id, YouTube video id) or None

        Raises:
            UpstreamProviderError: if the catalog search itself fails
        """
        provider = Provider(target_provider or user.music_provider)

        def search(query):
            return self.provider_service.search_tracks(user, query, provider=provider,
                                                       limit=SEARCH_LIMIT)

        return self._match(search, track, provider)

    def resolver_for(self, user: User, target_provider=None) -> Callable[[Track], Optional[str]]:
        """
        Batch resolver bound to one catalog client

        The user's access token is obtained once, when the resolver is built,
        and reused for every track it resolves.

        Raises:
            UpstreamProviderError: no usable credentials for the provider
        """
        provider = Provider(target_provider or user.music_provider)
        client = self.provider_service.client_for(user, provider)

        def resolve(track: Track) -> Optional[str]:
            return self._match(lambda query: client.search_tracks(query, limit=SEARCH_LIMIT),
                               track, provider)

        return resolve
