from __future__ import annotations

import pytest

from errors import UpstreamProviderError
from models import CatalogSearchResult, Provider, User
from track_matching import (
    MATCH_THRESHOLD,
    TrackMatcher,
    is_good_match,
    score_candidate,
    similarity,
)
from utils.helpers import normalize

from conftest import make_track


def _result(title, *artists, uri='spotify:track:abc'):
    return CatalogSearchResult(title=title, artists=tuple(artists), uri=uri)


class FakeProviderService:
    def __init__(self, responses):
        self.responses = list(responses)
        self.queries = []

    def search_tracks(self, user, query, provider=None, limit=5):
        self.queries.append((query, Provider(provider), limit))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def user():
    return User(id='u1', email='dj@example.com', name='DJ', music_provider=Provider.SPOTIFY)


def test_normalize_strips_punctuation_and_collapses_whitespace():
    assert normalize("  Don't  Stop   Me Now! ") == "dont stop me now"
    assert normalize("Bohemian Rhapsody - Remastered 2011") == "bohemian rhapsody remastered 2011"
    assert normalize(None) == ''


def test_similarity_is_jaccard_over_word_sets():
    assert similarity("Queen", "queen") == 1.0
    assert similarity("a b c", "a b d") == pytest.approx(2 / 4)
    assert similarity("la la land", "la land") == 1.0
    assert similarity("", "") == 0.0


def test_remastered_title_is_rejected_at_half_similarity():
    track = make_track("Bohemian Rhapsody", "Queen")
    candidate = score_candidate(_result("Bohemian Rhapsody - Remastered 2011", "Queen"), track)

    assert candidate.title_similarity == pytest.approx(0.5)
    assert candidate.artist_similarity == 1.0
    assert not is_good_match(candidate)


def test_threshold_is_exclusive():
    track = make_track("one two three four", "Band")

    at_threshold = score_candidate(_result("one two three four five", "Band"), track)
    above_threshold = score_candidate(_result("one two three four five", "Band"),
                                      make_track("one two three four five six", "Band"))

    assert at_threshold.title_similarity == pytest.approx(MATCH_THRESHOLD)
    assert not is_good_match(at_threshold)
    assert above_threshold.title_similarity > MATCH_THRESHOLD
    assert is_good_match(above_threshold)


def test_artist_compared_against_primary_artist_only():
    track = make_track("Under Pressure", "Queen")
    candidate = score_candidate(_result("Under Pressure", "Queen", "David Bowie"), track)
    assert candidate.artist_similarity == 1.0
    assert is_good_match(candidate)


def test_find_playable_uri_returns_uri_for_confident_match(user):
    service = FakeProviderService([[_result("Under Pressure", "Queen", uri='spotify:track:up')]])
    matcher = TrackMatcher(service)

    uri = matcher.find_playable_uri(user, make_track("Under Pressure", "Queen"))

    assert uri == 'spotify:track:up'
    assert service.queries == [('"under pressure queen"', Provider.SPOTIFY, 5)]


def test_find_playable_uri_falls_back_to_unquoted_query(user):
    service = FakeProviderService([[], [_result("Under Pressure", "Queen", uri='spotify:track:up')]])
    matcher = TrackMatcher(service)

    assert matcher.find_playable_uri(user, make_track("Under Pressure", "Queen")) == 'spotify:track:up'
    assert [query for query, _, _ in service.queries] == ['"under pressure queen"', 'under pressure queen']


def test_find_playable_uri_only_scores_first_result(user):
    service = FakeProviderService([[
        _result("Under Pressure (Live)", "Queen Tribute Band", uri='spotify:track:bad'),
        _result("Under Pressure", "Queen", uri='spotify:track:good'),
    ]])
    assert TrackMatcher(service).find_playable_uri(user, make_track("Under Pressure", "Queen")) is None


def test_find_playable_uri_returns_none_without_results(user):
    service = FakeProviderService([[], []])
    assert TrackMatcher(service).find_playable_uri(user, make_track("Nothing", "Nobody")) is None


def test_search_failure_propagates(user):
    service = FakeProviderService([UpstreamProviderError('Failed to search tracks')])
    with pytest.raises(UpstreamProviderError):
        TrackMatcher(service).find_playable_uri(user, make_track("Song", "Artist"))


def test_resolver_reuses_one_client_for_every_track(user):
    clients = []

    class Catalog:
        def __init__(self):
            self.queries = []

        def search_tracks(self, query, limit=5):
            self.queries.append((query, limit))
            return [_result("Don't Stop Me Now", 'Queen', uri='spotify:track:dsmn')]

    class ClientService:
        def client_for(self, user, provider=None):
            clients.append(Provider(provider))
            catalog = Catalog()
            self.catalog = catalog
            return catalog

    service = ClientService()
    resolve = TrackMatcher(service).resolver_for(user)

    assert resolve(make_track("Don't Stop Me Now", 'Queen')) == 'spotify:track:dsmn'
    assert resolve(make_track('Under Pressure', 'Queen')) is None
    assert clients == [Provider.SPOTIFY]
    assert service.catalog.queries == [
        ('"dont stop me now queen"', 5),
        ('"under pressure queen"', 5),
    ]
