"""
Service wiring

build_services() constructs the object graph once per app; routes reach it
through get_services(), which reads it back from app.extensions.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from flask import current_app

from music_provider import MusicProviderService, build_catalog_client
from playlist_oracle import PlaylistOracle
from playlist_reconciliation import EventLockRegistry, PlaylistReconciler
from provider_auth import TokenBroker
from track_matching import TrackMatcher

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'eventmix'


@dataclass
class Services:
    store: object
    token_broker: TokenBroker
    provider_service: MusicProviderService
    matcher: TrackMatcher
    oracle: object
    reconciler: PlaylistReconciler


def build_services(config: Mapping, store, oracle=None, token_broker=None,
                   client_factory: Optional[Callable] = None) -> Services:
    """
    Construct every service from app config

    Args:
        config: Flask app.config
        store: EventStore
        oracle: Optional playlist oracle replacing the OpenAI-backed one
        token_broker: Optional TokenBroker replacement
        client_factory: Optional catalog client factory (see build_catalog_client)
    """
    token_broker = token_broker or TokenBroker(store, config)
    provider_service = MusicProviderService(store, token_broker, config,
                                            client_factory or build_catalog_client)
    matcher = TrackMatcher(provider_service)

    if oracle is None:
        oracle = PlaylistOracle(
            api_key=config.get('OPENAI_API_KEY'),
            model=config.get('OPENAI_MODEL', 'gpt-4o'),
            timeout=config.get('ORACLE_TIMEOUT_SECONDS', 20),
            max_retries=config.get('ORACLE_MAX_RETRIES', 1),
        )

    resolver_factory = None
    if config.get('RESOLVE_TRACK_URIS', True):
        resolver_factory = matcher.resolver_for

    reconciler = PlaylistReconciler(
        store,
        oracle,
        resolver_factory=resolver_factory,
        drop_retained_only=config.get('PLAYLIST_DROP_RETAINED_ONLY', False),
        locks=EventLockRegistry(),
    )
    if reconciler.drop_retained_only:
        logger.info("Playlist regeneration drops only retained slots")

    return Services(
        store=store,
        token_broker=token_broker,
        provider_service=provider_service,
        matcher=matcher,
        oracle=oracle,
        reconciler=reconciler,
    )


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
