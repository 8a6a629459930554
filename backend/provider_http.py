"""
HTTP plumbing shared by the provider catalog clients

Fetches are all-or-nothing: the first transport error, non-2xx status or
malformed body aborts the whole operation with UpstreamProviderError. There
is no retry and no backoff at this layer.
"""

import logging
from contextlib import contextmanager

import requests

from errors import UpstreamProviderError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15
USER_AGENT = 'EventMix/1.0'


def new_session() -> requests.Session:
    """HTTP session for connection reuse"""
    session = requests.Session()
    session.headers.update({'User-Agent': USER_AGENT})
    return session


def get_json(session, url: str, headers: dict = None, params: dict = None) -> dict:
    """
    GET a JSON document

    Raises:
        requests.exceptions.RequestException: transport failure or non-2xx status
        ValueError: body is not JSON
    """
    response = session.get(url, headers=headers, params=params, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()


@contextmanager
def upstream_errors(message: str, provider: str):
    """
    Convert failures inside the block into UpstreamProviderError(message)

    Usage:
        with upstream_errors('Failed to fetch playlists', 'spotify'):
            return list(self._paginate(url))
    """
    try:
        yield
    except requests.exceptions.RequestException as e:
        logger.error(f"{provider}: {message}: {e}")
        raise UpstreamProviderError(message, provider=provider) from e
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"{provider}: {message}: unexpected response shape ({e})")
        raise UpstreamProviderError(message, provider=provider) from e
