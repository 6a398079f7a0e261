import json
import logging
import os
import sys
from typing import Any, Final, Iterable, Optional, Protocol, Union
from urllib.parse import urlsplit

import requests
from dotenv import load_dotenv

from schemas import EndpointReference, ItemType, RatingRecord, RatingsResponse, RatingValue


load_dotenv()

logging.basicConfig(format='%(asctime)s - %(message)s', level=logging.INFO)

API_HOST: Final[str] = os.environ.get('APPLE_MUSIC_API_HOST', 'api.music.apple.com')
API_VERSION: Final[str] = 'v1'

_FORBIDDEN_HOST_CHARS: Final[frozenset[str]] = frozenset('/?#@')


class RequestError(Exception):
    """Base error for catalog rating requests."""


class BuildError(RequestError):
    """Endpoint could not be assembled from the item type, ids or host."""


class DecodeError(RequestError):
    """Response body is not JSON or doesn't match the `data` envelope."""


class TransportError(RequestError):
    """Network, authentication or non-2xx failure from the transport."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class Transport(Protocol):
    def fetch(self, endpoint: EndpointReference) -> bytes:
        ...


def _check_ids(ids: Iterable[str]) -> tuple[str, ...]:
    try:
        checked = tuple(ids)
    except TypeError as exc:
        raise BuildError(f"Item ids must be an iterable of strings, got {ids!r}") from exc
    if not checked:
        raise BuildError("At least one item id is required")
    for item_id in checked:
        if not isinstance(item_id, str) or not item_id:
            raise BuildError(f"Item id must be a non-empty string, got {item_id!r}")
        if ',' in item_id:
            raise BuildError(f"Item id can't contain the id separator `,`: {item_id!r}")
    return checked


def _check_host(host: str) -> None:
    if not isinstance(host, str) or not host:
        raise BuildError(f"Invalid catalog host: {host!r}")
    if any(char.isspace() or char in _FORBIDDEN_HOST_CHARS for char in host):
        raise BuildError(f"Invalid catalog host: {host!r}")


def build_endpoint(item_type: ItemType, ids: Iterable[str], host: str = API_HOST) -> EndpointReference:
    """Build the `me/ratings/<type>?ids=...` endpoint for the given items."""
    if not isinstance(item_type, ItemType):
        raise BuildError(f"Unknown item type: {item_type!r}")
    checked_ids = _check_ids(ids)
    _check_host(host)

    endpoint = EndpointReference(host=host, path=f'{API_VERSION}/me/ratings/{item_type.tag}', ids=checked_ids)
    try:
        parts = urlsplit(endpoint.url)
        parts.port  # raises on a malformed port
    except ValueError as exc:
        raise BuildError(f"Invalid catalog URL for host {host!r}") from exc
    if parts.scheme != 'https' or parts.netloc != host or not parts.hostname:
        raise BuildError(f"Invalid catalog URL: {endpoint.url}")
    return endpoint


def _decode_record(resource: Any) -> RatingRecord:
    if not isinstance(resource, dict):
        raise DecodeError(f"Rating resource must be an object, got {type(resource).__name__}")
    item_id = resource.get('id')
    resource_type = resource.get('type')
    attributes = resource.get('attributes')
    href = resource.get('href')
    if not isinstance(item_id, str) or not isinstance(resource_type, str):
        raise DecodeError(f"Rating resource is missing `id` or `type`: {resource!r}")
    if not isinstance(attributes, dict) or 'value' not in attributes:
        raise DecodeError(f"Rating resource `{item_id}` has no `attributes.value`")
    if href is not None and not isinstance(href, str):
        raise DecodeError(f"Rating resource `{item_id}` has a non-string `href`")
    try:
        value = RatingValue.parse(attributes['value'])
    except ValueError as exc:
        raise DecodeError(f"Rating resource `{item_id}`: {exc}") from exc
    return RatingRecord(id=item_id, type=resource_type, value=value, href=href, attributes=dict(attributes))


def decode_ratings(data: Union[bytes, str]) -> RatingsResponse:
    """Decode a ratings response body. Requested items without a rating are left out, not reported."""
    try:
        payload = json.loads(data)
    except (ValueError, RecursionError) as exc:
        raise DecodeError(f"Ratings response is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict) or not isinstance(payload.get('data'), list):
        raise DecodeError("Ratings response has no `data` list")

    records = [_decode_record(resource) for resource in payload['data']]
    return RatingsResponse(ratings={record.id: record for record in records})


class RequestsTransport:
    """Authenticated GET executor on top of `requests`."""

    def __init__(
        self,
        developer_token: str,
        user_token: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._headers: Final[dict[str, str]] = {
            'Authorization': f'Bearer {developer_token}',
            'Music-User-Token': user_token,
        }

    def fetch(self, endpoint: EndpointReference) -> bytes:
        try:
            response = self._session.get(endpoint.url, headers=self._headers, timeout=self._timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            raise TransportError(f"Catalog service returned {status_code} for {endpoint.url}", status_code) from exc
        except requests.RequestException as exc:
            raise TransportError(f"Request to {endpoint.url} failed: {exc}") from exc
        return response.content


class CatalogRatingRequest:
    """Request for the user's ratings of one or more catalog items."""

    def __init__(self, ids: Union[str, Iterable[str]], item_type: ItemType, host: str = API_HOST):
        if isinstance(ids, str):
            ids = [ids]
        if not isinstance(item_type, ItemType):
            raise BuildError(f"Unknown item type: {item_type!r}")
        self._ids: Final[tuple[str, ...]] = _check_ids(ids)
        self._item_type: Final[ItemType] = item_type
        self._host: Final[str] = host

    @property
    def ids(self) -> tuple[str, ...]:
        return self._ids

    @property
    def item_type(self) -> ItemType:
        return self._item_type

    @property
    def endpoint(self) -> EndpointReference:
        return build_endpoint(self._item_type, self._ids, self._host)

    def execute(self, transport: Transport) -> RatingsResponse:
        endpoint = self.endpoint
        logging.info(f"Fetch {self._item_type.tag} ratings for {len(self._ids)} item(s)")
        ratings = decode_ratings(transport.fetch(endpoint))

        logging.debug(f"Decoded {len(ratings)} rating(s) from {endpoint.url}")
        unrated = [item_id for item_id in self._ids if item_id not in ratings]
        if unrated:
            logging.debug(f"No rating for: {', '.join(unrated)}")
        return ratings

    def __repr__(self) -> str:
        return f"CatalogRatingRequest(ids={list(self._ids)!r}, item_type={self._item_type})"


def parse_item_type(raw: str) -> ItemType:
    """Resolve `song` / `songs` / `musicVideo` / `music-videos` style names."""
    for item_type in ItemType:
        if raw in (item_type.value, item_type.tag, item_type.name.lower()):
            return item_type
    raise BuildError(f"Unknown item type: {raw!r}")


if __name__ == '__main__':
    if len(sys.argv) != 3:
        sys.exit(f"usage: {sys.argv[0]} <item-type> <id>[,<id>...]")

    transport_ = RequestsTransport(
        developer_token=os.environ.get('APPLE_MUSIC_DEVELOPER_TOKEN', ''),
        user_token=os.environ.get('APPLE_MUSIC_USER_TOKEN', ''),
    )
    request_ = CatalogRatingRequest(sys.argv[2].split(','), parse_item_type(sys.argv[1]))
    ratings_ = request_.execute(transport_)
    for item_id_ in request_.ids:
        record_ = ratings_.get(item_id_)
        logging.info(f"{item_id_}: {record_.value.name.lower() if record_ else 'not rated'}")
