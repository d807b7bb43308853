"""Container registry client: bearer token and tag list lookups.

Responses are memoized per client instance, so every repository costs at most
one token request and one tag-list request per run.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import jsonschema
import requests

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "registry-1.docker.io"
DEFAULT_AUTH_URL = "https://auth.docker.io/token"
DEFAULT_NAMESPACE = "library"
DOCKER_HUB_ALIASES = {"docker.io", "index.docker.io", DEFAULT_REGISTRY}
REQUEST_TIMEOUT = 30
MAX_TAG_PAGES = 100

AUTH_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "token": {"type": "string"}
    },
    "required": ["token"]
}

TAGS_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "tags": {"type": "array", "items": {"type": "string"}}
    },
    "required": ["tags"]
}


class RegistryError(Exception):
    """Base class for registry lookup failures."""


class MalformedResponseError(RegistryError):
    """The registry answered, but without the expected field."""


class RegistryTransportError(RegistryError):
    """The registry could not be reached."""


@dataclass(frozen=True)
class ImageName:
    """Normalized repository reference, e.g. ``library/postgres`` on Docker Hub."""
    registry: str
    path: str

    @classmethod
    def parse(cls, name: str) -> 'ImageName':
        """
        Parse a repository name as written in a manifest (without tag).

        Args:
            name: Repository (e.g., 'ubuntu', 'linuxserver/calibre', 'ghcr.io/owner/image')

        Returns:
            ImageName with the registry resolved and bare names namespaced
        """
        parts = name.split('/', 1)
        first_part = parts[0]

        # Registry indicators: contains '.', is localhost, or has port ':'
        if len(parts) > 1 and ('.' in first_part or ':' in first_part or first_part == 'localhost'):
            registry, remaining = first_part, parts[1]
        else:
            registry, remaining = DEFAULT_REGISTRY, name

        if registry in DOCKER_HUB_ALIASES:
            registry = DEFAULT_REGISTRY
            # Implicit library namespace: postgres -> library/postgres
            if '/' not in remaining:
                remaining = f"{DEFAULT_NAMESPACE}/{remaining}"

        return cls(registry, remaining)

    @property
    def qualified(self) -> str:
        if self.registry == DEFAULT_REGISTRY:
            return self.path
        return f"{self.registry}/{self.path}"

    def __str__(self) -> str:
        return self.qualified


class RegistryClient:
    """Registry v2 API client with per-run response caching."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = REQUEST_TIMEOUT):
        self._session = session or requests.Session()
        self._timeout = timeout
        self._cache: Dict[Tuple[str, ...], Any] = {}

    @staticmethod
    def _auth_url(image: ImageName) -> str:
        scope = f"repository:{image.path}:pull"
        if image.registry == DEFAULT_REGISTRY:
            return f"{DEFAULT_AUTH_URL}?service=registry.docker.io&scope={scope}"
        if image.registry in ("ghcr.io", "lscr.io"):
            # GitHub Container Registry (and lscr.io which delegates auth to ghcr.io)
            return f"https://ghcr.io/token?service=ghcr.io&scope={scope}"
        # Generic registry auth (may need customization)
        return f"https://{image.registry}/v2/auth?service={image.registry}&scope={scope}"

    @staticmethod
    def _tags_url(image: ImageName) -> str:
        return f"https://{image.registry}/v2/{image.path}/tags/list"

    def _request_json(self, url: str, schema: Dict[str, Any], image: ImageName,
                      headers: Optional[Dict[str, str]] = None) -> Tuple[Dict[str, Any], requests.Response]:
        try:
            response = self._session.get(url, headers=headers or {}, timeout=self._timeout)
        except requests.RequestException as e:
            raise RegistryTransportError(f"[{image}] Request to {url} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"[{image}] Registry returned non-JSON response (HTTP {response.status_code}): {e}"
            ) from e

        try:
            jsonschema.validate(payload, schema)
        except jsonschema.ValidationError as e:
            raise MalformedResponseError(
                f"[{image}] Unexpected registry response (HTTP {response.status_code}): {e.message}"
            ) from e

        return payload, response

    def authenticate(self, image: ImageName) -> str:
        """Get a pull token for ``image``."""
        cache_key = ('authenticate', image.qualified)
        if cache_key in self._cache:
            return self._cache[cache_key]

        payload, _ = self._request_json(self._auth_url(image), AUTH_RESPONSE_SCHEMA, image)
        self._cache[cache_key] = payload['token']
        return payload['token']

    def list_tags(self, image: ImageName, token: str) -> List[str]:
        """Get all tags of ``image``, following paginated responses."""
        cache_key = ('list_tags', image.qualified, token)
        if cache_key in self._cache:
            return self._cache[cache_key]

        headers = {'Authorization': f'Bearer {token}'} if token else {}
        tags: List[str] = []
        url: Optional[str] = self._tags_url(image)
        pages = 0

        while url and pages < MAX_TAG_PAGES:
            payload, response = self._request_json(url, TAGS_RESPONSE_SCHEMA, image, headers)
            tags.extend(payload['tags'])
            pages += 1

            next_url = response.links.get('next', {}).get('url')
            url = urljoin(url, next_url) if next_url else None

        if url:
            logger.warning("%s: stopped listing tags after %d pages", image, pages)

        logger.debug("%s: %d tags", image, len(tags))
        self._cache[cache_key] = tags
        return tags

    def get_tags(self, image: ImageName) -> List[str]:
        return self.list_tags(image, self.authenticate(image))
