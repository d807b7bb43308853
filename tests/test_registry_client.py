"""Tests for registry name normalization, lookups and response caching."""

import pytest
import requests

from registry_client import (
    DEFAULT_REGISTRY,
    ImageName,
    MalformedResponseError,
    RegistryClient,
    RegistryTransportError,
)

POSTGRES_AUTH = ('https://auth.docker.io/token?service=registry.docker.io'
                 '&scope=repository:library/postgres:pull')
POSTGRES_TAGS = 'https://registry-1.docker.io/v2/library/postgres/tags/list'

_NOT_JSON = object()


class FakeResponse:
    def __init__(self, payload, status_code=200, links=None):
        self._payload = payload
        self.status_code = status_code
        self.links = links or {}

    def json(self):
        if self._payload is _NOT_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeSession:
    """Serves canned responses by URL and records every request."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, headers=None, timeout=None):
        self.calls.append((url, headers))
        route = self.routes[url]
        if isinstance(route, Exception):
            raise route
        return route


def _make_client(routes=None):
    """Client whose session knows postgres by default; ``routes`` add or replace URLs."""
    all_routes = {
        POSTGRES_AUTH: FakeResponse({'token': 'secret'}),
        POSTGRES_TAGS: FakeResponse({'name': 'library/postgres', 'tags': ['14.1', '14.2', '15.0']}),
    }
    all_routes.update(routes or {})
    session = FakeSession(all_routes)
    return RegistryClient(session=session), session


class TestImageName:

    def test_bare_name_gets_library_namespace(self):
        image = ImageName.parse('postgres')
        assert image == ImageName(DEFAULT_REGISTRY, 'library/postgres')
        assert image.qualified == 'library/postgres'

    def test_namespaced_docker_hub_name(self):
        assert ImageName.parse('linuxserver/sonarr').qualified == 'linuxserver/sonarr'

    def test_docker_hub_aliases(self):
        assert ImageName.parse('docker.io/nginx').qualified == 'library/nginx'
        assert ImageName.parse('index.docker.io/library/nginx').qualified == 'library/nginx'

    def test_custom_registry(self):
        image = ImageName.parse('ghcr.io/owner/app')
        assert image.registry == 'ghcr.io'
        assert image.path == 'owner/app'
        assert str(image) == 'ghcr.io/owner/app'

    def test_registry_with_port(self):
        image = ImageName.parse('localhost:5000/app')
        assert image.registry == 'localhost:5000'
        assert image.path == 'app'


class TestLookups:

    def test_get_tags(self):
        client, session = _make_client()
        assert client.get_tags(ImageName.parse('postgres')) == ['14.1', '14.2', '15.0']
        assert [url for url, _ in session.calls] == [POSTGRES_AUTH, POSTGRES_TAGS]

    def test_tags_request_uses_bearer_token(self):
        client, session = _make_client()
        client.get_tags(ImageName.parse('postgres'))
        _, headers = session.calls[-1]
        assert headers['Authorization'] == 'Bearer secret'

    def test_repeated_lookups_are_cached(self):
        client, session = _make_client()
        image = ImageName.parse('postgres')

        client.get_tags(image)
        client.get_tags(ImageName.parse('library/postgres'))
        client.authenticate(image)

        assert len(session.calls) == 2

    def test_ghcr_token_endpoint(self):
        auth = 'https://ghcr.io/token?service=ghcr.io&scope=repository:owner/app:pull'
        tags = 'https://ghcr.io/v2/owner/app/tags/list'
        client, session = _make_client(routes={
            auth: FakeResponse({'token': 'gh'}),
            tags: FakeResponse({'tags': ['1.0.0']}),
        })
        assert client.get_tags(ImageName.parse('ghcr.io/owner/app')) == ['1.0.0']

    def test_follows_pagination_links(self):
        next_page = POSTGRES_TAGS + '?last=14.2&n=2'
        client, session = _make_client(routes={
            POSTGRES_TAGS: FakeResponse(
                {'tags': ['14.1', '14.2']},
                links={'next': {'url': '/v2/library/postgres/tags/list?last=14.2&n=2', 'rel': 'next'}},
            ),
            next_page: FakeResponse({'tags': ['15.0']}),
        })

        assert client.get_tags(ImageName.parse('postgres')) == ['14.1', '14.2', '15.0']
        assert session.calls[-1][0] == next_page


class TestErrors:

    def test_missing_token(self):
        client, _ = _make_client(routes={POSTGRES_AUTH: FakeResponse({'details': 'nope'})})
        with pytest.raises(MalformedResponseError):
            client.get_tags(ImageName.parse('postgres'))

    def test_missing_tags(self):
        client, _ = _make_client(routes={POSTGRES_TAGS: FakeResponse({'tags': None})})
        with pytest.raises(MalformedResponseError):
            client.get_tags(ImageName.parse('postgres'))

    def test_error_status_without_tags(self):
        body = {'errors': [{'code': 'NAME_UNKNOWN', 'message': 'repository name not known to registry'}]}
        client, _ = _make_client(routes={POSTGRES_TAGS: FakeResponse(body, status_code=404)})
        with pytest.raises(MalformedResponseError):
            client.get_tags(ImageName.parse('postgres'))

    def test_non_json_response(self):
        client, _ = _make_client(routes={POSTGRES_AUTH: FakeResponse(_NOT_JSON, status_code=502)})
        with pytest.raises(MalformedResponseError):
            client.get_tags(ImageName.parse('postgres'))

    def test_transport_failure(self):
        client, _ = _make_client(routes={POSTGRES_AUTH: requests.ConnectionError("connection refused")})
        with pytest.raises(RegistryTransportError):
            client.get_tags(ImageName.parse('postgres'))

    def test_failures_are_not_cached(self):
        client, session = _make_client(routes={POSTGRES_AUTH: FakeResponse({})})
        image = ImageName.parse('postgres')

        for _ in range(2):
            with pytest.raises(MalformedResponseError):
                client.authenticate(image)

        assert len(session.calls) == 2
