"""HTTP layer tests with the CLI gateway replaced by a fake."""

import base64
import json

import pytest
from conftest import FakeGateway, ref_router
from fastapi.testclient import TestClient

from codescout.config import Settings
from codescout.main import create_app
from codescout.services.cache.store import CacheStore
from codescout.services.container import ServiceContainer
from codescout.services.tools.base import Result
from codescout.services.tools.github_tool import GitHubToolRunner
from codescout.services.tools.npm_tool import NpmToolRunner

NOT_FOUND = Result.error("gh: Not Found (HTTP 404)")


def readme() -> Result:
    return Result.text_result(
        json.dumps({"content": base64.b64encode(b"# Title").decode(), "encoding": "base64"})
    )


@pytest.fixture
def gateway():
    def handler(spec):
        if spec.subcommand == "api":
            if spec.args[0].startswith("search/issues"):
                return Result.text_result(json.dumps({"total_count": 0, "items": []}))
            if "README.md" not in spec.args[0]:
                return NOT_FOUND
            return ref_router({"main": readme()}, NOT_FOUND)(spec)
        if spec.subcommand == "search" and spec.args[0] in ("code", "commits"):
            return Result.text_result("[]")
        if spec.subcommand == "search":
            return Result.text_result(json.dumps([{"name": "zod", "links": {}}]))
        return Result.text_result(json.dumps({"name": "zod", "version": "3.0.0"}))

    return FakeGateway(handler)


@pytest.fixture
def client(gateway):
    settings = Settings(_env_file=None)
    app = create_app(settings)
    cache = CacheStore(settings.cache_ttl_seconds)
    app.state.services = ServiceContainer(
        cache=cache,
        gateway=gateway,
        github=GitHubToolRunner(gateway, cache),
        npm=NpmToolRunner(gateway, cache),
    )
    with TestClient(app) as test_client:
        yield test_client


def text_of(response) -> dict:
    return json.loads(response.json()["content"][0]["text"])


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_fetch_content_route_with_fallback(client):
    response = client.post(
        "/api/github/content",
        json={"owner": "o", "repo": "r", "file_path": "README.md", "branch": "master"},
    )
    assert response.status_code == 200
    assert response.json()["isError"] is False
    payload = text_of(response)
    assert payload["data"] == "# Title"
    assert payload["meta"]["branch"] == "main"


def test_structure_route_reports_error_envelope(client):
    response = client.post(
        "/api/github/structure",
        json={"owner": "o", "repo": "r", "branch": "nope", "path": "missing"},
    )
    assert response.status_code == 200
    assert response.json()["isError"] is True
    assert text_of(response)["meta"]["classification"] == "not_found"


def test_code_search_route(client):
    response = client.post("/api/github/code/search", json={"query_terms": ["foo"]})
    assert response.json()["isError"] is False
    assert text_of(response)["data"] == []


def test_repo_search_validation(client):
    response = client.post("/api/github/repos/search", json={})
    assert response.status_code == 422


def test_package_routes_and_cache_stats(client, gateway):
    client.post("/api/packages/search", json={"query": "zod"})
    client.post("/api/packages/search", json={"query": "zod"})
    view = client.post("/api/packages/view", json={"package_name": "zod"})

    assert text_of(view)["data"]["version"] == "3.0.0"
    assert len(gateway.calls) == 2

    stats = client.get("/api/cache/stats").json()
    assert stats["hits"] == 1
    assert stats["misses"] == 2
    assert stats["sets"] == 2

    assert client.delete("/api/cache").json() == {"status": "flushed"}
    stats = client.get("/api/cache/stats").json()
    assert stats["total_keys"] == 0
    assert stats["hits"] == 0


def test_commit_and_pull_request_routes(client, gateway):
    commits = client.post("/api/github/commits/search", json={"owner": "acme", "query_terms": ["fix"]})
    assert commits.status_code == 200
    assert commits.json()["isError"] is False

    pulls = client.post("/api/github/pulls/search", json={"query": "cache", "state": "open"})
    assert pulls.json()["isError"] is False
    assert text_of(pulls)["meta"]["total_count"] == 0

    issues = client.post("/api/github/issues/search", json={"query": "crash"})
    assert issues.json()["isError"] is False

    assert client.post("/api/github/pulls/search", json={"query": "x", "state": "merged"}).status_code == 422
