"""Tests for the HTTPX client factory: scoped credentials, hooks and caching."""

from __future__ import annotations

import base64
import logging
from pathlib import Path

import httpx
import pytest

from ArtifactFetch.cancellation import CancellationToken
from ArtifactFetch.errors import OperationCancelled
from ArtifactFetch.network import build_http_client
from ArtifactFetch.network.client import GitHubAuth
from ArtifactFetch.settings import Credentials, FetchSettings
from ArtifactFetch.testing import use_mock_transport


def _recording_transport(seen: list) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"ok": True},
            headers={"ETag": '"v1"', "Cache-Control": "private, max-age=60"},
        )

    return httpx.MockTransport(handler)


def test_bearer_token_only_sent_to_api_host(make_settings, credentials) -> None:
    seen: list = []
    client = build_http_client(
        make_settings(), credentials, CancellationToken(), transport=_recording_transport(seen)
    )
    with client:
        client.get("https://api.github.com/repos/octo/widgets/actions/runs")
        client.get("https://blobs.actions.test/artifacts/1.zip?sig=abc")

    api_request, blob_request = seen
    assert api_request.headers["Authorization"] == f"Bearer {credentials.token.get_secret_value()}"
    assert "Authorization" not in blob_request.headers
    assert api_request.headers["Accept"] == "application/vnd.github+json"
    assert api_request.headers["X-GitHub-Api-Version"] == "2022-11-28"
    assert api_request.headers["User-Agent"].startswith("artifact-fetch/")


def test_basic_auth_when_user_configured() -> None:
    auth = GitHubAuth(Credentials(token="tok", user="octocat"), "api.github.com")
    request = httpx.Request("GET", "https://api.github.com/repos/octo/widgets")

    flow = auth.auth_flow(request)
    signed = next(flow)

    expected = base64.b64encode(b"octocat:tok").decode("ascii")
    assert signed.headers["Authorization"] == f"Basic {expected}"


def test_no_authorization_without_token(make_settings, caplog) -> None:
    seen: list = []
    caplog.set_level(logging.WARNING, logger="ArtifactFetch.network")
    client = build_http_client(
        make_settings(), Credentials(), CancellationToken(), transport=_recording_transport(seen)
    )
    with client:
        client.get("https://api.github.com/repos/octo/widgets/actions/runs")

    assert "Authorization" not in seen[0].headers
    assert any("GITHUB_TOKEN" in record.getMessage() for record in caplog.records)


def test_redirects_are_not_followed_by_default(make_settings, credentials) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": "https://blobs.actions.test/a.zip"})

    client = build_http_client(
        make_settings(), credentials, CancellationToken(), transport=httpx.MockTransport(handler)
    )
    with client:
        response = client.get("https://api.github.com/repos/octo/widgets/actions/artifacts/1/zip")

    assert response.status_code == 302
    assert response.headers["Location"] == "https://blobs.actions.test/a.zip"


def test_request_hook_observes_cancellation(make_settings, credentials) -> None:
    seen: list = []
    token = CancellationToken()
    client = build_http_client(
        make_settings(), credentials, token, transport=_recording_transport(seen)
    )
    token.cancel("test")
    with client, pytest.raises(OperationCancelled):
        client.get("https://api.github.com/repos/octo/widgets/actions/runs")

    assert seen == []


def test_uniform_timeout_from_settings(make_settings, credentials) -> None:
    settings = make_settings(timeout_sec=12.5, connect_timeout_sec=3.0)
    client = build_http_client(
        settings, credentials, CancellationToken(), transport=_recording_transport([])
    )
    with client:
        assert client.timeout.read == 12.5
        assert client.timeout.write == 12.5
        assert client.timeout.connect == 3.0


def test_transport_override_is_used(make_settings, credentials) -> None:
    seen: list = []
    with use_mock_transport(_recording_transport(seen)):
        client = build_http_client(make_settings(), credentials, CancellationToken())
        with client:
            client.get("https://api.github.com/repos/octo/widgets")

    assert len(seen) == 1


def test_response_hook_logs_without_query(make_settings, credentials, caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="ArtifactFetch.network")
    client = build_http_client(
        make_settings(), credentials, CancellationToken(), transport=_recording_transport([])
    )
    with client:
        client.get("https://blobs.actions.test/artifacts/1.zip?sig=secret")

    records = [record for record in caplog.records if record.getMessage() == "http response"]
    assert records
    assert records[-1].url == "https://blobs.actions.test/artifacts/1.zip"
    assert records[-1].status == 200


def test_http_cache_only_wraps_api_host(tmp_path: Path, credentials) -> None:
    """Listings are revalidated through the cache; archive downloads bypass it."""

    seen: list = []
    settings = FetchSettings(repo="octo/widgets", http_cache=True, http_cache_dir=tmp_path)
    client = build_http_client(
        settings, credentials, CancellationToken(), transport=_recording_transport(seen)
    )
    with client:
        first = client.get("https://api.github.com/repos/octo/widgets/actions/runs")
        second = client.get("https://api.github.com/repos/octo/widgets/actions/runs")
        client.get("https://blobs.actions.test/artifacts/1.zip")
        client.get("https://blobs.actions.test/artifacts/1.zip")

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json() == {"ok": True}
    api_requests = [request for request in seen if request.url.host == "api.github.com"]
    blob_requests = [request for request in seen if request.url.host == "blobs.actions.test"]
    assert len(blob_requests) == 2
    assert api_requests[-1].headers.get("If-None-Match") == '"v1"'
    assert not any("If-None-Match" in request.headers for request in blob_requests)
    assert any(tmp_path.iterdir())


class _ClosingTransport(httpx.MockTransport):
    def __init__(self) -> None:
        super().__init__(lambda request: httpx.Response(200, json={}))
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1


def test_http_cache_closes_base_transport_once(tmp_path: Path, credentials) -> None:
    base = _ClosingTransport()
    settings = FetchSettings(repo="octo/widgets", http_cache=True, http_cache_dir=tmp_path)

    with build_http_client(settings, credentials, CancellationToken(), transport=base):
        pass

    assert base.close_calls == 1
