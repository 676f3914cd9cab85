"""Shared fixtures: an offline requests session and ready-made settings."""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, Callable
from urllib.parse import urlparse

import pytest
import requests
from requests.cookies import cookiejar_from_dict

from bili_client.config import AppSettings
from bili_client.http import HttpClient
from bili_client.models import Credential, WbiKeys
from bili_client.services import build_service
from bili_client.session import CredentialFile, CredentialStore


def make_response(
    payload: Any = None,
    status: int = 200,
    cookies: dict[str, str] | None = None,
    text: str | None = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    body = text if text is not None else json.dumps(payload)
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    response.cookies = cookiejar_from_dict(cookies or {})
    return response


def envelope(data: Any = None, code: int = 0, message: str = "0") -> dict[str, Any]:
    body: dict[str, Any] = {"code": code, "message": message, "ttl": 1}
    if data is not None:
        body["data"] = data
    return body


@dataclass
class RecordedCall:
    method: str
    path: str
    params: dict[str, Any] | None
    data: dict[str, Any] | None
    cookies: dict[str, str] | None


class FakeSession(requests.Session):
    """Answers requests from queued responses keyed by method and path.

    The last queued item for a route is reused once the others are consumed.
    A queued exception is raised; a queued callable is called with the
    recorded request and must return a response.
    """

    def __init__(self) -> None:
        super().__init__()
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[RecordedCall] = []

    def add(self, method: str, path: str, item: Any) -> None:
        self.routes.setdefault((method, path), []).append(item)

    def add_json(self, method: str, path: str, payload: Any, cookies: dict[str, str] | None = None) -> None:
        self.add(method, path, make_response(payload, cookies=cookies))

    def calls_to(self, path: str) -> list[RecordedCall]:
        return [call for call in self.calls if call.path == path]

    def request(self, method, url, params=None, data=None, cookies=None, headers=None, timeout=None, **kwargs):
        path = urlparse(url).path
        call = RecordedCall(method, path, params, data, cookies)
        self.calls.append(call)
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"Unexpected request: {method} {path}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(call)
        return item


LOGGED_IN_COOKIES = {
    "SESSDATA": "sess-old",
    "bili_jct": "jct-old",
    "DedeUserID": "10086",
    "DedeUserID__ckMd5": "ck",
    "sid": "sid-old",
}

TEST_WBI_KEYS = WbiKeys(
    img_key="7cd084941338484aae1ad9425b84077c",
    sub_key="4932caff0ff746eab6f01bf08b70ac45",
    mixin_key="ea1db124af3c7062474693fa704f4ff8",
    expires_at=float("inf"),
)


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    return AppSettings(
        credential_path=str(tmp_path / "credential.json"),
        retry_attempts=0,
        qr_poll_interval_seconds=0,
        qr_poll_max_attempts=5,
    )


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def http_client(settings, fake_session) -> HttpClient:
    return HttpClient(settings, session=fake_session)


@pytest.fixture
def store(settings) -> CredentialStore:
    return CredentialStore(CredentialFile(settings.credential_path))


@pytest.fixture
def logged_in_credential() -> Credential:
    return Credential(cookies=LOGGED_IN_COOKIES, refresh_token="token-old", updated_at=1.0)


@pytest.fixture
def service_factory(settings, fake_session) -> Callable[..., Any]:
    def factory(credential: Credential | None = None):
        if credential is not None:
            CredentialFile(settings.credential_path).save(credential)
        service = build_service(settings, session=fake_session)
        service._video_api._signer._keys = TEST_WBI_KEYS
        return service

    return factory
