from __future__ import annotations

import pytest
import requests

from bili_client.errors import DecodeError, SigningError
from bili_client.models import WbiKeys
from bili_client.wbi import WbiSigner, key_from_url, mixin_key, next_rotation, sign_params

from conftest import envelope

NAV_PATH = "/x/web-interface/nav"


def _nav_payload(code: int = -101) -> dict:
    return envelope(
        {
            "isLogin": code == 0,
            "wbi_img": {
                "img_url": "https://i0.hdslb.com/bfs/wbi/7cd084941338484aae1ad9425b84077c.png",
                "sub_url": "https://i0.hdslb.com/bfs/wbi/4932caff0ff746eab6f01bf08b70ac45.png",
            },
        },
        code=code,
        message="0" if code == 0 else "账号未登录",
    )


def test_mixin_key_matches_published_example():
    assert mixin_key(
        "7cd084941338484aae1ad9425b84077c",
        "4932caff0ff746eab6f01bf08b70ac45",
    ) == "ea1db124af3c7062474693fa704f4ff8"


def test_mixin_key_rejects_short_keys():
    with pytest.raises(SigningError):
        mixin_key("abc", "def")


def test_sign_params_known_vector():
    signed = sign_params(
        {"foo": "114", "bar": "514", "zab": 1919810},
        "72136226c6a73669787ee4fd02a74c27",
        1684746387,
    )

    assert signed["wts"] == "1684746387"
    assert signed["w_rid"] == "90efcab09403023875b8516f07e9f9de"
    assert list(signed) == ["bar", "foo", "wts", "zab", "w_rid"]


def test_sign_params_is_deterministic_and_leaves_input_alone():
    params = {"keyword": "hello world", "page": 2}
    first = sign_params(params, "ea1db124af3c7062474693fa704f4ff8", 1702204169)
    second = sign_params(dict(params), "ea1db124af3c7062474693fa704f4ff8", 1702204169)

    assert first == second
    assert params == {"keyword": "hello world", "page": 2}
    assert sign_params(params, "ea1db124af3c7062474693fa704f4ff8", 1702204170)["w_rid"] != first["w_rid"]


def test_sign_params_strips_forbidden_characters():
    signed = sign_params({"keyword": "a!b'c(d)e*f"}, "ea1db124af3c7062474693fa704f4ff8", 1)
    plain = sign_params({"keyword": "abcdef"}, "ea1db124af3c7062474693fa704f4ff8", 1)

    assert signed["keyword"] == "abcdef"
    assert signed["w_rid"] == plain["w_rid"]


def test_key_from_url():
    assert key_from_url("https://i0.hdslb.com/bfs/wbi/abc123.png") == "abc123"
    with pytest.raises(DecodeError):
        key_from_url("https://i0.hdslb.com/bfs/wbi/")


def test_next_rotation_is_next_midnight_in_utc8():
    # 2023-05-22 17:06:27 +08:00 -> 2023-05-23 00:00:00 +08:00
    assert next_rotation(1684746387) == 1684771200


def test_signer_fetches_keys_once_and_caches(http_client, fake_session):
    fake_session.add_json("GET", NAV_PATH, _nav_payload())
    signer = WbiSigner(http_client)

    first = signer.sign({"foo": "bar"}, timestamp=1684746387)
    second = signer.sign({"foo": "bar"}, timestamp=1684746387)

    assert first == second
    assert len(fake_session.calls_to(NAV_PATH)) == 1
    assert signer.keys(1684746387).mixin_key == "ea1db124af3c7062474693fa704f4ff8"


def test_signer_refetches_after_rotation(http_client, fake_session):
    fake_session.add_json("GET", NAV_PATH, _nav_payload(code=0))
    stale = WbiKeys("a" * 32, "b" * 32, "c" * 32, expires_at=100.0)
    signer = WbiSigner(http_client, keys=stale)

    signer.sign({"foo": "bar"}, timestamp=50)
    assert fake_session.calls_to(NAV_PATH) == []

    signer.sign({"foo": "bar"}, timestamp=1684746387)
    assert len(fake_session.calls_to(NAV_PATH)) == 1


def test_signer_raises_signing_error_when_refresh_fails(http_client, fake_session):
    fake_session.add("GET", NAV_PATH, requests.ConnectionError("offline"))
    signer = WbiSigner(http_client)

    with pytest.raises(SigningError):
        signer.sign({"foo": "bar"})


def test_signer_raises_signing_error_on_malformed_nav(http_client, fake_session):
    fake_session.add_json("GET", NAV_PATH, envelope({"isLogin": False}, code=-101))
    signer = WbiSigner(http_client)

    with pytest.raises(SigningError):
        signer.sign({"foo": "bar"})
