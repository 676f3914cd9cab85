from __future__ import annotations

import pytest

from bili_client.errors import AuthenticationError

from conftest import envelope, make_response

ACCOUNT = "/x/member/web/account"

ACCOUNT_DATA = {"mid": 10086, "uname": "tester"}


def test_auth_error_is_retried_once_when_credential_changed_mid_flight(
    service_factory, fake_session, logged_in_credential
):
    service = service_factory(logged_in_credential)
    store = service._store
    renewed = logged_in_credential.with_cookies({"SESSDATA": "sess-new"}, refresh_token="token-new")

    def refresh_lands_during_request(call):
        store.replace(renewed)
        return make_response(envelope(code=-101, message="账号未登录"))

    fake_session.add("GET", ACCOUNT, refresh_lands_during_request)
    fake_session.add_json("GET", ACCOUNT, envelope(ACCOUNT_DATA))

    info = service.my_info()

    assert info.uname == "tester"
    calls = fake_session.calls_to(ACCOUNT)
    assert [call.cookies["SESSDATA"] for call in calls] == ["sess-old", "sess-new"]


def test_auth_error_with_unchanged_credential_is_not_retried(service_factory, fake_session, logged_in_credential):
    service = service_factory(logged_in_credential)
    fake_session.add_json("GET", ACCOUNT, envelope(code=-101, message="账号未登录"))

    with pytest.raises(AuthenticationError):
        service.my_info()

    assert len(fake_session.calls_to(ACCOUNT)) == 1


def test_build_service_loads_persisted_credential(service_factory, logged_in_credential):
    service = service_factory(logged_in_credential)

    assert service.credential is not None
    assert service.credential.to_dict() == logged_in_credential.to_dict()
    assert service.request_timeout_seconds == 10


def test_sign_out_through_service(service_factory, fake_session, logged_in_credential):
    service = service_factory(logged_in_credential)
    fake_session.add_json("POST", "/login/exit/v2", envelope({"redirectUrl": "https://www.bilibili.com"}))

    service.sign_out()

    assert service.credential is None
    assert service.auth_state().is_signed_in is False
