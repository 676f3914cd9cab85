from __future__ import annotations

from http.cookiejar import DefaultCookiePolicy
import logging
import time
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

import requests
from requests.utils import dict_from_cookiejar

from bili_client.config import AppSettings
from bili_client.errors import DecodeError, NetworkError, error_for_code
from bili_client.models import ApiResult

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 500, 502, 503, 504)


class _RejectAllCookiesPolicy(DefaultCookiePolicy):
    """Keeps server cookies out of the shared session jar.

    Cookies are passed per request from a credential snapshot instead.
    """

    def set_ok(self, cookie, request):
        return False


def endpoint_name(url: str) -> str:
    return urlparse(url).path or url


class HttpClient:
    def __init__(self, settings: AppSettings, session: requests.Session | None = None):
        self._settings = settings
        self._session = session or requests.Session()
        self._session.cookies.set_policy(_RejectAllCookiesPolicy())
        self._session.headers.update(
            {
                "Accept": "application/json, text/plain, */*",
                "User-Agent": settings.user_agent,
                "Referer": f"{settings.www_base_url}/",
                "Origin": settings.www_base_url,
            }
        )

    @property
    def settings(self) -> AppSettings:
        return self._settings

    def request(
        self,
        method: str,
        url: str,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        cookies: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> requests.Response:
        endpoint = endpoint_name(url)
        last_error: NetworkError | None = None
        attempts = self._settings.retry_attempts + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._session.request(
                    method,
                    url,
                    params=dict(params) if params else None,
                    data=dict(data) if data else None,
                    cookies=dict(cookies) if cookies else None,
                    headers=dict(headers) if headers else None,
                    timeout=self._settings.timeout_seconds,
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                last_error = NetworkError(f"{method} {endpoint} failed: {exc}")
                if attempt < attempts:
                    logger.warning("%s %s transport error, retrying (%d/%d)", method, endpoint, attempt, attempts - 1)
                    time.sleep(1.5 * attempt)
                    continue
                raise last_error from exc
            except requests.RequestException as exc:
                raise NetworkError(f"{method} {endpoint} failed: {exc}", retryable=False) from exc

            logger.debug("%s %s -> %s", method, endpoint, response.status_code)
            if response.ok:
                return response

            message = response.text[:500]
            last_error = NetworkError(
                f"HTTP {response.status_code} from {endpoint}: {message}",
                status_code=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )
            if last_error.retryable and attempt < attempts:
                logger.warning(
                    "%s %s returned HTTP %s, retrying (%d/%d)",
                    method,
                    endpoint,
                    response.status_code,
                    attempt,
                    attempts - 1,
                )
                time.sleep(1.5 * attempt)
                continue
            raise last_error

        if last_error is None:
            raise NetworkError(f"{method} {endpoint} failed", retryable=False)
        raise last_error

    @staticmethod
    def decode_json(response: requests.Response, endpoint: str) -> Any:
        if not response.content:
            raise DecodeError(f"{endpoint}: empty response body")
        try:
            return response.json()
        except ValueError as exc:
            raise DecodeError(f"{endpoint}: response is not valid JSON") from exc

    def call_with_cookies(
        self,
        method: str,
        url: str,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        cookies: Mapping[str, str] | None = None,
        accept_codes: Iterable[int] = (0,),
    ) -> tuple[ApiResult, dict[str, str]]:
        endpoint = endpoint_name(url)
        response = self.request(method, url, params=params, data=data, cookies=cookies)
        result = ApiResult.from_payload(endpoint, self.decode_json(response, endpoint))
        if result.code not in tuple(accept_codes):
            raise error_for_code(result.code, result.message, endpoint)
        return result, dict_from_cookiejar(response.cookies)

    def call(
        self,
        method: str,
        url: str,
        params: Mapping[str, Any] | None = None,
        data: Mapping[str, Any] | None = None,
        cookies: Mapping[str, str] | None = None,
        accept_codes: Iterable[int] = (0,),
    ) -> ApiResult:
        result, _ = self.call_with_cookies(
            method,
            url,
            params=params,
            data=data,
            cookies=cookies,
            accept_codes=accept_codes,
        )
        return result

    def get(
        self,
        url: str,
        params: Mapping[str, Any] | None = None,
        cookies: Mapping[str, str] | None = None,
        accept_codes: Iterable[int] = (0,),
    ) -> ApiResult:
        return self.call("GET", url, params=params, cookies=cookies, accept_codes=accept_codes)

    def post_form(
        self,
        url: str,
        data: Mapping[str, Any],
        cookies: Mapping[str, str] | None = None,
    ) -> ApiResult:
        return self.call("POST", url, data=data, cookies=cookies)

    def get_text(self, url: str, cookies: Mapping[str, str] | None = None) -> str:
        response = self.request("GET", url, cookies=cookies, headers={"Accept": "text/html"})
        return response.text
