from __future__ import annotations

from dataclasses import dataclass
import io
import logging
import time
from typing import Callable
from urllib.parse import parse_qsl, urlparse

from bs4 import BeautifulSoup
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
import qrcode

from bili_client.config import AppSettings
from bili_client.errors import (
    AuthenticationError,
    DecodeError,
    QrLoginExpiredError,
    QrLoginRejectedError,
)
from bili_client.http import HttpClient
from bili_client.models import (
    AuthState,
    Credential,
    QrLoginSession,
    QrLoginState,
    get_bool,
    get_int,
    get_str,
)
from bili_client.session import CredentialStore

logger = logging.getLogger(__name__)

QR_GENERATE_PATH = "/x/passport-login/web/qrcode/generate"
QR_POLL_PATH = "/x/passport-login/web/qrcode/poll"
COOKIE_INFO_PATH = "/x/passport-login/web/cookie/info"
COOKIE_REFRESH_PATH = "/x/passport-login/web/cookie/refresh"
CONFIRM_REFRESH_PATH = "/x/passport-login/web/confirm/refresh"
LOGOUT_PATH = "/login/exit/v2"
CORRESPOND_PATH = "/correspond/1/"
NAV_PATH = "/x/web-interface/nav"
SPI_PATH = "/x/frontend/finger/spi"

QR_STATE_BY_CODE = {
    0: QrLoginState.CONFIRMED,
    86038: QrLoginState.EXPIRED,
    86090: QrLoginState.SCANNED,
    86101: QrLoginState.PENDING,
}

SESSION_COOKIE_NAMES = ("DedeUserID", "DedeUserID__ckMd5", "SESSDATA", "bili_jct", "sid")

CORRESPOND_PUBLIC_KEY = b"""-----BEGIN PUBLIC KEY-----
MIGfMA0GCSqGSIb3DQEBAQUAA4GNADCBiQKBgQDLgd2OAkcGVtoE3ThUREbio0Eg
Uc/prcajMKXvkCKFCWhJYJcLkcM2DKKcSeFpD/j6Boy538YXnR6VhcuUJOhH2x71
nzPjfdTcqMz7djHum0qSZA0AyCBDABUqCrfNgCiJ00Ra7GmRj+YCK1NJEuewlb40
JNrRuoEUXpabUzGB8QIDAQAB
-----END PUBLIC KEY-----
"""


@dataclass(frozen=True)
class RefreshCheck:
    refresh: bool
    timestamp: int


def correspond_path(timestamp_ms: int) -> str:
    """RSA-OAEP(SHA-256) of `refresh_<timestamp>`, lowercase hex."""
    public_key = serialization.load_pem_public_key(CORRESPOND_PUBLIC_KEY)
    encrypted = public_key.encrypt(
        f"refresh_{timestamp_ms}".encode("utf-8"),
        padding.OAEP(
            mgf=padding.MGF1(algorithm=hashes.SHA256()),
            algorithm=hashes.SHA256(),
            label=None,
        ),
    )
    return encrypted.hex()


def parse_refresh_csrf(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    node = soup.find(id="1-name")
    text = node.get_text(strip=True) if node is not None else ""
    if not text:
        raise DecodeError("Refresh csrf not found in correspond page")
    return text


def cookies_from_login_url(url: str) -> dict[str, str]:
    query = dict(parse_qsl(urlparse(url).query))
    return {name: query[name] for name in SESSION_COOKIE_NAMES if query.get(name)}


def render_qr(session: QrLoginSession) -> str:
    code = qrcode.QRCode(border=1)
    code.add_data(session.url)
    code.make(fit=True)
    buffer = io.StringIO()
    code.print_ascii(out=buffer, invert=True)
    return buffer.getvalue()


class AuthManager:
    def __init__(self, settings: AppSettings, http_client: HttpClient, store: CredentialStore):
        self._settings = settings
        self._http_client = http_client
        self._store = store

    def _passport(self, path: str) -> str:
        return f"{self._settings.passport_base_url}{path}"

    def _api(self, path: str) -> str:
        return f"{self._settings.api_base_url}{path}"

    def _anonymous_cookies(self) -> dict[str, str]:
        credential = self._store.peek()
        return credential.cookie_dict() if credential is not None else {}

    # QR-code login

    def start_qr_login(self) -> QrLoginSession:
        result = self._http_client.get(
            self._passport(QR_GENERATE_PATH),
            cookies=self._anonymous_cookies(),
        )
        data = result.require_data()
        return QrLoginSession(
            url=get_str(data, "url", QR_GENERATE_PATH),
            qrcode_key=get_str(data, "qrcode_key", QR_GENERATE_PATH),
            issued_at=time.time(),
        )

    def poll_qr_login(self, session: QrLoginSession) -> tuple[QrLoginState, Credential | None]:
        result, response_cookies = self._http_client.call_with_cookies(
            "GET",
            self._passport(QR_POLL_PATH),
            params={"qrcode_key": session.qrcode_key},
            cookies=self._anonymous_cookies(),
        )
        data = result.require_data()
        code = get_int(data, "code", QR_POLL_PATH)
        state = QR_STATE_BY_CODE.get(code, QrLoginState.REJECTED)
        if state is not QrLoginState.CONFIRMED:
            if state is QrLoginState.REJECTED:
                logger.warning("QR login rejected with code %s: %s", code, data.get("message"))
            return state, None

        cookies = cookies_from_login_url(get_str(data, "url", QR_POLL_PATH, default=""))
        cookies.update(response_cookies)
        if not cookies.get("SESSDATA"):
            raise DecodeError(f"{QR_POLL_PATH}: login confirmed but no session cookie was returned")

        base = self._store.peek() or Credential()
        credential = base.with_cookies(
            cookies,
            refresh_token=get_str(data, "refresh_token", QR_POLL_PATH, default=""),
        )
        return state, credential

    def poll_until_terminal(
        self,
        session: QrLoginSession,
        on_state: Callable[[QrLoginState], None] | None = None,
        max_attempts: int | None = None,
        interval_seconds: float | None = None,
    ) -> tuple[QrLoginState, Credential | None]:
        attempts = self._settings.qr_poll_max_attempts if max_attempts is None else max_attempts
        interval = self._settings.qr_poll_interval_seconds if interval_seconds is None else interval_seconds

        last_state: QrLoginState | None = None
        for attempt in range(1, attempts + 1):
            state, credential = self.poll_qr_login(session)
            if state is not last_state:
                logger.info("QR login state: %s", state.value)
                last_state = state
            if on_state is not None:
                on_state(state)
            if state.is_terminal:
                return state, credential
            if attempt < attempts:
                time.sleep(interval)

        logger.warning("QR login not confirmed after %d polls", attempts)
        if on_state is not None:
            on_state(QrLoginState.REJECTED)
        return QrLoginState.REJECTED, None

    def login(
        self,
        on_session: Callable[[QrLoginSession], None] | None = None,
        on_state: Callable[[QrLoginState], None] | None = None,
    ) -> Credential:
        session = self.start_qr_login()
        if on_session is not None:
            on_session(session)

        state, credential = self.poll_until_terminal(session, on_state=on_state)
        if state is QrLoginState.EXPIRED:
            raise QrLoginExpiredError("QR code expired before it was confirmed")
        if state is not QrLoginState.CONFIRMED or credential is None:
            raise QrLoginRejectedError("QR login was not confirmed")

        stored = self._store.update(
            lambda latest: (latest or Credential()).with_cookies(
                credential.cookies, refresh_token=credential.refresh_token
            )
        )
        logger.info("QR login confirmed for mid=%s", stored.mid)
        return stored

    # Cookie refresh

    def check_refresh(self, credential: Credential) -> RefreshCheck:
        result = self._http_client.get(
            self._passport(COOKIE_INFO_PATH),
            params={"csrf": credential.csrf or ""},
            cookies=credential.cookie_dict(),
        )
        data = result.require_data()
        return RefreshCheck(
            refresh=get_bool(data, "refresh", COOKIE_INFO_PATH),
            timestamp=get_int(data, "timestamp", COOKIE_INFO_PATH),
        )

    def _fetch_refresh_csrf(self, credential: Credential, timestamp_ms: int) -> str:
        url = f"{self._settings.www_base_url}{CORRESPOND_PATH}{correspond_path(timestamp_ms)}"
        html = self._http_client.get_text(url, cookies=credential.cookie_dict())
        return parse_refresh_csrf(html)

    def refresh(self) -> Credential:
        """Renew the stored credential when the server asks for it.

        Returns the stored credential untouched when no refresh is needed.
        """
        with self._store.refresh_lock:
            credential = self._store.current()
            check = self.check_refresh(credential)
            if not check.refresh:
                logger.debug("Credential for mid=%s does not need refresh", credential.mid)
                return credential

            csrf = credential.csrf
            if not csrf:
                raise AuthenticationError("Credential has no bili_jct cookie, please log in again")
            if not credential.refresh_token:
                raise AuthenticationError("Credential has no refresh token, please log in again")

            refresh_csrf = self._fetch_refresh_csrf(credential, check.timestamp)
            result, new_cookies = self._http_client.call_with_cookies(
                "POST",
                self._passport(COOKIE_REFRESH_PATH),
                data={
                    "csrf": csrf,
                    "refresh_csrf": refresh_csrf,
                    "source": "main_web",
                    "refresh_token": credential.refresh_token,
                },
                cookies=credential.cookie_dict(),
            )
            data = result.require_data()
            new_refresh_token = get_str(data, "refresh_token", COOKIE_REFRESH_PATH)
            if not new_cookies.get("SESSDATA"):
                raise DecodeError(f"{COOKIE_REFRESH_PATH}: refresh did not return new session cookies")

            renewed = self._store.update(
                lambda latest: (latest or credential).with_cookies(new_cookies, refresh_token=new_refresh_token)
            )
            logger.info("Credential refreshed for mid=%s", renewed.mid)

            # The old refresh token stays valid until this confirmation.
            self._http_client.post_form(
                self._passport(CONFIRM_REFRESH_PATH),
                data={"csrf": renewed.csrf or "", "refresh_token": credential.refresh_token},
                cookies=renewed.cookie_dict(),
            )
            return renewed

    # Session lifecycle

    def sign_out(self) -> None:
        credential = self._store.peek()
        if credential is not None and credential.is_logged_in:
            try:
                self._http_client.post_form(
                    self._passport(LOGOUT_PATH),
                    data={"biliCSRF": credential.csrf or ""},
                    cookies=credential.cookie_dict(),
                )
            except AuthenticationError:
                logger.info("Session was already invalid on the server")
        self._store.clear()

    def get_auth_state(self) -> AuthState:
        credential = self._store.peek()
        if credential is None or not credential.is_logged_in:
            return AuthState(is_signed_in=False)

        result = self._http_client.get(
            self._api(NAV_PATH),
            cookies=credential.cookie_dict(),
            accept_codes=(0, -101),
        )
        data = result.require_data()
        if not get_bool(data, "isLogin", NAV_PATH, default=False):
            return AuthState(is_signed_in=False)
        return AuthState(
            is_signed_in=True,
            mid=get_int(data, "mid", NAV_PATH, default=credential.mid),
            username=get_str(data, "uname", NAV_PATH, default="") or None,
        )

    def ensure_buvid(self) -> Credential:
        credential = self._store.peek()
        if credential is not None and credential.cookies.get("buvid3"):
            return credential

        result = self._http_client.get(self._api(SPI_PATH))
        data = result.require_data()
        cookies = {"buvid3": get_str(data, "b_3", SPI_PATH)}
        buvid4 = get_str(data, "b_4", SPI_PATH, default="")
        if buvid4:
            cookies["buvid4"] = buvid4

        def add_device_cookies(latest: Credential | None) -> Credential:
            if latest is not None and latest.cookies.get("buvid3"):
                return latest
            return (latest or Credential()).with_cookies(cookies)

        # A login or refresh may have stored new cookies during the request.
        return self._store.update(add_device_cookies)
