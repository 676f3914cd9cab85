"""Wbi request signing.

Some web endpoints reject queries that do not carry a `w_rid` signature.
The signature is derived from a key pair published through the nav endpoint
and rotated daily:

1. read `wbi_img.img_url` and `wbi_img.sub_url` from `/x/web-interface/nav`;
2. take the file stem of both URLs as `img_key` and `sub_key`;
3. permute `img_key + sub_key` with a fixed table and keep 32 chars (mixin key);
4. add `wts` (unix seconds), sort by key, url-encode, append the mixin key;
5. the MD5 hex digest of that string is `w_rid`.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import hashlib
import logging
import threading
import time
from typing import Any, Mapping
from urllib.parse import quote, urlencode

from bili_client.errors import BiliError, DecodeError, SigningError
from bili_client.http import HttpClient
from bili_client.models import WbiKeys, expect_dict, get_str

logger = logging.getLogger(__name__)

NAV_PATH = "/x/web-interface/nav"

MIXIN_KEY_ENC_TAB = (
    46, 47, 18, 2, 53, 8, 23, 32, 15, 50, 10, 31, 58, 3, 45, 35,
    27, 43, 5, 49, 33, 9, 42, 19, 29, 28, 14, 39, 12, 38, 41, 13,
    37, 48, 7, 16, 24, 55, 40, 61, 26, 17, 0, 1, 60, 51, 30, 4,
    22, 25, 54, 21, 56, 59, 6, 63, 57, 62, 11, 36, 20, 34, 44, 52,
)

FORBIDDEN_VALUE_CHARS = "!'()*"

# Keys rotate at midnight in UTC+8.
KEY_TIMEZONE = timezone(timedelta(hours=8))


def mixin_key(img_key: str, sub_key: str) -> str:
    raw = img_key + sub_key
    if len(raw) < len(MIXIN_KEY_ENC_TAB):
        raise SigningError("Wbi keys are too short to derive a mixin key")
    return "".join(raw[index] for index in MIXIN_KEY_ENC_TAB)[:32]


def key_from_url(url: str) -> str:
    stem = url.rsplit("/", 1)[-1].split(".", 1)[0]
    if not stem:
        raise DecodeError(f"Invalid wbi key url: {url!r}")
    return stem


def next_rotation(now: float) -> float:
    local = datetime.fromtimestamp(now, tz=KEY_TIMEZONE)
    midnight = datetime(local.year, local.month, local.day, tzinfo=KEY_TIMEZONE)
    return (midnight + timedelta(days=1)).timestamp()


def _clean_value(value: Any) -> str:
    text = str(value)
    return "".join(char for char in text if char not in FORBIDDEN_VALUE_CHARS)


def sign_params(params: Mapping[str, Any], mixin: str, timestamp: int) -> dict[str, str]:
    """Return a new mapping with `wts` and `w_rid` added.

    Pure function of its inputs: equal params, key and timestamp always
    produce the same signature.
    """
    signed = {str(key): _clean_value(value) for key, value in params.items()}
    signed["wts"] = str(int(timestamp))
    ordered = dict(sorted(signed.items()))
    query = urlencode(ordered, quote_via=quote)
    ordered["w_rid"] = hashlib.md5((query + mixin).encode("utf-8")).hexdigest()
    return ordered


class WbiSigner:
    def __init__(self, http_client: HttpClient, keys: WbiKeys | None = None):
        self._http_client = http_client
        self._keys = keys
        self._lock = threading.Lock()

    def keys(self, now: float | None = None) -> WbiKeys:
        current_time = time.time() if now is None else now
        keys = self._keys
        if keys is not None and keys.is_valid(current_time):
            return keys

        with self._lock:
            keys = self._keys
            if keys is not None and keys.is_valid(current_time):
                return keys
            try:
                keys = self._fetch_keys(current_time)
            except BiliError as exc:
                raise SigningError(f"Wbi keys are stale and could not be refreshed: {exc}") from exc
            self._keys = keys
            logger.info("Wbi keys refreshed, valid until %s", datetime.fromtimestamp(keys.expires_at, tz=KEY_TIMEZONE))
            return keys

    def sign(self, params: Mapping[str, Any], timestamp: int | None = None) -> dict[str, str]:
        now = time.time() if timestamp is None else float(timestamp)
        keys = self.keys(now)
        return sign_params(params, keys.mixin_key, int(now))

    def invalidate(self) -> None:
        with self._lock:
            self._keys = None

    def _fetch_keys(self, now: float) -> WbiKeys:
        url = f"{self._http_client.settings.api_base_url}{NAV_PATH}"
        # Anonymous nav answers -101 but still carries wbi_img.
        result = self._http_client.get(url, accept_codes=(0, -101))
        data = result.require_data()
        wbi_img = expect_dict(data.get("wbi_img"), f"{NAV_PATH}.wbi_img")
        img_key = key_from_url(get_str(wbi_img, "img_url", NAV_PATH))
        sub_key = key_from_url(get_str(wbi_img, "sub_url", NAV_PATH))
        return WbiKeys(
            img_key=img_key,
            sub_key=sub_key,
            mixin_key=mixin_key(img_key, sub_key),
            expires_at=next_rotation(now),
        )
