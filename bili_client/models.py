from __future__ import annotations

from dataclasses import dataclass, field
import enum
import time
from types import MappingProxyType
from typing import Any, Mapping

from bili_client.errors import DecodeError

_MISSING: Any = object()


def expect_dict(value: Any, context: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise DecodeError(f"{context}: expected an object, got {type(value).__name__}")
    return value


def expect_list(value: Any, context: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"{context}: expected a list, got {type(value).__name__}")
    return value


def get_int(data: Mapping[str, Any], key: str, context: str, default: Any = _MISSING) -> int:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise DecodeError(f"{context}: missing field '{key}'")
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    if default is not _MISSING:
        return default
    raise DecodeError(f"{context}: field '{key}' is not an integer")


def get_int_list(data: Mapping[str, Any], key: str, context: str) -> tuple[int, ...]:
    values = []
    for index, value in enumerate(expect_list(data.get(key), f"{context}.{key}")):
        if isinstance(value, int) and not isinstance(value, bool):
            values.append(value)
        elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
            values.append(int(value.strip()))
        else:
            raise DecodeError(f"{context}: {key}[{index}] is not an integer")
    return tuple(values)


def get_str_list(data: Mapping[str, Any], key: str, context: str) -> tuple[str, ...]:
    values = expect_list(data.get(key), f"{context}.{key}")
    for index, value in enumerate(values):
        if not isinstance(value, str):
            raise DecodeError(f"{context}: {key}[{index}] is not a string")
    return tuple(values)


def get_float(data: Mapping[str, Any], key: str, context: str, default: Any = _MISSING) -> float:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise DecodeError(f"{context}: missing field '{key}'")
        return default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise DecodeError(f"{context}: field '{key}' is not a number")


def get_str(data: Mapping[str, Any], key: str, context: str, default: Any = _MISSING) -> str:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise DecodeError(f"{context}: missing field '{key}'")
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise DecodeError(f"{context}: field '{key}' is not a string")


def get_bool(data: Mapping[str, Any], key: str, context: str, default: Any = _MISSING) -> bool:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise DecodeError(f"{context}: missing field '{key}'")
        return default
    if isinstance(value, (bool, int)):
        return bool(value)
    raise DecodeError(f"{context}: field '{key}' is not a boolean")


@dataclass(frozen=True)
class ApiResult:
    """Decoded `{code, message, data}` envelope of a single endpoint call."""

    endpoint: str
    code: int
    message: str
    data: Any = None

    @staticmethod
    def from_payload(endpoint: str, payload: Any) -> "ApiResult":
        body = expect_dict(payload, endpoint)
        return ApiResult(
            endpoint=endpoint,
            code=get_int(body, "code", endpoint),
            message=get_str(body, "message", endpoint, default=""),
            data=body.get("data"),
        )

    def require_data(self) -> dict[str, Any]:
        if self.data is None:
            raise DecodeError(f"{self.endpoint}: data field cannot be empty")
        return expect_dict(self.data, f"{self.endpoint}.data")


@dataclass(frozen=True)
class Credential:
    """Authenticated session state: cookies plus the refresh token.

    Instances are never mutated; login and refresh produce new ones.
    """

    cookies: Mapping[str, str] = field(default_factory=dict)
    refresh_token: str = ""
    updated_at: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "cookies", MappingProxyType(dict(self.cookies)))

    @property
    def csrf(self) -> str | None:
        return self.cookies.get("bili_jct") or None

    @property
    def mid(self) -> int | None:
        raw = str(self.cookies.get("DedeUserID", "")).strip()
        return int(raw) if raw.isdigit() else None

    @property
    def is_logged_in(self) -> bool:
        return bool(self.cookies.get("SESSDATA"))

    def cookie_dict(self) -> dict[str, str]:
        return dict(self.cookies)

    def with_cookies(self, updates: Mapping[str, str], refresh_token: str | None = None) -> "Credential":
        merged = dict(self.cookies)
        merged.update(updates)
        return Credential(
            cookies=merged,
            refresh_token=self.refresh_token if refresh_token is None else refresh_token,
            updated_at=time.time(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "cookies": dict(self.cookies),
            "refresh_token": self.refresh_token,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(payload: Any) -> "Credential":
        body = expect_dict(payload, "credential")
        raw_cookies = expect_dict(body.get("cookies", {}), "credential.cookies")
        cookies = {str(name): str(value) for name, value in raw_cookies.items()}
        return Credential(
            cookies=cookies,
            refresh_token=get_str(body, "refresh_token", "credential", default=""),
            updated_at=get_float(body, "updated_at", "credential", default=0.0),
        )


@dataclass(frozen=True)
class AuthState:
    is_signed_in: bool
    mid: int | None = None
    username: str | None = None


class QrLoginState(str, enum.Enum):
    PENDING = "pending"
    SCANNED = "scanned"
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (QrLoginState.CONFIRMED, QrLoginState.EXPIRED, QrLoginState.REJECTED)


@dataclass(frozen=True)
class QrLoginSession:
    url: str
    qrcode_key: str
    issued_at: float


@dataclass(frozen=True)
class WbiKeys:
    img_key: str
    sub_key: str
    mixin_key: str
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at
