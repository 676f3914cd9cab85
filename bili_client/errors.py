from __future__ import annotations


# Common negative envelope codes returned by the web API.
ERROR_CODE_MESSAGES: dict[int, str] = {
    0: "No error",
    -1: "Application does not exist or is banned",
    -2: "Access key error",
    -3: "API signature key error",
    -4: "Caller has no permission for this method",
    -101: "Account is not logged in",
    -102: "Account is banned",
    -103: "Insufficient points",
    -104: "Insufficient coins",
    -105: "Captcha error",
    -106: "Account is not a regular member or is in probation",
    -107: "Application does not exist or is banned",
    -108: "Phone number is not bound",
    -110: "Phone number is not bound",
    -111: "CSRF check failed",
    -112: "System upgrade in progress",
    -113: "Account is not verified with a real name",
    -114: "Bind a phone number first",
    -115: "Complete real-name verification first",
    -304: "Not modified",
    -307: "Collision redirect",
    -400: "Bad request",
    -401: "Unauthenticated or illegal request",
    -403: "Insufficient access rights",
    -404: "Nothing found",
    -405: "Method not supported",
    -409: "Conflict",
    -412: "Request intercepted (client IP flagged by risk control)",
    -500: "Server error",
    -503: "Overload protection, service temporarily unavailable",
    -504: "Service call timed out",
    -509: "Rate limit exceeded",
    -616: "Uploaded file does not exist",
    -617: "Uploaded file is too large",
    -625: "Too many failed login attempts",
    -626: "User does not exist",
    -628: "Password is too weak",
    -629: "Wrong username or password",
    -632: "Operation target count limit",
    -643: "Locked",
    -650: "User level too low",
    -652: "Duplicate user",
    -658: "Token expired",
    -662: "Password timestamp expired",
    -688: "Geographic restriction",
    -689: "Copyright restriction",
    -701: "Failed to deduct integrity points",
    -799: "Too many requests, try again later",
    -8888: "Server hiccup",
}

AUTH_ERROR_CODES = frozenset({-101, -658})


def describe_error_code(code: int, fallback: str | None = None) -> str:
    message = ERROR_CODE_MESSAGES.get(code)
    if message:
        return message
    if fallback:
        return fallback
    if code > 0:
        return f"Server returned an error, code is {code}"
    return "Unknown error"


class BiliError(RuntimeError):
    pass


class NetworkError(BiliError):
    def __init__(self, message: str, status_code: int = 0, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class DecodeError(BiliError):
    pass


class SigningError(BiliError):
    pass


class AuthenticationError(BiliError):
    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class QrLoginExpiredError(AuthenticationError):
    pass


class QrLoginRejectedError(AuthenticationError):
    pass


class ApiError(BiliError):
    def __init__(self, code: int, message: str, endpoint: str = ""):
        super().__init__(f"API error {code} from {endpoint or 'endpoint'}: {message}")
        self.code = code
        self.server_message = message
        self.endpoint = endpoint


def error_for_code(code: int, server_message: str, endpoint: str) -> BiliError:
    message = describe_error_code(code, fallback=server_message)
    if code in AUTH_ERROR_CODES:
        return AuthenticationError(f"{endpoint}: {message}", code=code)
    return ApiError(code, message, endpoint)
