"""QR-code login helper: `python -m bili_client`.

Prints a QR code, waits for the mobile app to confirm, saves the credential
to BILI_CREDENTIAL_PATH and prints the account name. With an existing
credential it refreshes the cookies when the server asks for it.
"""

from __future__ import annotations

import sys

from bili_client.auth import render_qr
from bili_client.config import AppSettings, ConfigurationError
from bili_client.errors import AuthenticationError, BiliError
from bili_client.logging_utils import configure_logging
from bili_client.models import QrLoginSession, QrLoginState
from bili_client.services import build_service

_STATE_MESSAGES = {
    QrLoginState.PENDING: "Waiting for scan",
    QrLoginState.SCANNED: "Scanned, waiting for confirmation",
    QrLoginState.CONFIRMED: "Login confirmed",
    QrLoginState.EXPIRED: "QR code expired",
    QrLoginState.REJECTED: "Login rejected",
}


def _show_qr(session: QrLoginSession) -> None:
    print(render_qr(session))
    print(f"Scan with the mobile app, or open: {session.url}")


def _show_state(state: QrLoginState) -> None:
    print(_STATE_MESSAGES[state])


def main() -> int:
    try:
        settings = AppSettings.from_env()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)
    service = build_service(settings)

    try:
        if service.credential is not None and service.credential.is_logged_in:
            try:
                service.refresh_credential()
            except AuthenticationError:
                service.login_with_qrcode(on_session=_show_qr, on_state=_show_state)
        else:
            service.login_with_qrcode(on_session=_show_qr, on_state=_show_state)

        state = service.auth_state()
    except BiliError as exc:
        print(f"Login failed: {exc}", file=sys.stderr)
        return 1

    if not state.is_signed_in:
        print("Credential saved but the server does not accept it", file=sys.stderr)
        return 1
    print(f"Signed in as {state.username} (mid {state.mid}), credential saved to {settings.credential_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
