from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import sys


class ConfigurationError(ValueError):
    pass


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class AppSettings:
    api_base_url: str = "https://api.bilibili.com"
    passport_base_url: str = "https://passport.bilibili.com"
    www_base_url: str = "https://www.bilibili.com"
    timeout_seconds: int = 10
    retry_attempts: int = 2
    credential_path: str = ""
    user_agent: str = DEFAULT_USER_AGENT
    qr_poll_interval_seconds: float = 3.0
    qr_poll_max_attempts: int = 60
    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "AppSettings":
        _load_dotenv_if_present()

        api_base_url = os.getenv("BILI_API_BASE_URL", "https://api.bilibili.com").strip().rstrip("/")
        passport_base_url = os.getenv("BILI_PASSPORT_BASE_URL", "https://passport.bilibili.com").strip().rstrip("/")
        www_base_url = os.getenv("BILI_WWW_BASE_URL", "https://www.bilibili.com").strip().rstrip("/")

        try:
            timeout_seconds = int(os.getenv("BILI_TIMEOUT_SECONDS", "10"))
            retry_attempts = int(os.getenv("BILI_RETRY_ATTEMPTS", "2"))
            qr_poll_interval_seconds = float(os.getenv("BILI_QR_POLL_INTERVAL_SECONDS", "3"))
            qr_poll_max_attempts = int(os.getenv("BILI_QR_POLL_MAX_ATTEMPTS", "60"))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc

        default_credential_path = os.path.join(
            os.path.expanduser("~"),
            ".bili_client",
            "credential.json",
        )
        credential_path = os.getenv("BILI_CREDENTIAL_PATH", default_credential_path).strip()
        user_agent = os.getenv("BILI_USER_AGENT", DEFAULT_USER_AGENT).strip()
        log_level = os.getenv("BILI_LOG_LEVEL", "INFO").strip().upper()

        settings = AppSettings(
            api_base_url=api_base_url,
            passport_base_url=passport_base_url,
            www_base_url=www_base_url,
            timeout_seconds=timeout_seconds,
            retry_attempts=retry_attempts,
            credential_path=credential_path,
            user_agent=user_agent,
            qr_poll_interval_seconds=qr_poll_interval_seconds,
            qr_poll_max_attempts=qr_poll_max_attempts,
            log_level=log_level,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        url_fields = {
            "BILI_API_BASE_URL": self.api_base_url,
            "BILI_PASSPORT_BASE_URL": self.passport_base_url,
            "BILI_WWW_BASE_URL": self.www_base_url,
        }
        invalid_urls = [
            name for name, value in url_fields.items()
            if not value.startswith(("http://", "https://"))
        ]
        if invalid_urls:
            raise ConfigurationError(
                "Base URLs must start with http:// or https://: " + ", ".join(invalid_urls)
            )

        if not self.credential_path:
            raise ConfigurationError("BILI_CREDENTIAL_PATH must not be empty")

        if not self.user_agent:
            raise ConfigurationError("BILI_USER_AGENT must not be empty")

        if self.timeout_seconds <= 0:
            raise ConfigurationError("BILI_TIMEOUT_SECONDS must be greater than 0")

        if self.retry_attempts < 0:
            raise ConfigurationError("BILI_RETRY_ATTEMPTS must be 0 or greater")

        if self.qr_poll_interval_seconds < 0:
            raise ConfigurationError("BILI_QR_POLL_INTERVAL_SECONDS must be 0 or greater")

        if self.qr_poll_max_attempts <= 0:
            raise ConfigurationError("BILI_QR_POLL_MAX_ATTEMPTS must be greater than 0")

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level not in valid_levels:
            raise ConfigurationError(
                "BILI_LOG_LEVEL must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
            )


def _load_dotenv_if_present(file_name: str = ".env") -> None:
    for candidate in _candidate_env_files(file_name):
        _load_env_file(candidate)


def _candidate_env_files(file_name: str) -> list[Path]:
    candidates: list[Path] = []

    explicit = os.getenv("BILI_ENV_FILE", "").strip()
    if explicit:
        candidates.append(Path(explicit).expanduser())

    candidates.append(Path.cwd() / file_name)

    if getattr(sys, "frozen", False):
        exe_dir = Path(sys.executable).resolve().parent
        candidates.append(exe_dir / file_name)
    else:
        project_root = Path(__file__).resolve().parent.parent
        candidates.append(project_root / file_name)

    unique_candidates: list[Path] = []
    seen: set[str] = set()
    for path in candidates:
        normalized = str(path.resolve()) if path.exists() else str(path)
        if normalized in seen:
            continue
        seen.add(normalized)
        unique_candidates.append(path)
    return unique_candidates


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return

    try:
        with path.open("r", encoding="utf-8") as env_file:
            for raw_line in env_file:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue

                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")

                if key and key not in os.environ:
                    os.environ[key] = value
    except OSError:
        return
