from __future__ import annotations

import json
import logging
import os
import threading
from typing import Callable

from msal_extensions import CrossPlatLock, FilePersistence
from msal_extensions.persistence import PersistenceNotFound

from bili_client.errors import AuthenticationError, DecodeError
from bili_client.models import Credential

logger = logging.getLogger(__name__)


class CredentialFile:
    """JSON credential file shared safely between processes."""

    def __init__(self, path: str):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._path = path
        self._persistence = FilePersistence(path)
        self._lock_path = f"{path}.lockfile"

    @property
    def path(self) -> str:
        return self._path

    def load(self) -> Credential | None:
        with CrossPlatLock(self._lock_path):
            try:
                content = self._persistence.load()
            except PersistenceNotFound:
                return None
        if not content or not content.strip():
            return None
        try:
            payload = json.loads(content)
        except ValueError as exc:
            raise DecodeError(f"Credential file {self._path} is not valid JSON") from exc
        return Credential.from_dict(payload)

    def save(self, credential: Credential) -> None:
        content = json.dumps(credential.to_dict(), ensure_ascii=False, indent=2)
        with CrossPlatLock(self._lock_path):
            self._persistence.save(content)

    def clear(self) -> None:
        with CrossPlatLock(self._lock_path):
            self._persistence.save("")


class CredentialStore:
    """Holds the active credential.

    Readers get an immutable snapshot; writers swap the whole object under the
    lock, so a request never observes a half-updated credential.
    """

    def __init__(self, credential_file: CredentialFile | None = None):
        self._file = credential_file
        self._lock = threading.RLock()
        self._credential: Credential | None = None
        self._generation = 0
        self.refresh_lock = threading.Lock()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def load(self) -> Credential | None:
        if self._file is None:
            return None
        credential = self._file.load()
        with self._lock:
            self._credential = credential
            self._generation += 1
        if credential is not None:
            logger.info("Loaded credential for mid=%s from %s", credential.mid, self._file.path)
        return credential

    def peek(self) -> Credential | None:
        with self._lock:
            return self._credential

    def snapshot(self) -> tuple[Credential | None, int]:
        with self._lock:
            return self._credential, self._generation

    def current(self) -> Credential:
        credential = self.peek()
        if credential is None or not credential.is_logged_in:
            raise AuthenticationError("No credential available, please log in")
        return credential

    def replace(self, credential: Credential) -> None:
        with self._lock:
            self._credential = credential
            self._generation += 1
            if self._file is not None:
                self._file.save(credential)

    def update(self, merge: Callable[[Credential | None], Credential]) -> Credential:
        """Apply `merge` to the latest credential and store the result atomically.

        `merge` runs under the store lock and must not do I/O. Returning the
        same object leaves the store untouched.
        """
        with self._lock:
            current = self._credential
            updated = merge(current)
            if updated is not current:
                self.replace(updated)
            return updated

    def clear(self) -> None:
        with self._lock:
            self._credential = None
            self._generation += 1
            if self._file is not None:
                self._file.clear()
