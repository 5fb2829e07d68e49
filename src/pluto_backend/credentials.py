from __future__ import annotations

import json
import threading
from collections.abc import Iterable, Sequence
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from .errors import ConfigurationError


class CredentialPool:
    """
    Ordered pool of completion API keys with a shared rotation cursor.

    The cursor is process state owned by this instance: it is never reset
    between dispatches, so a later call starts on whichever key the previous
    call left current.
    """

    def __init__(self, keys: Iterable[str]):
        seen: set[str] = set()
        ordered: list[str] = []
        for key in keys:
            key = (key or "").strip()
            if key and key not in seen:
                seen.add(key)
                ordered.append(key)
        self._keys: tuple[str, ...] = tuple(ordered)
        self._cursor = 0
        self._lock = threading.Lock()

    @classmethod
    def empty(cls) -> CredentialPool:
        return cls(())

    def __len__(self) -> int:
        return len(self._keys)

    def __bool__(self) -> bool:
        return bool(self._keys)

    @property
    def cursor(self) -> int:
        return self._cursor

    def current(self) -> tuple[int, str]:
        if not self._keys:
            raise ConfigurationError("No completion API keys configured.")
        with self._lock:
            return self._cursor, self._keys[self._cursor]

    def advance(self, from_index: int | None = None) -> int:
        """Move the cursor to the next key, wrapping.

        With ``from_index`` the move only happens if the cursor still points
        there, so concurrent failures on one key rotate past it once.
        """
        if not self._keys:
            raise ConfigurationError("No completion API keys configured.")
        with self._lock:
            if from_index is None or from_index == self._cursor:
                self._cursor = (self._cursor + 1) % len(self._keys)
            return self._cursor


def _fernet(key_str: str) -> Fernet:
    try:
        return Fernet(key_str.encode("utf-8"))
    except ValueError as e:
        raise ConfigurationError("CREDENTIALS_FERNET_KEY is not a valid Fernet key.") from e


def save_encrypted_keys(path: str | Path, fernet_key: str, keys: Sequence[str]) -> None:
    raw = json.dumps({"api_keys": list(keys)}).encode("utf-8")
    Path(path).write_bytes(_fernet(fernet_key).encrypt(raw))


def load_encrypted_keys(path: str | Path, fernet_key: str) -> list[str]:
    """Read ``{"api_keys": [...]}`` from a Fernet-encrypted file."""
    try:
        token = Path(path).read_bytes()
    except OSError as e:
        raise ConfigurationError(f"Cannot read credentials file {path}.") from e
    try:
        raw = _fernet(fernet_key).decrypt(token)
    except InvalidToken as e:
        raise ConfigurationError("Failed to decrypt credentials (wrong key or corrupted file).") from e

    try:
        payload = json.loads(raw.decode("utf-8"))
    except ValueError as e:
        raise ConfigurationError("Credentials file does not contain JSON.") from e
    keys = payload.get("api_keys") if isinstance(payload, dict) else None
    if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
        raise ConfigurationError('Credentials file must hold {"api_keys": [<string>, ...]}.')
    return keys
