"""
Token Store
===========

Dual-scope key/value persistence with expiry metadata and optional
at-rest encryption.

Every value is wrapped in a record before it reaches a backend:

    {"value": <json value>,
     "options": {"expiresAt": <epoch ms | null>,
                 "encrypted": <bool>,
                 "createdAt": <epoch ms>}}

Encrypted records are sealed with AES-256-GCM under a per-scope storage
key and written as ``enc:<base64>``. Reads check expiry and evict expired
records. A record that cannot be decoded is evicted and reported as
absent; storage corruption is never raised to the caller.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Final, Iterable, Mapping, Optional

from portalauth.core.crypto.aes_gcm import AES_KEY_SIZE, AesGcmCipher, SealError
from portalauth.core.storage.backends import Scope, StorageBackend
from portalauth.utils.clock import Clock, from_millis, to_millis, utc_now

ENCRYPTION_KEY_NAME: Final[str] = "storage_encryption_key"
_SEALED_MARKER: Final[str] = "enc:"

_log = logging.getLogger("portalauth.storage")


def _timestamp(value: Any) -> datetime:
    """Convert stored epoch milliseconds; ValueError when unusable."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValueError(f"Timestamp is not a number: {value!r}")
    try:
        return from_millis(value)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"Timestamp out of range: {value!r}") from exc


@dataclass(frozen=True, slots=True)
class StoredItem:
    """A decoded record with its metadata."""
    value: Any
    created_at: datetime
    expires_at: Optional[datetime]
    encrypted: bool


class TokenStore:
    """
    Scoped key/value store used by the session manager and attempt tracker.

    Usage:
        store = TokenStore({Scope.SESSION: MemoryBackend(),
                            Scope.PERSISTENT: SqliteBackend(path)})
        store.set(Scope.SESSION, "auth_csrf", token)
        store.set(Scope.PERSISTENT, "cache", data, expires_in=300)
        store.get(Scope.PERSISTENT, "cache", default={})
    """

    __slots__ = ("_backends", "_prefix", "_encrypt", "_clock", "_ciphers")

    def __init__(
        self,
        backends: Mapping[Scope, StorageBackend],
        *,
        prefix: str = "pts_dev_",
        encrypt: bool = True,
        clock: Clock = utc_now,
    ) -> None:
        missing = [scope.value for scope in Scope if scope not in backends]
        if missing:
            raise ValueError(f"No backend for scope(s): {', '.join(missing)}")

        self._backends = dict(backends)
        self._prefix = prefix
        self._encrypt = encrypt
        self._clock = clock
        self._ciphers: dict[Scope, AesGcmCipher] = {}

    @property
    def prefix(self) -> str:
        return self._prefix

    def backend(self, scope: Scope) -> StorageBackend:
        return self._backends[scope]

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _now_ms(self) -> int:
        return to_millis(self._clock())

    # -- encryption ---------------------------------------------------------

    def _cipher(self, scope: Scope) -> AesGcmCipher:
        """Return the scope's cipher, creating and storing its key on first use."""
        cipher = self._ciphers.get(scope)
        if cipher is not None:
            return cipher

        backend = self._backends[scope]
        key_name = self._full_key(ENCRYPTION_KEY_NAME)
        key: Optional[bytes] = None

        encoded = backend.get_item(key_name)
        if encoded:
            try:
                key = base64.b64decode(encoded, validate=True)
            except binascii.Error:
                key = None
            if key is not None and len(key) != AES_KEY_SIZE:
                key = None
            if key is None:
                _log.warning("Storage key in %s scope is unreadable; generating a new one", scope.value)

        if key is None:
            key = AesGcmCipher.generate_key()
            backend.set_item(key_name, base64.b64encode(key).decode("ascii"))

        cipher = AesGcmCipher(key)
        self._ciphers[scope] = cipher
        return cipher

    def _encode(self, scope: Scope, key: str, record: dict[str, Any], encrypt: bool) -> str:
        serialized = json.dumps(record, separators=(",", ":"))
        if not encrypt:
            return serialized
        sealed = self._cipher(scope).seal(serialized.encode("utf-8"), aad=key.encode("utf-8"))
        return _SEALED_MARKER + base64.b64encode(sealed).decode("ascii")

    def _decode(self, scope: Scope, key: str, raw: str) -> dict[str, Any]:
        if raw.startswith(_SEALED_MARKER):
            sealed = base64.b64decode(raw[len(_SEALED_MARKER):], validate=True)
            raw = self._cipher(scope).open(sealed, aad=key.encode("utf-8")).decode("utf-8")

        record = json.loads(raw)
        if not isinstance(record, dict) or not isinstance(record.get("options"), dict):
            raise ValueError("Stored record has no options block")
        if "value" not in record:
            raise ValueError("Stored record has no value")
        return record

    # -- record access ------------------------------------------------------

    def _read(self, scope: Scope, key: str) -> Optional[StoredItem]:
        """Load a live record, evicting it when corrupt or expired."""
        raw = self._backends[scope].get_item(self._full_key(key))
        if raw is None:
            return None

        try:
            record = self._decode(scope, key, raw)
            options = record["options"]
            expires_at = options.get("expiresAt")
            item = StoredItem(
                value=record["value"],
                created_at=_timestamp(options.get("createdAt")),
                expires_at=_timestamp(expires_at) if expires_at is not None else None,
                encrypted=bool(options.get("encrypted")),
            )
        except (ValueError, TypeError, SealError) as exc:
            _log.debug("Evicting unreadable record %r from %s scope: %s", key, scope.value, exc)
            self.remove(scope, key)
            return None

        if item.expires_at is not None and item.expires_at <= self._clock():
            self.remove(scope, key)
            return None
        return item

    def set(
        self,
        scope: Scope,
        key: str,
        value: Any,
        *,
        expires_in: Optional[float] = None,
        encrypt: Optional[bool] = None,
    ) -> bool:
        """
        Store a value.

        Args:
            scope: Target storage scope
            key: Un-prefixed key
            value: Any JSON-serializable value
            expires_in: Lifetime in seconds (no expiry when omitted)
            encrypt: Seal the record at rest (store default when omitted)

        Returns:
            True when stored, False when the value is not serializable
        """
        if not key:
            raise ValueError("Key is required")

        use_encryption = self._encrypt if encrypt is None else encrypt
        now_ms = self._now_ms()
        record = {
            "value": value,
            "options": {
                "expiresAt": now_ms + int(expires_in * 1000) if expires_in else None,
                "encrypted": use_encryption,
                "createdAt": now_ms,
            },
        }

        try:
            encoded = self._encode(scope, key, record, use_encryption)
        except (TypeError, ValueError) as exc:
            _log.error("Failed to store %r in %s scope: %s", key, scope.value, exc)
            return False

        self._backends[scope].set_item(self._full_key(key), encoded)
        return True

    def get(self, scope: Scope, key: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` when absent, expired or corrupt."""
        item = self._read(scope, key)
        return default if item is None else item.value

    def inspect(self, scope: Scope, key: str) -> Optional[StoredItem]:
        """Return the live record with its metadata."""
        return self._read(scope, key)

    def has(self, scope: Scope, key: str) -> bool:
        return self._read(scope, key) is not None

    def remove(self, scope: Scope, key: str) -> None:
        self._backends[scope].remove_item(self._full_key(key))

    def keys(self, scope: Scope) -> list[str]:
        """Un-prefixed keys in the scope, excluding the storage key."""
        key_name = self._full_key(ENCRYPTION_KEY_NAME)
        return [
            full[len(self._prefix):]
            for full in self._backends[scope].keys()
            if full.startswith(self._prefix) and full != key_name
        ]

    def size(self, scope: Scope) -> int:
        return len(self.keys(scope))

    def clear(self, scope: Scope) -> None:
        """Remove every prefixed key in the scope except the storage key."""
        for key in self.keys(scope):
            self.remove(scope, key)

    def set_items(
        self,
        scope: Scope,
        items: Mapping[str, Any],
        *,
        expires_in: Optional[float] = None,
        encrypt: Optional[bool] = None,
    ) -> None:
        for key, value in items.items():
            self.set(scope, key, value, expires_in=expires_in, encrypt=encrypt)

    def get_items(self, scope: Scope, keys: Iterable[str]) -> dict[str, Any]:
        return {key: self.get(scope, key) for key in keys}

    def remove_items(self, scope: Scope, keys: Iterable[str]) -> None:
        for key in keys:
            self.remove(scope, key)

    def set_expiration(self, scope: Scope, key: str, expires_in: float) -> bool:
        """Re-store an existing value with a new lifetime. False when absent."""
        item = self.inspect(scope, key)
        if item is None:
            return False
        return self.set(scope, key, item.value, expires_in=expires_in, encrypt=item.encrypted)

    def time_until_expiration(self, scope: Scope, key: str) -> Optional[int]:
        """Whole seconds (rounded up) until expiry, or None without an expiry."""
        item = self.inspect(scope, key)
        if item is None or item.expires_at is None:
            return None
        remaining = (item.expires_at - self._clock()) / timedelta(seconds=1)
        return max(0, math.ceil(remaining))

    def clear_expired(self, scope: Scope) -> int:
        """Evict expired and unreadable records. Returns how many were removed."""
        return sum(1 for key in self.keys(scope) if not self.has(scope, key))
