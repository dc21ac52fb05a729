"""
User store abstraction with a Redis implementation and a local JSON file fallback.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "user:"
DEFAULT_TIMEOUT_SECONDS = 5.0


class StoreError(Exception):
    """Base class for user store failures."""


class DuplicateKeyError(StoreError):
    def __init__(self, email: str):
        super().__init__("Email already exists")
        self.email = email


class UserNotFoundError(StoreError):
    def __init__(self, email: str):
        super().__init__("User not found")
        self.email = email


class StoreUnavailableError(StoreError):
    """The backing file or connection could not be read or written."""


@dataclass(frozen=True)
class UserRecord:
    email: str
    workspace_name: str
    created_at: Optional[datetime] = None

    def as_dict(self) -> dict:
        data = {"email": self.email, "workspaceName": self.workspace_name}
        if self.created_at is not None:
            data["created_at"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UserRecord":
        if not isinstance(data, dict):
            raise TypeError(f"Expected a JSON object, got {type(data).__name__}")
        created_at = data.get("created_at")
        return cls(
            email=data["email"],
            workspace_name=data["workspaceName"],
            created_at=_parse_timestamp(created_at) if created_at else None,
        )


def _parse_timestamp(value: str) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"Expected an ISO-8601 string, got {type(value).__name__}")
    # Timestamps written by JavaScript clients end in "Z".
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


def _require_email(email: str) -> None:
    if not email:
        raise ValueError("email is required")


class UserStore(Protocol):
    """Operations the API needs from user storage."""

    def find_user(self, email: str) -> Optional[UserRecord]:
        ...

    def add_user(self, email: str, workspace_name: str) -> UserRecord:
        ...

    def update_user(self, email: str, workspace_name: str) -> UserRecord:
        ...


class KeyedLock:
    """
    One lock per key, created on demand and dropped once nobody holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def hold(self, key: str, timeout: float) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            if not entry[0].acquire(timeout=timeout):
                logger.warning(
                    "Timed out after %.1fs waiting for lock on %s", timeout, key
                )
                raise StoreUnavailableError(f"Timed out waiting for lock on {key}")
            try:
                yield
            finally:
                entry[0].release()
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


# Shared by every FileUserStore in the process, keyed on the resolved file path.
_file_locks = KeyedLock()


class FileUserStore:
    """
    Keeps every user in one JSON array on local disk.

    Each mutation reads the whole file and atomically replaces it, so this is
    only suitable for small deployments and local development.
    """

    def __init__(
        self, path: str | os.PathLike, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ):
        self.path = Path(path)
        self.timeout = timeout
        self._lock_key = str(self.path.resolve())

    def _read(self) -> list[dict]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                users = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreUnavailableError(f"Cannot read {self.path}: {exc}") from exc
        if not isinstance(users, list) or not all(isinstance(u, dict) for u in users):
            raise StoreUnavailableError(
                f"Expected a JSON array of objects in {self.path}"
            )
        return users

    def _to_record(self, user: dict) -> UserRecord:
        try:
            return UserRecord.from_dict(user)
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreUnavailableError(f"Malformed user entry in {self.path}") from exc

    def _write(self, users: list[dict]) -> None:
        tmp: Optional[Path] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=self.path.name + ".",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp = Path(f.name)
                json.dump(users, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as exc:
            if tmp is not None:
                tmp.unlink(missing_ok=True)
            raise StoreUnavailableError(f"Cannot write {self.path}: {exc}") from exc

    def find_user(self, email: str) -> Optional[UserRecord]:
        for user in self._read():
            if user.get("email") == email:
                return self._to_record(user)
        return None

    def add_user(self, email: str, workspace_name: str) -> UserRecord:
        _require_email(email)
        # The file is a single snapshot, so every mutation shares one lock.
        with _file_locks.hold(self._lock_key, self.timeout):
            users = self._read()
            if any(user.get("email") == email for user in users):
                raise DuplicateKeyError(email)
            record = UserRecord(email=email, workspace_name=workspace_name)
            users.append(record.as_dict())
            self._write(users)
        logger.info("Added user %s to %s", email, self.path)
        return record

    def update_user(self, email: str, workspace_name: str) -> UserRecord:
        _require_email(email)
        with _file_locks.hold(self._lock_key, self.timeout):
            users = self._read()
            for index, user in enumerate(users):
                if user.get("email") == email:
                    break
            else:
                raise UserNotFoundError(email)
            updated = {**user, "workspaceName": workspace_name}
            # Validate before writing so a malformed entry leaves the file untouched.
            record = self._to_record(updated)
            users[index] = updated
            self._write(users)
        logger.info("Updated workspace for %s in %s", email, self.path)
        return record


class RedisUserStore:
    """
    Stores each user as a JSON string under ``<key_prefix><email>``.

    The client is created on first use and shared by every call afterwards;
    redis-py's connection pool takes care of concurrent access and reconnects.
    """

    def __init__(
        self,
        url: str,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        if not url:
            raise ValueError("REDIS_URL is required for RedisUserStore")
        self.url = url
        self.key_prefix = key_prefix
        self.timeout = timeout
        self._client: Optional[redis.Redis] = None
        self._client_lock = threading.Lock()
        self._locks = KeyedLock()

    def _key(self, email: str) -> str:
        return f"{self.key_prefix}{email}"

    def _ensure_client(self) -> redis.Redis:
        if self._client is None:
            with self._client_lock:
                if self._client is None:
                    self._client = redis.Redis.from_url(
                        self.url,
                        decode_responses=True,
                        socket_timeout=self.timeout,
                        socket_connect_timeout=self.timeout,
                    )
        return self._client

    def _decode(self, key: str, raw: str) -> tuple[dict, UserRecord]:
        try:
            data = json.loads(raw)
            return data, UserRecord.from_dict(data)
        except (ValueError, KeyError, TypeError) as exc:
            raise StoreUnavailableError(f"Unreadable record at {key}") from exc

    def _get(self, key: str) -> Optional[str]:
        try:
            return self._ensure_client().get(key)
        except redis_exceptions.RedisError as exc:
            raise StoreUnavailableError(f"Redis GET failed: {exc}") from exc

    def _set(self, key: str, data: dict, **condition) -> bool:
        try:
            written = self._ensure_client().set(key, json.dumps(data), **condition)
        except redis_exceptions.RedisError as exc:
            raise StoreUnavailableError(f"Redis SET failed: {exc}") from exc
        return bool(written)

    def find_user(self, email: str) -> Optional[UserRecord]:
        key = self._key(email)
        raw = self._get(key)
        if raw is None:
            return None
        return self._decode(key, raw)[1]

    def add_user(self, email: str, workspace_name: str) -> UserRecord:
        _require_email(email)
        key = self._key(email)
        record = UserRecord(
            email=email,
            workspace_name=workspace_name,
            created_at=datetime.now(timezone.utc),
        )
        with self._locks.hold(key, self.timeout):
            # NX folds the existence check into the write itself.
            if not self._set(key, record.as_dict(), nx=True):
                raise DuplicateKeyError(email)
        logger.info("Added user %s", email)
        return record

    def update_user(self, email: str, workspace_name: str) -> UserRecord:
        _require_email(email)
        key = self._key(email)
        with self._locks.hold(key, self.timeout):
            raw = self._get(key)
            if raw is None:
                raise UserNotFoundError(email)
            data, record = self._decode(key, raw)
            # Update in place so keys written by other clients survive.
            data["workspaceName"] = workspace_name
            record = replace(record, workspace_name=workspace_name)
            if not self._set(key, data, xx=True):
                raise UserNotFoundError(email)
        logger.info("Updated workspace for %s", email)
        return record
