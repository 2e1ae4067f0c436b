# src/store/backends.py
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import redis

from src.core.config import Settings
from src.core.exceptions import BackendUnavailable, ConfigurationError

logger = logging.getLogger(__name__)


class MemoryBackend:
    """
    Хранилище в памяти процесса. Данные живут до перезапуска, поэтому это
    режим для локальной разработки. Значения храним строками JSON, как в Redis,
    чтобы наружу никогда не отдавать ссылки на внутренние объекты.
    """

    name = "memory"

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._guard = threading.Lock()
        self._locks: Dict[str, List[Any]] = {}

    def ping(self) -> None:
        return None

    def get(self, key: str) -> Optional[str]:
        with self._guard:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._guard:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._guard:
            self._data.pop(key, None)

    def exists(self, key: str) -> bool:
        with self._guard:
            return key in self._data

    @contextmanager
    def lock(self, name: str) -> Iterator[None]:
        # Запись [lock, число владельцев и ожидающих] живёт, пока счётчик > 0
        with self._guard:
            entry = self._locks.setdefault(name, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[name]


class RedisBackend:
    """Redis через redis-py. Любая ошибка ввода-вывода -> BackendUnavailable."""

    name = "redis"

    def __init__(self, client: redis.Redis, lock_timeout: float = 15.0):
        self._client = client
        self._lock_timeout = lock_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisBackend":
        try:
            client = redis.Redis.from_url(
                settings.REDIS_URL,
                password=settings.REDIS_TOKEN,
                socket_timeout=settings.REDIS_TIMEOUT_SECONDS,
                socket_connect_timeout=settings.REDIS_TIMEOUT_SECONDS,
                decode_responses=True,
            )
        except ValueError as e:
            raise ConfigurationError(f"REDIS_URL is not a valid Redis URL ({e}).") from e
        return cls(client, lock_timeout=settings.REFRESH_LOCK_TIMEOUT_SECONDS)

    def _fail(self, operation: str, key: str, error: Exception) -> BackendUnavailable:
        logger.error(f"Redis {operation} failed for key '{key}': {error}", exc_info=True)
        return BackendUnavailable(f"Storage backend error during {operation} ({error}).")

    def ping(self) -> None:
        try:
            self._client.ping()
        except redis.exceptions.RedisError as e:
            raise self._fail("PING", "-", e) from e

    def get(self, key: str) -> Optional[str]:
        try:
            return self._client.get(key)
        except redis.exceptions.RedisError as e:
            raise self._fail("GET", key, e) from e

    def set(self, key: str, value: str) -> None:
        try:
            self._client.set(key, value)
        except redis.exceptions.RedisError as e:
            raise self._fail("SET", key, e) from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.exceptions.RedisError as e:
            raise self._fail("DEL", key, e) from e

    def exists(self, key: str) -> bool:
        try:
            return self._client.exists(key) == 1
        except redis.exceptions.RedisError as e:
            raise self._fail("EXISTS", key, e) from e

    @contextmanager
    def lock(self, name: str) -> Iterator[None]:
        # Блокировка с таймаутом: упавший процесс не держит её вечно
        redis_lock = self._client.lock(
            name, timeout=self._lock_timeout, blocking_timeout=self._lock_timeout
        )
        try:
            acquired = redis_lock.acquire()
        except redis.exceptions.RedisError as e:
            raise self._fail("LOCK", name, e) from e
        if not acquired:
            raise BackendUnavailable("Timed out waiting for another token refresh to finish.")
        try:
            yield
        finally:
            try:
                redis_lock.release()
            except redis.exceptions.RedisError as e:
                # Истекла сама или соединение упало: ключ всё равно уйдёт по timeout
                logger.warning(f"Could not release Redis lock '{name}': {e}")
