# src/store/token_store.py
import json
import logging
import threading
from contextlib import AbstractContextManager
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from src.core.config import Settings, StorePolicy
from src.core.exceptions import CorruptState, StoreNotConfigured
from .backends import MemoryBackend, RedisBackend
from .models import CredentialRecord

logger = logging.getLogger(__name__)

# Схема ключей:
#   at_user:<userId>   -> токены Google + метаданные таблицы
#   at_state:<userId>  -> снимок состояния трекера привычек
#   at_lock:<userId>   -> блокировка на время refresh
USER_KEY_PREFIX = "at_user:"
STATE_KEY_PREFIX = "at_state:"
LOCK_KEY_PREFIX = "at_lock:"

Backend = Union[MemoryBackend, RedisBackend]


class TokenStore:
    """
    Хранилище записей пользователей поверх одного бэкенда (Redis или память).

    Бэкенд выбирается лениво при первом обращении и дальше не меняется:
      - REDIS_URL + REDIS_TOKEN заданы -> Redis. Недоступен -> BackendUnavailable,
        в память НЕ откатываемся;
      - не заданы, политика permissive -> память процесса;
      - не заданы, политика strict -> StoreNotConfigured.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        backend: Optional[Backend] = None,
        redis_factory: Callable[[Settings], RedisBackend] = RedisBackend.from_settings,
    ):
        self._settings = settings
        self._backend = backend
        self._redis_factory = redis_factory
        self._init_lock = threading.Lock()

    @property
    def backend(self) -> Backend:
        if self._backend is None:
            with self._init_lock:
                if self._backend is None:
                    self._backend = self._select_backend()
        return self._backend

    def _select_backend(self) -> Backend:
        if self._settings.redis_configured:
            backend = self._redis_factory(self._settings)
            backend.ping()  # упадёт с BackendUnavailable, ничего не кэшируем
            logger.info("Token store is using Redis.")
            return backend

        if self._settings.STORE_POLICY == StorePolicy.STRICT:
            logger.error("REDIS_URL / REDIS_TOKEN are not set and STORE_POLICY is strict.")
            raise StoreNotConfigured()

        logger.warning("REDIS_URL / REDIS_TOKEN are not set. Using in-memory token store, data will not survive a restart.")
        return MemoryBackend()

    # --- Записи пользователей ---

    def get(self, user_id: str) -> Optional[CredentialRecord]:
        raw = self.backend.get(f"{USER_KEY_PREFIX}{user_id}")
        if raw is None:
            return None
        try:
            return CredentialRecord.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.error(f"Stored record for user {user_id} could not be decoded: {e}")
            raise CorruptState() from e

    def set(self, user_id: str, record: CredentialRecord) -> None:
        self.backend.set(f"{USER_KEY_PREFIX}{user_id}", json.dumps(record.to_storage()))

    def delete(self, user_id: str) -> None:
        self.backend.delete(f"{USER_KEY_PREFIX}{user_id}")

    def exists(self, user_id: str) -> bool:
        return self.backend.exists(f"{USER_KEY_PREFIX}{user_id}")

    def refresh_lock(self, user_id: str) -> AbstractContextManager:
        return self.backend.lock(f"{LOCK_KEY_PREFIX}{user_id}")

    # --- Снимки состояния приложения ---

    def get_state(self, user_id: str) -> Optional[Dict[str, Any]]:
        raw = self.backend.get(f"{STATE_KEY_PREFIX}{user_id}")
        if raw is None:
            return None
        try:
            state = json.loads(raw)
        except ValueError as e:
            logger.error(f"Stored state for user {user_id} could not be decoded: {e}")
            raise CorruptState("Stored app state is corrupted.", hint="Save your habits again to overwrite it.") from e
        if not isinstance(state, dict):
            logger.error(f"Stored state for user {user_id} is a {type(state).__name__}, expected an object.")
            raise CorruptState("Stored app state is corrupted.", hint="Save your habits again to overwrite it.")
        return state

    def set_state(self, user_id: str, state: Dict[str, Any]) -> None:
        self.backend.set(f"{STATE_KEY_PREFIX}{user_id}", json.dumps(state, ensure_ascii=False))
