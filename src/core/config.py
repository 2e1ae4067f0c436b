# src/core/config.py
from enum import Enum
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class StorePolicy(str, Enum):
    STRICT = "strict"          # нет Redis -> ошибка конфигурации
    PERMISSIVE = "permissive"  # нет Redis -> хранилище в памяти процесса


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Google OAuth. Обязательность проверяется в create_oauth_client,
    # чтобы приложение импортировалось и без .env
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_REDIRECT_URI: Optional[str] = None

    # Куда возвращать пользователя после OAuth
    FRONTEND_URL: Optional[str] = None

    # Redis (пара url + token). Без неё работаем в памяти, если политика позволяет
    REDIS_URL: Optional[str] = None
    REDIS_TOKEN: Optional[str] = None
    STORE_POLICY: StorePolicy = StorePolicy.PERMISSIVE

    # Таймауты
    REDIS_TIMEOUT_SECONDS: float = 5.0
    OAUTH_TIMEOUT_SECONDS: float = 10.0
    REFRESH_LOCK_TIMEOUT_SECONDS: float = 15.0

    REGION: str = "unknown"
    LOG_LEVEL: str = "INFO"

    @property
    def redis_configured(self) -> bool:
        return bool(self.REDIS_URL and self.REDIS_TOKEN)


# Единственный экземпляр настроек, который импортируем везде
settings = Settings()


def get_settings() -> Settings:
    return settings
