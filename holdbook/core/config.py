import os
from typing import Optional, List, FrozenSet
from functools import lru_cache


def _split(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


class Settings:
    """Application settings read from the environment.

    Any attribute can be overridden by keyword when the instance is built,
    which is how tests pin TTLs, retry counts and backends.
    """

    # Database (empty DSN keeps everything in process memory)
    DB_DSN: str = os.getenv("DB_DSN", "")
    DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "5"))
    DB_ECHO: bool = os.getenv("DB_ECHO", "false").lower() == "true"

    # Redis (empty DSN falls back to in-process key locks)
    REDIS_DSN: str = os.getenv("REDIS_DSN", "")

    # Partner authentication
    API_KEYS: List[str] = _split(os.getenv("API_KEYS", ""))

    # Reservation holds
    RESERVATION_TTL_MINUTES: int = int(os.getenv("RESERVATION_TTL_MINUTES", "60"))
    RESERVATION_MAX_HOLD_MINUTES: int = int(os.getenv("RESERVATION_MAX_HOLD_MINUTES", "180"))
    RESERVATION_EXTEND_MINUTES: int = int(os.getenv("RESERVATION_EXTEND_MINUTES", "30"))
    SWEEP_INTERVAL_SECONDS: float = float(os.getenv("SWEEP_INTERVAL_SECONDS", "300"))
    SWEEP_BATCH_SIZE: int = int(os.getenv("SWEEP_BATCH_SIZE", "500"))

    # Critical sections
    LOCK_TIMEOUT_SECONDS: float = float(os.getenv("LOCK_TIMEOUT_SECONDS", "2.0"))
    LOCK_RETRIES: int = int(os.getenv("LOCK_RETRIES", "3"))
    LOCK_TTL_SECONDS: int = int(os.getenv("LOCK_TTL_SECONDS", "30"))
    LOCK_RETRY_DELAY_SECONDS: float = float(os.getenv("LOCK_RETRY_DELAY_SECONDS", "0.05"))
    STORE_RETRIES: int = int(os.getenv("STORE_RETRIES", "2"))
    TICKET_CODE_ATTEMPTS: int = int(os.getenv("TICKET_CODE_ATTEMPTS", "3"))

    # Availability
    MAX_VACANCIES: int = int(os.getenv("MAX_VACANCIES", "5000"))
    DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "AED")
    ZERO_DECIMAL_CURRENCIES: FrozenSet[str] = frozenset(
        _split(os.getenv("ZERO_DECIMAL_CURRENCIES", "JPY,CLP,KRW,VND"))
    )
    DEFAULT_SAME_DAY_CUTOFF_MINUTES: int = int(os.getenv("DEFAULT_SAME_DAY_CUTOFF_MINUTES", "30"))
    DEFAULT_ADVANCE_CUTOFF_HOURS: int = int(os.getenv("DEFAULT_ADVANCE_CUTOFF_HOURS", "1"))

    # Product catalog (JSON document consumed read-only)
    PRODUCTS_FILE: Optional[str] = os.getenv("PRODUCTS_FILE") or None

    # Post-commit webhooks
    WEBHOOK_URLS: List[str] = _split(os.getenv("WEBHOOK_URLS", ""))
    WEBHOOK_TIMEOUT_SECONDS: float = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "2.0"))

    # Rate Limiting
    RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "100/minute")
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def __init__(self, **overrides):
        for name, value in overrides.items():
            if not hasattr(type(self), name):
                raise AttributeError(f"Unknown setting {name}")
            setattr(self, name, value)
        self._validate()

    def _validate(self):
        """Validate settings that would otherwise fail late"""
        if self.RESERVATION_TTL_MINUTES <= 0:
            raise ValueError("RESERVATION_TTL_MINUTES must be positive")
        if self.RESERVATION_MAX_HOLD_MINUTES < self.RESERVATION_TTL_MINUTES:
            raise ValueError("RESERVATION_MAX_HOLD_MINUTES must not be shorter than the TTL")
        if self.LOCK_RETRIES < 1:
            raise ValueError("LOCK_RETRIES must be at least 1")
        if self.TICKET_CODE_ATTEMPTS < 1:
            raise ValueError("TICKET_CODE_ATTEMPTS must be at least 1")

    @property
    def use_database(self) -> bool:
        return bool(self.DB_DSN)

    @property
    def use_redis(self) -> bool:
        return bool(self.REDIS_DSN)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
