import os

from dotenv import load_dotenv
from loguru import logger

from .models import ProgramSettings

load_dotenv()


def _getenv(key: str, default: str | None = None) -> str | None:
    val = os.getenv(key)
    return val if (val is not None and val != "") else default


def _as_int(key: str, default: int) -> int:
    value = _getenv(key)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Ignoring non-integer {}={!r}, using {}", key, value, default)
        return default
    if parsed < 0:
        logger.warning("Ignoring negative {}={!r}, using {}", key, value, default)
        return default
    return parsed


def _as_float(key: str, default: float) -> float:
    value = _getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric {}={!r}, using {}", key, value, default)
        return default


class Settings:
    STORAGE_BACKEND: str = (_getenv("STORAGE_BACKEND", "memory") or "memory").lower()
    STORAGE_PATH: str = _getenv("STORAGE_PATH", "./data")

    # Program defaults applied on first run
    REGISTRATION_FEE: int = _as_int("REGISTRATION_FEE", 500)
    REFERRAL_EARNINGS: int = _as_int("REFERRAL_EARNINGS", 300)
    BUSINESS_SHARE: int = _as_int("BUSINESS_SHARE", 200)
    MIN_WITHDRAWAL: int = _as_int("MIN_WITHDRAWAL", 100)
    STARTING_BALANCE_ON_APPROVAL: int = _as_int("STARTING_BALANCE_ON_APPROVAL", 500)

    REFERRAL_BASE_URL: str = _getenv("REFERRAL_BASE_URL", "http://localhost:8000/apply")

    POLL_INTERVAL_SECONDS: float = _as_float("POLL_INTERVAL_SECONDS", 5.0)
    POLL_MAX_ATTEMPTS: int = _as_int("POLL_MAX_ATTEMPTS", 60)

    ADMIN_USERNAME: str = _getenv("ADMIN_USERNAME", "admin")
    ADMIN_PASSWORD: str = _getenv("ADMIN_PASSWORD", "change-me-now")

    LOG_LEVEL: str = _getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str | None = _getenv("LOG_FILE")

    CORS_ORIGINS: list[str] = ["*"]

    def program_defaults(self) -> ProgramSettings:
        return ProgramSettings(
            registration_fee=self.REGISTRATION_FEE,
            referral_earnings=self.REFERRAL_EARNINGS,
            business_share=self.BUSINESS_SHARE,
            min_withdrawal=self.MIN_WITHDRAWAL,
            starting_balance_on_approval=self.STARTING_BALANCE_ON_APPROVAL,
        )


settings = Settings()
