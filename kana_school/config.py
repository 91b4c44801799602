"""Configuration settings"""
import os


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def default_database_url() -> str:
    if os.environ.get("DATABASE_URL"):
        return os.environ["DATABASE_URL"]
    return f"sqlite:///{os.environ.get('KANA_SCHOOL_DB', 'kana_school.db')}"


class Config:
    """Base configuration, read from the environment when the app is created."""

    def __init__(self) -> None:
        self.SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")
        self.DATABASE_URL = default_database_url()
        self.DISCORD_WEBHOOK_URL = os.environ.get("DISCORD_WEBHOOK_URL")
        self.PRODUCTION = _env_flag("PRODUCTION")
        self.DEBUG = _env_flag("DEBUG")
        # Cookie contents are trusted as-is when the store cannot be queried
        self.TRUST_COOKIE_ON_STORE_UNAVAILABLE = _env_flag("TRUST_COOKIE_ON_STORE_UNAVAILABLE", "1")
        self.AUTH_COOKIE_NAME = "auth"
        self.AUTH_COOKIE_MAX_AGE = 60 * 60 * 24 * 30  # 30 days
        self.SEED_KANAS_ON_STARTUP = _env_flag("SEED_KANAS_ON_STARTUP", "1")

    def as_dict(self) -> dict:
        return {key: value for key, value in vars(self).items() if key.isupper()}
