"""
Runtime configuration for the campus gate pass portal.

Every value comes from the environment with a local-development default.
"""
import os


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Settings:
    def __init__(self):
        # Persistence
        self.STORAGE_KEY = os.getenv("STORAGE_KEY", "rgipt_gatepasses_db")
        self.STORAGE_PATH = os.getenv("STORAGE_PATH", os.path.join("instance", "gatepasses.json"))
        self.DATABASE_URL = os.getenv("DATABASE_URL")
        self.DATABASE_NAME = os.getenv("DATABASE_NAME")

        # Place suggestions
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", "")
        self.SUGGESTION_MODEL = os.getenv("SUGGESTION_MODEL", "gemini-2.5-flash")
        self.SEARCH_DEBOUNCE_SECONDS = _float_env("SEARCH_DEBOUNCE_SECONDS", 0.8)
        self.GEOLOCATION_TIMEOUT = _float_env("GEOLOCATION_TIMEOUT", 5.0)
        self.FALLBACK_LATITUDE = _float_env("FALLBACK_LATITUDE", 26.2494)
        self.FALLBACK_LONGITUDE = _float_env("FALLBACK_LONGITUDE", 81.3913)

        # Screens
        self.SPLASH_SECONDS = _float_env("SPLASH_SECONDS", 2.5)
        self.CLOCK_INTERVAL_SECONDS = _float_env("CLOCK_INTERVAL_SECONDS", 1.0)

        # Logging / server
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FORMAT = os.getenv("LOG_FORMAT", "readable")
        self.PORT = int(os.getenv("PORT", "8000"))

    @property
    def uses_mongo(self) -> bool:
        return bool(self.DATABASE_URL and self.DATABASE_NAME)


def get_settings() -> Settings:
    return Settings()
