from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Required Secrets (No defaults, will fail fast if missing)
    DATABASE_URL: str

    AUTO_CREATE_TABLES: bool = False
    LOG_LEVEL: str = "INFO"
    # Calendar days (daily limit, streaks) are evaluated in this timezone
    TIMEZONE: str = "UTC"

    # --- Abuse prevention ---
    MAX_REPORTS_PER_DAY: int = 10
    COOLDOWN_MINUTES: int = 5
    DUPLICATE_RADIUS_METERS: float = 50.0
    DUPLICATE_WINDOW_HOURS: int = 24
    MAX_DESCRIPTION_LENGTH: int = 50

    # --- Worker verification ---
    MAX_WORKER_DISTANCE_METERS: float = 50.0
    MIN_MINUTES_BETWEEN_PHOTOS: int = 2
    MAX_MINUTES_BETWEEN_PHOTOS: int = 240

    # --- Reward System Configuration ---
    POINTS_REPORT_VERIFIED: int = 10
    POINTS_HIGH_SEVERITY_BONUS: int = 5
    POINTS_FIRST_IN_AREA: int = 20
    POINTS_PER_STREAK_DAY: int = 5
    PIONEER_RADIUS_METERS: float = 500.0

    LEADERBOARD_CACHE_TTL_SECONDS: int = 300

    # Pydantic v2 config to read from .env file
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

# Instantiate as a singleton to be imported across the app
settings = Settings()

# Fail Fast validation for the required variables
if not settings.DATABASE_URL:
    raise RuntimeError("Missing required env var: DATABASE_URL")
