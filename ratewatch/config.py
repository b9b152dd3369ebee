from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    database_url: str = "sqlite+aiosqlite:///./data/rates.db"
    app_name: str = "RateWatch"
    debug: bool = False
    currency_code: str = "USD"

    # Partition dates use the producer's zone; hour buckets use the reference zone
    sampling_utc_offset_hours: int = 8
    reference_utc_offset_hours: int = 8
    business_hours_start: int = 8
    business_hours_end: int = 22

    # Retention tiers
    raw_retention_days: int = 90
    hourly_retention_days: int = 365
    retention_interval_hours: int = 24
    retention_worker_enabled: bool = True

    # Recommendation inputs
    history_days: int = 30
    min_history_samples: int = 100
    pattern_days: int = 30
    pattern_weeks: int = 4

    # Alerts (0 disables a threshold)
    alert_high_threshold: float = 0.0
    alert_low_threshold: float = 0.0
    alert_change_percent: float = 0.0
    alert_check_patterns: bool = False
    alert_pattern_std_devs: float = 2.0
    alert_cooldown_minutes: int = 30
    alert_webhook_url: str = ""
    alert_webhook_timeout: float = 5.0

    @model_validator(mode="after")
    def check_retention_horizons(self):
        if self.hourly_retention_days < self.raw_retention_days:
            raise ValueError("hourly_retention_days must be >= raw_retention_days")
        return self


settings = Settings()
