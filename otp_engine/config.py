from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="OTP_MIRROR_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # OTP defaults for new credentials
    DEFAULT_DIGITS: int = 6
    DEFAULT_PERIOD: int = 30

    # Sync
    PUSH_INTERVAL: float = 5.0      # primary -> secondary snapshot push
    REQUEST_INTERVAL: float = 5.0   # secondary -> primary "requestUpdate"
    HOTP_FRESHNESS_SECONDS: int = 3600

    # Storage
    DATA_DIR: str = "~/.otp-mirror"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

settings = Settings()
