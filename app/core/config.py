from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Quest Room Booking API"
    # Comma-separated origins for CORS (e.g. https://quest.example,https://admin.quest.example). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"
    # seconds; enqueueing gives up on an unreachable broker after this
    BROKER_CONNECT_TIMEOUT: float = 3.0

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "bookings@quest.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""

    # Booking notifications go through the celery worker; disable for tests / one-off scripts
    NOTIFICATIONS_ENABLED: bool = True
    NOTIFICATION_EMAIL: str = ""

    # Fallbacks for the business settings stored in the `settings` table (see settings_service)
    TIME_ZONE: str = "Asia/Krasnoyarsk"
    BOOKING_CUTOFF_MINUTES: int = 10
    BLOCK_BLACKLISTED_SITE_BOOKINGS: bool = False
    BLOCK_BLACKLISTED_API_BOOKINGS: bool = False

    # Reservation aggregator (mir-kvestov protocol)
    AGGREGATOR_NAME: str = "mir-kvestov"
    AGGREGATOR_MD5_KEY: str = ""         # empty disables order signature checks
    AGGREGATOR_PREPAY_MD5_KEY: str = ""  # empty disables prepayment signature checks
    AGGREGATOR_SLOT_ID_FORMAT: str = "numeric"  # numeric|uuid


settings = Settings()
