from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()


class Settings(BaseSettings):
    """Application configuration from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    # App
    app_name: str = "Booking Notifier"
    # "production" switches pool sizing, rate limits, TLS checks and error redaction
    environment: str = Field(default="development", alias="ENVIRONMENT")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3001, alias="PORT")
    allowed_origins: str = Field(
        default="https://hashimconsultancy.org", alias="ALLOWED_ORIGINS"
    )

    # Mail relay
    email_user: str = Field(default="", alias="EMAIL_USER")
    email_password: str = Field(default="", alias="EMAIL_PASSWORD")
    smtp_host: str = Field(default="smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(default=465, alias="SMTP_PORT")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")
    sender_name: str = Field(default="Booking System", alias="SENDER_NAME")
    notification_recipient: str = Field(
        default="booking@hashimconsultancy.org", alias="NOTIFICATION_RECIPIENT"
    )
    email_send_timeout: float = Field(default=30.0, alias="EMAIL_SEND_TIMEOUT")
    relay_verify_retry_seconds: float = Field(default=5.0, alias="RELAY_VERIFY_RETRY_SECONDS")
    relay_verify_interval_seconds: float = Field(
        default=300.0, alias="RELAY_VERIFY_INTERVAL_SECONDS"
    )

    # Database
    db_host: str = Field(default="localhost", alias="DB_HOST")
    db_user: str = Field(default="root", alias="DB_USER")
    db_password: str = Field(default="", alias="DB_PASSWORD")
    db_name: str = Field(default="bookings", alias="DB_NAME")
    db_port: int = Field(default=3306, alias="DB_PORT")
    database_url_override: Optional[str] = Field(default=None, alias="DATABASE_URL")

    # Request limits
    max_attachment_bytes: int = Field(default=5 * 1024 * 1024, alias="MAX_ATTACHMENT_BYTES")
    max_body_bytes: int = Field(default=10 * 1024 * 1024, alias="MAX_BODY_BYTES")
    rate_limit_window_seconds: int = Field(default=15 * 60, alias="RATE_LIMIT_WINDOW_SECONDS")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def relay_max_connections(self) -> int:
        return 5 if self.is_production else 1

    @property
    def relay_max_messages(self) -> Optional[int]:
        """Messages per pooled connection before recycling; None means unlimited"""
        return 100 if self.is_production else None

    @property
    def rate_limit_max_requests(self) -> int:
        return 100 if self.is_production else 1000

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+aiomysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


settings = Settings()
