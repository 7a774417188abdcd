"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Backend, bot and scheduler configuration from environment variables."""

    # Bot
    bot_token: str = Field(..., alias="BOT_TOKEN")
    webapp_url: str = Field(default="http://localhost:5173", alias="WEBAPP_URL")
    bot_username: str = Field(default="", alias="BOT_USERNAME")

    # Database
    db_host: str = Field(default="db", alias="DB_HOST")
    db_port: int = Field(default=5432, alias="DB_PORT")
    db_name: str = Field(default="trailer_rental", alias="DB_NAME")
    db_user: str = Field(default="postgres", alias="DB_USER")
    db_password: str = Field(..., alias="DB_PASSWORD")
    db_pool_size: int = Field(default=20, alias="DB_POOL_SIZE")

    # HTTP API
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8080, alias="API_PORT")
    backend_url: str = Field(default="http://localhost:8080", alias="BACKEND_URL")

    # Sessions
    jwt_secret: str = Field(..., alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_expire_days: int = Field(default=7, alias="JWT_EXPIRE_DAYS")
    init_data_max_age_seconds: int = Field(default=86400, alias="INIT_DATA_MAX_AGE_SECONDS")

    # Payment gateway (Tinkoff acquiring)
    tinkoff_terminal_key: str = Field(default="", alias="TINKOFF_TERMINAL_KEY")
    tinkoff_secret_key: str = Field(default="", alias="TINKOFF_SECRET_KEY")
    tinkoff_sandbox: bool = Field(default=False, alias="TINKOFF_SANDBOX")
    tinkoff_force_mock: bool = Field(default=False, alias="TINKOFF_FORCE_MOCK")
    require_verification_for_payment: bool = Field(
        default=False, alias="REQUIRE_VERIFICATION_FOR_PAYMENT"
    )

    # Timezone
    timezone: str = Field(default="Europe/Moscow", alias="TIMEZONE")

    # Default admin (for initial setup)
    default_admin_id: int | None = Field(default=None, alias="DEFAULT_ADMIN_ID")

    # Timing settings
    unpaid_booking_timeout_minutes: int = Field(default=30, alias="UNPAID_BOOKING_TIMEOUT_MINUTES")
    return_reminder_minutes: int = Field(default=60, alias="RETURN_REMINDER_MINUTES")

    # Booking limits
    max_rental_days: int = Field(default=30, alias="MAX_RENTAL_DAYS")
    max_future_booking_days: int = Field(default=30, alias="MAX_FUTURE_BOOKING_DAYS")

    @property
    def database_url(self) -> str:
        """Build async PostgreSQL connection string."""
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def tinkoff_enabled(self) -> bool:
        """Whether real gateway calls are made (otherwise mock mode)."""
        return bool(self.tinkoff_terminal_key and self.tinkoff_secret_key) and not self.tinkoff_force_mock

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Singleton instance
settings = Settings()
