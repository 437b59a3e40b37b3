from typing import List, Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    postgres_user: str = "coursestore"
    postgres_password: str = "coursestore"
    postgres_db: str = "coursestore"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # Full URL wins over the postgres_* parts (tests use sqlite)
    DATABASE_URL: Optional[str] = None

    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_DELAY_SECONDS: float = 1.0

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # razorpay | simulated | auto
    PAYMENT_PROVIDER: str = "auto"
    PAYMENT_CURRENCY: str = "INR"
    PROVIDER_TIMEOUT_SECONDS: float = 10.0
    ORDER_EXPIRY_HOURS: int = 24

    RAZORPAY_KEY_ID: Optional[str] = None
    RAZORPAY_KEY_SECRET: Optional[str] = None
    RAZORPAY_WEBHOOK_SECRET: Optional[str] = None

    SIMULATED_WEBHOOK_SECRET: str = "whsec_simulated"

    FRONTEND_URL: str = "http://localhost:5173"
    base_url: str = "http://localhost:8000"

    BREVO_API_KEY: Optional[str] = None
    MAIL_FROM: str = "no-reply@coursestore.local"
    STORE_NAME: str = "Course Store"
    ADMIN_EMAILS: List[str] = []

    @property
    def database_url(self):
        if self.DATABASE_URL:
            return self.DATABASE_URL
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def razorpay_configured(self) -> bool:
        return bool(self.RAZORPAY_KEY_ID and self.RAZORPAY_KEY_SECRET)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"

settings = Settings()
