from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60 * 24 * 7, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # The single admin account always uses this address; it is also the SMTP login.
    admin_email: Optional[str] = Field(None, alias="ADMIN_EMAIL")
    email_password: Optional[str] = Field(None, alias="EMAIL_PASSWORD")
    smtp_host: str = Field("smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(465, alias="SMTP_PORT")
    email_sender_name: str = Field("Accounts Office", alias="EMAIL_SENDER_NAME")

    otp_expire_minutes: int = Field(10, alias="OTP_EXPIRE_MINUTES")

    cors_origins: List[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")
    debug: bool = Field(False, alias="DEBUG")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def email_configured(self) -> bool:
        return bool(self.admin_email and self.email_password)


settings = Settings()
