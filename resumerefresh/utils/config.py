from pathlib import Path
from functools import lru_cache
from typing import Optional

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

from resumerefresh.core.errors import ConfigurationError

load_dotenv()


# Mail providers known to render AMP-for-Email documents
DEFAULT_AMP_DOMAINS = [
    "gmail.com",
    "googlemail.com",
    "yahoo.com",
    "yahoo.co.uk",
    "yahoo.ca",
    "yahoo.co.jp",
    "mail.ru",
]

# Origins AMP hosts send action-xhr requests from
DEFAULT_TRUSTED_ORIGINS = [
    "https://mail.google.com",
    "https://mail.yahoo.com",
    "https://e.mail.ru",
]


class MailConfig(BaseModel):
    pool_size: int = Field(default=5, ge=1, le=50)
    connection_timeout: float = Field(default=15.0, gt=0)
    greeting_timeout: float = Field(default=10.0, gt=0)
    socket_timeout: float = Field(default=30.0, gt=0)
    require_tls: bool = True
    verify_certificates: bool = True


class RetryConfig(BaseModel):
    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay: float = Field(default=2.0, ge=0)


class AmpConfig(BaseModel):
    supported_domains: list[str] = Field(default_factory=lambda: list(DEFAULT_AMP_DOMAINS))
    trusted_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_TRUSTED_ORIGINS))


class DatabaseConfig(BaseModel):
    path: str = "data/submissions.db"
    echo: bool = False


class RateLimitConfig(BaseModel):
    enabled: bool = True
    max_requests: int = Field(default=100, ge=1)
    window_seconds: float = Field(default=900.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = "logs/activity.log"
    max_size: int = 10
    backup_count: int = 5


class Settings(BaseSettings):
    environment: str = Field(default="development", alias="APP_ENV")
    server_url: str = Field(default="http://localhost:3000", alias="SERVER_URL")
    port: int = Field(default=3000, alias="PORT")

    smtp_host: str = Field(default="smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, ge=1, le=65535, alias="SMTP_PORT")
    smtp_secure: bool = Field(default=False, alias="SMTP_SECURE")
    smtp_user: str = Field(default="", alias="SMTP_USER")
    smtp_password: str = Field(default="", alias="SMTP_PASSWORD")
    sender_name: str = Field(default="", alias="SENDER_NAME")

    default_company: str = Field(default="Hirefy", alias="DEFAULT_COMPANY")
    email_subject: str = Field(default="Update Your Resume Information", alias="EMAIL_SUBJECT")
    bulk_delay_seconds: float = Field(default=1.0, ge=0, alias="BULK_DELAY_SECONDS")

    mail: MailConfig = Field(default_factory=MailConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    amp: AmpConfig = Field(default_factory=AmpConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True

    @model_validator(mode="after")
    def _check_production_credentials(self) -> "Settings":
        if self.is_production and not self.mail_configured:
            raise ValueError("SMTP_USER and SMTP_PASSWORD are required when APP_ENV=production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def mail_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    def require_mail_credentials(self) -> None:
        if not self.mail_configured:
            raise ConfigurationError(
                "SMTP not configured. Set SMTP_USER and SMTP_PASSWORD in .env"
            )

    @classmethod
    def load(cls, config_path: Optional[str | Path] = None) -> "Settings":
        if config_path is None:
            # Try root config, then parent dirs (up to 3 levels)
            config_path = Path("config/settings.yaml")
            current = Path.cwd()
            for _ in range(3):
                candidate = current / "config/settings.yaml"
                if candidate.exists():
                    config_path = candidate
                    break
                current = current.parent
        else:
            config_path = Path(config_path)

        yaml_config = {}
        if config_path.exists():
            with open(config_path, 'r') as f:
                yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def ensure_directories(self) -> None:
        for path in (self.database.path, self.logging.file):
            Path(path).parent.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    settings = Settings.load()
    settings.ensure_directories()
    return settings
