from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field
from typing import List, Optional
import secrets


class Settings(BaseSettings):
    # ----------------------------------
    # App General Info
    # ----------------------------------
    PROJECT_NAME: str = "BSG Enterprise Ticketing System"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = Field(
        default="development",
        description="Current environment: development, testing, staging, or production"
    )
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3001, description="HTTP port used by the bsg-helpdesk runner")
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: List[str] = Field(default=["*"])

    # ----------------------------------
    # Relational Database
    # ----------------------------------
    DATABASE_URL: Optional[str] = Field(default=None, description="Full SQLAlchemy URL, overrides DB_*")
    DB_HOST: Optional[str] = Field(default=None)
    DB_PORT: int = Field(default=5432)
    DB_USER: Optional[str] = Field(default=None)
    DB_PASSWORD: Optional[str] = Field(default=None)
    DB_NAME: Optional[str] = Field(default=None)

    # ----------------------------------
    # Auth (JWT)
    # ----------------------------------
    JWT_SECRET: str = Field(
        default_factory=lambda: secrets.token_urlsafe(48),
        validation_alias=AliasChoices("JWT_SECRET", "JWT_SECRET_KEY"),
        description="JWT signing secret. Set in .env for stable sessions.",
    )
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60)

    # ----------------------------------
    # Email (SMTP)
    # ----------------------------------
    EMAIL_HOST: Optional[str] = Field(default=None, description="SMTP host; notifications are skipped when unset")
    EMAIL_PORT: int = Field(default=587, description="465 uses implicit TLS, anything else STARTTLS")
    EMAIL_USER: Optional[str] = Field(default=None)
    EMAIL_PASS: Optional[str] = Field(default=None)
    EMAIL_FROM: str = Field(default="noreply@bsg.local")
    EMAIL_FROM_NAME: str = Field(default="Ticketing System")

    # ----------------------------------
    # SLA escalation
    # ----------------------------------
    ESCALATION_EMAIL: Optional[str] = Field(default=None, description="Recipient of overdue ticket alerts")
    ESCALATION_ENABLED: bool = Field(default=True)
    ESCALATION_INTERVAL_SECONDS: int = Field(default=3600)

    # ----------------------------------
    # Admin bootstrap (optional)
    # ----------------------------------
    ADMIN_BOOTSTRAP_USERNAME: Optional[str] = Field(default=None, description="Create/update this admin user on startup")
    ADMIN_BOOTSTRAP_EMAIL: Optional[str] = Field(default=None)
    ADMIN_BOOTSTRAP_PASSWORD: Optional[str] = Field(default=None, description="Admin password used on startup bootstrap")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.DB_HOST and self.DB_NAME:
            auth = self.DB_USER or ""
            if self.DB_PASSWORD:
                auth = f"{auth}:{self.DB_PASSWORD}"
            if auth:
                auth = f"{auth}@"
            return f"postgresql+psycopg://{auth}{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        return "sqlite:///./bsg_helpdesk.db"


settings = Settings()
