from typing import Optional
from urllib.parse import quote_plus
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "Smart Notes"
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # Timezone / locale used for user-facing dates when the user has none
    DEFAULT_TIMEZONE: str = "Europe/Paris"
    DEFAULT_LOCALE: str = "fr"

    # Deep links in reminder emails
    APP_BASE_URL: Optional[str] = None

    # SMTP
    SMTP_SERVER: Optional[str] = None
    SMTP_PORT: Optional[int] = None
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    FROM_EMAIL: Optional[str] = None

    @field_validator("DEFAULT_LOCALE", mode="before")
    @classmethod
    def normalize_locale(cls, v: Optional[str]) -> str:
        if not v or not str(v).strip():
            return "fr"
        return str(v).strip().lower()

    @model_validator(mode="after")
    def _derive_database_uri(self) -> "Settings":
        if not self.SQLALCHEMY_DATABASE_URI:
            if self.POSTGRES_USER and self.POSTGRES_SERVER and self.POSTGRES_DB:
                safe_user = quote_plus(self.POSTGRES_USER)
                if self.POSTGRES_PASSWORD:
                    credentials = f"{safe_user}:{quote_plus(self.POSTGRES_PASSWORD)}"
                else:
                    credentials = safe_user
                self.SQLALCHEMY_DATABASE_URI = (
                    f"postgresql://{credentials}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
                )
            else:
                self.SQLALCHEMY_DATABASE_URI = "sqlite:///./smartnotes.db"
        return self


settings = Settings()
