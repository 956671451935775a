from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_JWT_SECRET = "change-me-to-a-long-random-secret-value"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field("development", description="development or production")
    log_level: str = Field("INFO")
    api_title: str = Field("Todo API")
    api_prefix: str = Field("/api")
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://frontend:3000"]
    )
    host: str = Field("0.0.0.0")
    port: int = Field(8000)

    storage_backend: str = Field("sql", description="sql or graphql")
    database_url: str = Field("sqlite:///todo.db")
    graphql_endpoint: str = Field("http://localhost:8080/v1/graphql")
    graphql_admin_secret: str = Field("")
    graphql_timeout: float = Field(10.0)

    jwt_secret: str = Field(DEFAULT_JWT_SECRET)
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(60 * 24)
    bcrypt_rounds: int = Field(12)

    rate_limit_enabled: bool = Field(True)
    auth_rate_limit: str = Field("5/minute")

    first_admin_email: str | None = Field(None)
    first_admin_password: str | None = Field(None)


settings = Settings()


def validate_runtime_config() -> None:
    if settings.app_env.lower() == "production" and settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError("JWT_SECRET must be set in production.")
