from typing import List, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application Information
    app_name: str = Field(default="CE Courses API")
    app_description: str = Field(
        default="Continuing-education course enrollments, exams and certificates"
    )
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=True)
    production: bool = Field(default=False)

    # Database Configuration
    database_url: Optional[str] = Field(default=None)
    db_host: str = Field(default="127.0.0.1")
    db_port: int = Field(default=5432)
    db_database: str = Field(default="postgres")
    db_username: str = Field(default="postgres")
    db_password: str = Field(default="postgres")
    db_echo: bool = Field(default=False)

    # Security Settings
    cors_allowed_origins: List[str] = Field(default=["http://localhost:3000"])

    # Identity provider (Supabase Auth)
    identity_provider: str = Field(default="supabase")
    supabase_url: str = Field(default="")
    supabase_service_role_key: str = Field(default="")
    identity_timeout: int = Field(default=10)
    identity_page_size: int = Field(default=100)

    # JWT Configuration (tokens are issued by the identity provider)
    jwt_secret: str = Field(default="your-supabase-jwt-secret")
    jwt_algorithm: str = Field(default="HS256")
    jwt_audience: str = Field(default="authenticated")
    jwt_issuer: Optional[str] = Field(default=None)
    jwt_dev_token_expiration: int = Field(default=60)

    # Payment
    stripe_secret_key: str = Field(default="")
    stripe_webhook_secret: str = Field(default="")

    # Rate limiting
    rate_limit_storage_uri: str = Field(default="redis://localhost:6379")
    rate_limit_default: str = Field(default="100/minute")
    webhook_rate_limit: str = Field(default="60/minute")

    # Logging
    log_level: str = Field(default="info")
    log_file: str = Field(default="logs/app.log")

    # Exams & certificates
    default_passing_score: float = Field(default=70)
    attempt_create_retries: int = Field(default=3)
    certificate_number_prefix: str = Field(default="CERT")

    # ============================
    # Generic comma-separated parser
    # ============================
    @staticmethod
    def _parse_csv(value, default):
        if isinstance(value, str):
            items = [x.strip() for x in value.split(",") if x.strip()]
            return items if items else default
        if isinstance(value, list):
            return value
        return default

    @field_validator("cors_allowed_origins", mode="before")
    def validate_cors(cls, v):
        return cls._parse_csv(v, ["http://localhost:3000"])

    @field_validator("identity_provider", mode="before")
    def validate_identity_provider(cls, v):
        value = (v or "supabase").strip().lower()
        if value not in ("supabase", "local"):
            raise ValueError("identity_provider must be 'supabase' or 'local'")
        return value

    @property
    def sqlalchemy_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return "postgresql+psycopg2://{user}:{password}@{host}:{port}/{database}".format(
            user=self.db_username,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_database,
        )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings():
    try:
        settings = Settings()
        print("✅ Settings loaded successfully!")
        return settings
    except ValidationError as e:
        print("❌ Validation Error:", e)
        raise


settings = load_settings()
