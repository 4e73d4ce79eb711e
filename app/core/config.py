from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, List, Union


class Settings(BaseSettings):
    # Database
    database_url: str

    # Redis (plan catalog cache)
    redis_url: str = "redis://localhost:6379/0"
    redis_password: Optional[str] = None
    plan_cache_enabled: bool = True
    plan_cache_ttl_minutes: int = 60

    # Firebase
    firebase_project_id: str
    firebase_credentials_path: str
    analytics_enabled: bool = True

    # API
    api_v1_str: str = "/api/v1"

    # Environment
    environment: str = "development"
    debug: bool = True

    # Answer generation
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    generation_timeout_seconds: float = 30.0

    # Quotas
    default_daily_question_limit: int = 20
    quota_timezone: str = "UTC"

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    question_rate_limit: str = "100/15minutes"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from environment variable (comma-separated) or use default list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
