from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    # Environment configuration
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Supabase configuration (hosted project, used by the setup wizard)
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_anon_key: str = os.getenv("SUPABASE_ANON_KEY", "")
    supabase_service_role_key: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

    # Database configuration (for SQLAlchemy - connects to Supabase PostgreSQL)
    database_url: Optional[str] = os.getenv("DATABASE_URL", "")
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # Frontend URL (for CORS)
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # JWT configuration (Supabase JWT secret; empty means claims are read unverified)
    jwt_secret_key: str = os.getenv("JWT_SECRET_KEY", "")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")

    # Creem payment provider configuration
    creem_api_key: str = os.getenv("CREEM_API_KEY", "")
    creem_test_mode: bool = os.getenv("CREEM_TEST_MODE", "false").lower() == "true"
    creem_base_url: str = os.getenv("CREEM_BASE_URL", "")
    creem_webhook_secret: str = os.getenv("CREEM_WEBHOOK_SECRET", "")
    creem_api_timeout: float = float(os.getenv("CREEM_API_TIMEOUT", "10"))

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
