"""
Central configuration module for the Creator Commerce platform backend
Reads and validates environment variables with strict checks for production
"""
import os
import sys
from typing import List

# Load environment variables from .env file if it exists (dev only)
from dotenv import load_dotenv

if os.getenv("ENV", "dev").lower() == "dev":
    load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    """Central configuration class with environment variable validation"""

    VALID_ENVS = ("dev", "test", "staging", "prod")

    def __init__(self):
        """Initialize configuration and validate required variables"""
        self.ENV: str = os.getenv("ENV", "dev").lower()

        # Required for all environments
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "")
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL",
            "sqlite:///./creator_commerce.db" if self.ENV in ("dev", "test") else "",
        )

        self.PORT: int = int(os.getenv("PORT", "8000"))
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Database pool (PostgreSQL only)
        self.DB_POOL_SIZE: int = int(os.getenv("DB_POOL_SIZE", "10"))
        self.DB_MAX_OVERFLOW: int = int(os.getenv("DB_MAX_OVERFLOW", "5"))
        self.DB_POOL_RECYCLE: int = int(os.getenv("DB_POOL_RECYCLE", "900"))
        self.DB_POOL_TIMEOUT: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
        self.DB_STATEMENT_TIMEOUT: int = int(os.getenv("DB_STATEMENT_TIMEOUT", "10000"))  # ms

        # Auth
        self.ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "120"))

        # Background jobs
        self.ENABLE_SCHEDULER: bool = _env_bool("ENABLE_SCHEDULER", "false" if self.ENV == "test" else "true")
        self.JOB_MAX_RETRIES: int = int(os.getenv("JOB_MAX_RETRIES", "3"))
        self.JOB_RETRY_BASE_DELAY: float = float(os.getenv("JOB_RETRY_BASE_DELAY", "1.0"))
        self.FAMILIARITY_DECAY_HOUR: int = int(os.getenv("FAMILIARITY_DECAY_HOUR", "3"))

        # Build version (set during build/deploy)
        self.BUILD_VERSION: str = os.getenv("BUILD_VERSION", "dev")
        self.BUILD_COMMIT: str = os.getenv("BUILD_COMMIT", "unknown")

        self.CORS_ORIGINS: List[str] = []
        self._load_cors_origins()
        self.errors: List[str] = self._validate()

    def _load_cors_origins(self):
        """Load CORS origins from environment variable"""
        default_origins = [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

        cors_env = os.getenv("CORS_ORIGINS", "")
        if cors_env:
            env_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
            self.CORS_ORIGINS = default_origins + env_origins
        else:
            self.CORS_ORIGINS = default_origins

    def _validate(self) -> List[str]:
        """Validate required configuration based on environment"""
        errors = []

        if self.ENV not in self.VALID_ENVS:
            errors.append(f"Invalid ENV value: {self.ENV}. Must be one of {', '.join(self.VALID_ENVS)}")

        if not self.SECRET_KEY:
            errors.append("SECRET_KEY is required but not set")
        elif len(self.SECRET_KEY) < 32:
            errors.append(f"SECRET_KEY must be at least 32 characters (current: {len(self.SECRET_KEY)})")

        if not self.DATABASE_URL:
            errors.append("DATABASE_URL is required but not set")
        elif self.ENV in ("staging", "prod") and not self.DATABASE_URL.startswith("postgresql"):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL connection string in {self.ENV} "
                f"(got: {self.DATABASE_URL[:30]}...)"
            )

        if self.ENV in ("staging", "prod"):
            if not self.CORS_ORIGINS or all(not origin.startswith("https://") for origin in self.CORS_ORIGINS):
                errors.append("CORS_ORIGINS must include HTTPS origins in staging/production")

        # Fail fast in staging/prod
        if errors and self.ENV in ("staging", "prod"):
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION VALIDATION FAILED", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  ❌ {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            sys.exit(1)

        if errors and self.ENV == "dev":
            print("=" * 60, file=sys.stderr)
            print("CONFIGURATION WARNINGS (dev mode - continuing)", file=sys.stderr)
            print("=" * 60, file=sys.stderr)
            for error in errors:
                print(f"  ⚠️  {error}", file=sys.stderr)
            print("=" * 60, file=sys.stderr)

        return errors

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode"""
        return self.ENV == "dev"

    @property
    def is_test(self) -> bool:
        return self.ENV == "test"

    @property
    def is_prod(self) -> bool:
        """Check if running in production mode"""
        return self.ENV == "prod"

    @property
    def is_postgres(self) -> bool:
        return self.DATABASE_URL.startswith("postgresql")


# Create global config instance
config = Config()
