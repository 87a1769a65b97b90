from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "stock"
    POSTGRES_USER: str = "stock"
    POSTGRES_PASSWORD: str = "stock"
    # Full SQLAlchemy URL; overrides the POSTGRES_* parts (e.g. sqlite:///./stock.db)
    DATABASE_URL: Optional[str] = None

    # Consistency coordinator
    TX_MAX_ATTEMPTS: int = 3
    TX_BACKOFF_BASE_MS: int = 20
    TX_BACKOFF_MAX_MS: int = 250
    TX_TIMEOUT_SECONDS: float = 5.0
    LOCK_TIMEOUT_MS: int = 2000

    RUN_MIGRATIONS: bool = False
    LOG_LEVEL: str = "INFO"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"

    class Config:
        env_file = ".env"

    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

@lru_cache
def get_settings() -> Settings:
    return Settings()
