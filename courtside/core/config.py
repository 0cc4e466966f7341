from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite:///./courtside.db"

    # Tokens are issued by the platform's auth service; we only verify them.
    SECRET_KEY: str = "YOUR_SECRET_KEY_HERE"
    JWT_ALGORITHM: str = "HS256"

    POINTS_PER_WIN: int = 3
    POINTS_PER_LOSS: int = 0
    POINTS_PER_SET: int = 0

    DEFAULT_COURTS: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def court_labels(self) -> List[str]:
        return [label.strip() for label in self.DEFAULT_COURTS.split(",") if label.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
