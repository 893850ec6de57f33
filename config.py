"""
Naira Payroll — Configuration via pydantic-settings
"""
from typing import Literal

from pydantic_settings import BaseSettings
from pydantic import model_validator


class Settings(BaseSettings):
    # Persistence
    payroll_store: Literal["sql", "memory"] = "sql"
    database_url: str = "sqlite:///./payroll.db"

    # App
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @model_validator(mode="after")
    def fix_database_url(self):
        """Hosted Postgres often hands out postgres://, SQLAlchemy wants postgresql://"""
        url = self.database_url
        if url.startswith("postgres://"):
            self.database_url = url.replace("postgres://", "postgresql://", 1)
        return self


settings = Settings()
