# backend/studysphere/config.py
import os
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration. Each field is read from the environment variable of
    the same name in upper case (or a local .env file); keyword arguments
    override both, which is how tests build isolated apps.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "development"
    data_dir: str = Field(default_factory=lambda: os.path.join(os.getcwd(), "data"))
    upload_dir: str = Field(default_factory=lambda: os.path.join(os.getcwd(), "uploads"))

    # sessions
    session_secret: str = "study-sphere-secret-key"
    session_cookie_name: str = "studysphere.sid"
    session_max_age_seconds: int = 24 * 60 * 60
    session_rotation_probability: float = 0.1

    # login rate limiting
    max_login_attempts: int = 5
    lockout_minutes: int = 15

    max_upload_bytes: int = 100 * 1024 * 1024
    seed_sample_data: bool = True
    # comma separated
    allowed_origins: str = "*"
    port: int = 5000

    @property
    def cors_origins(self) -> List[str]:
        return [x.strip() for x in self.allowed_origins.split(",") if x.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def lockout_seconds(self) -> int:
        return self.lockout_minutes * 60
