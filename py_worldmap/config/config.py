from pathlib import Path
from typing import Optional

from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings

import os

# Explicitly load .env for local/dev environments only if values are missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    missing_keys = {k: v for k, v in file_env.items() if k not in os.environ and v is not None}
    for k, v in missing_keys.items():
        os.environ[k] = v


class Settings(BaseSettings):
    """Application settings pulled from environment variables."""

    # Database Configuration
    db_host: str = Field(default="localhost", description="Database host")
    db_port: int = Field(default=5432, description="Database port")
    db_name: str = Field(default="py_worldmap", description="Database name")
    db_user: str = Field(default="postgres", description="Database user")
    db_password: str = Field(default="password", description="Database password")
    db_url: Optional[str] = Field(default=None, description="Full database URL, overrides db_* parts")

    @property
    def database_url(self) -> str:
        """Construct full database URL."""
        if self.db_url:
            return self.db_url
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Enable debug mode")
    allowed_origins: str = Field(default="http://localhost:3000", description="CORS allowed origins")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (plain or json)")

    # Map Generation Configuration
    max_map_width: int = Field(default=20000, description="Max allowed map width")
    max_map_height: int = Field(default=20000, description="Max allowed map height")

    # Tile Delivery Configuration
    tile_cache_max_age: int = Field(default=31536000, description="Cache-Control max-age for tiles")
    tile_requests_per_second: float = Field(default=20, description="Client tile request rate")
    viewport_debounce_ms: float = Field(default=50, description="Client viewport debounce window")
    tile_queue_max_size: int = Field(default=512, description="Client tile queue backlog cap")
    settlement_invalidation_radius: float = Field(
        default=500, description="World radius busted around a new settlement"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Instantiate singleton settings object
settings = Settings()
