"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    Actuator timing and the channel map live in
    ``src/actuator/actuator_config.yaml``; this class only holds
    deployment-specific values.
    """

    # --- App ---
    app_name: str = "NeuroLink"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Caregiving data store ---
    # Unset = in-memory schedule store (local development only)
    database_url: str | None = None
    database_pool_size: int = 5
    database_command_timeout_seconds: float = 30.0
    medication_table: str = "medication_entries"

    # --- Actuator device ---
    actuator_enabled: bool = True
    device_host: str = "192.168.4.1"
    device_port: int = 81
    device_path: str = "/"
    device_open_timeout_seconds: float = 10.0

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def device_url(self) -> str:
        path = self.device_path if self.device_path.startswith("/") else f"/{self.device_path}"
        return f"ws://{self.device_host}:{self.device_port}{path}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
