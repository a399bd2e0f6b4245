"""Application configuration via environment variables."""

from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    port: int = 10000
    cors_origins: List[str] = ["*"]

    # Storage
    upload_dir: str = "./uploads"
    output_dir: str = "./output"
    max_upload_mb: int = 100

    # Composition engine
    ffmpeg_path: Optional[str] = None
    event_channel_size: int = 64

    # Retention
    input_cleanup_delay_seconds: int = 300  # after job completion
    retention_window_hours: int = 2
    retention_sweep_interval_seconds: int = 3600

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
