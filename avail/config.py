from __future__ import annotations

from pydantic_settings import BaseSettings


class AvailSettings(BaseSettings):
    """Process-level settings loaded from environment / .env file."""

    model_config = {
        "env_prefix": "AVAIL_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Config file (YAML or JSON); empty = <config dir>/avail/config.json
    config: str = ""

    # Overrides the privilege/platform dependent runtime root
    runtime_dir: str = ""

    # Logging
    log_level: str = "INFO"
