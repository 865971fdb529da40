"""Configuration management for promptwild.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PROMPTWILD_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PROMPTWILD_* prefix)
2. .env file in the project root
3. Default values defined in PromptwildConfig

Example .env file:
    PROMPTWILD_DATA_DIR=data
    PROMPTWILD_MAX_EXPANSION_DEPTH=16
    PROMPTWILD_CONTENT_CACHE_SIZE=50
    PROMPTWILD_SERVER_PORT=7861

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from promptwild.core.config import config

    print(config.fragments_db)
    print(config.max_expansion_depth)

Expansion Limits
----------------
Fragment lines may themselves contain ``<...>`` references. A fragment that
references itself (directly or through another fragment) would otherwise
expand forever, so nesting is capped at ``max_expansion_depth``. References
past the cap are left as literal text.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PromptwildConfig(BaseSettings):
    """Main configuration for promptwild.

    Values are loaded from environment variables with the PROMPTWILD_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Storage:
        data_dir : Path
            Directory holding application data
        fragments_db : Path
            SQLite database holding fragment metadata, content and counters
        content_cache_size : int
            Number of fragment contents kept in memory (0 disables the cache)

    Expansion:
        max_expansion_depth : int
            Maximum nesting depth for fragment references inside fragments

    Server:
        server_host : str
            Bind address for the API server
        server_port : int
            Port for the API server (1024-65535)

    Logging:
        log_level : Literal["DEBUG", "INFO", "WARNING", "ERROR"]
            Root log level applied by the console entry point

    Examples
    --------
    Create a custom configuration:

        >>> custom_config = PromptwildConfig(
        ...     data_dir="/tmp/promptwild",
        ...     fragments_db="/tmp/promptwild/fragments.db",
        ...     max_expansion_depth=8,
        ... )
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROMPTWILD_",
        case_sensitive=False,
    )

    # Paths
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding application data",
    )
    fragments_db: Path = Field(
        default=Path("data/fragments.db"),
        description="SQLite database for fragment files and sequential counters",
    )

    # Fragment store settings
    content_cache_size: int = Field(
        default=20,
        description="Number of fragment contents cached in memory",
        ge=0,
    )

    # Expansion settings
    max_expansion_depth: int = Field(
        default=32,
        description="Maximum nesting depth for fragment references",
        ge=1,
        le=1000,
    )

    # Server settings
    server_host: str = Field(
        default="127.0.0.1",
        description="Server bind address",
    )
    server_port: int = Field(
        default=7861,
        description="Server port",
        ge=1024,
        le=65535,
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level for the console entry point",
    )

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.fragments_db.parent.mkdir(parents=True, exist_ok=True)


# Global configuration instance
# Loads values from environment variables (PROMPTWILD_* prefix) and .env file.
config = PromptwildConfig()
