"""
Configuration management for the Image Tagger service.
"""

import tomllib
from pathlib import Path
from typing import List, Optional, Union
from pydantic import BaseModel, Field, ValidationError, validator
from pydantic_settings import BaseSettings


class ConfigError(Exception):
    """Raised when the settings file cannot be loaded or is invalid."""
    pass


class ServerSettings(BaseModel):
    """HTTP server settings (the ``[server]`` table of the config file)."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)
    threads: int = Field(default=4, ge=1, description="Worker threads for tag store access")

    @validator("host")
    def resolve_localhost(cls, v):
        """Bind to the IPv4 loopback address for 'localhost'."""
        v = v.strip()
        if not v:
            raise ValueError("server.host must not be empty")
        return "127.0.0.1" if v == "localhost" else v


class Settings(BaseSettings):
    """Application settings with validation."""

    # Storage Configuration
    img_dir: Path
    tag_dir: Path
    tag_table: str = Field(default="tags", description="Table name for SQLite tag storage")
    skip_missing: bool = Field(default=False)

    # Tag Universe
    tags: List[str]
    multilabel: bool = Field(default=True)

    # Logging Configuration
    log_level: str = Field(default="INFO")

    # HTTP server
    server: ServerSettings = Field(default_factory=ServerSettings)

    @validator("tags")
    def validate_tags(cls, v):
        """Ensure the tag universe can be stored by every backend."""
        if not v:
            raise ValueError("at least one tag must be configured")
        seen = set()
        for tag in v:
            if not tag or tag != tag.strip():
                raise ValueError(f"tag names must be non-empty and unpadded: {tag!r}")
            if "\n" in tag or "," in tag:
                raise ValueError(f"tag names must not contain newlines or commas: {tag!r}")
            if tag in seen:
                raise ValueError(f"duplicate tag: {tag!r}")
            seen.add(tag)
        return v

    @validator("tag_table")
    def validate_tag_table(cls, v):
        """Ensure the table name is a plain SQL identifier."""
        if not v.isidentifier():
            raise ValueError(f"tag_table must be a plain identifier, got {v!r}")
        return v

    @validator("log_level")
    def validate_log_level(cls, v):
        """Ensure the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    def server_url(self) -> str:
        """Get the base URL the server listens on."""
        return f"http://{self.server.host}:{self.server.port}"

    class Config:
        env_prefix = "IMAGE_TAGGER_"
        env_nested_delimiter = "__"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


def load_settings(config_path: Optional[Union[str, Path]] = None, **overrides) -> Settings:
    """Load settings from a TOML file, with environment variables as fallback.

    Values from the file (and ``overrides``) take precedence over the
    environment.

    Raises:
        ConfigError: if the file cannot be read or the values do not validate
    """
    data = {}
    if config_path is not None:
        path = Path(config_path)
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}")
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}")

    data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")
