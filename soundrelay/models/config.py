"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_LINK_RESOLVER_URL = "http://localhost:3000"
TELEGRAM_MAX_FILE_BYTES = 50 * 1024 * 1024


class RelayConfig(BaseModel):
    """A validated configuration model for the relay."""

    # Credentials & access
    soundcloud_oauth_token: str = ""
    access_passwords: list[str] = Field(default_factory=list)
    password_segment_size: int = 25
    admin_user_ids: list[int] = Field(default_factory=list)

    # Download pipeline
    max_concurrent_downloads: int = 3
    max_pending_downloads: int = 25
    max_file_bytes: int = TELEGRAM_MAX_FILE_BYTES
    skip_cert_check: bool = False

    # Playlists
    playlist_chunk_size: int = 10
    playlist_max_items: int = 100

    # Link resolution
    link_resolver_base_url: str = DEFAULT_LINK_RESOLVER_URL
    link_resolver_timeout_s: float = 15.0

    # Quality analysis
    enable_quality_analysis: bool = True
    quality_analysis_debug: bool = False
    ffprobe_path: str = "ffprobe"
    bitrate_script_path: str = ""

    # Locations
    data_dir: str = Field(default="data")
    output_dir: str = Field(default="downloads")

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("max_concurrent_downloads")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Ensures a reasonable number of simultaneous downloads."""
        if v < 1 or v > 32:
            raise ValueError("max_concurrent_downloads must be between 1 and 32.")
        return v

    @field_validator(
        "max_pending_downloads", "playlist_chunk_size", "playlist_max_items",
        "password_segment_size",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be a positive integer.")
        return v

    @field_validator("link_resolver_timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("link_resolver_timeout_s must be greater than zero.")
        return v

    @field_validator("access_passwords")
    @classmethod
    def drop_blank_passwords(cls, v: list[str]) -> list[str]:
        return [p.strip() for p in v if p and p.strip()]

    @model_validator(mode="after")
    def validate_playlist_window(self) -> "RelayConfig":
        """A chunk larger than the whole playlist cap would never pause."""
        if self.playlist_chunk_size > self.playlist_max_items:
            raise ValueError(
                "playlist_chunk_size cannot exceed playlist_max_items."
            )
        return self

    @property
    def max_authorized_users(self) -> int:
        return len(self.access_passwords) * self.password_segment_size

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
