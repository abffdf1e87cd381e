"""Configuration and environment handling for BatteryLens."""

import os

from pydantic import BaseModel, Field

__all__ = [
    "PipelineSettings",
    "get_settings",
    "reset_settings",
    "get_extraction_url",
    "get_chart_info_url",
    "get_request_timeout",
    "is_dev_mode",
]


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


class PipelineSettings(BaseModel):
    """Pipeline tuning and resource limits.

    Covers the time-series windows (merge window, gap threshold), the
    adaptive concurrency bounds for batch extraction, and size limits
    for uploads and session exports.

    All values can be customized via environment variables.
    """

    merge_window_ms: int = Field(
        default=5 * 60 * 1000,  # 5 minutes
        gt=0,
        description="Points closer than this are collapsed into one aggregate point",
    )

    gap_threshold_ms: int = Field(
        default=2 * 60 * 60 * 1000,  # 2 hours
        gt=0,
        description="Inter-point gap above which chart views insert a break",
    )

    initial_concurrency: int = Field(
        default=5,
        ge=1,
        description="Number of extraction calls allowed in flight when a batch starts",
    )

    min_concurrency: int = Field(
        default=2,
        ge=1,
        description="Lower bound for the adaptive concurrency limit",
    )

    max_concurrency: int = Field(
        default=15,
        ge=1,
        description="Upper bound for the adaptive concurrency limit",
    )

    export_max_points: int = Field(
        default=500,
        ge=1,
        description="Maximum number of most recent points per battery in a session export",
    )

    max_upload_size: int = Field(
        default=20 * 1024 * 1024,  # 20MB
        description="Maximum size of a single uploaded image in bytes",
    )

    max_zip_size: int = Field(
        default=200 * 1024 * 1024,  # 200MB
        description="Maximum size of an uploaded ZIP archive in bytes",
    )

    max_zip_entries: int = Field(
        default=500,
        description="Maximum number of images expanded from one ZIP archive",
    )

    duplicate_policy: str = Field(
        default="ask",
        pattern="^(ask|skip)$",
        description="How duplicate filenames are handled: 'ask' holds them for a decision, 'skip' drops them",
    )

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Create PipelineSettings from environment variables.

        Environment variables:
        - BATTERYLENS_MERGE_WINDOW_MS: Merge window in ms (default: 5 minutes)
        - BATTERYLENS_GAP_THRESHOLD_MS: Gap threshold in ms (default: 2 hours)
        - BATTERYLENS_INITIAL_CONCURRENCY: Starting concurrency (default: 5)
        - BATTERYLENS_MIN_CONCURRENCY: Concurrency floor (default: 2)
        - BATTERYLENS_MAX_CONCURRENCY: Concurrency ceiling (default: 15)
        - BATTERYLENS_EXPORT_MAX_POINTS: Points kept per battery on export (default: 500)
        - BATTERYLENS_MAX_UPLOAD_SIZE: Maximum image size in bytes (default: 20MB)
        - BATTERYLENS_MAX_ZIP_SIZE: Maximum archive size in bytes (default: 200MB)
        - BATTERYLENS_MAX_ZIP_ENTRIES: Maximum images per archive (default: 500)
        - BATTERYLENS_DUPLICATE_POLICY: "ask" or "skip" (default: ask)
        """
        fields = cls.model_fields
        return cls(
            merge_window_ms=_env_int("BATTERYLENS_MERGE_WINDOW_MS", fields["merge_window_ms"].default),
            gap_threshold_ms=_env_int("BATTERYLENS_GAP_THRESHOLD_MS", fields["gap_threshold_ms"].default),
            initial_concurrency=_env_int("BATTERYLENS_INITIAL_CONCURRENCY", fields["initial_concurrency"].default),
            min_concurrency=_env_int("BATTERYLENS_MIN_CONCURRENCY", fields["min_concurrency"].default),
            max_concurrency=_env_int("BATTERYLENS_MAX_CONCURRENCY", fields["max_concurrency"].default),
            export_max_points=_env_int("BATTERYLENS_EXPORT_MAX_POINTS", fields["export_max_points"].default),
            max_upload_size=_env_int("BATTERYLENS_MAX_UPLOAD_SIZE", fields["max_upload_size"].default),
            max_zip_size=_env_int("BATTERYLENS_MAX_ZIP_SIZE", fields["max_zip_size"].default),
            max_zip_entries=_env_int("BATTERYLENS_MAX_ZIP_ENTRIES", fields["max_zip_entries"].default),
            duplicate_policy=os.environ.get("BATTERYLENS_DUPLICATE_POLICY", fields["duplicate_policy"].default).lower(),
        )


# Global settings instance
_settings: PipelineSettings | None = None


def get_settings() -> PipelineSettings:
    """Get pipeline settings.

    Returns cached instance if already initialized.
    """
    global _settings
    if _settings is None:
        _settings = PipelineSettings.from_env()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None


def get_extraction_url() -> str | None:
    """Get the extraction service endpoint.

    Returns:
        URL from BATTERYLENS_EXTRACTION_URL, or None when extraction is not configured.
    """
    return os.environ.get("BATTERYLENS_EXTRACTION_URL") or None


def get_chart_info_url() -> str | None:
    """Get the chart-info service endpoint.

    Returns:
        URL from BATTERYLENS_CHART_INFO_URL, or None when chart info is disabled.
    """
    return os.environ.get("BATTERYLENS_CHART_INFO_URL") or None


def get_request_timeout() -> float:
    """Get the HTTP timeout for external collaborators in seconds.

    Returns:
        Value of BATTERYLENS_REQUEST_TIMEOUT, defaulting to 120 seconds.
    """
    return float(os.environ.get("BATTERYLENS_REQUEST_TIMEOUT", "120"))


def is_dev_mode() -> bool:
    """Check if running in development mode.

    Returns:
        True if BATTERYLENS_DEV_MODE is set to "1", False otherwise.
    """
    return os.environ.get("BATTERYLENS_DEV_MODE") == "1"
