"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Relay hub settings with defaults for development."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    # PORT is the only override most deployments set
    port: int = 8080
    host: str = "0.0.0.0"

    # Environment
    environment: str = "development"
    debug: bool = False

    # Log sink
    log_dir: str = "logs"
    log_file_name: str = "ar_server.log"

    # Liveness
    heartbeat_timeout: float = 60.0  # Seconds of silence before a session is stale
    reaper_interval: float = 30.0  # Seconds between reaper sweeps
    status_report_interval: float = 60.0  # Seconds between status log reports

    # Delivery
    send_timeout: float = 5.0  # Per-peer send timeout during fan-out
    shutdown_grace: float = 1.0  # Flush delay after the shutdown notice

    # Frame logging is throttled, frames arrive many times per second
    frame_log_interval: float = 3.0
    idle_frame_log_interval: float = 5.0

    # Feature switches
    audio_relay_enabled: bool = True  # WebRTC signaling and audio call relays
    verbose_relay_logging: bool = True  # Per-peer relay lines at INFO instead of DEBUG
    strict_roles: bool = False  # Warn when a client declares a role other than User/Aid

    def validate_settings(self) -> list[str]:
        """
        Validate timer and port values.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if not 0 < self.port < 65536:
            errors.append(f"PORT must be between 1 and 65535, got {self.port}")

        for name in (
            "heartbeat_timeout",
            "reaper_interval",
            "status_report_interval",
            "send_timeout",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name.upper()} must be positive")

        if self.shutdown_grace < 0:
            errors.append("SHUTDOWN_GRACE must not be negative")

        # A sweep period at or above the timeout lets stale sessions live twice as long
        if self.reaper_interval >= self.heartbeat_timeout:
            errors.append("REAPER_INTERVAL must be shorter than HEARTBEAT_TIMEOUT")

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience exports
settings = get_settings()
