"""Environment-based configuration for the narrative engine."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Narrative engine configuration.

    All settings can be overridden via environment variables with
    NARRATIVE_ prefix. For example:
        NARRATIVE_SPEED=2.0
        NARRATIVE_LOG_LEVEL=DEBUG
    """

    # Continuous-clock engine frame length (roughly one animation frame)
    frame_interval_ms: float = 16.0

    # Default per-character typing delay
    typing_interval_ms: float = 50.0

    # Real-time playback multiplier (>1 plays faster)
    speed: float = 1.0

    # Terminal rendering
    refresh_per_second: int = 10
    log_lines: int = 8

    log_level: str = "WARNING"

    model_config = {"env_prefix": "NARRATIVE_"}


settings = Settings()
