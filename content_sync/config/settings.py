"""Application settings using Pydantic BaseSettings for environment variable management."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        xai_api_key: xAI API key used by the oracle client
        xai_model: Chat model used for verification
        xai_base_url: Chat completions endpoint
        oracle_timeout: Per-request timeout in seconds
        oracle_max_attempts: Attempts per entity before giving up
        oracle_backoff_base: First retry delay in seconds (doubles per retry)
        max_rpm: Maximum oracle requests per minute
        min_confidence: Confidence threshold for a Verified outcome
        max_gaps: Maximum corrections still counted as Verified
        chunk_size: Entities per sequential chunk
        fan_out: Concurrent entities within a chunk
        chunk_pause: Seconds to wait between chunks
        data_dir: Directory for JSON persistence of the stores
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log output format (json for production, console for dev)
    """

    xai_api_key: str = Field(default="", description="xAI API key")
    xai_model: str = Field(
        default="grok-3-latest",
        description="Chat model identifier"
    )
    xai_base_url: str = Field(
        default="https://api.x.ai/v1/chat/completions",
        description="Chat completions endpoint"
    )
    oracle_timeout: float = Field(
        default=30.0,
        description="Per-request timeout in seconds"
    )
    oracle_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per entity before the oracle is declared unavailable"
    )
    oracle_backoff_base: float = Field(
        default=0.5,
        ge=0.0,
        description="Initial backoff delay in seconds"
    )
    max_rpm: int = Field(
        default=60,
        ge=1,
        description="Maximum oracle requests per minute"
    )
    min_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for a Verified classification"
    )
    max_gaps: int = Field(
        default=3,
        ge=0,
        description="Maximum corrections still classified as Verified"
    )
    chunk_size: int = Field(
        default=10,
        ge=1,
        description="Entities processed per sequential chunk"
    )
    fan_out: int = Field(
        default=5,
        ge=1,
        description="Concurrent entities within a chunk"
    )
    chunk_pause: float = Field(
        default=0.0,
        ge=0.0,
        description="Pause between chunks in seconds"
    )
    data_dir: str = Field(
        default=".content_sync",
        description="Directory holding the JSON store files"
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="json",
        description="Log output format: json or console"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def pipeline_config(self) -> "PipelineConfig":
        """Derive the explicit pipeline configuration from these settings."""
        return PipelineConfig(
            min_confidence=self.min_confidence,
            max_gaps=self.max_gaps,
            chunk_size=self.chunk_size,
            fan_out=self.fan_out,
            chunk_pause=self.chunk_pause,
        )

    def store_path(self, name: str) -> Path:
        """Path of a JSON store file inside data_dir."""
        return Path(self.data_dir) / f"{name}.json"


class PipelineConfig(BaseModel):
    """Explicit configuration handed to the orchestrator at construction."""

    min_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    max_gaps: int = Field(default=3, ge=0)
    chunk_size: int = Field(default=10, ge=1)
    fan_out: int = Field(default=5, ge=1)
    chunk_pause: float = Field(default=0.0, ge=0.0)
    actor: str = Field(
        default="content-sync",
        description="Actor recorded on change log entries written by the pipeline",
    )


def get_settings() -> Settings:
    """Build settings from the current environment.

    Components never import a shared instance; the CLI calls this once and
    passes the result down.
    """
    return Settings()
