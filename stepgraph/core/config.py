"""
Configuration management for stepgraph.

Handles environment variables, provider credentials, and engine limits.
Uses Pydantic Settings for validation and type safety.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """
    Application configuration with environment variable support.

    All settings can be overridden via environment variables with the
    STEPGRAPH_ prefix (e.g., STEPGRAPH_MAX_STEPS=50).
    """

    # ==================== Executor Settings ====================
    max_steps: int = Field(
        default=25,
        description="Maximum node executions per walk before StepLimitExceeded"
    )
    fanout_max_concurrency: Optional[int] = Field(
        default=None,
        description="Cap on concurrently running fan-out sub-tasks (None = unbounded)"
    )

    # ==================== LLM Settings ====================
    gemini_api_key: str = Field(
        default="",
        description="Google Gemini API key for the Gemini provider adapter"
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used by the model-call node"
    )
    llm_temperature: float = Field(
        default=0.0,
        description="LLM temperature for consistent outputs"
    )
    llm_max_tokens: int = Field(
        default=2048,
        description="Maximum tokens for LLM responses"
    )
    llm_max_retries: int = Field(
        default=2,
        description="Provider-side retries for transient failures"
    )

    # ==================== Memory Settings ====================
    checkpoint_dir: str = Field(
        default=".stepgraph/checkpoints",
        description="Directory used by the file checkpoint store"
    )

    # ==================== System Settings ====================
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )
    log_state_values: bool = Field(
        default=False,
        description="Include state previews in debug logs (may leak user data)"
    )

    model_config = {
        "env_prefix": "STEPGRAPH_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"
    }

    @field_validator("max_steps")
    @classmethod
    def validate_max_steps(cls, v: int) -> int:
        """A walk must be allowed at least one node execution."""
        if v < 1:
            raise ValueError("max_steps must be at least 1")
        return v

    @field_validator("fanout_max_concurrency")
    @classmethod
    def validate_concurrency(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("fanout_max_concurrency must be positive or unset")
        return v

    @field_validator("llm_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature is between 0 and 2."""
        if not 0 <= v <= 2:
            raise ValueError("llm_temperature must be between 0 and 2")
        return v

    def get_model_config(self) -> dict:
        """Get generation settings for the provider adapter."""
        return {
            "model": self.gemini_model,
            "temperature": self.llm_temperature,
            "max_tokens": self.llm_max_tokens,
        }


@lru_cache()
def get_settings() -> Config:
    """
    Get cached application settings.

    Returns:
        Config: Application configuration instance
    """
    return Config()


# Global settings instance
settings = get_settings()
