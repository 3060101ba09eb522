"""Application settings."""

import os
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class Settings(BaseModel):
    """Configuration for the conversation engine and its collaborators."""

    # OpenAI-compatible generation endpoint
    openrouter_api_key: Optional[str] = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"

    conversation_model: str = "meta-llama/llama-4-maverick-17b-128e-instruct"
    conversation_temperature: float = 1.1
    vision_model: str = "meta-llama/llama-4-maverick-17b-128e-instruct"
    vision_temperature: float = 0.8
    summarization_model: str = "meta-llama/llama-3.1-8b-instruct"
    summarization_temperature: float = 0.15

    max_completion_tokens: int = 225
    summary_max_tokens: int = 300
    generation_max_retries: int = 2  # Retries belong to the client, never the executor
    generation_timeout_seconds: float = 60.0

    # Persona prompt
    max_words: int = 150

    # Context compaction
    summarization_threshold: int = Field(default=16, ge=1)
    recent_messages_keep: int = Field(default=5, ge=1)
    summary_word_limit: int = 200
    conversation_gap_threshold_ms: int = Field(default=1000 * 60 * 60 * 2, gt=0)

    # Turn execution
    max_tool_rounds: int = Field(default=5, ge=1)
    turn_timeout_seconds: Optional[float] = 120.0

    # Backend API (system prompt, lyrics cache)
    api_base_url: str = "http://localhost:3000"
    bot_api_key: Optional[str] = None
    http_timeout_seconds: float = 10.0
    lyrics_cache_ttl: int = 3600
    system_prompt_cache_ttl: int = 60

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    environment: str = "development"

    @model_validator(mode="after")
    def _check_compaction(self) -> "Settings":
        if self.recent_messages_keep >= self.summarization_threshold:
            raise ValueError(
                "recent_messages_keep must be smaller than summarization_threshold"
            )
        return self

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Build settings from environment variables, explicit overrides win."""
        env_map = {
            "openrouter_api_key": "OPENROUTER_API_KEY",
            "openrouter_base_url": "OPENROUTER_BASE_URL",
            "conversation_model": "TETO_CONVERSATION_MODEL",
            "vision_model": "TETO_VISION_MODEL",
            "summarization_model": "TETO_SUMMARIZATION_MODEL",
            "summarization_threshold": "TETO_SUMMARIZATION_THRESHOLD",
            "recent_messages_keep": "TETO_RECENT_MESSAGES_KEEP",
            "conversation_gap_threshold_ms": "TETO_CONVERSATION_GAP_MS",
            "turn_timeout_seconds": "TETO_TURN_TIMEOUT_SECONDS",
            "api_base_url": "API_BASE_URL",
            "bot_api_key": "BOT_API_KEY",
            "log_level": "LOG_LEVEL",
            "log_format": "LOG_FORMAT",
            "environment": "ENVIRONMENT",
        }

        data = {}
        for field_name, env_name in env_map.items():
            value = os.environ.get(env_name)
            if value is not None and value != "":
                data[field_name] = value

        data.update(overrides)
        return cls(**data)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"
