"""
Configuration Settings.

This module defines the runtime configuration using Pydantic's BaseSettings.
All values are bound from environment variables (``DEEPAGENT_AI_*``) and an
optional ``.env`` file without explicit dotenv loading.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings model.

    These are process-wide defaults. Per-run values live on
    ``deepagent_ai.agent_core.runtime.models.AgentConfig`` which is seeded from
    this object by ``AgentConfig.from_settings``.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Logging
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        alias="DEEPAGENT_AI_LOG_LEVEL",
    )
    log_format: str = Field(
        default="detailed",
        description="Log format (simple, detailed, json)",
        alias="DEEPAGENT_AI_LOG_FORMAT",
    )
    log_file_dir: str = Field(
        default="logs",
        description="Directory used for the file log handler",
        alias="DEEPAGENT_AI_LOG_FILE_DIR",
    )
    enable_file_logging: bool = Field(
        default=False,
        description="Write logs to <log_file_dir>/deepagent_ai.log as well as the console",
        alias="DEEPAGENT_AI_ENABLE_FILE_LOGGING",
    )

    # =====================================================================
    # Model
    # =====================================================================
    default_model: str = Field(
        default="anthropic:claude-sonnet-4-5",
        description="pydantic-ai model identifier used when no model instance is supplied",
        alias="DEEPAGENT_AI_MODEL",
    )
    model_max_retries: int = Field(
        default=2,
        ge=0,
        description="How many times a failed model call is retried before the run errors",
        alias="DEEPAGENT_AI_MODEL_MAX_RETRIES",
    )
    model_retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Linear backoff between model call retries",
        alias="DEEPAGENT_AI_MODEL_RETRY_BACKOFF_SECONDS",
    )

    # =====================================================================
    # Step loop
    # =====================================================================
    max_steps: int = Field(
        default=100,
        ge=1,
        description="Maximum number of model/tool iterations for a top-level run",
        alias="DEEPAGENT_AI_MAX_STEPS",
    )
    subagent_max_steps: int = Field(
        default=50,
        ge=1,
        description="Maximum number of iterations for a nested subagent run",
        alias="DEEPAGENT_AI_SUBAGENT_MAX_STEPS",
    )

    # =====================================================================
    # Context management
    # =====================================================================
    tool_result_eviction_limit: Optional[int] = Field(
        default=20_000,
        ge=1,
        description="Estimated token size above which tool results are evicted to the backend",
        alias="DEEPAGENT_AI_TOOL_RESULT_EVICTION_LIMIT",
    )
    summarization_threshold: int = Field(
        default=170_000,
        ge=1,
        description="Estimated history token total that triggers summarization",
        alias="DEEPAGENT_AI_SUMMARIZATION_THRESHOLD",
    )
    summarization_keep_messages: int = Field(
        default=6,
        ge=0,
        description="Number of most recent messages kept verbatim when summarizing",
        alias="DEEPAGENT_AI_SUMMARIZATION_KEEP_MESSAGES",
    )

    # =====================================================================
    # Persistence
    # =====================================================================
    checkpoint_dir: str = Field(
        default=".checkpoints",
        description="Directory used by FileSaver when no directory is given",
        alias="DEEPAGENT_AI_CHECKPOINT_DIR",
    )
    checkpoint_database_url: str = Field(
        default="sqlite+aiosqlite:///./checkpoints.db",
        description="Async SQLAlchemy URL used by SqlCheckpointSaver.from_url",
        alias="DEEPAGENT_AI_CHECKPOINT_DATABASE_URL",
    )

    # =====================================================================
    # Agent memory and skills
    # =====================================================================
    agent_home_dir: str = Field(
        default="~/.deepagents",
        description="User-level directory holding {agent_id}/agent.md memory and {agent_id}/skills/",
        alias="DEEPAGENT_AI_AGENT_HOME",
    )

    # =====================================================================
    # Local sandbox
    # =====================================================================
    sandbox_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Command timeout for LocalSandbox.execute",
        alias="DEEPAGENT_AI_SANDBOX_TIMEOUT_SECONDS",
    )
    sandbox_max_output_bytes: int = Field(
        default=1024 * 1024,
        ge=1,
        description="Maximum combined stdout/stderr kept by LocalSandbox.execute",
        alias="DEEPAGENT_AI_SANDBOX_MAX_OUTPUT_BYTES",
    )


settings = Settings()
