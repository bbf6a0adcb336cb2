# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Application configuration using pydantic-settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Context management settings.

    Values are read from the environment (or a ``.env`` file) and act as
    defaults for the dataclass configs in ``agent_context.compaction.settings``.

    Attributes:
        MIN_MESSAGES_TO_COMPRESS (int): Minimum candidate count for a
            compaction to proceed.
        RECENT_TURNS (int): Number of most recent turns excluded from the
            default compaction range.
        TARGET_RATIO (float): Desired summary/original token ratio.
        MAX_SUMMARY_TOKENS (int): Length guidance passed to the summarizer.
        TOKENIZER_MODEL (str): Model name used to pick the tiktoken encoding.
        TOKEN_CACHE_MAX_SIZE (int): Capacity of the token-count cache.
        TOKEN_CACHE_TTL_SECONDS (float): Lifetime of a cached token count.
        SUMMARY_MODEL_TIMEOUT_MS (int): Default per-attempt timeout for a
            summarization model.
        SUMMARY_RETRY_DELAY_MS (int): Base delay between retries of the same
            model, doubled on each retry.
        MAX_PROTECTED_SUMMARIES (int): Summaries kept out of compaction input.
        COMPACTION_STATS_FILE (str): JSON file for persisted compaction stats.
            Empty disables persistence.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Compaction
    MIN_MESSAGES_TO_COMPRESS: int = 4
    RECENT_TURNS: int = 3
    TARGET_RATIO: float = 0.3
    MAX_SUMMARY_TOKENS: int = 2000

    # Token counting
    TOKENIZER_MODEL: str = "gpt-4o"
    TOKEN_CACHE_MAX_SIZE: int = 1000
    TOKEN_CACHE_TTL_SECONDS: float = 300.0  # 5 minutes

    # Summarization fallback
    SUMMARY_MODEL_TIMEOUT_MS: int = 30_000
    SUMMARY_RETRY_DELAY_MS: int = 1_000  # doubles each retry

    # Cascade containment
    MAX_PROTECTED_SUMMARIES: int = 5

    # Stats
    COMPACTION_STATS_FILE: str = ""


settings = Settings()
