from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Per-check deadlines, seconds
    CONNECTIVITY_TIMEOUT: float = 15.0
    CHAT_TIMEOUT: float = 30.0
    STREAM_TIMEOUT: float = 30.0
    MODELS_TIMEOUT: float = 15.0
    MULTI_TURN_TIMEOUT: float = 60.0

    # Timeout of the shared HTTP client itself
    HTTP_TIMEOUT: float = 30.0

    # None = one concurrent task per batch item
    MAX_CONCURRENCY: Optional[int] = None

    LOG_LEVEL: str = "WARNING"

    # Probe prompts
    CHAT_PROBE: str = "Hi, reply with exactly: OK"
    STREAM_PROBE: str = "Count from 1 to 5"
    MEMORY_SENTINEL: str = "42"
    MEMORY_PROBE: str = "Remember this number: {sentinel}. Just reply OK."
    RECALL_PROBE: str = "What number did I ask you to remember?"

    model_config = SettingsConfigDict(
        env_prefix="PINGAI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
