# config.py
# Runtime configuration. Values come from keyword arguments or the
# environment (a local .env file is loaded on import).

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_BLOCKED_MESSAGE = (
    "I'm sorry, but I can't help with that request because it conflicts with content policy."
)


class AiConfig(BaseModel):
    """Settings for one completion engine."""

    model: str
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    max_tokens: int = Field(default=8192, gt=0)
    temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    timeout_ms: int = Field(default=10000, gt=0)
    max_retries: int = Field(default=3, ge=1)
    blocked_message: str = DEFAULT_BLOCKED_MESSAGE

    @classmethod
    def from_env(cls, prefix: str, **defaults) -> "AiConfig":
        """
        Build a config from <PREFIX>_API_KEY, <PREFIX>_BASE_URL, <PREFIX>_MODEL,
        <PREFIX>_MAX_TOKENS, <PREFIX>_TEMPERATURE, <PREFIX>_TIMEOUT_MS and
        <PREFIX>_MAX_RETRIES. Environment values win over keyword defaults.
        """
        prefix = prefix.upper()
        values = dict(defaults)
        for field in ("api_key", "base_url", "model", "max_tokens", "temperature", "timeout_ms", "max_retries"):
            raw = os.getenv(f"{prefix}_{field.upper()}")
            if raw:
                values[field] = raw
        return cls.model_validate(values)


class WorkerConfig(BaseModel):
    """Settings for the tool invoker."""

    max_execution_time_ms: int = Field(default=30000, gt=0)
