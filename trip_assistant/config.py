import os
from typing import Final


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class _Config:
    def __init__(self) -> None:
        # Security / limits
        self.api_key: str | None = os.getenv("ASSISTANT_API_KEY")
        self.rate_limit: str = os.getenv("ASSISTANT_RATE_LIMIT", "30/minute")

        # Provider
        self.openai_api_key: str = (os.getenv("OPENAI_API_KEY") or "").strip()
        self.openai_base: str = os.getenv("OPENAI_BASE", "https://api.openai.com/v1").rstrip("/")
        self.model: str = os.getenv("ASSISTANT_MODEL", "gpt-5-mini")
        self.reasoning_effort: str = os.getenv("ASSISTANT_REASONING_EFFORT", "low")
        self.verbosity: str = os.getenv("ASSISTANT_VERBOSITY", "low")
        self.web_search: bool = os.getenv("ASSISTANT_WEB_SEARCH", "1").lower() not in {"0", "false", "no", "off"}

        # HTTP behavior
        self.http_timeout_sec: float = _float_env("HTTP_TIMEOUT_SEC", 45.0)
        self.stream_connect_timeout_sec: float = _float_env("STREAM_CONNECT_TIMEOUT_SEC", 10.0)

        # Assistant behavior
        self.proposal_ttl_sec: float = _float_env("ASSISTANT_PROPOSAL_TTL_SEC", 120.0)
        # 0 keeps the full history on the single-shot endpoint
        self.history_limit: int = _int_env("ASSISTANT_HISTORY_LIMIT", 0)
        self.reply_format: str = os.getenv("ASSISTANT_REPLY_FORMAT", "message")

        # Storage
        self.database_url: str | None = os.getenv("DATABASE_URL")


CONFIG: Final[_Config] = _Config()
