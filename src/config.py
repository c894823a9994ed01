from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Claude Code local files
    credentials_path: str = "~/.claude/.credentials.json"
    projects_dir: str = "~/.claude/projects"  # per-project transcript folders

    # Polling
    poll_interval_seconds: int = 30

    # Color thresholds (%), yellow < orange < red
    yellow_threshold: float = 25
    orange_threshold: float = 50
    red_threshold: float = 75

    # Usage API
    usage_api_url: str = "https://api.anthropic.com/api/oauth/usage"
    anthropic_beta: str = "oauth-2025-04-20"
    user_agent: str = "claude-status/0.1"
    request_timeout: float = 15.0

    # Logging
    log_level: str = "INFO"


settings = Settings()
