"""Configuration for GitStatusStore."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(env_prefix="GIT_STATUS_STORE_")

    default_poll_interval_ms: int = Field(default=10000, gt=0)
    internal_dir: str = Field(default=".emdash")  # Reserved bookkeeping directory
    planning_file: str = Field(default="PLANNING.md")  # Reserved top-level planning file
    git_cli: str = Field(default="git")
    include_diffs: bool = Field(default=False)
    watch_paths: list[str] = Field(default_factory=list)
    watch_debounce_ms: int = Field(default=250, ge=0)
    hide_when_no_clients: bool = Field(default=True)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    log_level: str = Field(default="info")
