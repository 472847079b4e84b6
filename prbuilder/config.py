"""
Application configuration management.
"""

from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # GitHub
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    http_timeout_seconds: float = 30.0

    # Repository holding one JSON file per build configuration
    config_repo_owner: str = "Build"
    config_repo_name: str = "Configuration"
    config_repo_branch: str = "master"

    # Builds
    build_branch_prefix: str = "lprb"
    status_context_prefix: str = "Jenkins"
    merge_failure_policy: Literal["skip", "fail"] = "skip"
    active_build_ttl_seconds: int = 86400

    # Application
    port: int = 3000
    log_level: str = "INFO"
    max_workers: int = 3

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
