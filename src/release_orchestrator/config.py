"""Configuration management for the release orchestrator."""

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import tomli_w

DEFAULT_API_VERSION = "7.1-preview.1"
DEFAULT_INTEGRATION_BUILD_FIELD = "Custom.IntegrationBuild"


@dataclass
class Config:
    """Configuration for the Azure DevOps connection and release settings."""

    organization: str
    project: str
    personal_access_token: str
    api_version: str = DEFAULT_API_VERSION
    repositories: list[str] = field(default_factory=list)
    source_branch: str = "main"
    main_repository: str | None = None
    integration_build_field: str = DEFAULT_INTEGRATION_BUILD_FIELD
    commit_page_size: int = 1000
    max_fallback_commits: int | None = None  # None = return the whole listing
    max_workers: int = 1
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    log_level: str = "INFO"

    def validate(self) -> list[str]:
        """Validate configuration values. Returns list of error messages."""
        errors: list[str] = []

        if not self.organization:
            errors.append("Azure DevOps organization is required")
        elif "/" in self.organization:
            errors.append("Azure DevOps organization must be a name, not a URL")

        if not self.project:
            errors.append("Azure DevOps project is required")

        if not self.personal_access_token:
            errors.append("Azure DevOps personal access token is required")

        if not self.source_branch:
            errors.append("Source branch is required")

        if self.commit_page_size < 1:
            errors.append("commit_page_size must be at least 1")

        if self.max_fallback_commits is not None and self.max_fallback_commits < 1:
            errors.append("max_fallback_commits must be at least 1 when set")

        if self.max_workers < 1:
            errors.append("max_workers must be at least 1")

        if self.retry_attempts < 1:
            errors.append("retry attempts must be at least 1")

        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            errors.append("retry delays must not be negative")

        if logging.getLevelName(self.log_level.upper()) not in (
            logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL
        ):
            errors.append(f"Unknown log level: {self.log_level}")

        return errors


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    return Path.home() / ".release-orchestrator"


def get_config_path() -> Path:
    """Get the configuration file path."""
    return get_config_dir() / "config.toml"


def config_exists() -> bool:
    """Check if configuration file exists."""
    return get_config_path().exists()


def load_config() -> Config:
    """Load configuration from TOML file.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    config_path = get_config_path()

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration not found at {config_path}. "
            "Create ~/.release-orchestrator/config.toml to set up."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    config = config_from_dict(data)

    errors = config.validate()
    if errors:
        raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

    return config


def config_from_dict(data: dict) -> Config:
    """Build a Config from parsed TOML sections.

    Raises:
        ValueError: If a numeric setting has the wrong type
    """
    devops = data.get("azure_devops", {})
    release = data.get("release", {})
    retry = data.get("retry", {})
    log_section = data.get("logging", {})

    try:
        # 0 means "no limit", same as leaving the key out
        max_fallback = int(release.get("max_fallback_commits", 0)) or None
        return Config(
            organization=devops.get("organization", ""),
            project=devops.get("project", ""),
            personal_access_token=devops.get("personal_access_token", ""),
            api_version=devops.get("api_version", DEFAULT_API_VERSION),
            repositories=list(release.get("repositories", [])),
            source_branch=release.get("source_branch", "main"),
            main_repository=release.get("main_repository"),
            integration_build_field=release.get(
                "integration_build_field", DEFAULT_INTEGRATION_BUILD_FIELD
            ),
            commit_page_size=int(release.get("commit_page_size", 1000)),
            max_fallback_commits=max_fallback,
            max_workers=int(release.get("max_workers", 1)),
            retry_attempts=int(retry.get("attempts", 3)),
            retry_base_delay=float(retry.get("base_delay", 1.0)),
            retry_max_delay=float(retry.get("max_delay", 30.0)),
            log_level=str(log_section.get("level", "INFO")),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid configuration value: {e}") from e


def save_config(config: Config) -> None:
    """Save configuration to TOML file."""
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)

    config_path = get_config_path()

    release_data: dict = {
        "repositories": config.repositories,
        "source_branch": config.source_branch,
        "integration_build_field": config.integration_build_field,
        "commit_page_size": config.commit_page_size,
        "max_workers": config.max_workers,
    }
    if config.main_repository:
        release_data["main_repository"] = config.main_repository
    if config.max_fallback_commits:
        release_data["max_fallback_commits"] = config.max_fallback_commits

    data: dict = {
        "azure_devops": {
            "organization": config.organization,
            "project": config.project,
            "personal_access_token": config.personal_access_token,
            "api_version": config.api_version,
        },
        "release": release_data,
        "retry": {
            "attempts": config.retry_attempts,
            "base_delay": config.retry_base_delay,
            "max_delay": config.retry_max_delay,
        },
        "logging": {"level": config.log_level},
    }

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)
