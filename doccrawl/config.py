"""
doccrawl Configuration Management.

Handles loading, saving, and validating configuration from various sources:
- Default values
- Configuration files (TOML)
- Environment variables
- Command-line arguments
"""

from __future__ import annotations

import json
import os
import re
import tomllib
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional, List
from urllib.parse import parse_qs

import tomli_w
import yaml

from doccrawl.exceptions import ConfigurationError
from doccrawl.timeutil import format_duration, parse_duration


# Default configuration locations
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "doccrawl"
DEFAULT_CONFIG_FILE = "config.toml"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "doccrawl"

_TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass
class ValidationError:
    """Validation error for configuration."""
    field: str
    message: str
    severity: str  # "error" or "warning"

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.field}: {self.message}"


@dataclass
class TasksConfig:
    """Cadence of each background task. Zero disables the task."""

    crawl_interval: timedelta = timedelta(0)
    github_interval: timedelta = timedelta(0)
    suppress_interval: timedelta = timedelta(0)

    @property
    def any_enabled(self) -> bool:
        return any(
            interval > timedelta(0)
            for interval in (self.crawl_interval, self.github_interval, self.suppress_interval)
        )


@dataclass
class CrawlConfig:
    """Configuration for package crawling."""

    # Packages older than this are due for a refresh
    max_age: timedelta = timedelta(hours=24)

    # A failed refresh pushes the next crawl out by max_age / divisor
    failure_backoff_divisor: int = 3

    # Document service that turns an import path into a package document
    document_service_url: str = "http://localhost:8081"
    request_timeout: float = 30.0
    user_agent: str = "doccrawl"

    @property
    def failure_backoff(self) -> timedelta:
        """Delay applied to a package whose refresh failed."""
        return self.max_age / self.failure_backoff_divisor


@dataclass
class GitHubAuth:
    """OAuth application credentials for the GitHub API."""
    client_id: str
    client_secret: str


@dataclass
class GitHubConfig:
    """Configuration for the GitHub update feed and suppression signals."""

    # Query string form: "client_id=...&client_secret=..."
    credentials: Optional[str] = None
    api_url: str = "https://api.github.com"
    search_query: str = "language:Go"
    path_prefix: str = "github.com/"

    # Upper bound on concurrent repository lookups while scoring
    max_concurrent: int = 8
    request_timeout: float = 30.0


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None


@dataclass
class DocCrawlConfig:
    """Main configuration container for doccrawl."""

    # Paths
    config_dir: Path = DEFAULT_CONFIG_DIR
    data_dir: Path = DEFAULT_DATA_DIR

    # Sub-configurations
    tasks: TasksConfig = field(default_factory=TasksConfig)
    crawl: CrawlConfig = field(default_factory=CrawlConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Database
    database_url: str = ""

    def __post_init__(self):
        """Initialize derived values."""
        if not self.database_url:
            self.database_url = f"sqlite:///{self.data_dir}/doccrawl.db"


def parse_github_auth(credentials: Optional[str]) -> Optional[GitHubAuth]:
    """Parse GitHub credentials from their query-string form.

    Args:
        credentials: ``client_id=...&client_secret=...`` or empty

    Returns:
        GitHubAuth, or None when no credentials are configured

    Raises:
        ConfigurationError: If the credentials cannot be parsed
    """
    if not credentials:
        return None

    try:
        values = parse_qs(credentials, strict_parsing=True)
    except ValueError as e:
        raise ConfigurationError(f"Malformed GitHub credentials: {e}") from e

    client_id = values.get("client_id", [""])[0]
    client_secret = values.get("client_secret", [""])[0]
    if not client_id or not client_secret:
        raise ConfigurationError(
            "Malformed GitHub credentials: client_id and client_secret are required"
        )

    return GitHubAuth(client_id=client_id, client_secret=client_secret)


def get_config_path(env_prefix: str = "DOCCRAWL_") -> Path:
    """Path of the configuration file, honoring the CONFIG_DIR environment override."""
    env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
    config_dir = Path(env_config_dir) if env_config_dir else DEFAULT_CONFIG_DIR
    return config_dir / DEFAULT_CONFIG_FILE


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = "DOCCRAWL_"
) -> DocCrawlConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/doccrawl/config.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If a duration or number cannot be parsed
    """
    config = DocCrawlConfig()

    if config_path is None:
        config_path = get_config_path(env_prefix)

    if config_path.exists():
        config = _load_from_file(config_path, config)

    config = _load_from_env(config, env_prefix)

    return config


def _coerce(current: Any, value: Any, name: str) -> Any:
    """Convert a raw file or environment value to the type of ``current``."""
    try:
        if isinstance(current, timedelta):
            return parse_duration(value)
        if isinstance(current, bool):
            if isinstance(value, bool):
                return value
            return str(value).lower() in _TRUE_VALUES
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float):
            return float(value)
        if isinstance(current, Path):
            return Path(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r} ({e})") from e
    return value


def _apply_section(section_obj: Any, section_name: str, data: dict[str, Any]) -> None:
    for key, value in data.items():
        if not hasattr(section_obj, key):
            continue
        current = getattr(section_obj, key)
        if current is None:
            if key == "file" and value:
                value = Path(value)
            setattr(section_obj, key, value or None)
        else:
            setattr(section_obj, key, _coerce(current, value, f"{section_name}.{key}"))


def _load_from_file(path: Path, config: DocCrawlConfig) -> DocCrawlConfig:
    """Load configuration from a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Failed to load config from {path}: {e}") from e

    for section_name in ("tasks", "crawl", "github", "logging"):
        if section_name in data:
            _apply_section(getattr(config, section_name), section_name, data[section_name])

    # Top-level settings
    if "config_dir" in data:
        config.config_dir = Path(data["config_dir"])
    if "data_dir" in data:
        config.data_dir = Path(data["data_dir"])
        if "database_url" not in data:
            config.database_url = f"sqlite:///{config.data_dir}/doccrawl.db"
    if "database_url" in data:
        config.database_url = data["database_url"]

    return config


def _load_from_env(config: DocCrawlConfig, prefix: str) -> DocCrawlConfig:
    """Load configuration from environment variables."""

    # Task cadences
    if env_val := os.environ.get(f"{prefix}CRAWL_INTERVAL"):
        config.tasks.crawl_interval = _coerce(timedelta(0), env_val, "tasks.crawl_interval")
    if env_val := os.environ.get(f"{prefix}GITHUB_INTERVAL"):
        config.tasks.github_interval = _coerce(timedelta(0), env_val, "tasks.github_interval")
    if env_val := os.environ.get(f"{prefix}SUPPRESS_INTERVAL"):
        config.tasks.suppress_interval = _coerce(timedelta(0), env_val, "tasks.suppress_interval")

    # Crawl settings
    if env_val := os.environ.get(f"{prefix}MAX_AGE"):
        config.crawl.max_age = _coerce(timedelta(0), env_val, "crawl.max_age")
    if env_val := os.environ.get(f"{prefix}DOCUMENT_SERVICE_URL"):
        config.crawl.document_service_url = env_val

    # GitHub settings
    if env_val := os.environ.get(f"{prefix}GITHUB_CREDENTIALS"):
        config.github.credentials = env_val
    if env_val := os.environ.get(f"{prefix}GITHUB_API_URL"):
        config.github.api_url = env_val

    # Logging settings
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATA_DIR"):
        default_url = f"sqlite:///{config.data_dir}/doccrawl.db"
        config.data_dir = Path(env_val)
        if config.database_url == default_url:
            config.database_url = f"sqlite:///{config.data_dir}/doccrawl.db"
    if env_val := os.environ.get(f"{prefix}DATABASE_URL"):
        config.database_url = env_val

    return config


def _config_to_toml_dict(config: DocCrawlConfig) -> dict[str, Any]:
    github: dict[str, Any] = {
        "api_url": config.github.api_url,
        "search_query": config.github.search_query,
        "path_prefix": config.github.path_prefix,
        "max_concurrent": config.github.max_concurrent,
        "request_timeout": config.github.request_timeout,
    }
    if config.github.credentials:
        github["credentials"] = config.github.credentials

    logging_section: dict[str, Any] = {
        "level": config.logging.level,
        "format": config.logging.format,
    }
    if config.logging.file:
        logging_section["file"] = str(config.logging.file)

    return {
        "config_dir": str(config.config_dir),
        "data_dir": str(config.data_dir),
        "database_url": config.database_url,
        "tasks": {
            "crawl_interval": format_duration(config.tasks.crawl_interval),
            "github_interval": format_duration(config.tasks.github_interval),
            "suppress_interval": format_duration(config.tasks.suppress_interval),
        },
        "crawl": {
            "max_age": format_duration(config.crawl.max_age),
            "failure_backoff_divisor": config.crawl.failure_backoff_divisor,
            "document_service_url": config.crawl.document_service_url,
            "request_timeout": config.crawl.request_timeout,
            "user_agent": config.crawl.user_agent,
        },
        "github": github,
        "logging": logging_section,
    }


def save_config(config: DocCrawlConfig, path: Optional[Path] = None) -> None:
    """
    Save configuration to a TOML file.

    Args:
        config: Configuration to save
        path: Path to save to (default: config.config_dir / config.toml)
    """
    if path is None:
        path = config.config_dir / DEFAULT_CONFIG_FILE

    path.parent.mkdir(parents=True, exist_ok=True)

    header = "# doccrawl configuration\n# Durations accept seconds or strings like \"10m\" or \"1h30m\"; 0 disables a task\n\n"
    path.write_text(header + tomli_w.dumps(_config_to_toml_dict(config)))


def ensure_directories(config: DocCrawlConfig) -> None:
    """Ensure all required directories exist."""
    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.data_dir.mkdir(parents=True, exist_ok=True)


def get_default_config() -> DocCrawlConfig:
    """Get the default configuration."""
    return DocCrawlConfig()


# Global configuration instance (lazy-loaded)
_global_config: Optional[DocCrawlConfig] = None


def get_config() -> DocCrawlConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: DocCrawlConfig) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def clear_config_cache() -> None:
    """Clear the global configuration cache."""
    global _global_config
    _global_config = None


def _validate_url(url: str) -> bool:
    """Validate a URL format."""
    url_pattern = r"^https?://[^\s/$.?#].[^\s]*$"
    return bool(re.match(url_pattern, url))


def validate_config(config: Optional[DocCrawlConfig] = None) -> List[ValidationError]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate (default: loaded from file)

    Returns:
        List of validation errors (empty if valid)
    """
    if config is None:
        config = load_config()

    errors: List[ValidationError] = []

    if not config.tasks.any_enabled:
        errors.append(ValidationError(
            field="tasks",
            message="All task intervals are zero. The daemon will do nothing.",
            severity="warning"
        ))

    # Crawl validation
    if config.crawl.max_age <= timedelta(0):
        errors.append(ValidationError(
            field="crawl.max_age",
            message="max_age must be positive.",
            severity="error"
        ))

    if config.crawl.failure_backoff_divisor < 1:
        errors.append(ValidationError(
            field="crawl.failure_backoff_divisor",
            message="failure_backoff_divisor must be at least 1.",
            severity="error"
        ))

    if config.tasks.crawl_interval > timedelta(0):
        if not _validate_url(config.crawl.document_service_url):
            errors.append(ValidationError(
                field="crawl.document_service_url",
                message=f"Invalid URL format: {config.crawl.document_service_url}",
                severity="error"
            ))

    # GitHub validation
    if not _validate_url(config.github.api_url):
        errors.append(ValidationError(
            field="github.api_url",
            message=f"Invalid URL format: {config.github.api_url}",
            severity="error"
        ))

    try:
        auth = parse_github_auth(config.github.credentials)
    except ConfigurationError as e:
        errors.append(ValidationError(
            field="github.credentials",
            message=e.message,
            severity="error"
        ))
    else:
        if auth is None and config.tasks.suppress_interval > timedelta(0):
            errors.append(ValidationError(
                field="github.credentials",
                message="No GitHub credentials set; suppression checks will be rate limited.",
                severity="warning"
            ))

    if config.github.max_concurrent < 1:
        errors.append(ValidationError(
            field="github.max_concurrent",
            message="max_concurrent must be at least 1.",
            severity="error"
        ))

    # Path validation
    if not config.data_dir.exists():
        errors.append(ValidationError(
            field="data_dir",
            message=f"Data directory does not exist: {config.data_dir}",
            severity="warning"
        ))

    try:
        if config.data_dir.exists():
            test_file = config.data_dir / ".write_test"
            test_file.touch()
            test_file.unlink()
    except (PermissionError, OSError):
        errors.append(ValidationError(
            field="data_dir",
            message=f"Data directory is not writable: {config.data_dir}",
            severity="error"
        ))

    return errors


def config_to_dict(config: DocCrawlConfig, mask_secrets: bool = True) -> dict[str, Any]:
    """
    Convert configuration to dictionary.

    Args:
        config: Configuration to convert
        mask_secrets: If True, mask sensitive values like credentials

    Returns:
        Dictionary representation of config
    """
    def mask_value(key: str, value: Any) -> Any:
        """Mask sensitive values."""
        if not mask_secrets:
            return value
        sensitive_keys = {"credentials", "secret", "token", "password"}
        if value and any(sk in key.lower() for sk in sensitive_keys):
            if isinstance(value, str) and len(value) > 4:
                return value[:4] + "****"
            return "****"
        return value

    return {
        "config_dir": str(config.config_dir),
        "data_dir": str(config.data_dir),
        "database_url": config.database_url,
        "tasks": {
            "crawl_interval": format_duration(config.tasks.crawl_interval),
            "github_interval": format_duration(config.tasks.github_interval),
            "suppress_interval": format_duration(config.tasks.suppress_interval),
        },
        "crawl": {
            "max_age": format_duration(config.crawl.max_age),
            "failure_backoff_divisor": config.crawl.failure_backoff_divisor,
            "failure_backoff": format_duration(config.crawl.failure_backoff),
            "document_service_url": config.crawl.document_service_url,
            "request_timeout": config.crawl.request_timeout,
            "user_agent": config.crawl.user_agent,
        },
        "github": {
            "credentials": mask_value("credentials", config.github.credentials),
            "api_url": config.github.api_url,
            "search_query": config.github.search_query,
            "path_prefix": config.github.path_prefix,
            "max_concurrent": config.github.max_concurrent,
            "request_timeout": config.github.request_timeout,
        },
        "logging": {
            "level": config.logging.level,
            "format": config.logging.format,
            "file": str(config.logging.file) if config.logging.file else None,
        },
    }


def export_config_yaml(config: DocCrawlConfig, mask_secrets: bool = True) -> str:
    """
    Export configuration as YAML string.

    Args:
        config: Configuration to export
        mask_secrets: If True, mask sensitive values

    Returns:
        YAML string representation of config
    """
    config_dict = config_to_dict(config, mask_secrets)
    return yaml.dump(config_dict, default_flow_style=False, sort_keys=False, allow_unicode=True)


def export_config_json(config: DocCrawlConfig, mask_secrets: bool = True) -> str:
    """
    Export configuration as JSON string.

    Args:
        config: Configuration to export
        mask_secrets: If True, mask sensitive values

    Returns:
        JSON string representation of config
    """
    config_dict = config_to_dict(config, mask_secrets)
    return json.dumps(config_dict, indent=2)
