"""Settings for the Flowline server, read from ``FLOWLINE_*`` environment variables."""

import os
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .core.exceptions import ConfigurationError

ENV_PREFIX = "FLOWLINE_"
SUPPORTED_DATABASES = ("sqlite", "postgresql", "mysql")


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class AppConfig(BaseModel):
    """Server, storage, outbound-call and logging settings."""

    app_name: str = Field(default="Flowline", description="Service name shown in health checks and docs")
    app_version: str = Field(default="1.0.0", description="Service version")
    debug: bool = Field(default=False, description="FastAPI debug mode and uvicorn access log")

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=8081, description="Bind port")
    reload: bool = Field(default=False, description="uvicorn auto-reload")

    database_url: str = Field(default="sqlite:///./flowline.db", description="SQLAlchemy database URL")
    database_echo: bool = Field(default=False, description="Log every SQL statement")

    max_concurrent_runs: int = Field(default=10, description="Worker threads executing runs")

    http_timeout: float = Field(default=30.0, description="Default timeout for http_request nodes, seconds")
    jira_timeout: float = Field(default=30.0, description="Timeout for Jira API calls, seconds")
    slack_timeout: float = Field(default=15.0, description="Timeout for Slack API calls, seconds")
    slack_api_url: str = Field(
        default="https://slack.com/api/chat.postMessage",
        description="Slack chat.postMessage endpoint"
    )

    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_format: str = Field(default="%(asctime)s %(levelname)-8s %(name)s: %(message)s")
    log_file: Optional[str] = Field(default=None, description="Also log to this rotating file")
    log_max_size: int = Field(default=10 * 1024 * 1024, description="Rotate the log file at this many bytes")
    log_backup_count: int = Field(default=5)
    log_structured: bool = Field(default=False, description="Emit JSON log lines")

    # The editor dev servers
    cors_origins: List[str] = Field(default=["http://localhost:5173", "http://localhost:3000"])
    cors_methods: List[str] = Field(default=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        """Reject URLs SQLAlchemy cannot parse or backends we don't run on."""
        try:
            backend = make_url(v).get_backend_name()
        except ArgumentError as e:
            raise ValueError(f"Invalid database URL: {e}")
        if backend not in SUPPORTED_DATABASES:
            raise ValueError(f"Unsupported database '{backend}'. Supported: {', '.join(SUPPORTED_DATABASES)}")
        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('max_concurrent_runs')
    @classmethod
    def validate_max_concurrent_runs(cls, v):
        if v < 1:
            raise ValueError("max_concurrent_runs must be at least 1")
        return v

    @field_validator('http_timeout', 'jira_timeout', 'slack_timeout')
    @classmethod
    def validate_timeouts(cls, v):
        if v <= 0:
            raise ValueError("Timeouts must be a positive number of seconds")
        return v

    @property
    def is_sqlite(self) -> bool:
        return make_url(self.database_url).get_backend_name() == "sqlite"

    @property
    def sqlite_path(self) -> Optional[str]:
        """Filesystem path of a file-backed SQLite database, else None."""
        if not self.is_sqlite:
            return None
        path = make_url(self.database_url).database
        return path if path and path != ":memory:" else None

    def get_database_connect_args(self) -> Dict[str, Any]:
        """Runs write from worker threads, so SQLite must accept cross-thread use."""
        return {"check_same_thread": False} if self.is_sqlite else {}

    def get_uvicorn_config(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'AppConfig':
        """
        Build a config from ``FLOWLINE_<FIELD>`` variables.

        Unset variables keep the field default. ``FLOWLINE_LOG_LEVEL`` is
        case-insensitive; list fields are comma separated.
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for field_name, parse in _ENV_FIELDS:
            raw = environ.get(f"{ENV_PREFIX}{field_name.upper()}")
            if raw is not None:
                values[field_name] = parse(raw)
        return cls(**values)


_ENV_FIELDS: Tuple[Tuple[str, Callable[[str], Any]], ...] = (
    ("app_name", str),
    ("app_version", str),
    ("debug", _parse_bool),
    ("host", str),
    ("port", int),
    ("reload", _parse_bool),
    ("database_url", str),
    ("database_echo", _parse_bool),
    ("max_concurrent_runs", int),
    ("http_timeout", float),
    ("jira_timeout", float),
    ("slack_timeout", float),
    ("slack_api_url", str),
    ("log_level", lambda value: LogLevel(value.strip().upper())),
    ("log_format", str),
    ("log_file", str),
    ("log_max_size", int),
    ("log_backup_count", int),
    ("log_structured", _parse_bool),
    ("cors_origins", _parse_list),
    ("cors_methods", _parse_list),
)


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide config, reading the environment on first use."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load a .env file (``config_file`` or ./.env) into the environment, then build the config."""
    global _config

    from dotenv import load_dotenv

    env_file = config_file if config_file and os.path.exists(config_file) else '.env'
    if os.path.exists(env_file):
        load_dotenv(env_file)

    _config = AppConfig.from_env()
    return _config


def reset_config():
    """Forget the cached config."""
    global _config
    _config = None


def _ensure_parent_dir(path: str, label: str, errors: List[str]) -> None:
    directory = os.path.dirname(path)
    if not directory or os.path.isdir(directory):
        return
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as e:
        errors.append(f"Cannot create {label} directory {directory}: {e}")


def validate_config(config: AppConfig) -> None:
    """
    Check the parts of the config that touch the filesystem.

    Creates missing directories for a SQLite database file and the log file.

    Raises:
        ConfigurationError: If a directory cannot be created
    """
    errors: List[str] = []
    if config.sqlite_path:
        _ensure_parent_dir(config.sqlite_path, "database", errors)
    if config.log_file:
        _ensure_parent_dir(config.log_file, "log", errors)

    if errors:
        raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")


def get_development_config() -> AppConfig:
    return AppConfig(debug=True, reload=True, log_level=LogLevel.DEBUG, database_echo=True)


def get_testing_config() -> AppConfig:
    """In-memory database, quiet logs, a small worker pool and no CORS."""
    return AppConfig(
        debug=True,
        database_url="sqlite:///:memory:",
        log_level=LogLevel.WARNING,
        max_concurrent_runs=2,
        cors_origins=[]
    )
