"""Configuration management for the roadmap workflow engine."""

import os
from enum import Enum
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .models.core import DEFAULT_MODEL

ENV_PREFIX = "ROADMAPFLOW_"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    """Where saved projects live."""
    SQL = "sql"
    MEMORY = "memory"


class AppConfig(BaseModel):
    """Application configuration settings."""

    # Application settings
    app_name: str = Field(default="Roadmap Flow", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    reload: bool = Field(default=False, description="Enable auto-reload in development")

    # Storage settings
    storage_backend: StorageBackend = Field(default=StorageBackend.SQL, description="Project store adapter")
    database_url: str = Field(default="sqlite:///./roadmapflow.db", description="Database connection URL")
    database_echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")

    # Generation service settings
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API key")
    gemini_api_base: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini REST API base URL"
    )
    default_model: str = Field(default=DEFAULT_MODEL, description="Model used by agent nodes without one")
    request_timeout_ms: int = Field(default=240000, description="Per-call generation timeout in milliseconds")
    max_retries: int = Field(default=3, description="Retries on rate limiting")
    retry_base_delay_ms: int = Field(default=1000, description="First backoff delay in milliseconds")
    retry_max_delay_ms: int = Field(default=30000, description="Backoff delay cap in milliseconds")

    # Execution settings
    node_pacing_ms: int = Field(default=0, description="Delay after each successful node")
    extraction_var: str = Field(default="extractedData", description="Context slot of the extraction output")
    planning_var: str = Field(default="roadmapPlan", description="Context slot of the planning output")
    run_retention_hours: int = Field(default=24, description="How long finished runs stay queryable")

    # Logging settings
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_file: Optional[str] = Field(default=None, description="Log file path")
    log_structured: bool = Field(default=False, description="Emit JSON log lines")
    log_max_size: int = Field(default=10485760, description="Maximum log file size in bytes")
    log_backup_count: int = Field(default=5, description="Number of log backup files to keep")

    # Performance monitoring settings
    slow_request_threshold: float = Field(default=30.0, description="Slow request threshold in seconds")
    enable_performance_monitoring: bool = Field(default=True, description="Enable request logging middleware")

    # Security settings
    cors_origins: List[str] = Field(default=["*"], description="CORS allowed origins")
    cors_methods: List[str] = Field(
        default=["GET", "POST", "PUT", "PATCH", "DELETE"],
        description="CORS allowed methods"
    )

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v):
        """Validate database URL format."""
        if not v:
            raise ValueError("Database URL cannot be empty")

        supported_schemes = ['sqlite', 'postgresql', 'mysql']
        scheme = v.split('://')[0].split('+')[0].lower()
        if scheme not in supported_schemes:
            raise ValueError(f"Unsupported database scheme: {scheme}. Supported: {supported_schemes}")
        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        """Validate port number."""
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator('request_timeout_ms', 'retry_base_delay_ms', 'retry_max_delay_ms')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("Timeouts and delays must be at least 1 millisecond")
        return v

    @field_validator('max_retries', 'node_pacing_ms')
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Value cannot be negative")
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def get_uvicorn_config(self) -> Dict[str, Any]:
        """Get Uvicorn server configuration."""
        return {
            "host": self.host,
            "port": self.port,
            "reload": self.reload,
            "log_level": self.log_level.value.lower(),
            "access_log": self.debug
        }

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Create configuration from ``ROADMAPFLOW_*`` environment variables."""
        def get_env(key: str, default=None, type_func=str):
            value = os.getenv(f"{ENV_PREFIX}{key}")
            if value is None:
                return default
            if type_func == bool:
                return str(value).lower() in ('true', '1', 'yes', 'on')
            elif type_func == list:
                return [item.strip() for item in value.split(',') if item.strip()] or default
            return type_func(value)

        api_key = get_env("GEMINI_API_KEY") or os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")

        return cls(
            app_name=get_env("APP_NAME", "Roadmap Flow"),
            app_version=get_env("APP_VERSION", "1.0.0"),
            debug=get_env("DEBUG", False, bool),
            host=get_env("HOST", "0.0.0.0"),
            port=get_env("PORT", 8000, int),
            reload=get_env("RELOAD", False, bool),
            storage_backend=StorageBackend(get_env("STORAGE_BACKEND", "sql").lower()),
            database_url=get_env("DATABASE_URL", "sqlite:///./roadmapflow.db"),
            database_echo=get_env("DATABASE_ECHO", False, bool),
            gemini_api_key=api_key,
            gemini_api_base=get_env("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"),
            default_model=get_env("DEFAULT_MODEL", DEFAULT_MODEL),
            request_timeout_ms=get_env("REQUEST_TIMEOUT_MS", 240000, int),
            max_retries=get_env("MAX_RETRIES", 3, int),
            retry_base_delay_ms=get_env("RETRY_BASE_DELAY_MS", 1000, int),
            retry_max_delay_ms=get_env("RETRY_MAX_DELAY_MS", 30000, int),
            node_pacing_ms=get_env("NODE_PACING_MS", 0, int),
            extraction_var=get_env("EXTRACTION_VAR", "extractedData"),
            planning_var=get_env("PLANNING_VAR", "roadmapPlan"),
            run_retention_hours=get_env("RUN_RETENTION_HOURS", 24, int),
            log_level=LogLevel(get_env("LOG_LEVEL", "INFO").upper()),
            log_format=get_env("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            log_file=get_env("LOG_FILE", None),
            log_structured=get_env("LOG_STRUCTURED", False, bool),
            log_max_size=get_env("LOG_MAX_SIZE", 10485760, int),
            log_backup_count=get_env("LOG_BACKUP_COUNT", 5, int),
            slow_request_threshold=get_env("SLOW_REQUEST_THRESHOLD", 30.0, float),
            enable_performance_monitoring=get_env("ENABLE_PERFORMANCE_MONITORING", True, bool),
            cors_origins=get_env("CORS_ORIGINS", ["*"], list),
            cors_methods=get_env("CORS_METHODS", ["GET", "POST", "PUT", "PATCH", "DELETE"], list),
        )


# Global configuration instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def load_config(config_file: Optional[str] = None) -> AppConfig:
    """Load configuration from a .env file (if present) and the environment."""
    global _config

    if config_file and os.path.exists(config_file):
        load_dotenv(config_file)
    elif os.path.exists('.env'):
        load_dotenv('.env')

    _config = AppConfig.from_env()
    return _config


def reset_config():
    """Reset the global configuration instance (mainly for testing)."""
    global _config
    _config = None


def validate_config(config: AppConfig) -> None:
    """Check settings that only fail at runtime."""
    errors = []

    if config.storage_backend == StorageBackend.SQL and config.is_sqlite:
        db_path = config.database_url.replace("sqlite:///", "")
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            try:
                os.makedirs(db_dir, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create database directory {db_dir}: {e}")

    if config.log_file:
        log_dir = os.path.dirname(config.log_file)
        if log_dir and not os.path.exists(log_dir):
            try:
                os.makedirs(log_dir, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create log directory {log_dir}: {e}")

    if config.retry_base_delay_ms > config.retry_max_delay_ms:
        errors.append("retry_base_delay_ms cannot exceed retry_max_delay_ms")

    if errors:
        raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")


def get_testing_config() -> AppConfig:
    """Get testing configuration."""
    return AppConfig(
        debug=True,
        storage_backend=StorageBackend.MEMORY,
        database_url="sqlite:///:memory:",
        log_level=LogLevel.WARNING,
        request_timeout_ms=5000,
        max_retries=3,
        retry_base_delay_ms=1,
        retry_max_delay_ms=5,
    )


def get_development_config() -> AppConfig:
    """Get development configuration."""
    return AppConfig(
        debug=True,
        reload=True,
        log_level=LogLevel.DEBUG,
        database_echo=True,
    )
