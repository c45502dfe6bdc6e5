from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, validator
from typing import Optional, List, Dict, Any


class Settings(BaseSettings):
    # Application Settings
    APP_NAME: str = "School ERP Core"
    VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False, env="DEBUG")

    # Registry (shared) database
    REGISTRY_DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./data/registry.db",
        env="REGISTRY_DATABASE_URL"
    )
    SQL_ECHO: bool = Field(default=False, env="SQL_ECHO")

    # Tenant databases. {database_name} is replaced with school_<code>
    TENANT_DATABASE_URL_TEMPLATE: str = Field(
        default="sqlite+aiosqlite:///./data/{database_name}.db",
        env="TENANT_DATABASE_URL_TEMPLATE"
    )
    TENANT_POOL_SIZE: int = Field(default=10, env="TENANT_POOL_SIZE")
    TENANT_MAX_OVERFLOW: int = Field(default=5, env="TENANT_MAX_OVERFLOW")
    TENANT_POOL_TIMEOUT: int = Field(default=30, env="TENANT_POOL_TIMEOUT")
    TENANT_POOL_RECYCLE: int = Field(default=1800, env="TENANT_POOL_RECYCLE")
    TENANT_AUTO_CREATE_SCHEMA: bool = Field(default=True, env="TENANT_AUTO_CREATE_SCHEMA")

    # Tenant connection retries
    TENANT_CONNECT_ATTEMPTS: int = Field(default=3, env="TENANT_CONNECT_ATTEMPTS")
    TENANT_CONNECT_BACKOFF_MULTIPLIER: float = Field(default=1.0, env="TENANT_CONNECT_BACKOFF_MULTIPLIER")
    TENANT_CONNECT_BACKOFF_MIN: float = Field(default=1.0, env="TENANT_CONNECT_BACKOFF_MIN")
    TENANT_CONNECT_BACKOFF_MAX: float = Field(default=10.0, env="TENANT_CONNECT_BACKOFF_MAX")

    # Reporting
    REPORT_DEFAULT_PAGE_SIZE: int = Field(default=1000, env="REPORT_DEFAULT_PAGE_SIZE")
    REPORT_MAX_PAGE_SIZE: int = Field(default=5000, env="REPORT_MAX_PAGE_SIZE")
    REPORT_SCAN_BATCH_SIZE: int = Field(default=500, env="REPORT_SCAN_BATCH_SIZE")

    # CORS Settings
    ALLOWED_ORIGINS: List[str] = Field(
        default=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000"
        ],
        env="ALLOWED_ORIGINS"
    )

    # Logging Settings
    LOG_LEVEL: str = Field(default="INFO", env="LOG_LEVEL")
    LOG_DIR: Optional[str] = Field(default=None, env="LOG_DIR")

    @validator('ALLOWED_ORIGINS', pre=True)
    def parse_allowed_origins(cls, v):
        if isinstance(v, str):
            try:
                import json
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(",")]
        return v

    @validator('TENANT_DATABASE_URL_TEMPLATE')
    def validate_tenant_url_template(cls, v: str) -> str:
        if "{database_name}" not in v:
            raise ValueError("TENANT_DATABASE_URL_TEMPLATE must contain a {database_name} placeholder")
        return v

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v

    @validator('TENANT_CONNECT_ATTEMPTS')
    def validate_connect_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("TENANT_CONNECT_ATTEMPTS must be at least 1")
        return v

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True
    )

# Initialize settings
settings = Settings()

# Helper Functions
def get_registry_database_url() -> str:
    return settings.REGISTRY_DATABASE_URL

def get_resolver_settings(config: Optional[Settings] = None) -> Dict[str, Any]:
    config = config or settings
    return {
        "url_template": config.TENANT_DATABASE_URL_TEMPLATE,
        "max_attempts": config.TENANT_CONNECT_ATTEMPTS,
        "backoff_multiplier": config.TENANT_CONNECT_BACKOFF_MULTIPLIER,
        "backoff_min": config.TENANT_CONNECT_BACKOFF_MIN,
        "backoff_max": config.TENANT_CONNECT_BACKOFF_MAX,
        "auto_create_schema": config.TENANT_AUTO_CREATE_SCHEMA,
    }

def get_engine_options(config: Optional[Settings] = None) -> Dict[str, Any]:
    config = config or settings
    return {
        "echo": config.SQL_ECHO,
        "pool_size": config.TENANT_POOL_SIZE,
        "max_overflow": config.TENANT_MAX_OVERFLOW,
        "pool_timeout": config.TENANT_POOL_TIMEOUT,
        "pool_recycle": config.TENANT_POOL_RECYCLE,
    }

def get_report_settings(config: Optional[Settings] = None) -> Dict[str, int]:
    config = config or settings
    return {
        "default_page_size": config.REPORT_DEFAULT_PAGE_SIZE,
        "max_page_size": config.REPORT_MAX_PAGE_SIZE,
        "scan_batch_size": config.REPORT_SCAN_BATCH_SIZE,
    }

def get_logging_config() -> Dict[str, Optional[str]]:
    return {
        "log_level": settings.LOG_LEVEL,
        "log_dir": settings.LOG_DIR
    }
