"""
Configuration management for the Call Options service.

Uses Pydantic BaseSettings for type-safe configuration loading from environment
variables. The loaded settings are an immutable snapshot; a reload builds and
validates a complete new snapshot before publishing it.
"""

import threading
from typing import Any, Dict, Optional, Union

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings
from sqlalchemy.engine import URL

from call_options.utils.exceptions import ConfigurationException
from call_options.utils.logger import get_logger

logger = get_logger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Policy store (MySQL) configuration
    db_hostname: str = Field(default="127.0.0.1", description="The database hostname")
    db_username: str = Field(default="dbaser", description="The database username")
    db_secret: SecretStr = Field(default=SecretStr("dbpass"), description="The database secret")
    db_name: str = Field(default="plugandtel", description="The database name to connect to")
    db_socket: Optional[str] = Field(default="/tmp/mysql.sock", description="The database socket")
    db_port: int = Field(default=3306, description="The database port")
    database_url: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL, overrides the individual db_* fields"
    )
    db_pool_size: int = Field(default=10, description="Connections kept open for concurrent calls")
    db_pool_recycle: int = Field(default=3600, description="Recycle connections older than this (seconds)")

    # Recording configuration
    recording_path: str = Field(
        default="/var/spool/asterisk/monitor",
        description="The path used where to save recorded calls"
    )
    recording_host: str = Field(default="LEA-DEFAULT", description="The hostname of the media gateway")
    recording_extension: str = Field(default="WAV", description="Extension of audio file to save")

    # Numbering plan
    domestic_prefix: str = Field(default="33", description="Country prefix of domestic canonical numbers")
    pool_number_prefix: str = Field(
        default="0",
        description="Prefix pool numbers are stored under, before the subscriber digit"
    )
    translation_tenant_id: int = Field(default=1, description="Tenant owning the prefix translation rules")
    max_dialed_length: int = Field(default=25, description="Longest dialed number accepted")

    # Asterisk ARI configuration
    ari_enabled: bool = Field(default=False, description="Consume calls from Asterisk ARI")
    ari_host: str = Field(default="127.0.0.1", description="Asterisk ARI host")
    ari_port: int = Field(default=8088, description="Asterisk ARI port")
    ari_username: str = Field(default="asterisk", description="Asterisk ARI user")
    ari_password: SecretStr = Field(default=SecretStr("asterisk"), description="Asterisk ARI password")
    ari_app_name: str = Field(default="options", description="Stasis application name")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3007, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: text or json")
    environment: str = Field(default="development", description="Environment: development or production")

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        frozen = True

    @field_validator("db_port")
    @classmethod
    def validate_db_port(cls, v: int) -> int:
        """Validate database port is in the accepted range."""
        if not 0 <= v <= 20000:
            raise ValueError("db_port must be between 0 and 20000")
        return v

    @field_validator("domestic_prefix")
    @classmethod
    def validate_domestic_prefix(cls, v: str) -> str:
        """Validate domestic prefix is set."""
        if not v.strip():
            raise ValueError("domestic_prefix cannot be empty")
        return v.strip()

    @field_validator("max_dialed_length")
    @classmethod
    def validate_max_dialed_length(cls, v: int) -> int:
        """Validate dialed number length bound."""
        if v < 1:
            raise ValueError("max_dialed_length must be at least 1")
        return v

    @field_validator("recording_extension")
    @classmethod
    def validate_recording_extension(cls, v: str) -> str:
        """Strip a leading dot from the recording extension."""
        v = v.strip().lstrip(".")
        if not v:
            raise ValueError("recording_extension cannot be empty")
        return v

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is either 'development' or 'production'."""
        if v not in ["development", "production"]:
            raise ValueError("environment must be either 'development' or 'production'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        v_lower = v.lower()
        if v_lower not in ["text", "json"]:
            raise ValueError("log_format must be either 'text' or 'json'")
        return v_lower

    def build_database_url(self) -> Union[str, URL]:
        """
        Build the SQLAlchemy URL of the policy store.

        Returns:
            database_url when set, otherwise a mysql+pymysql URL
        """
        if self.database_url:
            return self.database_url

        query = {}
        # The client library only uses the socket for local connections
        if self.db_hostname == "localhost" and self.db_socket:
            query["unix_socket"] = self.db_socket

        return URL.create(
            "mysql+pymysql",
            username=self.db_username,
            password=self.db_secret.get_secret_value(),
            host=self.db_hostname,
            port=self.db_port,
            database=self.db_name,
            query=query,
        )

    def store_key(self) -> tuple:
        """Connection parameters that require a new store when they change."""
        url = self.build_database_url()
        if isinstance(url, URL):
            url = url.render_as_string(hide_password=False)
        return (url, self.db_pool_size, self.db_pool_recycle)

    def describe(self) -> Dict[str, Any]:
        """Return the configuration with secrets redacted, for startup logging."""
        url = self.build_database_url()
        if isinstance(url, URL):
            url = url.render_as_string(hide_password=True)
        elif "@" in url:
            url = "***@" + url.split("@", 1)[1]

        return {
            "database": url,
            "recording_path": self.recording_path,
            "recording_host": self.recording_host,
            "recording_extension": self.recording_extension,
            "domestic_prefix": self.domestic_prefix,
            "pool_number_prefix": self.pool_number_prefix,
            "translation_tenant_id": self.translation_tenant_id,
            "ari_enabled": self.ari_enabled,
            "environment": self.environment,
            "log_level": self.log_level,
        }


# Current settings snapshot, replaced as a whole on reload
_settings: Optional[Settings] = None
_settings_lock = threading.Lock()


def load_settings() -> Settings:
    """
    Load and validate a new settings snapshot without publishing it.

    Returns:
        New Settings instance

    Raises:
        ConfigurationException: If the configuration is invalid
    """
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationException(f"Configuration error: {e}") from e


def get_settings() -> Settings:
    """
    Get the current settings snapshot.

    Returns:
        Settings instance

    Raises:
        ConfigurationException: If the configuration is invalid
    """
    global _settings

    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = load_settings()
                logger.info(f"Configuration loaded successfully: {_settings.describe()}")

    return _settings


def reload_settings() -> Settings:
    """
    Load and validate a new settings snapshot, then publish it.

    The previous snapshot stays in place when the new one fails validation.

    Returns:
        New Settings instance

    Raises:
        ConfigurationException: If the new configuration is invalid
    """
    global _settings

    new_settings = load_settings()
    with _settings_lock:
        _settings = new_settings

    logger.info(f"Configuration reloaded: {new_settings.describe()}")
    return new_settings


def set_settings(settings: Settings) -> None:
    """Publish an already-built snapshot (used at startup and by tests)."""
    global _settings
    with _settings_lock:
        _settings = settings
