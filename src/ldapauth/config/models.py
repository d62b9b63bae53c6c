"""Configuration models for ldapauth."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator


class DirectoryConfig(BaseModel):
    """Directory server connection settings shared by every request."""

    use_ssl: bool = Field(default=False, description="Connect with LDAPS")
    validate_certificate: bool = Field(default=True, description="Validate server certificate")
    ca_cert_file: Optional[str] = Field(default=None, description="CA certificate file path")
    connect_timeout: int = Field(default=10, description="Connection timeout in seconds")
    receive_timeout: int = Field(default=10, description="Receive timeout in seconds")
    search_time_limit: int = Field(default=10, description="Server-side search time limit in seconds")

    @field_validator('connect_timeout', 'receive_timeout', 'search_time_limit')
    @classmethod
    def validate_positive_int(cls, v):
        """Validate positive integers."""
        if v <= 0:
            raise ValueError('Value must be positive')
        return v


class DispatcherConfig(BaseModel):
    """Worker pool settings."""

    max_workers: int = Field(default=4, description="Number of worker threads")
    max_pending: int = Field(default=64, description="Maximum outstanding requests before submit is refused")
    thread_name_prefix: str = Field(default="ldapauth", description="Worker thread name prefix")

    @field_validator('max_workers', 'max_pending')
    @classmethod
    def validate_positive_int(cls, v):
        """Validate positive integers."""
        if v <= 0:
            raise ValueError('Value must be positive')
        return v


class SearchConfig(BaseModel):
    """Search behaviour switches."""

    abort_on_bind_failure: bool = Field(
        default=False,
        description="Abort a search when the simple bind fails instead of searching anyway"
    )
    report_search_errors: bool = Field(
        default=False,
        description="Report search failures to the callback instead of returning a partial result"
    )
    group_name_attribute: str = Field(default="name", description="Attribute holding a group's short name")

    @field_validator('group_name_attribute')
    @classmethod
    def validate_attribute(cls, v):
        """Validate attribute name is not blank."""
        if not v or not v.strip():
            raise ValueError('Attribute name must not be empty')
        return v.strip()


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    file: Optional[str] = Field(default=None, description="Log file path")
    console: bool = Field(default=True, description="Also log to stderr")

    @field_validator('level')
    @classmethod
    def validate_level(cls, v):
        """Validate logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class."""

    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

