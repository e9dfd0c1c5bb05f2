"""
Configuration management for the list batcher.

Supports configuration via environment variables and .env files.
"""

from enum import Enum
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ErrorDirective(str, Enum):
    """What the remote service does when one operation in a batch fails."""
    CONTINUE = "Continue"   # Keep processing the rest of the batch
    RETURN = "Return"       # Abort the remainder of the batch


class UpdateCommand(str, Enum):
    """Command applied to generated update methods."""
    UPDATE = "Update"
    NEW = "New"
    DELETE = "Delete"


class ListBatcherConfig(BaseSettings):
    """
    Configuration settings for the list batcher.

    All settings can be configured via environment variables with the
    LISTBATCHER_ prefix. Instances are frozen so a shared default can
    never be changed by one caller behind another's back.
    """

    model_config = SettingsConfigDict(
        env_prefix="LISTBATCHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    # Target list
    web_url: str = Field(
        default="",
        description="URL of the site that owns the list"
    )
    list_name: str = Field(
        default="",
        description="Name or GUID of the list to update"
    )

    # Batching parameters
    batch_size: int = Field(
        default=100,
        ge=1,
        description="Maximum number of operations per request"
    )
    concurrency: int = Field(
        default=2,
        ge=1,
        description="Maximum number of requests in flight at once"
    )
    update_type: UpdateCommand = Field(
        default=UpdateCommand.UPDATE,
        description="Command used for generated update methods"
    )
    on_error: ErrorDirective = Field(
        default=ErrorDirective.CONTINUE,
        description="Remote behaviour when an operation in a batch fails"
    )

    # Transport settings
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to each request"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )

    @property
    def lists_service_url(self) -> str:
        """Get the Lists web service endpoint for the configured site."""
        base = self.web_url
        if not base.endswith("/"):
            base += "/"
        return base + "_vti_bin/Lists.asmx"


# Global config instance
_config: Optional[ListBatcherConfig] = None


def get_config() -> ListBatcherConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = ListBatcherConfig()
    return _config


def set_config(config: Optional[ListBatcherConfig]) -> None:
    """Set (or clear, with None) the global configuration instance."""
    global _config
    _config = config
