"""
Type-safe configuration for the data-flow engine using Pydantic Settings.

This module provides a centralized, type-safe configuration system
that loads from environment variables and .env files.

Usage:
    from shared.config import config

    if config.follow_active_branches:
        ...
"""
from typing import Any, Dict, Optional

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataflowConfig(BaseSettings):
    """
    Central configuration for the editing/testing session engine.

    All configuration is loaded from environment variables or .env file.
    Provides type safety and validation at startup.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ============================================================================
    # Logging
    # ============================================================================

    log_level: str = Field(default="INFO", description="Log level for engine loggers (DEBUG, INFO, WARNING, ...)")

    # ============================================================================
    # Template Resolution
    # ============================================================================

    now_timezone: str = Field(default="Asia/Ho_Chi_Minh", description="IANA timezone used by the {{now}} built-in")
    now_format: str = Field(default="%d/%m/%Y %H:%M:%S", description="strftime format used by the {{now}} built-in")
    positional_input_prefix: str = Field(
        default="input-",
        description="Prefix addressing direct-parent outputs by position, e.g. {{input-0.body}}",
    )

    # ============================================================================
    # Upstream Collection & Test Sessions
    # ============================================================================

    follow_active_branches: bool = Field(
        default=False,
        description="If True, upstream collection skips inactive branches of if/switch nodes.",
    )
    clear_output_on_test_error: bool = Field(
        default=False,
        description="If True, a failed node test clears the node's cached output instead of keeping the last good one.",
    )

    # ============================================================================
    # Executor Back-end
    # ============================================================================

    executor_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the back-end that executes node tests (e.g., http://localhost:8000/api)",
    )
    executor_api_token: Optional[str] = Field(default=None, description="Bearer token sent to the executor back-end")
    executor_timeout: float = Field(default=60.0, description="Timeout in seconds for executor and credential calls")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"

    @field_validator("positional_input_prefix")
    @classmethod
    def _require_prefix(cls, value: str) -> str:
        if not value:
            raise ValueError("positional_input_prefix must be non-empty")
        return value

    # ============================================================================
    # Computed Properties
    # ============================================================================

    @computed_field
    @property
    def executor_headers(self) -> Dict[str, Any]:
        """Headers sent with every executor/credential request."""
        headers: Dict[str, Any] = {"Accept": "application/json"}
        if self.executor_api_token:
            headers["Authorization"] = f"Bearer {self.executor_api_token}"
        return headers

    @property
    def is_executor_configured(self) -> bool:
        """Check if an executor back-end is configured."""
        return bool(self.executor_base_url)


# ============================================================================
# Global Config Instance
# ============================================================================

config = DataflowConfig()
