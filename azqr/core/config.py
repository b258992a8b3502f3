"""Core configuration settings.

Centralized configuration using Pydantic Settings for environment
variable management with sensible defaults.
"""

import logging
from functools import lru_cache
from typing import Annotated

from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

CommaSeparatedList = Annotated[list[str], NoDecode]


def _split_comma_separated(v: str | list[str] | None) -> list[str]:
    """Parse a comma-separated string or list into a list of stripped values."""
    if v is None:
        return []
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    return [str(item).strip() for item in v if str(item).strip()]


class Settings(BaseSettings):
    """Scan settings loaded from environment variables.

    Credentials are optional: when tenant, client id and secret are not all
    set, the scanner falls back to DefaultAzureCredential (Azure CLI, managed
    identity, environment credentials, ...).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Azure Quick Review"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # =========================================================================
    # Azure Authentication
    # =========================================================================

    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    # =========================================================================
    # Scan Scope
    # =========================================================================

    # Comma-separated subscription IDs; empty means every enabled subscription
    subscription_ids: CommaSeparatedList = Field(default_factory=list)
    # Comma-separated resource group names; empty means every resource group
    resource_group_filter: CommaSeparatedList = Field(default_factory=list)
    # Resource type filters, e.g. Microsoft.ContainerService/managedClusters
    include_resource_types: CommaSeparatedList = Field(default_factory=list)
    exclude_resource_types: CommaSeparatedList = Field(default_factory=list)

    # =========================================================================
    # Scan Behaviour
    # =========================================================================

    enable_detailed_scan: bool = False
    max_parallel_scans: int = 10
    # Concurrent diagnostic settings lookups while building a scan context
    diagnostics_lookup_workers: int = 8
    scan_timeout_seconds: float | None = None
    mask_subscription_ids: bool = False

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator(
        "subscription_ids",
        "resource_group_filter",
        "include_resource_types",
        "exclude_resource_types",
        mode="before",
    )
    @classmethod
    def parse_comma_separated(cls, v: str | list[str] | None) -> list[str]:
        """Parse list settings from a comma-separated string or list."""
        return _split_comma_separated(v)

    @field_validator("subscription_ids")
    @classmethod
    def normalize_subscription_ids(cls, v: list[str]) -> list[str]:
        """Lower-case subscription IDs and drop duplicates, keeping order."""
        seen: list[str] = []
        for sub_id in v:
            normalized = sub_id.lower()
            if normalized not in seen:
                seen.append(normalized)
        return seen

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate the log level is a known logging level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return level

    @field_validator("max_parallel_scans", "diagnostics_lookup_workers")
    @classmethod
    def validate_concurrency(cls, v: int, info: ValidationInfo) -> int:
        """Require at least one concurrent worker."""
        if v < 1:
            raise ValueError(f"{info.field_name.upper()} must be at least 1")
        return v

    @field_validator("scan_timeout_seconds")
    @classmethod
    def validate_scan_timeout(cls, v: float | None) -> float | None:
        """Require a positive deadline when one is configured."""
        if v is not None and v <= 0:
            raise ValueError("SCAN_TIMEOUT_SECONDS must be greater than 0")
        return v

    @model_validator(mode="after")
    def validate_credentials(self):
        """Warn when service principal settings are only partially configured."""
        configured = [
            self.azure_tenant_id,
            self.azure_client_id,
            self.azure_client_secret,
        ]
        if any(configured) and not all(configured):
            logger.warning(
                "Service principal settings are incomplete "
                "(AZURE_TENANT_ID, AZURE_CLIENT_ID, AZURE_CLIENT_SECRET); "
                "falling back to DefaultAzureCredential"
            )
        return self

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def is_service_principal_configured(self) -> bool:
        """Check if a complete service principal configuration is present."""
        return all([
            self.azure_tenant_id,
            self.azure_client_id,
            self.azure_client_secret,
        ])


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
