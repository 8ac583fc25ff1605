"""Configuration management with validation.

Configuration is loaded once from the environment and validated at
construction time so the operator fails fast on a bad deployment.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_RECONCILE_INTERVAL_SECONDS = 60
MIN_RECONCILE_INTERVAL_SECONDS = 10
MAX_RECONCILE_INTERVAL_SECONDS = 3600

DEFAULT_OPERATION_TIMEOUT_SECONDS = 120
MAX_OPERATION_TIMEOUT_SECONDS = 1800

# Limits on the declarative spec file
MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file
SPEC_FILE_NAME = "firewalls.yaml"

# GCE limits
MAX_FIREWALL_NAME_LENGTH = 63
MAX_NETWORK_TAG_LENGTH = 63

# Input validation patterns
VALID_PROJECT_ID_PATTERN = r"^[a-z][a-z0-9-]{4,28}[a-z0-9]$"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Required fields
    project_id: str
    network_url: str

    # Shared VPC host project; defaults to project_id
    network_project_id: str = ""

    # Paths
    specs_dir: Path = field(default_factory=lambda: Path("/specs"))

    # Firewall behavior
    enable_pinhole: bool = False
    node_tags: tuple[str, ...] = ()
    node_instance_prefix: str = ""

    # Timing
    reconcile_interval_seconds: int = DEFAULT_RECONCILE_INTERVAL_SECONDS
    operation_timeout_seconds: int = DEFAULT_OPERATION_TIMEOUT_SECONDS

    # Logging
    enable_json_logging: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        # Frozen dataclass: fill the derived default through object.__setattr__
        if not self.network_project_id:
            object.__setattr__(self, "network_project_id", self.project_id)

        errors: list[str] = []

        if not self.project_id:
            errors.append("GCP_PROJECT_ID is required")
        elif not re.match(VALID_PROJECT_ID_PATTERN, self.project_id):
            errors.append(f"GCP_PROJECT_ID must match pattern {VALID_PROJECT_ID_PATTERN}: {self.project_id}")

        if self.network_project_id and not re.match(VALID_PROJECT_ID_PATTERN, self.network_project_id):
            errors.append(
                f"GCP_NETWORK_PROJECT_ID must match pattern {VALID_PROJECT_ID_PATTERN}: "
                f"{self.network_project_id}"
            )

        if not self.network_url:
            errors.append("GCP_NETWORK is required")

        for tag in self.node_tags:
            if len(tag) > MAX_NETWORK_TAG_LENGTH:
                errors.append(f"NODE_TAGS entry exceeds {MAX_NETWORK_TAG_LENGTH} characters: {tag}")

        if not (
            MIN_RECONCILE_INTERVAL_SECONDS
            <= self.reconcile_interval_seconds
            <= MAX_RECONCILE_INTERVAL_SECONDS
        ):
            errors.append(
                f"RECONCILE_INTERVAL must be between {MIN_RECONCILE_INTERVAL_SECONDS} "
                f"and {MAX_RECONCILE_INTERVAL_SECONDS} seconds"
            )

        if not (1 <= self.operation_timeout_seconds <= MAX_OPERATION_TIMEOUT_SECONDS):
            errors.append(
                f"OPERATION_TIMEOUT must be between 1 and {MAX_OPERATION_TIMEOUT_SECONDS} seconds"
            )

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {VALID_LOG_LEVELS}: {self.log_level}")

        if not self.specs_dir.exists():
            errors.append(f"Specs directory does not exist: {self.specs_dir}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def on_xpn(self) -> bool:
        """True when the network is owned by a different (host) project."""
        return self.network_project_id != self.project_id

    @property
    def network_link(self) -> str:
        """Network as a resource path; a bare name is qualified with the network project."""
        if "/" in self.network_url:
            return self.network_url
        return f"projects/{self.network_project_id}/global/networks/{self.network_url}"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            GCP_PROJECT_ID: Project the operator runs in (required)
            GCP_NETWORK_PROJECT_ID: Shared VPC host project (default: GCP_PROJECT_ID)
            GCP_NETWORK: Network URL or name firewall rules attach to (required)
            ENABLE_PINHOLE: If "true", scope rules by destination range (default: false)
            NODE_TAGS: Comma-separated static node tags, skips instance lookup
            NODE_INSTANCE_PREFIX: Only instances whose name has this prefix contribute tags
            SPECS_DIR: Path to the firewall spec directory (default: /specs)
            RECONCILE_INTERVAL: Seconds between reconciliation loops (default: 60)
            OPERATION_TIMEOUT: Seconds to wait for a GCE operation (default: 120)
            ENABLE_JSON_LOGGING: Emit JSON logs to stdout (default: true)
            LOG_LEVEL: Root log level (default: INFO)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def get_list(key: str) -> tuple[str, ...]:
            value = os.environ.get(key, "")
            return tuple(item.strip() for item in value.split(",") if item.strip())

        return cls(
            project_id=os.environ.get("GCP_PROJECT_ID", ""),
            network_project_id=os.environ.get("GCP_NETWORK_PROJECT_ID", ""),
            network_url=os.environ.get("GCP_NETWORK", ""),
            specs_dir=Path(os.environ.get("SPECS_DIR", "/specs")),
            enable_pinhole=get_bool("ENABLE_PINHOLE", False),
            node_tags=get_list("NODE_TAGS"),
            node_instance_prefix=os.environ.get("NODE_INSTANCE_PREFIX", ""),
            reconcile_interval_seconds=get_int(
                "RECONCILE_INTERVAL", DEFAULT_RECONCILE_INTERVAL_SECONDS
            ),
            operation_timeout_seconds=get_int(
                "OPERATION_TIMEOUT", DEFAULT_OPERATION_TIMEOUT_SECONDS
            ),
            enable_json_logging=get_bool("ENABLE_JSON_LOGGING", True),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
        )
