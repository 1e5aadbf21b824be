"""Configuration for Conductor.

Provides centralized configuration with sensible defaults and environment
variable overrides for orchestration limits, provider settings, and telemetry.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_AGENT_ID = "orchestrator"


@dataclass
class ConductorConfig:
    """Configuration for orchestration runs.

    All settings have sensible defaults but can be overridden via environment
    variables using the from_env() factory method.
    """

    # Storage
    home_dir: Path = field(default_factory=lambda: Path.home() / ".conductor")

    # Orchestration loop safety limits
    max_orchestration_steps: int = 12
    max_delegation_steps: int = 8
    shared_notes_max_chars: int = 12_000
    recent_events_window: int = 10

    # Provider settings
    provider_timeout_seconds: int = 600

    # Telemetry settings
    otlp_endpoint: str = field(
        default_factory=lambda: os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
    )
    service_name: str = "conductor"

    # Logging
    log_dir: Path | None = None

    @classmethod
    def from_env(cls) -> "ConductorConfig":
        """Load config with environment variable overrides.

        Environment variables:
            CONDUCTOR_HOME: Override home_dir (default: ~/.conductor)
            CONDUCTOR_MAX_STEPS: Override max_orchestration_steps (default: 12)
            CONDUCTOR_MAX_DELEGATIONS: Override max_delegation_steps (default: 8)
            CONDUCTOR_PROVIDER_TIMEOUT: Override provider_timeout_seconds (default: 600)
            CONDUCTOR_LOG_DIR: Enable file logging into this directory
            OTLP_ENDPOINT: Override otlp_endpoint (default: http://localhost:4317)
        """
        home = os.getenv("CONDUCTOR_HOME")
        log_dir = os.getenv("CONDUCTOR_LOG_DIR")
        return cls(
            home_dir=Path(home).expanduser() if home else Path.home() / ".conductor",
            max_orchestration_steps=int(os.getenv("CONDUCTOR_MAX_STEPS", "12")),
            max_delegation_steps=int(os.getenv("CONDUCTOR_MAX_DELEGATIONS", "8")),
            provider_timeout_seconds=int(
                os.getenv("CONDUCTOR_PROVIDER_TIMEOUT", "600")
            ),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT", "http://localhost:4317"),
            log_dir=Path(log_dir).expanduser() if log_dir else None,
        )
