"""
Centralized configuration loader for the Mini-App content API.

Loads settings from a YAML file and environment variables, providing
sensible defaults when the configuration file is absent.

Provides:
    - SweepConfig: Timing of the auto-publish sweeps
    - Settings: Global application settings loaded from YAML + env vars
    - get_settings(): Cached accessor for Settings
    - reset_settings(): Drop the cached instance (tests, reloads)
    - validate_env(): Startup validation of required environment variables
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from src.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of src/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _apply_env_overrides(
    target: Any, overrides: Dict[str, tuple]
) -> None:
    """Override dataclass attributes from environment variables.

    Args:
        target: Dataclass instance to mutate.
        overrides: Mapping ``ENV_KEY -> (attribute_name, cast_fn)``.

    Raises:
        ConfigurationError: If a variable is set but cannot be cast.
    """
    for env_key, (attr_name, cast_fn) in overrides.items():
        env_val = os.environ.get(env_key)
        if env_val is None:
            continue
        try:
            setattr(target, attr_name, cast_fn(env_val))
        except (ValueError, TypeError) as exc:
            raise ConfigurationError(
                f"Invalid value for env var {env_key}='{env_val}': {exc}"
            ) from exc


# ===========================================================================
# SWEEP CONFIGURATION
# ===========================================================================


@dataclass
class SweepConfig:
    """
    Timing of the scheduled-content auto-publish sweeps.

    The periodic interval bounds how long the admin-facing ``status`` label
    can lag behind ``scheduled_at``; end users are not affected because the
    read path derives visibility from ``scheduled_at`` directly.

    Usage::

        config = SweepConfig()
        config.interval_seconds  # 3600
    """

    # Fixed-rate period between sweeps
    interval_seconds: float = 3600.0
    # Delay before the first sweep after process start
    startup_delay_seconds: float = 10.0
    # How far back the manual sweep looks for "just published" items
    recent_publish_window_seconds: float = 60.0
    # Consecutive failed sweeps before every failure is logged as an alert
    failure_alert_threshold: int = 3

    def __post_init__(self) -> None:
        """Override timings from environment variables if set."""
        _apply_env_overrides(self, {
            "SWEEP_INTERVAL_SECONDS": ("interval_seconds", float),
            "SWEEP_STARTUP_DELAY_SECONDS": ("startup_delay_seconds", float),
            "RECENT_PUBLISH_WINDOW_SECONDS": ("recent_publish_window_seconds", float),
            "SWEEP_FAILURE_ALERT_THRESHOLD": ("failure_alert_threshold", int),
        })
        self.validate()

    def validate(self) -> None:
        """
        Validate timing values.

        Raises:
            ConfigurationError: If any timing is out of range.
        """
        if self.interval_seconds <= 0:
            raise ConfigurationError(
                f"interval_seconds must be positive, got {self.interval_seconds}"
            )
        if self.startup_delay_seconds < 0:
            raise ConfigurationError(
                f"startup_delay_seconds must be >= 0, got {self.startup_delay_seconds}"
            )
        if self.recent_publish_window_seconds <= 0:
            raise ConfigurationError(
                "recent_publish_window_seconds must be positive, "
                f"got {self.recent_publish_window_seconds}"
            )
        if self.failure_alert_threshold < 1:
            raise ConfigurationError(
                f"failure_alert_threshold must be >= 1, got {self.failure_alert_threshold}"
            )


# ===========================================================================
# GLOBAL SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global application settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    sensible defaults. Environment variables override YAML values for
    deployment-specific configuration.
    """

    # Deployment
    environment: str = "development"
    port: int = 3001
    cors_origins: List[str] = field(default_factory=lambda: [
        "http://localhost:5173",
        "http://localhost:3000",
    ])

    # Unauthenticated /api/test/* routes (never enable in production)
    enable_debug_routes: bool = False

    # Timezone used only for human-readable diagnostics
    display_timezone: str = "Europe/Moscow"

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"

    # Deadline for every Content Store call (seconds)
    store_timeout_seconds: float = 10.0

    # Sweeps
    sweep: SweepConfig = field(default_factory=SweepConfig)

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values for specific keys.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Returns:
            Populated Settings instance.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed,
                or if an override holds an invalid value.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc

        # -----------------------------------------------------------------
        # Build SweepConfig from nested YAML section (env applied after)
        # -----------------------------------------------------------------
        sweep_data = data.get("sweep", {}) or {}
        unknown = set(sweep_data) - set(SweepConfig.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(
                f"Unknown keys in 'sweep' section of {path}: {sorted(unknown)}"
            )
        sweep = SweepConfig(**sweep_data)

        # -----------------------------------------------------------------
        # Assemble the Settings object
        # -----------------------------------------------------------------
        defaults = cls()
        settings = cls(
            environment=data.get("environment", defaults.environment),
            port=data.get("port", defaults.port),
            cors_origins=data.get("cors_origins", defaults.cors_origins),
            enable_debug_routes=data.get("enable_debug_routes", defaults.enable_debug_routes),
            display_timezone=data.get("display_timezone", defaults.display_timezone),
            log_level=data.get("log_level", defaults.log_level),
            log_dir=data.get("log_dir", defaults.log_dir),
            store_timeout_seconds=data.get(
                "store_timeout_seconds", defaults.store_timeout_seconds
            ),
            sweep=sweep,
        )

        _apply_env_overrides(settings, {
            "APP_ENV": ("environment", str),
            "PORT": ("port", int),
            "ENABLE_DEBUG_ROUTES": ("enable_debug_routes", _parse_bool),
            "DISPLAY_TIMEZONE": ("display_timezone", str),
            "LOG_LEVEL": ("log_level", lambda v: v.strip().upper()),
            "LOG_DIR": ("log_dir", str),
            "STORE_TIMEOUT_SECONDS": ("store_timeout_seconds", float),
        })

        if settings.store_timeout_seconds <= 0:
            raise ConfigurationError(
                "store_timeout_seconds must be positive, "
                f"got {settings.store_timeout_seconds}"
            )
        return settings


# ===========================================================================
# CACHED SETTINGS ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the cached Settings instance.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.

    Returns:
        The Settings instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """
    Reset the cached Settings instance.

    Useful for testing or when configuration files have been updated
    at runtime.
    """
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Required environment variables for the system to function
REQUIRED_ENV_VARS: List[str] = [
    "SUPABASE_URL",
]

# At least one of these must hold the Supabase key
KEY_ENV_VARS: List[str] = [
    "SUPABASE_SERVICE_KEY",
    "SUPABASE_ANON_KEY",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, return the status dict
            without raising.

    Returns:
        Dict mapping variable name to presence status (``True`` if set).

    Raises:
        ConfigurationError: If ``strict=True`` and required vars are missing.
    """
    status: Dict[str, bool] = {}
    missing: List[str] = []

    for var in REQUIRED_ENV_VARS:
        present = bool(os.environ.get(var))
        status[var] = present
        if not present:
            missing.append(var)

    for var in KEY_ENV_VARS:
        status[var] = bool(os.environ.get(var))
    if not any(status[var] for var in KEY_ENV_VARS):
        missing.append(" or ".join(KEY_ENV_VARS))

    if strict and missing:
        raise ConfigurationError(
            f"Missing required environment variables: {missing}. "
            f"Copy .env.example to .env and fill in the values."
        )

    return status
