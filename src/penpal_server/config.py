"""
Server configuration management.

This module handles loading and accessing server configuration from multiple sources
with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/server.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The ServerConfig
dataclass provides typed access to all settings.

Usage:
    from penpal_server.config import config

    print(config.exchange.auto_verify_days)
    print(config.scheduler.interval_minutes)

Environment Variable Mapping:
    PENPAL_HOST                     -> server.host
    PENPAL_PORT                     -> server.port
    PENPAL_DB_PATH                  -> database.path
    PENPAL_LOG_LEVEL                -> logging.level
    PENPAL_LOG_FORMAT               -> logging.format
    PENPAL_ADMIN_IDS                -> security.admin_ids
    PENPAL_CORS_ORIGINS             -> security.cors_origins
    PENPAL_TOTAL_STEPS              -> exchange.total_steps
    PENPAL_REMINDER_DAYS            -> exchange.reminder_days
    PENPAL_ESCALATION_DAYS          -> exchange.escalation_days
    PENPAL_AUTO_VERIFY_DAYS         -> exchange.auto_verify_days
    PENPAL_CANCEL_PENALTY_POINTS    -> exchange.cancel_penalty_points
    PENPAL_UNVERIFIED_PENALTY_POINTS -> exchange.unverified_send_penalty_points
    PENPAL_COMPLETION_REWARD_POINTS -> exchange.completion_reward_points
    PENPAL_SCHEDULER_ENABLED        -> scheduler.enabled
    PENPAL_SCHEDULER_INTERVAL_MINUTES -> scheduler.interval_minutes
    PENPAL_TX_MAX_ATTEMPTS          -> transactions.max_attempts
    PENPAL_TX_BACKOFF_SECONDS       -> transactions.backoff_seconds
    PENPAL_NOTIFY_WEBHOOK_URL       -> notifications.webhook_url
    PENPAL_EVIDENCE_UPLOAD_URL      -> evidence.upload_url
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "server.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "server.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ServerSettings:
    """Network server configuration."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 8000


@dataclass
class SecuritySettings:
    """Security-related configuration."""

    admin_ids: list[str] = field(default_factory=list)
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])


@dataclass
class DatabaseSettings:
    """Database configuration."""

    path: str = "data/penpal.db"

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file."""
        p = Path(self.path)
        if p.is_absolute():
            return p
        return PROJECT_ROOT / p


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class ExchangeSettings:
    """Letter exchange protocol parameters.

    A mission of 20 steps is 10 round trips. The three day windows are
    measured from a proof's persisted ``sent_at`` timestamp.
    """

    total_steps: int = 20
    reminder_days: int = 3
    escalation_days: int = 7
    auto_verify_days: int = 10
    cancel_penalty_points: int = 10
    unverified_send_penalty_points: int = 20
    completion_reward_points: int = 4800


@dataclass
class SchedulerSettings:
    """Timeout sweep worker configuration."""

    enabled: bool = True
    interval_minutes: int = 180


@dataclass
class TransactionSettings:
    """Retry policy for transient storage conflicts."""

    max_attempts: int = 5
    backoff_seconds: float = 0.05


@dataclass
class NotificationSettings:
    """Notification transport configuration (empty URL = log only)."""

    webhook_url: str = ""
    timeout_seconds: float = 5.0


@dataclass
class EvidenceSettings:
    """Evidence blob store configuration."""

    upload_url: str = ""
    timeout_seconds: float = 15.0


@dataclass
class ServerConfig:
    """
    Complete server configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    exchange: ExchangeSettings = field(default_factory=ExchangeSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    transactions: TransactionSettings = field(default_factory=TransactionSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    evidence: EvidenceSettings = field(default_factory=EvidenceSettings)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_from_ini(parser: configparser.ConfigParser, cfg: ServerConfig) -> None:
    """Load configuration from parsed INI file into ServerConfig."""
    if parser.has_section("server"):
        if parser.has_option("server", "host"):
            cfg.server.host = parser.get("server", "host")
        if parser.has_option("server", "port"):
            cfg.server.port = parser.getint("server", "port")

    if parser.has_section("security"):
        if parser.has_option("security", "admin_ids"):
            cfg.security.admin_ids = _parse_list(parser.get("security", "admin_ids"))
        if parser.has_option("security", "cors_origins"):
            cfg.security.cors_origins = _parse_list(parser.get("security", "cors_origins"))

    if parser.has_section("database"):
        if parser.has_option("database", "path"):
            cfg.database.path = parser.get("database", "path")

    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]

    if parser.has_section("exchange"):
        for option in (
            "total_steps",
            "reminder_days",
            "escalation_days",
            "auto_verify_days",
            "cancel_penalty_points",
            "unverified_send_penalty_points",
            "completion_reward_points",
        ):
            if parser.has_option("exchange", option):
                setattr(cfg.exchange, option, parser.getint("exchange", option))

    if parser.has_section("scheduler"):
        if parser.has_option("scheduler", "enabled"):
            cfg.scheduler.enabled = _parse_bool(parser.get("scheduler", "enabled"))
        if parser.has_option("scheduler", "interval_minutes"):
            cfg.scheduler.interval_minutes = parser.getint("scheduler", "interval_minutes")

    if parser.has_section("transactions"):
        if parser.has_option("transactions", "max_attempts"):
            cfg.transactions.max_attempts = parser.getint("transactions", "max_attempts")
        if parser.has_option("transactions", "backoff_seconds"):
            cfg.transactions.backoff_seconds = parser.getfloat("transactions", "backoff_seconds")

    if parser.has_section("notifications"):
        if parser.has_option("notifications", "webhook_url"):
            cfg.notifications.webhook_url = parser.get("notifications", "webhook_url")
        if parser.has_option("notifications", "timeout_seconds"):
            cfg.notifications.timeout_seconds = parser.getfloat(
                "notifications", "timeout_seconds"
            )

    if parser.has_section("evidence"):
        if parser.has_option("evidence", "upload_url"):
            cfg.evidence.upload_url = parser.get("evidence", "upload_url")
        if parser.has_option("evidence", "timeout_seconds"):
            cfg.evidence.timeout_seconds = parser.getfloat("evidence", "timeout_seconds")


def _apply_env_overrides(cfg: ServerConfig) -> None:
    """Apply environment variable overrides to configuration."""
    if env_host := os.getenv("PENPAL_HOST"):
        cfg.server.host = env_host
    if env_port := os.getenv("PENPAL_PORT"):
        cfg.server.port = int(env_port)

    if env_db := os.getenv("PENPAL_DB_PATH"):
        cfg.database.path = env_db

    if env_log := os.getenv("PENPAL_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()
    if env_log_format := os.getenv("PENPAL_LOG_FORMAT"):
        if env_log_format.lower() in ("simple", "detailed", "json"):
            cfg.logging.format = env_log_format.lower()  # type: ignore[assignment]

    if env_admins := os.getenv("PENPAL_ADMIN_IDS"):
        cfg.security.admin_ids = _parse_list(env_admins)
    if env_cors := os.getenv("PENPAL_CORS_ORIGINS"):
        cfg.security.cors_origins = _parse_list(env_cors)

    int_overrides = {
        "PENPAL_TOTAL_STEPS": "total_steps",
        "PENPAL_REMINDER_DAYS": "reminder_days",
        "PENPAL_ESCALATION_DAYS": "escalation_days",
        "PENPAL_AUTO_VERIFY_DAYS": "auto_verify_days",
        "PENPAL_CANCEL_PENALTY_POINTS": "cancel_penalty_points",
        "PENPAL_UNVERIFIED_PENALTY_POINTS": "unverified_send_penalty_points",
        "PENPAL_COMPLETION_REWARD_POINTS": "completion_reward_points",
    }
    for env_name, attr in int_overrides.items():
        if env_value := os.getenv(env_name):
            setattr(cfg.exchange, attr, int(env_value))

    if env_sched := os.getenv("PENPAL_SCHEDULER_ENABLED"):
        cfg.scheduler.enabled = _parse_bool(env_sched)
    if env_interval := os.getenv("PENPAL_SCHEDULER_INTERVAL_MINUTES"):
        cfg.scheduler.interval_minutes = int(env_interval)

    if env_attempts := os.getenv("PENPAL_TX_MAX_ATTEMPTS"):
        cfg.transactions.max_attempts = int(env_attempts)
    if env_backoff := os.getenv("PENPAL_TX_BACKOFF_SECONDS"):
        cfg.transactions.backoff_seconds = float(env_backoff)

    if env_webhook := os.getenv("PENPAL_NOTIFY_WEBHOOK_URL"):
        cfg.notifications.webhook_url = env_webhook
    if env_upload := os.getenv("PENPAL_EVIDENCE_UPLOAD_URL"):
        cfg.evidence.upload_url = env_upload


def load_config() -> ServerConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/server.ini
        3. config/server.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        ServerConfig: Fully populated configuration object.
    """
    cfg = ServerConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "ServerConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Use sparingly as it
    doesn't update an already-running sweep worker.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    Returns a dictionary with configuration source information,
    useful for debugging and admin dashboards.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "database_path": str(config.database.absolute_path),
        "scheduler_enabled": config.scheduler.enabled,
        "auto_verify_days": config.exchange.auto_verify_days,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("SERVER CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to server.ini for production)")
    print("-" * 60)
    print(f"Server:      {config.server.host}:{config.server.port}")
    print(f"Database:    {config.database.absolute_path}")
    print(f"Log level:   {config.logging.level}")
    print(
        "Windows:     "
        f"remind {config.exchange.reminder_days}d / "
        f"escalate {config.exchange.escalation_days}d / "
        f"auto-verify {config.exchange.auto_verify_days}d"
    )
    print(f"Sweep:       every {config.scheduler.interval_minutes} min "
          f"(enabled={config.scheduler.enabled})")
    print("=" * 60 + "\n")


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_database:
    """
    Context manager for using a temporary test database.

    Usage:
        from penpal_server.config import use_test_database

        def test_something(tmp_path):
            with use_test_database(tmp_path / "test.db"):
                init_database()

    Args:
        db_path: Path to the test database file
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Set up test database path."""
        self.original_path = config.database.path
        config.database.path = str(self.db_path)
        return self.db_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original database path."""
        if self.original_path is not None:
            config.database.path = self.original_path
        return None
