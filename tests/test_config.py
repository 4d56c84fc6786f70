"""Tests for penpal_server.config loading and environment overrides."""

import configparser

import pytest

from penpal_server.config import (
    ServerConfig,
    _load_from_ini,
    _parse_list,
    get_config_status,
    load_config,
    print_config_summary,
    use_test_database,
)


@pytest.mark.unit
def test_defaults_match_protocol_windows():
    cfg = ServerConfig()

    assert cfg.exchange.total_steps == 20
    assert (cfg.exchange.reminder_days, cfg.exchange.escalation_days) == (3, 7)
    assert cfg.exchange.auto_verify_days == 10
    assert cfg.exchange.cancel_penalty_points == 10
    assert cfg.exchange.unverified_send_penalty_points == 20
    assert cfg.exchange.completion_reward_points == 4800
    assert cfg.scheduler.interval_minutes == 180


@pytest.mark.unit
def test_exchange_env_overrides(monkeypatch):
    monkeypatch.setenv("PENPAL_TOTAL_STEPS", "8")
    monkeypatch.setenv("PENPAL_REMINDER_DAYS", "2")
    monkeypatch.setenv("PENPAL_ESCALATION_DAYS", "5")
    monkeypatch.setenv("PENPAL_AUTO_VERIFY_DAYS", "9")
    monkeypatch.setenv("PENPAL_UNVERIFIED_PENALTY_POINTS", "30")
    monkeypatch.setenv("PENPAL_COMPLETION_REWARD_POINTS", "1200")

    cfg = load_config()

    assert cfg.exchange.total_steps == 8
    assert cfg.exchange.reminder_days == 2
    assert cfg.exchange.escalation_days == 5
    assert cfg.exchange.auto_verify_days == 9
    assert cfg.exchange.unverified_send_penalty_points == 30
    assert cfg.exchange.completion_reward_points == 1200


@pytest.mark.unit
def test_scheduler_and_transaction_env_overrides(monkeypatch):
    monkeypatch.setenv("PENPAL_SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("PENPAL_SCHEDULER_INTERVAL_MINUTES", "15")
    monkeypatch.setenv("PENPAL_TX_MAX_ATTEMPTS", "7")
    monkeypatch.setenv("PENPAL_TX_BACKOFF_SECONDS", "0.25")

    cfg = load_config()

    assert cfg.scheduler.enabled is False
    assert cfg.scheduler.interval_minutes == 15
    assert cfg.transactions.max_attempts == 7
    assert cfg.transactions.backoff_seconds == 0.25


@pytest.mark.unit
def test_collaborator_and_security_env_overrides(monkeypatch):
    monkeypatch.setenv("PENPAL_NOTIFY_WEBHOOK_URL", "https://hooks.example.org/n")
    monkeypatch.setenv("PENPAL_EVIDENCE_UPLOAD_URL", "https://blobs.example.org/u")
    monkeypatch.setenv("PENPAL_ADMIN_IDS", "ops-1, ops-2,,")
    monkeypatch.setenv("PENPAL_LOG_FORMAT", "JSON")

    cfg = load_config()

    assert cfg.notifications.webhook_url == "https://hooks.example.org/n"
    assert cfg.evidence.upload_url == "https://blobs.example.org/u"
    assert cfg.security.admin_ids == ["ops-1", "ops-2"]
    assert cfg.logging.format == "json"


@pytest.mark.unit
def test_invalid_log_format_is_ignored(monkeypatch):
    monkeypatch.setenv("PENPAL_LOG_FORMAT", "fancy")

    assert load_config().logging.format in ("simple", "detailed", "json")


@pytest.mark.unit
def test_load_from_ini_sections():
    parser = configparser.ConfigParser()
    parser.read_string(
        """
        [server]
        port = 9100

        [exchange]
        total_steps = 6
        auto_verify_days = 12

        [scheduler]
        enabled = no
        interval_minutes = 60

        [notifications]
        webhook_url = https://hooks.example.org
        timeout_seconds = 1.5

        [logging]
        level = debug
        format = simple
        """
    )
    cfg = ServerConfig()

    _load_from_ini(parser, cfg)

    assert cfg.server.port == 9100
    assert cfg.exchange.total_steps == 6
    assert cfg.exchange.auto_verify_days == 12
    assert cfg.exchange.reminder_days == 3
    assert cfg.scheduler.enabled is False
    assert cfg.scheduler.interval_minutes == 60
    assert cfg.notifications.timeout_seconds == 1.5
    assert cfg.logging.level == "DEBUG"
    assert cfg.logging.format == "simple"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [("", []), ("   ", []), ("a", ["a"]), (" a , b ,", ["a", "b"])],
)
def test_parse_list(raw, expected):
    assert _parse_list(raw) == expected


@pytest.mark.unit
def test_use_test_database_restores_path(tmp_path):
    from penpal_server.config import config

    original = config.database.path
    with use_test_database(tmp_path / "x.db") as path:
        assert config.database.absolute_path == path
    assert config.database.path == original


@pytest.mark.unit
def test_config_status_and_summary(capsys):
    status = get_config_status()
    assert {"config_file_path", "database_path", "scheduler_enabled"} <= set(status)

    print_config_summary()

    out = capsys.readouterr().out
    assert "SERVER CONFIGURATION" in out
    assert "auto-verify" in out
