"""
Config validation tests for AppConfig, StreamConfig and the YAML loader.

Also covers CLI overrides and the config-error exit status of the monitor script.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
from scripts.run_monitor import EXIT_CONFIG_ERROR, WhaleMonitor, apply_overrides, build_parser, main

from whalestream.config import AppConfig, config_from_dict, load_config
from whalestream.connectors.types import StreamConfig
from whalestream.connectors.xrpl import DEFAULT_XRPL_SERVERS
from whalestream.delivery.config import DeliveryConfig, DiscordSinkConfig, TelegramSinkConfig
from whalestream.errors import ConfigError


class TestStreamConfig:
    """StreamConfig.__post_init__ validation."""

    def test_defaults(self) -> None:
        config = StreamConfig()

        assert config.purpose == "whale-monitor"
        assert config.addresses == list(DEFAULT_XRPL_SERVERS)
        assert config.min_threshold == Decimal("100000")
        assert config.max_threshold == Decimal("50000000")
        assert config.subscribe_message["command"] == "subscribe"

    def test_empty_endpoints_rejected(self) -> None:
        with pytest.raises(ConfigError, match="endpoint list must not be empty"):
            StreamConfig(endpoints=[])

    def test_non_websocket_endpoint_rejected(self) -> None:
        with pytest.raises(ConfigError, match="ws://"):
            StreamConfig(endpoints=["https://s1.ripple.com"])

    def test_endpoint_mapping_entries(self) -> None:
        config = StreamConfig(endpoints=[{"address": "wss://a", "healthy": False}, "wss://b"])

        assert config.addresses == ["wss://a", "wss://b"]
        assert config.endpoints[0].healthy is False

    def test_thresholds_parsed_exactly(self) -> None:
        config = StreamConfig(min_threshold="0.1", max_threshold=1)

        assert config.min_threshold == Decimal("0.1")

    def test_inverted_thresholds_rejected(self) -> None:
        with pytest.raises(ConfigError, match="max_threshold"):
            StreamConfig(min_threshold=10, max_threshold=5)

    def test_non_numeric_threshold_rejected(self) -> None:
        with pytest.raises(ConfigError, match="min_threshold"):
            StreamConfig(min_threshold="lots")

    @pytest.mark.parametrize(
        "field",
        ["heartbeat_interval_ms", "connect_timeout_ms", "backoff_base_ms", "circuit_reset_after_ms"],
    )
    def test_non_positive_durations_rejected(self, field: str) -> None:
        with pytest.raises(ConfigError, match=field):
            StreamConfig(**{field: 0})

    def test_backoff_max_below_base_rejected(self) -> None:
        with pytest.raises(ConfigError, match="backoff_max_ms"):
            StreamConfig(backoff_base_ms=1000, backoff_max_ms=500)

    def test_jitter_out_of_range_rejected(self) -> None:
        with pytest.raises(ConfigError, match="backoff_jitter_factor"):
            StreamConfig(backoff_jitter_factor=1.5)


class TestAppConfig:
    """AppConfig.__post_init__ validation."""

    def test_default_config_valid(self) -> None:
        config = AppConfig()

        assert len(config.streams) == 1
        assert config.metrics_port == 9090
        assert config.delivery.dry_run is False

    def test_duplicate_purposes_rejected(self) -> None:
        with pytest.raises(ConfigError, match="duplicate"):
            AppConfig(streams=[StreamConfig(purpose="a"), StreamConfig(purpose="a")])

    def test_no_streams_rejected(self) -> None:
        with pytest.raises(ConfigError, match="at least one stream"):
            AppConfig(streams=[])

    @pytest.mark.parametrize("port", [-1, 70000])
    def test_invalid_metrics_port(self, port: int) -> None:
        with pytest.raises(ConfigError, match="metrics_port"):
            AppConfig(metrics_port=port)

    def test_metrics_port_zero_valid(self) -> None:
        """Port 0 disables the status server."""
        assert AppConfig(metrics_port=0).metrics_port == 0

    def test_log_level_normalized(self) -> None:
        assert AppConfig(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ConfigError, match="log_level"):
            AppConfig(log_level="LOUD")


class TestSinkConfig:
    """Secrets come from the environment when a sink is enabled."""

    def test_telegram_requires_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
        monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)

        with pytest.raises(ConfigError, match="TELEGRAM_BOT_TOKEN"):
            TelegramSinkConfig(enabled=True)

    def test_discord_reads_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/hook")

        assert DiscordSinkConfig(enabled=True).webhook_url == "https://discord.test/hook"

    def test_disabled_sink_needs_nothing(self) -> None:
        assert TelegramSinkConfig().enabled is False

    def test_negative_drain_timeout_rejected(self) -> None:
        with pytest.raises(ConfigError, match="drain_timeout_s"):
            DeliveryConfig(drain_timeout_s=-1)


class TestLoadConfig:
    """YAML loading."""

    def test_full_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/hook")
        path = tmp_path / "whalestream.yaml"
        path.write_text(
            "log_level: debug\n"
            "metrics_port: 0\n"
            "streams:\n"
            "  - purpose: xrp-whales\n"
            "    endpoints: [wss://s1.ripple.com/, wss://s2.ripple.com/]\n"
            "    min_threshold: 250000\n"
            "delivery:\n"
            "  dry_run: true\n"
            "  sinks:\n"
            "    discord: {enabled: true}\n"
        )

        config = load_config(path)

        assert config.log_level == "DEBUG"
        assert config.metrics_port == 0
        assert config.streams[0].purpose == "xrp-whales"
        assert config.streams[0].addresses == ["wss://s1.ripple.com/", "wss://s2.ripple.com/"]
        assert config.streams[0].min_threshold == Decimal("250000")
        assert config.delivery.dry_run is True
        assert config.delivery.sinks.discord.enabled is True
        assert config.delivery.sinks.telegram.enabled is False

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(path).streams[0].purpose == "whale-monitor"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="cannot read"):
            load_config(tmp_path / "missing.yaml")

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("streams: [unclosed\n")

        with pytest.raises(ConfigError, match="invalid YAML"):
            load_config(path)

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ConfigError, match="unknown keys"):
            config_from_dict({"streams": [{"purpose": "a", "treshold": 5}]})

    def test_unknown_sink_rejected(self) -> None:
        with pytest.raises(ConfigError, match="unknown sinks"):
            config_from_dict({"delivery": {"sinks": {"slack": {"enabled": True}}}})

    def test_streams_must_be_list(self) -> None:
        with pytest.raises(ConfigError, match="streams must be a list"):
            config_from_dict({"streams": {"purpose": "a"}})


class TestCliOverrides:
    """Flags win over the file config."""

    def test_overrides_applied_to_every_stream(self) -> None:
        config = AppConfig(streams=[StreamConfig(purpose="a"), StreamConfig(purpose="b")])
        args = build_parser().parse_args(
            [
                "--endpoints",
                "wss://x.test/, wss://y.test/",
                "--min-threshold",
                "500000",
                "--dry-run",
                "--metrics-port",
                "0",
                "--no-log-json",
            ]
        )

        result = apply_overrides(config, args)

        for stream in result.streams:
            assert stream.addresses == ["wss://x.test/", "wss://y.test/"]
            assert stream.min_threshold == Decimal("500000")
        assert result.delivery.dry_run is True
        assert result.metrics_port == 0
        assert result.log_json is False

    def test_no_flags_keeps_config(self) -> None:
        config = AppConfig(metrics_port=1234)

        result = apply_overrides(config, build_parser().parse_args([]))

        assert result.metrics_port == 1234
        assert result.streams == config.streams

    def test_invalid_override_raises(self) -> None:
        args = build_parser().parse_args(["--min-threshold", "100", "--max-threshold", "50"])

        with pytest.raises(ConfigError):
            apply_overrides(AppConfig(), args)


class TestMain:
    """Exit status on configuration errors."""

    def test_missing_config_file(self, tmp_path: Path) -> None:
        assert main(["--config", str(tmp_path / "missing.yaml")]) == EXIT_CONFIG_ERROR

    def test_invalid_threshold(self) -> None:
        assert main(["--min-threshold", "abc"]) == EXIT_CONFIG_ERROR

    def test_invalid_duration(self) -> None:
        assert main(["--duration-s", "0"]) == EXIT_CONFIG_ERROR


class TestWhaleMonitor:
    """Wiring without network access."""

    def test_not_ready_before_start(self) -> None:
        monitor = WhaleMonitor(
            AppConfig(streams=[StreamConfig(purpose="a"), StreamConfig(purpose="b")], metrics_port=0)
        )

        ready, info = monitor.get_ready_info()

        assert ready is False
        assert info["streams"] == {"a": "IDLE", "b": "IDLE"}
        assert "reason" in info

    def test_health_info_lists_streams(self) -> None:
        monitor = WhaleMonitor(AppConfig(metrics_port=0))

        health = monitor.get_health_info()

        assert health["status"] == "ok"
        assert [s["purpose"] for s in health["streams"]] == ["whale-monitor"]
        assert health["streams"][0]["connection_state"] == "IDLE"
        assert health["streams"][0]["circuit_breaker"]["state"] == "CLOSED"
        assert health["streams"][0]["circuit_breaker"]["transitions_to_open"] == 0
