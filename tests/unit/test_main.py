"""Tests for the command line entry point."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import EndpointConnectionError

from esasg.errors import ConfigError
from esasg.server.config import Config
from esasg.server.main import EXIT_CONFIG, EXIT_FATAL, apply_overrides, parse_args, parse_repo_settings, run


class TestParseArgs:
    def test_agent_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_throttler_flags(self):
        args = parse_args([
            "--es-url", "http://es-1:9200", "--es-url", "http://es-2:9200",
            "throttler", "--group", "es-data", "--group", "es-master", "--dry-run",
        ])
        config = apply_overrides(Config(), args)

        assert config.elasticsearch.urls == ["http://es-1:9200", "http://es-2:9200"]
        assert config.throttler.groups == ["es-data", "es-master"]
        assert config.throttler.dry_run is True

    def test_unset_flags_keep_config(self):
        config = Config.from_dict({"cloudwatcher": {"interval": 15, "namespace": "ES"}})
        apply_overrides(config, parse_args(["cloudwatcher"]))

        assert config.cloudwatcher.interval == 15
        assert config.cloudwatcher.namespace == "ES"
        assert config.server.port == 8080

    def test_snapshooter_flags(self):
        args = parse_args([
            "--port", "9100",
            "snapshooter", "--hourly", "24", "--daily", "7",
            "--repo-name", "backups", "--repo-settings", "bucket=snaps", "--delete",
        ])
        config = apply_overrides(Config(), args)

        assert config.server.port == 9100
        assert config.snapshooter.hourly == 24
        assert config.snapshooter.daily == 7
        assert config.snapshooter.weekly == 0
        assert config.snapshooter.repository.settings == {"bucket": "snaps"}
        assert config.snapshooter.delete is True


class TestRepoSettings:
    def test_parse(self):
        assert parse_repo_settings(["bucket=snaps", "base_path=es/prod"]) == {
            "bucket": "snaps",
            "base_path": "es/prod",
        }

    def test_invalid(self):
        with pytest.raises(ConfigError):
            parse_repo_settings(["bucket"])


class TestRun:
    def test_missing_config_file(self, tmp_path):
        args = parse_args(["--config", str(tmp_path / "missing.yaml"), "snapshooter"])

        assert run(args) == EXIT_CONFIG

    def test_invalid_agent_config(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("snapshooter:\n  retention: {}\n")
        args = parse_args(["--config", str(config_file), "snapshooter"])

        assert run(args) == EXIT_CONFIG

    def test_remote_error_during_setup(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("throttler:\n  groups: [es-data]\n")
        args = parse_args(["--config", str(config_file), "throttler"])
        aws = MagicMock()
        aws.autoscaling.describe_auto_scaling_groups.side_effect = EndpointConnectionError(
            endpoint_url="https://autoscaling.us-east-2.amazonaws.com"
        )

        with patch("esasg.server.main.AWSClients", return_value=aws):
            assert run(args) == EXIT_FATAL
        aws.autoscaling.describe_auto_scaling_groups.assert_called_once()
