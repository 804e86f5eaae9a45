"""Tests for the ipgate CLIs."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from ipgate.cli import main
from ipgate.core.config import clear_settings
from ipgate.server.main import main as server_main


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point the rule sources at an empty temporary directory."""
    for name in ("IPGATE_DEFAULT_IP", "DEFAULT_IP", "ALLOW_IP_PATH", "DEFAULT_FILE_NAME"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("IPGATE_ALLOW_IP_PATH", str(tmp_path))
    monkeypatch.setenv("IPGATE_DEFAULT_FILE_NAME", "ipgate-cli-test-rules.txt")
    monkeypatch.delenv("IPGATE_ALLOW_FILE", raising=False)
    clear_settings()
    yield
    clear_settings()


class TestCLIBasics:
    """Basic CLI tests."""

    def test_main_without_arguments_shows_banner(self):
        """Test that running without arguments shows banner and usage."""
        runner = CliRunner()
        result = runner.invoke(main)

        assert result.exit_code == 0
        assert "IP allow-list guard" in result.output
        assert "Usage:" in result.output
        assert "ipgate check" in result.output

    def test_main_with_help(self):
        """Test --help shows help message."""
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "check client addresses against an IP allow-list" in result.output
        assert "--config" in result.output

    def test_version_command(self):
        """Test version command."""
        runner = CliRunner()
        result = runner.invoke(main, ["version"])

        assert result.exit_code == 0
        assert "Version:" in result.output
        assert "0.1.0" in result.output
        assert "Python:" in result.output


class TestCheckCommand:
    """Tests for the check command."""

    def test_check_with_rules(self):
        """Test checking against rules given on the command line."""
        runner = CliRunner()
        rules = "203.0.113.7|10.0.0.0/8|192.168.1.*|172.30.1.10-172.30.1.20"

        result = runner.invoke(main, ["check", "10.123.45.67", "--rules", rules])
        assert result.exit_code == 0
        assert "allowed" in result.output
        assert "allowed:default(10.0.0.0/8)" in result.output

        result = runner.invoke(main, ["check", "8.8.8.8", "--rules", rules])
        assert result.exit_code == 0
        assert "denied:no-match" in result.output

    def test_check_json(self):
        """Test JSON output."""
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["check", "172.30.1.20", "--file-rules", "172.30.1.10-173.30.1.45", "--json"],
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "client": "172.30.1.20",
            "allowed": True,
            "reason": "allowed:user(172.30.1.10-173.30.1.45)",
        }

    def test_check_rules_file(self, tmp_path):
        """Test file rules read from a given file."""
        rules_file = tmp_path / "extra.txt"
        rules_file.write_text("8.8.8.0/24\n", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(main, ["check", "8.8.8.8", "--rules-file", str(rules_file), "--json"])

        assert result.exit_code == 0
        assert json.loads(result.output)["reason"] == "allowed:user(8.8.8.0/24)"

    def test_check_configured_sources(self, tmp_path):
        """Test the configured default rules and rule file are used."""
        (tmp_path / "ipgate-cli-test-rules.txt").write_text("8.8.4.4", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(main, ["check", "8.8.4.4", "--json"])
        assert json.loads(result.output)["reason"] == "allowed:user(8.8.4.4)"

        result = runner.invoke(main, ["check", "192.168.1.10", "--json"])
        assert json.loads(result.output)["reason"] == "allowed:default(192.168.0.0-192.168.255.255)"

    def test_check_ipv6(self):
        """Test IPv6 handling."""
        runner = CliRunner()
        result = runner.invoke(main, ["check", "::1", "--rules", "127.0.0.1", "--json"])
        assert json.loads(result.output)["client"] == "127.0.0.1"

        result = runner.invoke(main, ["check", "2001:db8::1", "--json"])
        assert json.loads(result.output)["reason"] == "denied:ip-format-not-supported(2001:db8::1)"

    def test_check_conflicting_file_options(self, tmp_path):
        """Test --file-rules and --rules-file are exclusive."""
        rules_file = tmp_path / "extra.txt"
        rules_file.write_text("8.8.8.8", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(
            main,
            ["check", "8.8.8.8", "--file-rules", "1.1.1.1", "--rules-file", str(rules_file)],
        )
        assert result.exit_code == 2

    def test_check_with_config_file(self, tmp_path):
        """Test default rules from a YAML config file."""
        config = tmp_path / "ipgate.yaml"
        config.write_text('default_ip: "8.8.8.0/24"\n', encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config), "check", "8.8.8.8", "--json"])
        assert json.loads(result.output)["reason"] == "allowed:default(8.8.8.0/24)"

    def test_invalid_config_file(self, tmp_path):
        """Test an unreadable config file exits with an error."""
        config = tmp_path / "ipgate.ini"
        config.write_text("x", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(main, ["--config", str(config), "check", "8.8.8.8"])
        assert result.exit_code == 1
        assert "Failed to load config" in result.output


class TestValidateCommand:
    """Tests for the validate command."""

    def test_valid_rules(self):
        """Test valid rules exit cleanly."""
        runner = CliRunner()
        result = runner.invoke(main, ["validate", "10.0.0.0/8|192.168.1.*|1.1.1.1 ~ 1.1.1.9"])

        assert result.exit_code == 0
        assert "All rule tokens are valid" in result.output

    def test_invalid_rules(self):
        """Test the first invalid token is reported."""
        runner = CliRunner()
        result = runner.invoke(main, ["validate", "999.999.1.1|hello-world|10.0.0.0/33"])

        assert result.exit_code == 1
        assert "Invalid rule token at #1: [999.999.1.1]" in result.output

    def test_invalid_rules_file(self, tmp_path):
        """Test validating a rule file."""
        rules_file = tmp_path / "allow.txt"
        rules_file.write_text("10.0.0.0/8\n10.0.0.0/33\n", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(main, ["validate", "--file", str(rules_file)])

        assert result.exit_code == 1
        assert "#2: [10.0.0.0/33]" in result.output

    def test_configured_rules(self, tmp_path):
        """Test validating the configured sources."""
        runner = CliRunner()
        result = runner.invoke(main, ["validate"])
        assert result.exit_code == 0

        (tmp_path / "ipgate-cli-test-rules.txt").write_text("hello-world", encoding="utf-8")
        result = runner.invoke(main, ["validate"])
        assert result.exit_code == 1
        assert "hello-world" in result.output


class TestRulesCommand:
    """Tests for the rules command."""

    def test_rules_json(self, tmp_path):
        """Test the merged token table as JSON."""
        rules_path = tmp_path / "ipgate-cli-test-rules.txt"
        rules_path.write_text("192.168.1.*\nhello-world\n", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(main, ["rules", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["rules_file"] == str(rules_path)
        assert data["file_rules"] == "192.168.1.*\nhello-world"
        assert data["merged"] == data["default_rules"] + "|" + data["file_rules"]
        sources = [row["source"] for row in data["tokens"]]
        assert sources == ["default", "default", "default", "user", "user"]
        assert data["tokens"][3]["type"] == "wildcard"
        assert data["tokens"][4]["type"] is None

    def test_rules_table(self):
        """Test the table output."""
        runner = CliRunner()
        result = runner.invoke(main, ["rules"])

        assert result.exit_code == 0
        assert "Rule file" in result.output
        assert "Default rules" in result.output


class TestServerCommand:
    """Tests for the ipgate-server entry point."""

    def test_help(self):
        """Test --help lists the server options."""
        runner = CliRunner()
        result = runner.invoke(server_main, ["--help"])

        assert result.exit_code == 0
        for option in ("--enforce", "--trust-proxy-headers", "--cache-rules", "--strict-rules"):
            assert option in result.output

    def test_options_build_config(self):
        """Test options are turned into a server config."""
        runner = CliRunner()
        with patch("ipgate.server.main.run_server", new_callable=AsyncMock) as run_server:
            result = runner.invoke(
                server_main,
                ["--port", "9090", "--enforce", "--cache-rules", "--cache-ttl", "15"],
            )

        assert result.exit_code == 0
        config = run_server.call_args.args[0]
        assert config.port == 9090
        assert config.enforce is True
        assert config.trust_proxy_headers is False
        assert config.cache_rules is True
        assert config.cache_ttl == 15.0

    def test_config_file_values(self, tmp_path):
        """Test server values from a TOML config file, overridden by flags."""
        config_path = tmp_path / "ipgate.toml"
        config_path.write_text(
            'host = "127.0.0.1"\nport = 7000\ntrust_proxy_headers = true\ndefault_ip = "8.8.8.8"\n',
            encoding="utf-8",
        )

        runner = CliRunner()
        with patch("ipgate.server.main.run_server", new_callable=AsyncMock) as run_server:
            result = runner.invoke(server_main, ["--config", str(config_path), "--port", "7001"])

        assert result.exit_code == 0
        config, settings = run_server.call_args.args
        assert config.host == "127.0.0.1"
        assert config.port == 7001
        assert config.trust_proxy_headers is True
        assert settings.default_ip == "8.8.8.8"

    def test_invalid_port(self, tmp_path):
        """Test an invalid config value exits with an error."""
        config_path = tmp_path / "ipgate.yaml"
        config_path.write_text("port: 99999\n", encoding="utf-8")

        runner = CliRunner()
        with patch("ipgate.server.main.run_server", new_callable=AsyncMock):
            result = runner.invoke(server_main, ["--config", str(config_path)])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output
