"""Tests for config_loader: load_config, deep_merge, CLI overrides."""

from __future__ import annotations

import argparse
from pathlib import Path

import pytest

import config_loader
from config_loader import DEFAULT_CONFIG, apply_cli_overrides, deep_merge, load_config


class TestDeepMerge:
    def test_nested_values_merge(self) -> None:
        base = {'irc': {'server': 'a', 'port': 1}}
        result = deep_merge(base, {'irc': {'port': 2}})
        assert result == {'irc': {'server': 'a', 'port': 2}}

    def test_base_not_mutated(self) -> None:
        base = {'irc': {'port': 1}}
        deep_merge(base, {'irc': {'port': 2}})
        assert base['irc']['port'] == 1


class TestLoadConfigWithExplicitPaths:
    def test_single_config_file(self, tmp_path: Path) -> None:
        """A single --config file is merged over the defaults."""
        cfg = tmp_path / "my.toml"
        cfg.write_text('[irc]\nchannel = "#pdx-mesh"\n')

        result = load_config([str(cfg)])

        assert result["irc"]["channel"] == "#pdx-mesh"
        assert result["irc"]["server"] == "irc.libera.chat"

    def test_multiple_config_files_overlay(self, tmp_path: Path) -> None:
        """Multiple --config files are merged in order."""
        base = tmp_path / "base.toml"
        base.write_text('[irc]\nchannel = "#sea"\nnickname = "seabridge"\n')

        overlay = tmp_path / "overlay.toml"
        overlay.write_text('[irc]\nchannel = "#pdx"\n')

        result = load_config([str(base), str(overlay)])

        assert result["irc"]["channel"] == "#pdx"
        assert result["irc"]["nickname"] == "seabridge"

    def test_missing_file_skipped(self, tmp_path: Path) -> None:
        """A nonexistent --config path is skipped with a log error."""
        cfg = tmp_path / "exists.toml"
        cfg.write_text('[meshtastic]\nchannel = 2\n')

        result = load_config(["/nonexistent/path.toml", str(cfg)])

        assert result["meshtastic"]["channel"] == 2

    def test_defaults_not_mutated(self, tmp_path: Path) -> None:
        cfg = tmp_path / "my.toml"
        cfg.write_text('[mqtt.tls]\nenabled = true\n')

        result = load_config([str(cfg)])

        assert result["mqtt"]["tls"]["enabled"] is True
        assert DEFAULT_CONFIG["mqtt"]["tls"]["enabled"] is False


class TestLoadConfigDefaultPaths:
    def test_base_and_config_d(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        base = tmp_path / "config.toml"
        base.write_text('[irc]\nchannel = "#base"\nnickname = "basenick"\n')
        config_d = tmp_path / "config.d"
        config_d.mkdir()
        (config_d / "10-a.toml").write_text('[irc]\nchannel = "#first"\n')
        (config_d / "20-b.toml").write_text('[irc]\nchannel = "#second"\n')
        monkeypatch.setattr(config_loader, 'BASE_CONFIG_PATH', str(base))
        monkeypatch.setattr(config_loader, 'CONFIG_D_PATH', str(config_d))

        result = load_config(None)

        assert result["irc"]["channel"] == "#second"
        assert result["irc"]["nickname"] == "basenick"

    def test_no_files_returns_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config_loader, 'BASE_CONFIG_PATH', str(tmp_path / "missing.toml"))
        monkeypatch.setattr(config_loader, 'CONFIG_D_PATH', str(tmp_path / "missing.d"))

        result = load_config(None)

        assert result == DEFAULT_CONFIG
        assert result is not DEFAULT_CONFIG


class TestApplyCliOverrides:
    def test_set_values_override(self) -> None:
        args = argparse.Namespace(irc_server="irc.oftc.net", irc_tls=False, meshtastic_channel=3, mqtt_broker=None)
        result = apply_cli_overrides(DEFAULT_CONFIG, args)

        assert result["irc"]["server"] == "irc.oftc.net"
        assert result["irc"]["use_tls"] is False
        assert result["meshtastic"]["channel"] == 3
        assert result["mqtt"]["broker"] == ""

    def test_broker_keeps_default_topic(self) -> None:
        args = argparse.Namespace(mqtt_broker="mqtt.meshtastic.org")
        result = apply_cli_overrides(DEFAULT_CONFIG, args)

        assert result["mqtt"]["broker"] == "mqtt.meshtastic.org"
        assert result["mqtt"]["topic"] == "meshtastic/2/e/#"

    def test_input_not_mutated(self) -> None:
        config = {'irc': {'server': 'a'}}
        apply_cli_overrides(config, argparse.Namespace(irc_server='b'))
        assert config['irc']['server'] == 'a'
