"""Tests for configuration loading and schema validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from src import config as config_module
from src.config import get_validated_config, load_config, set_config_value
from src.config_schema import AppConfig, DashboardConfig, load_validated_config, validate_config_dict


class TestSchema:
    """Test that valid configs are accepted and invalid ones rejected."""

    def test_empty_config_uses_defaults(self) -> None:
        config = validate_config_dict({})

        assert config.dashboard.port == 3274
        assert config.dashboard.state_dir_name == ".hank"
        assert config.dashboard.debounce_delay_ms == 300
        assert config.dashboard.live_log_lines == 200
        assert config.logging.level == "INFO"

    def test_partial_config_merges_defaults(self) -> None:
        config = validate_config_dict({"dashboard": {"port": 8080}})

        assert config.dashboard.port == 8080
        assert config.dashboard.host == "127.0.0.1"

    def test_repo_config_file_loads(self) -> None:
        config = load_validated_config(config_module.DEFAULT_CONFIG_PATH)

        assert config.dashboard.port == 3274

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_config_dict({"dashboard": {"prot": 8080}})

    @pytest.mark.parametrize("port", [0, 70000, -1])
    def test_port_range(self, port: int) -> None:
        with pytest.raises(ValidationError):
            DashboardConfig(port=port)

    @pytest.mark.parametrize("name", ["a/b", "..", "."])
    def test_state_dir_name_must_be_plain(self, name: str) -> None:
        with pytest.raises(ValidationError):
            DashboardConfig(state_dir_name=name)

    def test_log_level_is_normalized(self) -> None:
        config = validate_config_dict({"logging": {"level": "debug"}})

        assert config.logging.level == "DEBUG"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_validated_config(tmp_path / "missing.yaml")


class TestLoader:
    """Tests for the global config accessors."""

    def test_load_explicit_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("dashboard:\n  port: 4000\n  open_browser: false\n")

        load_config(path)

        assert get_validated_config().dashboard.port == 4000
        assert get_validated_config().dashboard.open_browser is False

    def test_empty_file_is_valid(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("")

        load_config(path)

        assert get_validated_config() == AppConfig()

    def test_default_path_optional(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")

        load_config()

        assert get_validated_config().dashboard.port == 3274

    def test_set_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            set_config_value("dashboard.nope", 1)
        assert get_validated_config() == AppConfig()

    def test_set_config_value_revalidates(self) -> None:
        set_config_value("dashboard.port", 5000)
        assert get_validated_config().dashboard.port == 5000

        with pytest.raises(ValidationError):
            set_config_value("dashboard.port", "not a port")
        assert get_validated_config().dashboard.port == 5000
