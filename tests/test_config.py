"""Tests for configuration loading and saving."""

import json

import pytest
import yaml
from pydantic import ValidationError

import main
from config.settings import (
    CONFIG_FILENAME,
    AppConfig,
    EnginePolicy,
    get_default_config,
)


def write_config(path, data: dict):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestAppConfig:
    def test_defaults(self):
        config = AppConfig()

        assert config.defaults.capacity == 16
        assert config.defaults.questions_per_match == 3
        assert config.defaults.rewards.xp_first == 100
        assert config.policy.bracket_tie_break == "sudden_death"
        assert config.policy.max_capacity == 64
        assert config.system.database_path == "tournaments.db"

    def test_load_from_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TOURNAMENT_DB_PATH", raising=False)
        path = write_config(
            tmp_path / "config.json",
            {
                "defaults": {"capacity": 8, "questions_per_match": 5},
                "policy": {"bracket_tie_break": "higher_seed"},
                "system": {"database_path": "school.db"},
            },
        )

        config = AppConfig.load_from_file(path)

        assert config.defaults.capacity == 8
        assert config.defaults.questions_per_match == 5
        assert config.defaults.seconds_per_question == 30
        assert config.policy.bracket_tie_break == "higher_seed"
        assert config.system.database_path == "school.db"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AppConfig.load_from_file(tmp_path / "absent.json")

    def test_missing_sections(self, tmp_path):
        path = write_config(tmp_path / "config.json", {"defaults": {}})

        with pytest.raises(ValueError, match="system"):
            AppConfig.load_from_file(path)

    def test_database_path_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TOURNAMENT_DB_PATH", str(tmp_path / "override.db"))
        path = write_config(tmp_path / "config.json", {"defaults": {}, "system": {}})

        config = AppConfig.load_from_file(path)

        assert config.system.database_path == str(tmp_path / "override.db")

    def test_save_to_file_writes_yaml(self, tmp_path):
        config = AppConfig.model_validate({"defaults": {"capacity": 32}})
        path = tmp_path / "nested" / "config.yaml"

        config.save_to_file(path)

        saved = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert saved["defaults"]["capacity"] == 32


class TestValidation:
    def test_max_capacity_must_be_power_of_two(self):
        with pytest.raises(ValidationError):
            EnginePolicy(max_capacity=48)
        assert EnginePolicy(max_capacity=128).max_capacity == 128

    def test_unknown_tie_break_policy(self):
        with pytest.raises(ValidationError):
            EnginePolicy(bracket_tie_break="coin_flip")

    def test_empty_database_path(self):
        with pytest.raises(ValidationError):
            AppConfig.model_validate({"system": {"database_path": "  "}})


def test_default_config_writes_template(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TOURNAMENT_DB_PATH", raising=False)

    config = get_default_config()

    assert (tmp_path / CONFIG_FILENAME).exists()
    assert config.system.database_path == "tournaments.db"
    assert config.policy.third_place == "best_semifinal_loser"


def test_dump_config_writes_effective_settings(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TOURNAMENT_DB_PATH", "override.db")

    main.dump_config(tmp_path / "effective.yaml")

    saved = yaml.safe_load((tmp_path / "effective.yaml").read_text(encoding="utf-8"))
    assert saved["system"]["database_path"] == "override.db"
    assert saved["defaults"]["questions_per_match"] == 3
