"""Configuration settings and data models."""

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "tournament_config.json"
EXAMPLE_CONFIG_FILENAME = "tournament_config.example.json"


class RewardTiers(BaseModel):
    """XP and point grants handed to the reward service on tournament finish."""

    xp_first: int = Field(default=100, ge=0, description="XP for 1st place")
    xp_second: int = Field(default=50, ge=0, description="XP for 2nd place")
    xp_third: int = Field(default=25, ge=0, description="XP for 3rd place")
    points_first: int = Field(default=50, ge=0, description="Points for 1st place")
    points_second: int = Field(default=25, ge=0, description="Points for 2nd place")
    points_third: int = Field(default=10, ge=0, description="Points for 3rd place")
    xp_participation: int = Field(
        default=10, ge=0, description="XP for every participant without a podium place"
    )


class TournamentDefaults(BaseModel):
    """Defaults applied to new tournaments when a request leaves a field unset."""

    capacity: int = Field(default=16, description="Maximum participants")
    questions_per_match: int = Field(
        default=3, ge=1, description="Questions drawn for every match"
    )
    seconds_per_question: int = Field(
        default=30, ge=1, description="Advisory time limit per question"
    )
    rewards: RewardTiers = Field(default_factory=RewardTiers)


class EnginePolicy(BaseModel):
    """Policies for situations the match rules leave open."""

    bracket_tie_break: Literal["sudden_death", "higher_seed"] = Field(
        default="sudden_death",
        description="How a drawn bracket match is resolved",
    )
    max_sudden_death_questions: int = Field(
        default=3,
        ge=0,
        description="Extra questions before a drawn bracket match falls back to seeding",
    )
    third_place: Literal["best_semifinal_loser", "none"] = Field(
        default="best_semifinal_loser",
        description="How 3rd place is assigned in bracket tournaments",
    )
    max_capacity: int = Field(default=64, ge=2, description="Upper bound for capacity")

    @field_validator("max_capacity")
    @classmethod
    def validate_max_capacity(cls, v: int) -> int:
        if v & (v - 1) != 0:
            raise ValueError("max_capacity must be a power of two")
        return v


class SystemConfig(BaseModel):
    """System-wide configuration."""

    database_path: str = Field(
        default="tournaments.db", description="SQLite database file"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    host: str = Field(default="0.0.0.0", description="Web server bind address")
    port: int = Field(default=8000, description="Web server port")
    question_bank_file: str = Field(
        default="question_banks.json",
        description="JSON file mapping bank ids to question lists",
    )
    roster_file: str = Field(
        default="roster.json", description="JSON file listing students and teams"
    )

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("database_path must not be empty")
        return v


class AppConfig(BaseModel):
    """Complete application configuration."""

    defaults: TournamentDefaults = Field(default_factory=TournamentDefaults)
    policy: EnginePolicy = Field(default_factory=EnginePolicy)
    system: SystemConfig = Field(default_factory=SystemConfig)

    @classmethod
    def load_from_file(cls, config_path: Path) -> "AppConfig":
        """Load configuration from JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        required_sections = ["defaults", "system"]
        missing_sections = [
            section for section in required_sections if section not in data
        ]
        if missing_sections:
            raise ValueError(f"Missing required config sections: {missing_sections}")

        config = cls(**data)

        db_override = os.environ.get("TOURNAMENT_DB_PATH")
        if db_override:
            config.system.database_path = db_override

        return config

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.model_dump(exclude_unset=True),
                f,
                default_flow_style=False,
                indent=2,
            )


def get_default_config() -> AppConfig:
    """Load default configuration from tournament_config.json, creating it if needed."""
    config_path = Path(CONFIG_FILENAME)
    if not config_path.exists():
        example_path = Path(EXAMPLE_CONFIG_FILENAME)
        if example_path.exists():
            shutil.copy2(example_path, config_path)
        else:
            template_config = get_template_config()
            with open(config_path, "w", encoding="utf-8") as f:
                json.dump(template_config.model_dump(), f, indent=2)
            logger.info(f"Wrote template configuration to {config_path}")
    return AppConfig.load_from_file(config_path)


def get_template_config() -> AppConfig:
    """Get template configuration for config file generation."""
    return AppConfig(
        defaults=TournamentDefaults(
            capacity=16,
            questions_per_match=3,
            seconds_per_question=30,
            rewards=RewardTiers(),
        ),
        policy=EnginePolicy(
            bracket_tie_break="sudden_death",
            max_sudden_death_questions=3,
            third_place="best_semifinal_loser",
        ),
        system=SystemConfig(
            database_path="tournaments.db",
            log_level="INFO",
        ),
    )
