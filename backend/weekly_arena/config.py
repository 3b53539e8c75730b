"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class StoreConfig(BaseModel):
    """Backing document store selection and transport limits."""

    backend: Literal["memory", "firestore"] = "memory"
    fixture_path: Path | None = None  # YAML/JSON dump for the memory backend
    project_id: str = ""
    database: str = "(default)"
    base_url: str = "https://firestore.googleapis.com/v1"
    timeout_seconds: float = 30.0
    max_connections: int = 20
    max_keepalive_connections: int = 10


class RankingConfig(BaseModel):
    """Leaderboard windows and limits."""

    initial_balance: float = 100000.0  # seed capital for users without a balance record
    default_limit: int = 25
    by_week_limit: int = 100
    recent_weeks: int = 4
    win_rate_weeks: int = 12
    annualized_lookback_weeks: int = 26
    batch_size: int = 10  # max values in a single "in" filter
    key_lookup_weeks: int = 60
    min_weeks: int = 0  # window modes drop users with fewer defined weeks; 0 keeps everyone
    history_limit: int = 52

    @field_validator("batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError(f"batch_size must be between 1 and 10, got {v}")
        return v

    @field_validator("recent_weeks", "win_rate_weeks", "annualized_lookback_weeks")
    @classmethod
    def validate_window(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"window size must be at least 1, got {v}")
        return v

    @field_validator("min_weeks")
    @classmethod
    def validate_min_weeks(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"min_weeks must not be negative, got {v}")
        return v


class RiskConfig(BaseModel):
    """Max single-instrument weight thresholds for risk tiers."""

    high_threshold: float = 0.8
    medium_threshold: float = 0.6
    low_threshold: float = 0.5


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Secrets
    firestore_access_token: str = ""
    firestore_api_key: str = ""
    logfire_token: str = ""

    log_level: str = "INFO"

    # Nested configuration sections
    store: StoreConfig = Field(default_factory=StoreConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.debug(f"Config file not found: {config_path}. Using defaults.")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["store", "ranking", "risk"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    yaml_section = yaml_config[section_name]

                    section_dict = section.model_dump()
                    section_dict.update(yaml_section)

                    new_section = section.__class__(**section_dict)
                    setattr(self, section_name, new_section)

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
