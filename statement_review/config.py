"""
Statement review configuration.
"""

import os
from typing import Dict, List, Optional

import yaml
from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

from .models.report import ViolationFlag

DEFAULT_CONTRACT_SIZES: Dict[str, float] = {
    "EURUSD": 100000,
    "GBPUSD": 100000,
    "AUDUSD": 100000,
    "NZDUSD": 100000,
    "USDJPY": 100000,
    "USDCAD": 100000,
    "USDCHF": 100000,
    "EURJPY": 100000,
    "GBPJPY": 100000,
    "XAUUSD": 100,
    "XAGUSD": 5000,
}


class DatabaseConfig(BaseSettings):
    """Report store connection configuration."""

    reports_host: str = "localhost"
    reports_port: int = 5432
    reports_db: str = "compliance"
    reports_user: str = "postgres"
    reports_password: str = ""

    connect_timeout: int = 10
    statement_timeout_ms: int = 30000


class RulesConfig(BaseSettings):
    """Violation rule configuration."""

    # Checks run by the classifier, by ViolationFlag value
    enabled_checks: List[str] = Field(
        default_factory=lambda: [ViolationFlag.UNDER_THIRTY_SECONDS.value]
    )

    # Trades closed in under this many seconds with a profit are flagged
    thirty_second_threshold: float = 30.0

    # A trade chain may not reach this share of the profit target
    profit_limit_ratio: float = 0.8
    # Funded accounts in profit use this share of net profit as the target
    funded_profit_target_ratio: float = 0.8
    # Profit target as a share of the initial balance, per program and phase
    profit_targets: Dict[str, Dict[str, float]] = Field(
        default_factory=lambda: {
            "default": {"phase1": 0.10, "phase2": 0.05},
            "aggressive": {"phase1": 0.20, "phase2": 0.10},
            "peak_scalp": {"phase1": 0.08, "phase2": 0.05},
        }
    )

    # Margin used around a news event may not exceed this share of balance
    margin_threshold_ratio: float = 0.5
    default_leverage: float = 50.0
    news_window_minutes: int = 30

    # Largest daily profit as % of total profit
    stability_threshold_pct: float = 20.0

    contract_sizes: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_CONTRACT_SIZES)
    )

    @field_validator("enabled_checks")
    @classmethod
    def _known_checks(cls, value: List[str]) -> List[str]:
        known = {flag.value for flag in ViolationFlag}
        unknown = [name for name in value if name not in known]
        if unknown:
            raise ValueError(f"Unknown checks: {', '.join(unknown)}")
        return value

    @field_validator(
        "thirty_second_threshold",
        "profit_limit_ratio",
        "funded_profit_target_ratio",
        "margin_threshold_ratio",
        "default_leverage",
        "news_window_minutes",
        "stability_threshold_pct",
    )
    @classmethod
    def _non_negative(cls, value):
        if value < 0:
            raise ValueError("threshold must not be negative")
        return value


class ReviewSettings(BaseSettings):
    """Main statement review settings."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    rules: RulesConfig = Field(default_factory=RulesConfig)

    # Redis configuration (for the shared rules cache)
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=2)
    redis_password: str = Field(default="")

    # Whether to overlay rule settings from Redis
    use_redis_rules: bool = Field(default=False)

    # News feed served by the back-office API
    news_api_url: str = Field(default="http://localhost:3000")
    news_timeout: float = Field(default=10.0)

    # Layout used when a statement's platform cannot be detected
    default_platform: str = Field(default="MT5")

    # Output settings
    report_output_dir: str = Field(default="./reports")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = ConfigDict(
        env_prefix="REVIEW_",
        env_nested_delimiter="__",
    )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "ReviewSettings":
        """Load settings from YAML file."""
        if not os.path.exists(yaml_path):
            return cls()

        with open(yaml_path, "r") as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls._parse_yaml_config(yaml_config)

    @classmethod
    def _parse_yaml_config(cls, config: Dict) -> "ReviewSettings":
        """Parse YAML config into settings."""
        kwargs = {}

        if "database" in config:
            kwargs["database"] = DatabaseConfig(**config["database"])

        if "rules" in config:
            kwargs["rules"] = RulesConfig(**config["rules"])

        for key in [
            "redis_host",
            "redis_port",
            "redis_db",
            "redis_password",
            "use_redis_rules",
            "news_api_url",
            "news_timeout",
            "default_platform",
            "report_output_dir",
            "log_level",
        ]:
            if key in config:
                kwargs[key] = config[key]

        return cls(**kwargs)


def load_settings(config_path: Optional[str] = None) -> ReviewSettings:
    """Load statement review settings."""
    if config_path is None:
        # Look for config in standard locations
        search_paths = [
            "config/review_config.yaml",
            "/etc/statement-review/config.yaml",
        ]
        for path in search_paths:
            if os.path.exists(path):
                config_path = path
                break

    if config_path:
        return ReviewSettings.from_yaml(config_path)

    return ReviewSettings()
