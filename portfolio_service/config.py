"""Configuration management for the Portfolio Service."""
from dataclasses import dataclass
from pathlib import Path
import os

from dotenv import load_dotenv

from portfolio_service.utils.default_rules import DEFAULT_POLICY_RULE, DEFAULT_CLAIM_RULE


@dataclass
class EngineConfig:
    """Engine and cache configuration."""
    cache_enabled: bool = True
    cache_max_entries: int = 256
    policy_rule: str = DEFAULT_POLICY_RULE
    claim_rule: str = DEFAULT_CLAIM_RULE
    log_level: str = "INFO"


def load_config(env_path: Path = None) -> EngineConfig:
    """
    Load engine configuration from environment variables.

    Args:
        env_path: Optional path to .env file. If not provided, searches in standard locations.

    Returns:
        EngineConfig with cache, rule and logging settings.
    """
    if env_path:
        load_dotenv(env_path)
    else:
        load_dotenv()

    return EngineConfig(
        cache_enabled=os.getenv("PORTFOLIO_CACHE_ENABLED", "true").lower() == "true",
        cache_max_entries=int(os.getenv("PORTFOLIO_CACHE_MAX_ENTRIES", "256")),
        policy_rule=os.getenv("PORTFOLIO_POLICY_RULE", DEFAULT_POLICY_RULE),
        claim_rule=os.getenv("PORTFOLIO_CLAIM_RULE", DEFAULT_CLAIM_RULE),
        log_level=os.getenv("PORTFOLIO_LOG_LEVEL", "INFO").upper(),
    )
