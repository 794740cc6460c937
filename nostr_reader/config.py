"""Configuration handling for the Nostr community client."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

import yaml
from dotenv import load_dotenv

from nostr_reader.utils import validate_topic

DEFAULT_TIMEOUT_SECONDS = 10
DEFAULT_LIMIT = 50


@dataclass
class NostrConfig:
    """Relay and identity configuration."""

    relays: List[str] = field(default_factory=list)
    secret_key: str = ""
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    limit: int = DEFAULT_LIMIT


@dataclass
class CommunitiesConfig:
    """Communities shown on the home feed."""

    featured: List[str] = field(default_factory=list)


@dataclass
class CacheConfig:
    """Freshness deadlines for cached results."""

    feed_ttl_sec: int = 1800  # 30 minutes
    thread_ttl_sec: int = 600  # 10 minutes, threads change faster


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""

    enable_prometheus: bool = False
    prometheus_port: int = 8000


def _merge_section(section, values: dict):
    for key, value in values.items():
        if hasattr(section, key):
            setattr(section, key, value)
    return section


@dataclass
class Config:
    """Application configuration combining environment variables and YAML config."""

    nostr: NostrConfig = field(default_factory=NostrConfig)
    communities: CommunitiesConfig = field(default_factory=CommunitiesConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    log_level: str = "INFO"

    @classmethod
    def from_files(cls, config_path: str, env_path: Optional[str] = None) -> "Config":
        """
        Load configuration from YAML file and environment variables.

        Args:
            config_path: Path to YAML configuration file
            env_path: Optional path to .env file (defaults to .env in current directory)

        Returns:
            Config instance with merged configuration
        """
        # Load environment variables
        if env_path:
            load_dotenv(env_path)
        else:
            load_dotenv()

        config = cls()

        # Load and merge YAML config
        if os.path.exists(config_path):
            with open(config_path, "r", encoding="utf-8") as file:
                yaml_config = yaml.safe_load(file)

            if yaml_config:
                sections = {
                    "nostr": config.nostr,
                    "communities": config.communities,
                    "cache": config.cache,
                    "monitoring": config.monitoring,
                }
                for key, value in yaml_config.items():
                    if key in sections:
                        if isinstance(value, dict):
                            _merge_section(sections[key], value)
                    elif hasattr(config, key):
                        setattr(config, key, value)

        # Secrets and relay overrides come from the environment
        secret_key = os.getenv("NOSTR_SECRET_KEY", "")
        if secret_key:
            config.nostr.secret_key = secret_key

        relays = os.getenv("NOSTR_RELAYS", "")
        if relays.strip():
            config.nostr.relays = [relay.strip() for relay in relays.split(",") if relay.strip()]

        log_level = os.getenv("LOG_LEVEL", "")
        if log_level:
            config.log_level = log_level.upper()

        return config

    def validate(self) -> List[str]:
        """
        Validate configuration and return a list of validation errors.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not self.nostr.relays:
            errors.append("No relays specified in configuration")
        for relay in self.nostr.relays:
            if not relay.startswith(("ws://", "wss://")):
                errors.append(f"Relay URL must use ws:// or wss://: {relay}")

        if self.nostr.timeout_seconds < 0:
            errors.append("nostr.timeout_seconds must not be negative")
        if self.nostr.limit < 0:
            errors.append("nostr.limit must not be negative")

        for community in self.communities.featured:
            if not validate_topic(community):
                errors.append(f"Featured community is not a topic (t:...): {community}")

        if self.cache.feed_ttl_sec <= 0:
            errors.append("cache.feed_ttl_sec must be greater than 0")
        if self.cache.thread_ttl_sec <= 0:
            errors.append("cache.thread_ttl_sec must be greater than 0")

        if self.monitoring.enable_prometheus and self.monitoring.prometheus_port <= 0:
            errors.append("monitoring.prometheus_port must be a positive integer")

        return errors
