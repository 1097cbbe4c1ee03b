"""
Configuration management for the gemini crawler.
"""

import yaml
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    start_url: str = "gemini://geminiprotocol.net/"
    max_entries: Optional[int] = None
    max_concurrent_requests: int = 1
    request_timeout: float = 10.0
    max_response_size: int = 10 * 1024 * 1024
    frontier_order: str = "stack"
    insecure_skip_verify: bool = False
    requeue_unfetched: bool = True


@dataclass
class CheckpointConfig:
    """Configuration for checkpoint persistence."""
    path: str = "data/checkpoint.json"
    save_interval: int = 100
    resume_from: Optional[str] = None


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    checkpoint: CheckpointConfig = field(default_factory=CheckpointConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _section(cls, data: Optional[Dict[str, Any]]):
    data = data or {}
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} options: {', '.join(sorted(unknown))}")
    return cls(**data)


def validate_config(config: Config):
    """Validate configuration values."""
    crawler = config.crawler

    if not crawler.start_url:
        raise ValueError("start_url must be provided")

    if crawler.max_entries is not None and crawler.max_entries < 1:
        raise ValueError("max_entries must be at least 1")

    if crawler.max_concurrent_requests < 1:
        raise ValueError("max_concurrent_requests must be at least 1")

    if crawler.request_timeout <= 0:
        raise ValueError("request_timeout must be positive")

    if crawler.max_response_size < 1:
        raise ValueError("max_response_size must be at least 1")

    if crawler.frontier_order not in ['stack', 'queue']:
        raise ValueError("frontier_order must be 'stack' or 'queue'")

    if config.checkpoint.save_interval < 1:
        raise ValueError("save_interval must be at least 1")

    if not config.checkpoint.path:
        raise ValueError("checkpoint path must be provided")

    if not hasattr(logging, config.logging.level.upper()):
        raise ValueError(f"Unknown log level: {config.logging.level}")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = "config.yaml"):
        self.config_path = Path(config_path) if config_path else None
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file, or the defaults if no path is set."""
        if self.config_path is None:
            self._config = Config()
            validate_config(self._config)
            return self._config

        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        if not isinstance(config_data, dict):
            raise ValueError(f"Configuration file {self.config_path} must contain a mapping")

        self._config = Config(
            crawler=_section(CrawlerConfig, config_data.get('crawler')),
            checkpoint=_section(CheckpointConfig, config_data.get('checkpoint')),
            logging=_section(LoggingConfig, config_data.get('logging')),
            monitoring=_section(MonitoringConfig, config_data.get('monitoring'))
        )

        validate_config(self._config)
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: Optional[str] = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
