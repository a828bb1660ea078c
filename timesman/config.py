"""
Configuration management for timesman stores.

This module provides the StoreConfig dataclass and utilities for loading a
store configuration from YAML files or programmatically, plus the logging
setup shared by every entry point.
"""

import sys
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from loguru import logger

SUPPORTED_BACKENDS = ("memory", "local", "remote")


@dataclass
class StoreConfig:
    """
    Complete configuration for opening a store.

    Attributes:
        backend: Storage backend ("memory", "local", "remote")
        path: Store file of the local backend
        server_host: StoreServer hostname (remote backend, or hosting)
        server_port: StoreServer port
        request_timeout: Seconds the remote backend waits for a response
        logging: Logging configuration
    """
    backend: str = "memory"
    path: Optional[str] = None
    server_host: str = "localhost"
    server_port: int = 8765
    request_timeout: float = 30.0
    logging: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.backend not in SUPPORTED_BACKENDS:
            raise ValueError(f"Unknown storage backend: {self.backend}")
        if self.backend == "local" and not self.path:
            raise ValueError("path cannot be empty for the local backend")
        if self.server_port <= 0 or self.server_port > 65535:
            raise ValueError(f"Invalid server port: {self.server_port}")
        if self.request_timeout <= 0:
            raise ValueError(f"Invalid request timeout: {self.request_timeout}")

        # Set default logging parameters if not provided
        if not self.logging:
            self.logging = {
                "level": "INFO",
                "file": None,
                "format": "text",
            }

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "StoreConfig":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            StoreConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config file is malformed
        """
        log = logger.bind(context="StoreConfig.from_yaml")
        log.info(f"Loading store configuration from {yaml_path}")

        config_file = Path(yaml_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(config_file, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        known_fields = set(cls.__dataclass_fields__)
        unknown = [key for key in config_data if key not in known_fields]
        if unknown:
            log.warning(f"Ignoring unknown configuration keys: {', '.join(sorted(unknown))}")

        return cls(**{key: value for key, value in config_data.items() if key in known_fields})

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "StoreConfig":
        """
        Create configuration from dictionary.

        Args:
            config_dict: Configuration dictionary

        Returns:
            StoreConfig instance
        """
        return cls(**config_dict)

    def to_yaml(self, yaml_path: str | Path):
        """
        Save configuration to YAML file.

        Args:
            yaml_path: Path to save YAML file
        """
        log = logger.bind(context="StoreConfig.to_yaml")
        log.info(f"Saving configuration to {yaml_path}")

        config_file = Path(yaml_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w') as f:
            yaml.safe_dump(asdict(self), f, default_flow_style=False)

        log.debug(f"Configuration saved to {yaml_path}")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Returns:
            Configuration as dictionary
        """
        return asdict(self)

    def update(self, **kwargs):
        """
        Update configuration parameters.

        Args:
            **kwargs: Parameters to update

        Raises:
            ValueError: If the updated configuration is invalid; the
                configuration is left unchanged
        """
        known = {f.name for f in fields(self)}
        changes = {}
        for key, value in kwargs.items():
            if key in known:
                changes[key] = value
            else:
                logger.warning(f"Unknown configuration parameter: {key}")

        # replace() runs __post_init__ on the copy
        updated = replace(self, **changes)
        for name in known:
            setattr(self, name, getattr(updated, name))


def create_default_config(backend: str = "memory", path: Optional[str] = None) -> StoreConfig:
    """
    Create a default store configuration.

    Args:
        backend: Storage backend name
        path: Store file (required for the local backend)

    Returns:
        StoreConfig with default values
    """
    return StoreConfig(
        backend=backend,
        path=path,
        server_host="localhost",
        server_port=8765,
    )


def load_config_with_overrides(yaml_path: str | Path, **overrides) -> StoreConfig:
    """
    Load configuration from YAML and apply overrides.

    Args:
        yaml_path: Path to base YAML configuration
        **overrides: Parameters to override

    Returns:
        StoreConfig with overrides applied
    """
    config = StoreConfig.from_yaml(yaml_path)
    config.update(**overrides)
    return config


def setup_logging(config: StoreConfig):
    """
    Configure logging based on store configuration.

    Args:
        config: Store configuration
    """
    logger.remove()  # Remove default handler

    log_level = config.logging.get("level", "INFO")
    log_format = config.logging.get("format", "text")

    if log_format == "json":
        format_str = "{time} {level} {name}:{function}:{line} {message}"
    else:
        format_str = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> | <level>{message}</level>"

    # Console logging
    logger.add(
        sys.stdout,
        level=log_level,
        format=format_str,
        colorize=True
    )

    # File logging if specified
    log_file = config.logging.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function} | {message}",
            rotation="10 MB"
        )
