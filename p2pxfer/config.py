"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field, fields
from typing import Optional
import json

from dotenv import load_dotenv

ENV_PREFIX = 'P2PXFER_'


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip().lower() in ('', 'none'):
        return None
    return float(value)


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip().lower() in ('', 'none'):
        return None
    return int(value)


@dataclass
class Config:
    """
    Transfer configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (P2PXFER_*)
    2. Config file (config.json)
    3. Default values

    Timeouts and the upload cap default to None, meaning unbounded.
    """
    # Network
    host: str = '0.0.0.0'
    port: int = 8469
    backlog: int = 5

    # Storage
    data_dir: Path = field(default_factory=lambda: Path('.'))
    strict_paths: bool = True  # GET names go through the same resolver as PUT

    # Performance
    chunk_size: int = 64 * 1024  # 64KB
    max_concurrent_transfers: int = 1
    max_upload_size: Optional[int] = None

    # Timeouts (seconds)
    connect_timeout: Optional[float] = None
    transfer_timeout: Optional[float] = None

    # Logging
    log_level: str = 'INFO'

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Normalize fields and reject values the listener cannot run with."""
        self.data_dir = Path(self.data_dir)
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_concurrent_transfers < 1:
            raise ValueError(
                f"max_concurrent_transfers must be >= 1, "
                f"got {self.max_concurrent_transfers}"
            )

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv(f'{ENV_PREFIX}HOST', config.host)
        config.port = int(os.getenv(f'{ENV_PREFIX}PORT', config.port))

        # Storage
        data_dir = os.getenv(f'{ENV_PREFIX}DATA_DIR')
        if data_dir:
            config.data_dir = Path(data_dir)
        config.strict_paths = os.getenv(
            f'{ENV_PREFIX}STRICT_PATHS', 'true'
        ).lower() == 'true'

        # Performance
        config.chunk_size = int(os.getenv(f'{ENV_PREFIX}CHUNK_SIZE', config.chunk_size))
        config.max_concurrent_transfers = int(
            os.getenv(f'{ENV_PREFIX}MAX_CONCURRENT', config.max_concurrent_transfers)
        )
        config.max_upload_size = _optional_int(os.getenv(f'{ENV_PREFIX}MAX_UPLOAD_SIZE'))

        # Timeouts
        config.connect_timeout = _optional_float(os.getenv(f'{ENV_PREFIX}CONNECT_TIMEOUT'))
        config.transfer_timeout = _optional_float(os.getenv(f'{ENV_PREFIX}TRANSFER_TIMEOUT'))

        # Logging
        config.log_level = os.getenv(f'{ENV_PREFIX}LOG_LEVEL', config.log_level)

        config.validate()
        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.port = data.get('port', config.port)
        config.backlog = data.get('backlog', config.backlog)

        # Storage
        if 'data_dir' in data:
            config.data_dir = Path(data['data_dir'])
        config.strict_paths = data.get('strict_paths', config.strict_paths)

        # Performance
        config.chunk_size = data.get('chunk_size', config.chunk_size)
        config.max_concurrent_transfers = data.get(
            'max_concurrent_transfers', config.max_concurrent_transfers
        )
        config.max_upload_size = data.get('max_upload_size', config.max_upload_size)

        # Timeouts
        config.connect_timeout = data.get('connect_timeout', config.connect_timeout)
        config.transfer_timeout = data.get('transfer_timeout', config.transfer_timeout)

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        config.validate()
        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'backlog': self.backlog,
            'data_dir': str(self.data_dir),
            'strict_paths': self.strict_paths,
            'chunk_size': self.chunk_size,
            'max_concurrent_transfers': self.max_concurrent_transfers,
            'max_upload_size': self.max_upload_size,
            'connect_timeout': self.connect_timeout,
            'transfer_timeout': self.transfer_timeout,
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and Path(config_path).exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for f in fields(Config):
        env_val = getattr(env_config, f.name)
        if env_val != getattr(defaults, f.name):
            setattr(config, f.name, env_val)

    return config
