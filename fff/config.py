"""
load the config from config.yaml, an optional user file and .env
"""

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

import yaml

from .classifier import FilterCriteria
from .request import Header, parse_headers

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("console", "json")


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise FileNotFoundError(f"Configuration file not found: {path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file: {e}")


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Layered configuration: packaged defaults, user YAML, then environment variables."""

    env_mappings = {
        'FFF_DELAY_MS': ('scheduler', 'delay_ms'),
        'FFF_CONCURRENCY': ('scheduler', 'concurrency'),
        'FFF_TIMEOUT': ('fetcher', 'timeout'),
        'FFF_CONNECT_TIMEOUT': ('fetcher', 'connect_timeout'),
        'FFF_MAX_IDLE_CONNECTIONS': ('fetcher', 'max_idle_connections'),
        'FFF_PROXY': ('fetcher', 'proxy'),
        'FFF_OUTPUT_DIR': ('output', 'dir'),
        'LOG_LEVEL': ('logging', 'level'),
        'LOG_FORMAT': ('logging', 'format'),
    }

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """Initialize configuration loader.

        Args:
            config_path: Optional user YAML file layered over the packaged
                        defaults. Falls back to $FFF_CONFIG when None.
            environ: Environment to read overrides from (os.environ if None).
        """
        self.environ = os.environ if environ is None else environ
        if config_path is None:
            config_path = self.environ.get('FFF_CONFIG')
        self.config_path = Path(config_path) if config_path else None
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        config = _load_yaml(DEFAULT_CONFIG_PATH)
        if self.config_path is not None:
            config = _merge(config, _load_yaml(self.config_path))
        return self._apply_env_overrides(config)

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        for env_var, config_path in self.env_mappings.items():
            env_value = self.environ.get(env_var)
            if env_value is None:
                continue
            current = config
            for key in config_path[:-1]:
                current = current.setdefault(key, {})
            current[config_path[-1]] = self._convert_env_value(env_value)
        return config

    def _convert_env_value(self, value: str):
        """Convert environment variable string to appropriate Python type."""
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def get(self, *keys, default=None):
        """Get configuration value by nested keys, e.g. get('fetcher', 'timeout')."""
        current = self._config
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    @property
    def fetcher(self) -> Dict[str, Any]:
        return self.get('fetcher', default={})

    @property
    def scheduler(self) -> Dict[str, Any]:
        return self.get('scheduler', default={})

    @property
    def filter(self) -> Dict[str, Any]:
        return self.get('filter', default={})

    @property
    def output(self) -> Dict[str, Any]:
        return self.get('output', default={})

    @property
    def logging(self) -> Dict[str, Any]:
        return self.get('logging', default={})


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


def parse_status_codes(values: Iterable[Any]) -> FrozenSet[int]:
    """Accept ints and comma separated strings; entries that aren't integers are ignored."""
    codes = set()
    for value in values or ():
        if isinstance(value, int):
            codes.add(value)
            continue
        for part in str(value).split(","):
            try:
                codes.add(int(part.strip()))
            except ValueError:
                continue
    return frozenset(codes)


@dataclass(frozen=True)
class Settings:
    """Validated, read-only settings for one run."""

    method: Optional[str] = None
    body: Optional[bytes] = None
    headers: Tuple[Header, ...] = ()
    keep_alive: bool = False
    proxy: Optional[str] = None
    timeout: float = 10.0
    connect_timeout: float = 10.0
    max_idle_connections: int = 30
    idle_timeout: float = 1.0
    tcp_keepalive_interval: int = 1
    delay: float = 0.1
    concurrency: int = 50
    match_string: Optional[bytes] = None
    match_codes: FrozenSet[int] = field(default_factory=frozenset)
    exclude_codes: FrozenSet[int] = field(default_factory=frozenset)
    ignore_html: bool = False
    ignore_empty: bool = False
    output_dir: Optional[str] = None
    log_level: str = "WARNING"
    log_format: str = "console"

    def __post_init__(self):
        if self.delay < 0:
            raise ValueError(f"delay must not be negative: {self.delay}")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1: {self.concurrency}")
        for name in ("timeout", "connect_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive: {getattr(self, name)}")
        if self.max_idle_connections < 0:
            raise ValueError(f"max_idle_connections must not be negative: {self.max_idle_connections}")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log level must be one of {LOG_LEVELS}: {self.log_level}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log format must be one of {LOG_FORMATS}: {self.log_format}")

    @property
    def filter_criteria(self) -> FilterCriteria:
        return FilterCriteria(
            match_string=self.match_string,
            match_codes=self.match_codes,
            exclude_codes=self.exclude_codes,
            ignore_html=self.ignore_html,
            ignore_empty=self.ignore_empty,
        )

    @classmethod
    def from_config(cls, config: Config, **overrides) -> "Settings":
        """Build settings from a Config; non-None keyword overrides (CLI flags) win."""
        fetcher = config.fetcher
        scheduler = config.scheduler
        filters = config.filter

        body = fetcher.get('body')
        match_string = filters.get('match_string')
        values = dict(
            method=fetcher.get('method'),
            body=body.encode() if isinstance(body, str) else body,
            headers=parse_headers(fetcher.get('headers') or ()),
            keep_alive=bool(fetcher.get('keep_alive', False)),
            proxy=_optional_str(fetcher.get('proxy')),
            timeout=float(fetcher.get('timeout', 10)),
            connect_timeout=float(fetcher.get('connect_timeout', 10)),
            max_idle_connections=int(fetcher.get('max_idle_connections', 30)),
            idle_timeout=float(fetcher.get('idle_timeout', 1)),
            tcp_keepalive_interval=int(fetcher.get('tcp_keepalive_interval', 1)),
            delay=float(scheduler.get('delay_ms', 100)) / 1000,
            concurrency=int(scheduler.get('concurrency', 50)),
            match_string=match_string.encode() if isinstance(match_string, str) else match_string,
            match_codes=parse_status_codes(filters.get('match_codes')),
            exclude_codes=parse_status_codes(filters.get('exclude_codes')),
            ignore_html=bool(filters.get('ignore_html', False)),
            ignore_empty=bool(filters.get('ignore_empty', False)),
            output_dir=_optional_str(config.output.get('dir')),
            log_level=str(config.logging.get('level', 'WARNING')).upper(),
            log_format=str(config.logging.get('format', 'console')).lower(),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
