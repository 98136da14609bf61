"""
Configuration loading for unifi-backup.

Sources, lowest priority first:
1. Defaults
2. Config file (YAML or JSON; explicit path or auto-detected config.yaml,
   config.yml, config.json in the working directory)
3. Environment variables
"""

import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .exceptions import ConfigError


CONFIG_FILE_NAMES = ('config.yaml', 'config.yml', 'config.json')

VALID_LOG_LEVELS = ('debug', 'info', 'warn', 'warning', 'error')
VALID_LOG_FORMATS = ('pretty', 'text', 'json')

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)')
_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}

_TRUE_VALUES = ('1', 't', 'true', 'yes', 'y', 'on')
_FALSE_VALUES = ('0', 'f', 'false', 'no', 'n', 'off', '')


def parse_duration(value: str) -> float:
    """
    Parse a duration string such as '30s', '10m' or '1h30m'.

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the string is not a valid duration
    """
    text = value.strip()
    if text == '0':
        return 0.0

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if not text or pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean {value!r}")


@dataclass
class UniFiConfig:
    """UniFi controller connection settings."""

    url: str = 'https://unifi.my-site.com'
    username: str = 'admin'
    password: str = 'changeme'
    site: str = 'default'
    include_days: int = 0
    insecure_skip_verify: bool = False
    timeout: str = '10m'
    max_retries: int = 3


@dataclass
class StorageConfig:
    """Storage backend URL (file://, s3://, gs://, smb://)."""

    url: str = 'file://./backups'


@dataclass
class LoggingConfig:
    level: str = 'info'
    format: str = 'pretty'
    file: str = ''


@dataclass
class RetentionConfig:
    """Number of backups to keep (0 for unlimited)."""

    keep_last: int = 7


@dataclass
class ScheduleConfig:
    """Cron expression for repeated runs; empty runs once and exits."""

    cron: str = ''


# (section, file key, attribute, env var, type)
_FIELDS = (
    ('unifi', 'url', 'url', 'UNIFI_URL', str),
    ('unifi', 'username', 'username', 'UNIFI_USER', str),
    ('unifi', 'password', 'password', 'UNIFI_PASS', str),
    ('unifi', 'site', 'site', 'UNIFI_SITE', str),
    ('unifi', 'includeDays', 'include_days', 'UNIFI_INCLUDE_DAYS', int),
    ('unifi', 'insecure_skip_verify', 'insecure_skip_verify', 'UNIFI_INSECURE', bool),
    ('unifi', 'timeout', 'timeout', 'UNIFI_TIMEOUT', str),
    ('unifi', 'max_retries', 'max_retries', 'UNIFI_MAX_RETRIES', int),
    ('storage', 'url', 'url', 'STORAGE_URL', str),
    ('logging', 'level', 'level', 'LOG_LEVEL', str),
    ('logging', 'format', 'format', 'LOG_FORMAT', str),
    ('logging', 'file', 'file', 'LOG_FILE', str),
    ('retention', 'keepLast', 'keep_last', 'RETENTION_KEEP_LAST', int),
    ('schedule', 'cron', 'cron', 'SCHEDULE_CRON', str),
)


@dataclass
class Config:
    """Complete application configuration."""

    unifi: UniFiConfig = field(default_factory=UniFiConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)

    @property
    def timeout_seconds(self) -> float:
        """Controller HTTP timeout in seconds."""
        return parse_duration(self.unifi.timeout)

    def apply_mapping(self, data: Mapping[str, Any], source: str):
        """
        Overlay values from a parsed config file.

        Raises:
            ConfigError: If a value has the wrong type
        """
        for section_name, file_key, attribute, _, kind in _FIELDS:
            section_data = data.get(section_name)
            if not isinstance(section_data, Mapping) or file_key not in section_data:
                continue

            value = section_data[file_key]
            section = getattr(self, section_name)
            try:
                setattr(section, attribute, _coerce(value, kind))
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{source}: {section_name}.{file_key}: {e}") from e

    def apply_environment(self, environ: Mapping[str, str]):
        """
        Overlay values from environment variables.

        Raises:
            ConfigError: If a variable cannot be converted
        """
        for section_name, _, attribute, env_name, kind in _FIELDS:
            if env_name not in environ:
                continue

            section = getattr(self, section_name)
            try:
                setattr(section, attribute, _coerce(environ[env_name], kind))
            except (TypeError, ValueError) as e:
                raise ConfigError(f"environment variable {env_name}: {e}") from e

    def validate(self):
        """
        Check the configuration, reporting every problem at once.

        Raises:
            ConfigError: If any setting is missing or invalid
        """
        errors: List[str] = []

        if not self.unifi.url:
            errors.append("unifi.url is required")
        if not self.unifi.username:
            errors.append("unifi.username is required")
        if not self.unifi.password:
            errors.append("unifi.password is required")
        if not self.unifi.site:
            errors.append("unifi.site is required")
        if self.unifi.include_days < 0:
            errors.append("unifi.includeDays must be non-negative")
        if not self.unifi.timeout:
            errors.append("unifi.timeout is required")
        else:
            try:
                parse_duration(self.unifi.timeout)
            except ValueError as e:
                errors.append(f"unifi.timeout is invalid: {e} (examples: 10m, 1h, 30s)")
        if self.unifi.max_retries < 0:
            errors.append("unifi.max_retries must be non-negative")

        if not self.storage.url:
            errors.append("storage.url is required")

        if self.logging.level.lower() not in VALID_LOG_LEVELS:
            errors.append("logging.level must be one of: debug, info, warn, error")
        if self.logging.format.lower() not in VALID_LOG_FORMATS:
            errors.append("logging.format must be one of: pretty, text, json")

        if self.retention.keep_last < 0:
            errors.append("retention.keepLast must be non-negative (0 for unlimited)")

        if self.schedule.cron and len(self.schedule.cron.split()) != 5:
            errors.append("schedule.cron must be a 5-field cron expression")

        if errors:
            raise ConfigError('; '.join(errors))


def _coerce(value: Any, kind: type) -> Any:
    if kind is bool:
        if isinstance(value, bool):
            return value
        return _parse_bool(str(value))
    if kind is int:
        if isinstance(value, bool):
            raise TypeError(f"expected integer, got {value!r}")
        return int(value)
    if value is None:
        return ''
    return str(value)


def load_config_file(path: str) -> Dict[str, Any]:
    """
    Read a YAML or JSON config file.

    Raises:
        ConfigError: If the file cannot be read or parsed
    """
    ext = os.path.splitext(path)[1].lower()
    if ext not in ('.yaml', '.yml', '.json'):
        raise ConfigError(f"unsupported config file format: {ext} (supported: .yaml, .yml, .json)")

    try:
        with open(path, 'r') as f:
            if ext == '.json':
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping at the top level")
    return data


def find_config_file(directory: str = '.') -> Optional[str]:
    """Return the first auto-detected config file in directory, if any."""
    for name in CONFIG_FILE_NAMES:
        candidate = os.path.join(directory, name)
        if os.path.isfile(candidate):
            return candidate
    return None


def load_config(config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Load configuration from defaults, a config file and the environment.

    Args:
        config_path: Explicit config file (default: auto-detect in cwd)
        environ: Environment mapping (default: os.environ)

    Returns:
        Validated Config

    Raises:
        ConfigError: If loading or validation fails
    """
    config = Config()

    path = config_path or find_config_file()
    if path:
        config.apply_mapping(load_config_file(path), path)

    config.apply_environment(os.environ if environ is None else environ)
    config.validate()
    return config
