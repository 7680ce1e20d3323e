"""Configuration management for SnapCleaner."""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional

from .errors import ConfigurationError
from .models import RetentionPolicy, Scope


DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


class Config:
    """Configuration manager for SnapCleaner."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration.

        Args:
            config_path: Path to custom configuration file
        """
        self.config_path = config_path
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file."""
        with open(DEFAULT_CONFIG_PATH, 'r') as f:
            config = yaml.safe_load(f) or {}

        if self.config_path:
            if not os.path.exists(self.config_path):
                raise ConfigurationError(f"Configuration file not found: {self.config_path}")
            with open(self.config_path, 'r') as f:
                try:
                    custom_config = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"Invalid configuration file {self.config_path}: {e}")
            if not isinstance(custom_config, dict):
                raise ConfigurationError(f"Configuration file must contain a mapping: {self.config_path}")
            _merge(config, custom_config)

        return self._apply_env_overrides(config)

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides."""
        env_mappings = {
            'SNAPCLEANER_RETENTION_DAYS': ['retention', 'days'],
            'SNAPCLEANER_RETENTION_MAX_DAYS': ['retention', 'max_days'],
            'SNAPCLEANER_KEEP_MARKER': ['retention', 'keep_marker'],
            'SNAPCLEANER_DRY_RUN': ['cleanup', 'dry_run'],
            'SNAPCLEANER_DATACENTER': ['datacenter'],
            'SNAPCLEANER_LOG_LEVEL': ['notifications', 'level'],
        }

        for env_var, config_path in env_mappings.items():
            if env_var in os.environ:
                value = os.environ[env_var]
                if config_path[-1] in ['days', 'max_days']:
                    try:
                        value = int(value)
                    except ValueError:
                        raise ConfigurationError(f"{env_var} must be an integer, got '{value}'")
                elif config_path[-1] in ['dry_run']:
                    value = value.lower() in ['true', '1', 'yes']

                current = config
                for key in config_path[:-1]:
                    if key not in current:
                        current[key] = {}
                    current = current[key]
                current[config_path[-1]] = value

        return config

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., 'retention.days')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self._config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation."""
        keys = key.split('.')
        current = self._config

        for k in keys[:-1]:
            if k not in current:
                current[k] = {}
            current = current[k]

        current[keys[-1]] = value

    def save(self, path: str) -> None:
        """Save current configuration to file."""
        with open(path, 'w') as f:
            yaml.dump(self._config, f, default_flow_style=False, indent=2, sort_keys=False)

    @property
    def retention_policy(self) -> RetentionPolicy:
        """Get the validated retention policy."""
        try:
            policy = RetentionPolicy(
                days=int(self.get('retention.days', 15)),
                max_days=int(self.get('retention.max_days', 30)),
                keep_marker=str(self.get('retention.keep_marker', 'keep')),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid retention settings: {e}")
        return policy.validate()

    @property
    def dry_run(self) -> bool:
        """Whether runs default to dry-run mode."""
        return bool(self.get('cleanup.dry_run', True))

    @property
    def max_workers(self) -> int:
        """Get size of the deletion worker pool."""
        return max(1, int(self.get('cleanup.max_workers', 4)))

    @property
    def delete_timeout(self) -> float:
        """Get per-snapshot deletion timeout in seconds."""
        return float(self.get('cleanup.delete_timeout', 300))

    @property
    def datacenter(self) -> str:
        """Get datacenter identifier used in reports."""
        return str(self.get('datacenter', 'default'))

    @property
    def platform(self) -> str:
        """Get the snapshot platform name."""
        return self.get('platform', 'multipass')

    @property
    def scopes(self) -> List[Scope]:
        """Get configured scopes (name -> list of VM names)."""
        raw = self.get('scopes') or {}
        if not isinstance(raw, dict):
            raise ConfigurationError("'scopes' must be a mapping of scope name to VM names")
        return [Scope(name=str(name), vms=[str(vm) for vm in (vms or [])])
                for name, vms in raw.items()]

    @property
    def report_output(self) -> Optional[str]:
        """Get path where the JSON report is written, if any."""
        return self.get('report.output')
