"""
Pipeline settings.

settings.yaml holds every tunable the pipeline reads: scanner
thresholds, recognition and LLM provider settings, parser limits,
fallback budgets. Modules look values up by dotted key with
get_config() and pass their own default, so a trimmed settings file
still works.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Optional


class ConfigurationManager:
    """
    Process-wide view of settings.yaml.

    The first construction loads the file (or `config_path`); later
    constructions return the same instance. set() layers in-memory
    overrides on top of the file until the next reload().

    Example:
        >>> ConfigurationManager().get("pipeline.quality_threshold")
        0.7
    """

    _instance: Optional['ConfigurationManager'] = None
    _config: Dict[str, Any] = {}

    def __new__(cls, config_path: Optional[str] = None) -> 'ConfigurationManager':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: Optional[str] = None) -> None:
        if self._initialized:
            return

        if config_path is None:
            self.config_path = Path(__file__).parent / "settings.yaml"
        else:
            self.config_path = Path(config_path)

        self._load_config()
        self._initialized = True

    def _load_config(self) -> None:
        """
        Read the settings file.

        Raises:
            FileNotFoundError: If the settings file doesn't exist.
            yaml.YAMLError: If it is not valid YAML.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self._config = yaml.safe_load(f) or {}

        # Relative output directories are anchored at the project root
        output = self._config.get('output') or {}
        directory = output.get('directory')
        if directory and not Path(directory).is_absolute():
            output['directory'] = str(Path(__file__).parent.parent / directory)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Look up a dotted key such as "scanner.sauvola.window".

        Returns `default` when any segment is missing.
        """
        value = self._config
        try:
            for k in key.split('.'):
                value = value[k]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Override a dotted key in memory, creating sections as needed."""
        keys = key.split('.')
        section = self._config
        for k in keys[:-1]:
            if not isinstance(section.get(k), dict):
                section[k] = {}
            section = section[k]
        section[keys[-1]] = value

    def reload(self) -> None:
        """Re-read the settings file, dropping in-memory overrides."""
        self._load_config()

    @classmethod
    def reset(cls) -> None:
        """Forget the loaded instance; the next construction reloads."""
        cls._instance = None


def get_config(key: str, default: Any = None) -> Any:
    """Dotted-key lookup on the shared ConfigurationManager."""
    return ConfigurationManager().get(key, default)


__all__ = ['ConfigurationManager', 'get_config']
