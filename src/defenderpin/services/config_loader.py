"""Configuration loader for defenderpin."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from defenderpin.errors import ConfigurationError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults.

    The console URL, token and address are not accepted here; they only come
    from the environment.
    """

    SUPPORTED_KEYS = {
        "tag",
        "image",
        "source_image",
        "registry",
        "keep_files",
        "cpu_limit",
        "memory_limit",
        "runtime",
        "verbose",
        "log_file",
        "allow_insecure_http",
        "fetch_timeout",
        "dry_run",
        "backup_archive",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigurationError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigurationError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ConfigurationError(f"Unknown configuration keys: {unknown_list}")

        return parsed
