"""Configuration loader for n8n self-hoster."""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from n8nselfhoster.constants import CONFIG_ENV_VARS
from n8nselfhoster.errors import SelfHosterError


class ConfigLoader:
    """Loads YAML configuration files and environment overrides for CLI defaults."""

    SUPPORTED_KEYS = {
        "db_password",
        "admin_password",
        "domain",
        "timezone",
        "install_dir",
        "verbose",
        "log_file",
        "pull_timeout",
        "settle_delay",
        "probe_timeout",
        "daemon_config",
        "dns_servers",
    }

    ENV_VARS = CONFIG_ENV_VARS

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise SelfHosterError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise SelfHosterError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise SelfHosterError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise SelfHosterError(f"Unknown configuration keys: {unknown_list}")

        return parsed

    def load_environment(self, environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        environ = os.environ if environ is None else environ
        return {
            key: environ[env_var]
            for key, env_var in self.ENV_VARS.items()
            if environ.get(env_var)
        }

    def load_layers(
        self,
        config_path: Optional[str],
        environ: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        """Config file values overlaid with environment variables."""
        values = self.load(config_path)
        values.update(self.load_environment(environ))
        return values
