import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from optimization_bench.databases.types import DatabaseType

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).parent / "configs"
DEFAULT_STATEMENT_TIMEOUT_SECONDS = 300.0

# Environment variables that win over the YAML file
ENV_OVERRIDES = {
    "OPTBENCH_DSN": "dsn",
    "OPTBENCH_STATEMENT_TIMEOUT": "statement_timeout_seconds",
}


class ConfigurationManager:

    def __init__(self, config_dir: Union[str, Path, None] = None):
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR

    def load_database_config(self, database_type: DatabaseType,
                             overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Load <config_dir>/<database_type>.yaml, then apply environment and
        caller overrides on top of it.
        """
        config_path = self.config_dir / f"{database_type.value}.yaml"
        if not config_path.exists():
            raise FileNotFoundError(f"Config file {config_path} does not exist")
        try:
            with open(config_path, "r") as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to load config file {config_path}: {e}")

        if not isinstance(config, dict):
            raise RuntimeError(f"Config file {config_path} must contain a mapping")

        config.setdefault("statement_timeout_seconds", DEFAULT_STATEMENT_TIMEOUT_SECONDS)
        config.setdefault("explain", False)
        config.setdefault("rollback", False)

        for env_name, key in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                logger.info(f"Overriding '{key}' from environment variable {env_name}")
                config[key] = value

        if overrides:
            config.update({key: value for key, value in overrides.items() if value is not None})

        try:
            config["statement_timeout_seconds"] = float(config["statement_timeout_seconds"])
        except (TypeError, ValueError):
            raise RuntimeError(
                f"statement_timeout_seconds must be a number, got {config['statement_timeout_seconds']!r}"
            )

        logger.debug(f"Loaded {database_type.value} configuration from {config_path}")
        return config
