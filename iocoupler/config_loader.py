# iocoupler/config_loader.py
"""
Config loader for the coupler YAML configuration.
"""

import copy
from pathlib import Path

import yaml

DEFAULT_CONFIG = {
    "connection": {
        "host": "192.168.0.222",
        "port": 502,
        "device_id": 1,
        "timeout": 3.0,
        "retries": 3,
    },
    "codec": None,
    "cycle": {
        "interval": 0.1,
        "max_cycles": None,
    },
    "logging": {
        "log_dir": None,
        "level": "INFO",
    },
}


class ConfigLoader:
    """Loads coupler.yml and fills in defaults for anything it leaves out."""

    def __init__(self, config_dir="config", filename="coupler.yml"):
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename

    @property
    def config_path(self) -> Path:
        return self.config_dir / self.filename

    def load_all(self):
        """Load the configuration file and merge it over the defaults."""
        config = copy.deepcopy(DEFAULT_CONFIG)

        if not self.config_path.exists():
            self._save(config)
            return config

        with open(self.config_path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"{self.config_path} must contain a mapping")

        for section in ("connection", "cycle", "logging"):
            config[section].update(data.get(section) or {})

        if data.get("codec"):
            config["codec"] = data["codec"]

        return config

    def _save(self, config):
        """Write the default configuration to disk."""
        with open(self.config_path, "w") as f:
            yaml.dump(config, f, default_flow_style=False, sort_keys=False)
        print(f"[INFO] Created default coupler config at {self.config_path}")
