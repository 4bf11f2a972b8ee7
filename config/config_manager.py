import copy
import os
from typing import Callable, Tuple

import yaml

DEFAULT_CONFIG = {
    "system": {
        "socket_path": f"/tmp/chatmedia_{os.getenv('USER', 'user')}.sock",
        "connect_timeout": 5.0,
    },
    "files": {
        "cache": {
            "dir": "~/.chatmedia/cache",
        },
    },
    "logging_level": "INFO",
    "display": {
        "cell_width": 10,
        "cell_height": 20,
        "max_width": 40,   # cells
        "max_height": 20,  # cells
    },
    "auto_download": {
        "enabled": True,
        "all_chats": False,
        "chat_ids": [],
    },
    "priorities": {
        "render": 16,
    },
}


def _default_config_path() -> str:
    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return os.path.join(xdg_config_home, "chatmedia", "config.yaml")


def _deep_merge(base: dict, override: dict) -> dict:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class ConfigManager:
    def __init__(self, config_path: str | None = None):
        self.config_path = config_path or _default_config_path()
        self.config = self.load_config()

    def load_config(self):
        try:
            with open(self.config_path, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            self.save_config(DEFAULT_CONFIG)
            return copy.deepcopy(DEFAULT_CONFIG)
        except yaml.YAMLError as exc:
            raise ValueError(f"Malformed config at {self.config_path}") from exc
        if not isinstance(user_config, dict):
            raise ValueError(f"Config at {self.config_path} must be a mapping")
        return _deep_merge(copy.deepcopy(DEFAULT_CONFIG), user_config)

    def save_config(self, config):
        os.makedirs(os.path.dirname(self.config_path), exist_ok=True)
        with open(self.config_path, "w") as f:
            yaml.dump(config, f, default_flow_style=False)

    def get(self, key, default=None):
        keys = key.split('.')
        value = self.config
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
        return value if value is not None else default

    def set(self, key, value):
        keys = key.split('.')
        node = self.config
        for k in keys[:-1]:
            node = node.setdefault(k, {})
        node[keys[-1]] = value
        self.save_config(self.config)

    @property
    def logging_level(self):
        return self.get("logging_level", "INFO")

    @property
    def cell_size(self) -> Tuple[int, int]:
        return int(self.get("display.cell_width", 10)), int(self.get("display.cell_height", 20))

    @property
    def max_display_size(self) -> Tuple[int, int]:
        return int(self.get("display.max_width", 40)), int(self.get("display.max_height", 20))

    def auto_download_filter(self) -> Callable[[int], bool]:
        """Predicate deciding whether full-size media is fetched for a chat id."""
        def _matches(chat_id: int) -> bool:
            if self.get("auto_download.all_chats", False):
                return True
            return chat_id in set(self.get("auto_download.chat_ids", []))
        return _matches
