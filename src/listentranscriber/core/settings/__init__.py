from .settings import (
    APP_NAME,
    Settings,
    get_config_dir,
    get_settings,
    get_settings_file,
)

__all__ = [
    "APP_NAME",
    "Settings",
    "get_config_dir",
    "get_settings",
    "get_settings_file",
]
