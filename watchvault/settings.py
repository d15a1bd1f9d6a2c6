import copy
import logging
import os

import yaml

from watchvault.constants import CONFIG_FILE, DEFAULT_SETTINGS

# Retrieve main logger
logger = logging.getLogger("main")

# Cache variable
_cached_settings = None


def load_settings(force=False):
    global _cached_settings

    if _cached_settings and not force:
        return _cached_settings

    if os.path.exists(CONFIG_FILE):
        logger.debug(f"Reading configuration file: {CONFIG_FILE}")
        with open(CONFIG_FILE, "r") as yaml_file:
            settings = yaml.safe_load(yaml_file) or {}

        # Deep merge with defaults so sections added later are present
        merged_settings = copy.deepcopy(DEFAULT_SETTINGS)
        for section, values in settings.items():
            if isinstance(values, dict) and isinstance(merged_settings.get(section), dict):
                merged_settings[section].update(values)
            else:
                merged_settings[section] = values
        settings = merged_settings

    else:
        settings = copy.deepcopy(DEFAULT_SETTINGS)
        _write_settings(settings)

    _cached_settings = settings
    return settings


def _write_settings(settings):
    os.makedirs(os.path.dirname(CONFIG_FILE), exist_ok=True)
    with open(CONFIG_FILE, "w") as yaml_file:
        yaml.dump(settings, yaml_file)


def set_include_swiped_items(enabled):
    settings = load_settings()
    settings["discovery"]["include_swiped_items"] = bool(enabled)
    _write_settings(settings)
    reload_conf()


def set_selected_method(method_name):
    settings = load_settings()
    settings["discovery"]["selected_method"] = method_name
    _write_settings(settings)
    reload_conf()


def set_content_type(content_type):
    settings = load_settings()
    settings["discovery"]["content_type"] = content_type
    _write_settings(settings)
    reload_conf()


def reload_conf():
    """Reload application settings cache"""
    global _cached_settings
    _cached_settings = None
    return load_settings(force=True)
