import yaml
from pathlib import Path
import os
import re
import logging

_ENV_PATTERN = re.compile(r'\$\{(?P<name>\w+)(?::-(?P<default>[^}]*))?\}')


def _substitute_env(value):
    """Expand ``${NAME}`` / ``${NAME:-default}`` references inside a settings string."""
    if not isinstance(value, str):
        return value

    def _lookup(match):
        env_value = os.getenv(match.group('name'))
        if env_value:
            return env_value
        if match.group('default') is None:
            logging.warning(f"{match.group('name')} environment variable is referenced in settings.yaml but not set.")
            return ''
        return match.group('default')

    return _ENV_PATTERN.sub(_lookup, value)


def load_config():
    """Load configuration from settings.yaml located in the package directory."""
    try:
        app_config_dir = Path(__file__).parent
        app_module_dir = app_config_dir.parent

        settings_path = app_module_dir / 'settings.yaml'

        if not settings_path.exists():
            logging.error(f"Critical: settings.yaml not found at expected path: {settings_path}")
            raise FileNotFoundError(f"settings.yaml not found at {settings_path}")

        with open(settings_path) as f:
            config_data = yaml.safe_load(f)

        if not config_data:
            config_data = {}
            logging.warning(f"settings.yaml at {settings_path} is empty or invalid.")

        # Ensure base_dirs paths are absolute, resolved from the working directory
        resolved_base_dirs = {}
        for key, path_str in (config_data.get('base_dirs') or {}).items():
            path_str = _substitute_env(path_str)
            if isinstance(path_str, str) and path_str and not os.path.isabs(path_str):
                resolved_base_dirs[key] = str((Path.cwd() / path_str).resolve())
            else:
                resolved_base_dirs[key] = path_str
        # Rule files ship inside the package, never next to the working directory
        resolved_base_dirs.setdefault('app', str(app_module_dir))
        config_data['base_dirs'] = resolved_base_dirs

        config_data.setdefault('conversion', {})
        return config_data

    except FileNotFoundError as fnfe:
        logging.error(f"Configuration Error: {fnfe}", exc_info=True)
        raise
    except Exception as e:
        logging.error(f"Error loading configuration from {settings_path if 'settings_path' in locals() else 'unknown path'}: {e}", exc_info=True)
        raise Exception(f"Failed to load application configuration: {e}") from e


# Load config at import time
try:
    config = load_config()
except Exception as e:
    logging.critical(f"CRITICAL FAILURE: Could not load accesslift settings. Error: {e}", exc_info=True)
    raise SystemExit(f"accesslift cannot start due to configuration load failure: {e}")
