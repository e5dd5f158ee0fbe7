import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from accesslift.config import config as app_global_config

RULES_SUBDIRECTORY = 'query_rules'


def load_json_from_conversion_config(
    logger: Any,
    source_type: str,
    target_type: str,
    rules_subdirectory: str,
    config_filename: str
) -> Dict:
    """
    Loads a JSON configuration file from the structured conversion config directory.
    Expected path structure: app_base_dir/config/conversion/{source_type}_{target_type}/{rules_subdirectory}/{config_filename}
    """
    effective_logger = logger if logger is not None else logging.getLogger(__name__)
    full_config_path = "an unspecified path"
    try:
        app_base_dir = app_global_config.get('base_dirs', {}).get('app')
        if not app_base_dir:
            effective_logger.error("App base directory ('base_dirs'['app']) not found in global config.")
            return {}

        s_type = source_type.lower() if source_type else ''
        t_type = target_type.lower() if target_type else ''

        if not s_type or not t_type:
            effective_logger.error(f"Source type ('{source_type}') or target type ('{target_type}') is empty, cannot construct config path for {config_filename}.")
            return {}

        base_conversion_path = Path(app_base_dir) / 'config' / 'conversion' / f'{s_type}_{t_type}'
        full_config_path = base_conversion_path / rules_subdirectory / config_filename

        if not full_config_path.exists():
            effective_logger.info(f"Configuration file not found (this may be expected): {full_config_path}")
            return {}

        with open(full_config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
            effective_logger.debug(f"Successfully loaded configuration from {full_config_path}")
            return data
    except json.JSONDecodeError as jde:
        effective_logger.error(f"Error decoding JSON from {str(full_config_path)}: {jde}", exc_info=True)
        return {}
    except (IOError, OSError) as ioe:
        effective_logger.error(f"File system error (IOError/OSError) loading configuration file {str(full_config_path)}: {ioe}", exc_info=True)
        return {}


@lru_cache(maxsize=None)
def _load_cached(source_type: str, target_type: str, config_filename: str) -> str:
    data = load_json_from_conversion_config(None, source_type, target_type, RULES_SUBDIRECTORY, config_filename)
    return json.dumps(data)


def load_query_rules(config_filename: str) -> Dict:
    """Rule file for the configured dialect pair, read once per process.

    A fresh copy is returned on every call so callers can never mutate the
    shared cached rules.
    """
    conversion_cfg = app_global_config.get('conversion', {})
    return json.loads(_load_cached(
        conversion_cfg.get('source_dialect', 'access'),
        conversion_cfg.get('target_dialect', 'postgresql'),
        config_filename,
    ))
