import os

from accesslift.config import config
from .utils.logger import setup_logger

# Ensure the directory structure defined in settings.yaml exists at import
# time so that any service can safely assume the folders are present.
for key, path in config.get('base_dirs', {}).items():
    if key not in ('app', 'output') and path:
        os.makedirs(path, exist_ok=True)

# Log once during package import so we know the package was initialised.
setup_logger('accesslift_init').debug('accesslift package initialised.')
