import os
import tempfile

import pytest

# settings.yaml is read when accesslift is first imported; keep logs and
# batch output out of the working tree.
_RUN_ROOT = tempfile.mkdtemp(prefix='accesslift_tests_')
os.environ.setdefault('ACCESSLIFT_LOG_DIR', os.path.join(_RUN_ROOT, 'logs'))
os.environ.setdefault('ACCESSLIFT_OUTPUT_DIR', os.path.join(_RUN_ROOT, 'converted'))

from accesslift.services.query_conversion.pipeline import settings_with  # noqa: E402


@pytest.fixture
def settings():
    """Conversion settings without sqlglot validation, so warnings only come from the rewrite stages."""
    return settings_with(validate_output=False)


@pytest.fixture
def validating_settings():
    return settings_with(validate_output=True)
