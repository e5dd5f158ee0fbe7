from datetime import datetime
from pathlib import Path

from accesslift.config import config

__all__ = ["get_timestamp", "create_run_directory"]


def get_timestamp() -> str:
    """Return current timestamp as YYYYMMDD_HHMMSS string."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def create_run_directory(
    base_dir: str | Path | None = None,
    prefix: str | None = None,
    run_timestamp: str | None = None,
) -> Path:
    """Create and return a new *timestamped* run directory.

    Final path layout::

        <base_dir>/<prefix_>TIMESTAMP

    • *base_dir*      – Parent folder. Defaults to ``base_dirs.output`` from
      settings.yaml.
    • *prefix*        – Optional descriptor inserted before the timestamp.
    • *run_timestamp* – Allow callers to inject a previously generated
      timestamp.  If omitted, the helper will call :pyfunc:`get_timestamp()`.
    """
    base = Path(base_dir or config.get('base_dirs', {}).get('output') or 'converted')

    ts: str = run_timestamp or get_timestamp()
    if not str(ts).strip():
        raise ValueError("'run_timestamp' resolved to an empty string in create_run_directory().")

    dir_name = f"{prefix + '_' if prefix else ''}{ts}"

    run_dir = base / dir_name
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir
