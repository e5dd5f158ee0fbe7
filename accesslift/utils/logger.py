import logging
import logging.handlers
import os
from typing import Optional

from accesslift.config import config

__all__ = ["setup_logger"]

# ---------------------------------------------------------------------------
# Root logger configuration (one-time) – idempotent
# ---------------------------------------------------------------------------

def _configure_root_logger() -> None:
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    log_cfg = config.get("logging", {})
    lvl_cfg = log_cfg.get("level", {})

    # ---------- Console handler (ensure one human-readable) ----------
    console_level = getattr(logging, lvl_cfg.get("console", "INFO").upper(), logging.INFO)

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        ch = logging.StreamHandler()
        ch.setLevel(console_level)
        ch.setFormatter(logging.Formatter("%(name)s - %(levelname)s - %(message)s"))
        root.addHandler(ch)

    # ---------- Rotating file handler (central) ----------
    rotation_cfg = log_cfg.get("rotation", {})
    max_bytes = rotation_cfg.get("max_bytes", 10 * 1024 * 1024)
    backup_count = rotation_cfg.get("backup_count", 5)
    encoding = rotation_cfg.get("encoding", "utf-8")

    file_level = getattr(logging, lvl_cfg.get("file", "DEBUG").upper(), logging.DEBUG)

    logs_dir = config.get("base_dirs", {}).get("logs") or "logs"
    os.makedirs(logs_dir, exist_ok=True)
    file_path = os.path.abspath(os.path.join(logs_dir, "accesslift.log"))

    if not any(isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", "") == file_path for h in root.handlers):
        fh = logging.handlers.RotatingFileHandler(
            file_path, mode="a", maxBytes=max_bytes, backupCount=backup_count, encoding=encoding
        )
        fh.setLevel(file_level)
        fh.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        root.addHandler(fh)


# ---------------------------------------------------------------------------
# Public helper
# ---------------------------------------------------------------------------


def setup_logger(name: str, *, run_dir: Optional[str] = None):
    _configure_root_logger()

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Run-specific handler (optional): batch conversions keep their own log
    # next to the generated files.
    if run_dir:
        os.makedirs(run_dir, exist_ok=True)
        exec_file = os.path.abspath(os.path.join(run_dir, "execution.log"))

        if not any(isinstance(h, logging.FileHandler) and h.baseFilename == exec_file for h in logger.handlers):
            exec_fh = logging.FileHandler(exec_file, mode="w", encoding="utf-8")
            exec_fh.setLevel(logging.DEBUG)
            exec_fh.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            logger.addHandler(exec_fh)
            logger.info("Execution logging to: %s", run_dir)

    return logger


def release_run_handlers(logger: logging.Logger) -> None:
    """Close and detach the per-run file handlers added by :func:`setup_logger`."""
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()
