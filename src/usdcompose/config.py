from __future__ import annotations

"""Environment-driven settings (``.env`` in the working directory is honored)."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_DEFAULT_STORAGE_PATH = Path.home() / ".usdcompose" / "files.json"
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class ComposeSettings:
    log_level: str = "WARNING"
    storage_path: Path = _DEFAULT_STORAGE_PATH
    default_file: str = "/main.usda"

    @staticmethod
    def from_env(*, dotenv_path: str | Path | None = None) -> "ComposeSettings":
        load_dotenv(dotenv_path or Path.cwd() / ".env")
        return ComposeSettings(
            log_level=os.environ.get("USDCOMPOSE_LOG_LEVEL", "WARNING").upper(),
            storage_path=Path(
                os.environ.get("USDCOMPOSE_STORAGE_PATH", str(_DEFAULT_STORAGE_PATH))
            ).expanduser(),
            default_file=os.environ.get("USDCOMPOSE_DEFAULT_FILE", "/main.usda"),
        )


def configure_logging(level: str | int = "WARNING") -> logging.Logger:
    """Attach a stream handler to the ``usdcompose`` logger tree once."""
    logger = logging.getLogger("usdcompose")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.WARNING
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(handler)
    return logger
