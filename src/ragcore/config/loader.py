import os
from pathlib import Path
from typing import Iterable
from .config import AppSettings

import logging


def _existing(paths: Iterable[Path]) -> list[Path]:
    return [p for p in paths if p.exists()]


def load_settings(cwd: str | Path | None = None) -> AppSettings:
    """
    Build AppSettings from env vars plus any discovered .env files.

    Candidates, in order (later files override earlier ones):
      - $RAGCORE_ENV_FILE (must exist when set)
      - <cwd>/.env
      - <cwd>/.env.local
    """
    base = Path(cwd) if cwd is not None else Path.cwd()

    # allow an explicit path via env var
    explicit = Path(os.environ["RAGCORE_ENV_FILE"]) if os.environ.get("RAGCORE_ENV_FILE") else None
    if explicit is not None and not explicit.exists():
        raise FileNotFoundError(f"Explicitly specified env file not found: {explicit}")

    candidates = _existing([
        explicit or Path("NON_EXISTENT"),  # placeholder if not set
        base / ".env",
        base / ".env.local",
    ])

    if len(candidates) == 0:
        log = logging.getLogger("ragcore.config.loader")
        log.warning("No env files found; using defaults and env vars only.")

    if candidates:
        # Later files override earlier ones
        return AppSettings(_env_file=[str(p) for p in candidates])
    return AppSettings()
