"""Environment variable loading utilities."""

from __future__ import annotations
from pathlib import Path
from typing import Optional
import logging

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def load_env(env_file: Optional[str] = None, override: bool = False) -> None:
    """Load environment variables from .env file(s).
    
    Args:
        env_file: Path to .env file. If None, loads every .env found from the
                 filesystem root down to the current directory, so values
                 closer to the working directory win when ``override`` is set.
        override: Whether to override existing environment variables.
    """
    env_paths = []
    if env_file:
        env_path = Path(env_file)
        if env_path.exists():
            env_paths.append(env_path)
        else:
            logger.warning("Env file %s not found", env_file)
    else:
        current = Path.cwd()
        for parent in reversed(list(current.parents)):
            candidate = parent / ".env"
            if candidate.exists():
                env_paths.append(candidate)
        candidate = current / ".env"
        if candidate.exists():
            env_paths.append(candidate)

    if not env_paths:
        logger.debug("No .env file found, using system environment")
        return

    for path in dict.fromkeys(env_paths):
        load_dotenv(path, override=override)
        logger.debug(f"Loaded environment from {path}")
