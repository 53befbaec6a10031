from __future__ import annotations
import dataclasses
import logging
import os
import pathlib
import sys
from typing import Optional

DEFAULT_DIR = "./"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_CONTEXT = 3
DEFAULT_LOG_LIMIT = 200


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclasses.dataclass
class Config:
    dir: pathlib.Path
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    context_lines: int = DEFAULT_CONTEXT
    log_limit: int = DEFAULT_LOG_LIMIT

    @classmethod
    def load(cls) -> "Config":
        """Read RITZ_* environment variables."""
        return cls(
            dir=pathlib.Path(os.getenv("RITZ_DIR", DEFAULT_DIR)),
            host=os.getenv("RITZ_HOST", DEFAULT_HOST),
            port=_env_int("RITZ_PORT", DEFAULT_PORT),
            context_lines=_env_int("RITZ_CONTEXT", DEFAULT_CONTEXT),
            log_limit=_env_int("RITZ_LOG_LIMIT", DEFAULT_LOG_LIMIT),
        )


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging once, at the entry point."""
    level = (os.getenv("LOG_LEVEL") or level or "INFO").upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
