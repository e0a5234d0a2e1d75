"""
Runtime settings for the compile service and CLI.

Values come from the environment, optionally seeded from a `.env` file at the
project root (loaded with python-dotenv):

    NODESCRIPT_HOST       bind address of the compile service   (0.0.0.0)
    NODESCRIPT_PORT       port of the compile service           (3001)
    NODESCRIPT_LOG_LEVEL  logging level name                    (INFO)
    NODESCRIPT_OUT_DIR    default output directory of the CLI   (compiled)
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def load_env(path: Optional[Path] = None) -> None:
    """Load `.env` without overriding variables already set in the process."""
    load_dotenv(path or _PROJECT_ROOT / ".env", override=False)


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    out_dir: str = "compiled"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        port = env.get("NODESCRIPT_PORT", str(cls.port))
        try:
            port_number = int(port)
        except ValueError:
            raise ValueError(f"NODESCRIPT_PORT must be an integer, got {port!r}") from None
        return cls(
            host=env.get("NODESCRIPT_HOST", cls.host),
            port=port_number,
            log_level=env.get("NODESCRIPT_LOG_LEVEL", cls.log_level).upper(),
            out_dir=env.get("NODESCRIPT_OUT_DIR", cls.out_dir),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["Settings", "load_env", "configure_logging"]
