"""Flat ``KEY=value`` file persistence."""
from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from .utils import ensure_directory

LOGGER = logging.getLogger(__name__)

CONFIG_KEY = "CONFIG_ENC"


def parse_env_text(text: str) -> Dict[str, str]:
    """Parse env file content into an ordered mapping.

    Blank lines, ``#`` comments and lines without ``=`` are skipped. A value
    wrapped in matching single or double quotes loses one layer of quoting.
    """

    env: Dict[str, str] = {}
    for line in text.split("\n"):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
            value = value[1:-1]
        env[key] = value
    return env


def format_env(env: Mapping[str, str]) -> str:
    return "".join(f"{key}={value}\n" for key, value in env.items())


@dataclass(frozen=True)
class EnvFileStore:
    path: Path

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        return parse_env_text(self.path.read_text(encoding="utf-8"))

    def write(self, env: Mapping[str, str]) -> None:
        """Rewrite the whole file from *env*; keys not in *env* are dropped."""

        self._replace(format_env(env).encode("utf-8"))
        LOGGER.debug("Env file '%s' written with %d keys.", self.path, len(env))

    def read_bytes(self) -> Optional[bytes]:
        if not self.path.exists():
            return None
        return self.path.read_bytes()

    def write_bytes(self, content: Optional[bytes]) -> None:
        """Replace the file content; ``None`` removes the file."""

        if content is None:
            if self.path.exists():
                self.path.unlink()
            return
        self._replace(content)

    def _replace(self, content: bytes) -> None:
        # a failed write must leave the previous file in place
        directory = ensure_directory(self.path.parent)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(directory))
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(content)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


__all__ = ["CONFIG_KEY", "EnvFileStore", "format_env", "parse_env_text"]
