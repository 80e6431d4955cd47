"""Helper utilities for the voice-agent configuration store."""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional


def ensure_directory(path: Path) -> Path:
    """Create *path* if it does not exist and return it."""

    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def timestamp_for_filename(dt: Optional[datetime] = None) -> str:
    dt = dt or datetime.now()
    return dt.strftime("%Y_%m_%d_%H_%M_%S")


def timestamp_context(dt: Optional[datetime] = None) -> Dict[str, object]:
    """Variables available to commit message and snapshot name templates."""

    dt = dt or datetime.now()
    return {
        "timestamp": timestamp_for_filename(dt),
        "timestamp_iso": dt.replace(microsecond=0).isoformat(),
        "date": dt.strftime("%Y-%m-%d"),
    }


def render_template(template: str, context: Dict[str, object]) -> str:
    """Fill the ``{name}`` placeholders of *template* from *context*."""

    try:
        return template.format_map(context)
    except (KeyError, IndexError, ValueError) as exc:
        raise ValueError(f"Template '{template}' could not be rendered: {exc!r}") from exc


def mask_sensitive(value: str, secrets: Iterable[str]) -> str:
    """Replace occurrences of secret values in *value* with '***'."""

    masked = value
    for secret in secrets:
        if secret:
            masked = masked.replace(secret, "***")
    return masked


def mask_value(value: object) -> object:
    """Hide all but the last four characters of a non-empty string."""

    if not isinstance(value, str) or not value:
        return value
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 4) + value[-4:]


__all__ = [
    "ensure_directory",
    "timestamp_for_filename",
    "timestamp_context",
    "render_template",
    "mask_sensitive",
    "mask_value",
]
