"""Interactive editing of one configuration section."""
from __future__ import annotations

from dataclasses import dataclass, fields
from getpass import getpass
from typing import Any, Dict, Optional

from .schema import SECRET_FIELDS, Configuration, Section
from .utils import mask_value


@dataclass
class InteractiveConfigurator:
    config: Configuration

    def edit_section(self, section_key: str) -> Dict[str, Dict[str, Any]]:
        """Prompt for every field of *section_key* and return a partial update.

        Pressing Enter keeps the current value. Secret fields are read with
        :py:func:`getpass` and are never echoed.
        """

        section = self.config.section(section_key)
        secrets = SECRET_FIELDS.get(section_key, set())
        print(f"Editing section '{section_key}'. Press Enter to keep the current value, Ctrl+C to cancel.\n")

        changes: Dict[str, Any] = {}
        for f in fields(section):
            key = f.metadata.get("key")
            if key is None:
                continue
            current = getattr(section, f.name)
            if key in secrets:
                value = self._prompt_secret(key, current)
            elif isinstance(current, bool):
                value = self._prompt_bool(f"{key} [{'Y/n' if current else 'y/N'}]: ", default=current)
            elif isinstance(current, int):
                value = self._prompt_int(f"{key} [{current}]: ", default=current)
            elif isinstance(current, float):
                value = self._prompt_float(f"{key} [{current}]: ", default=current)
            else:
                value = self._prompt_optional(f"{key} [{current}]: ", default=current)
            if value != current:
                changes[key] = value
        return {section_key: changes} if changes else {}

    # ------------------------------------------------------------------
    def _prompt_secret(self, key: str, current: str) -> str:
        shown = mask_value(current) or "not set"
        while True:
            first = getpass(f"{key} [{shown}]: ")
            if not first:
                return current
            second = getpass("Repeat the value: ")
            if first != second:
                print("Values do not match, try again.")
                continue
            return first

    # ------------------------------------------------------------------
    def _prompt_bool(self, question: str, *, default: bool) -> bool:
        true_values = {"y", "yes", "true", "1"}
        false_values = {"n", "no", "false", "0"}
        while True:
            answer = input(question).strip().lower()
            if not answer:
                return default
            if answer in true_values:
                return True
            if answer in false_values:
                return False
            print("Answer not recognised. Enter 'y' or 'n'.")

    # ------------------------------------------------------------------
    def _prompt_optional(self, question: str, default: Optional[str] = None) -> Optional[str]:
        answer = input(question).strip()
        if not answer:
            return default
        return answer

    # ------------------------------------------------------------------
    def _prompt_int(self, question: str, *, default: int) -> int:
        while True:
            answer = input(question).strip()
            if not answer:
                return default
            try:
                return int(answer)
            except ValueError:
                print("Enter a whole number.")

    # ------------------------------------------------------------------
    def _prompt_float(self, question: str, *, default: float) -> float:
        while True:
            answer = input(question).strip()
            if not answer:
                return default
            try:
                return float(answer)
            except ValueError:
                print("Enter a number.")


def coerce_value(section: Section, key: str, raw: str) -> Any:
    """Convert a command line string to the type of the field's default."""

    names = section.wire_names()
    if key not in names:
        return raw
    current = getattr(section, names[key])
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in {"y", "yes", "true", "1", "on"}:
            return True
        if lowered in {"n", "no", "false", "0", "off"}:
            return False
        raise ValueError(f"'{raw}' is not a boolean.")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


__all__ = ["InteractiveConfigurator", "coerce_value"]
