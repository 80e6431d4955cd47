"""Configuration schema, defaults and merging.

Every section is a dataclass whose fields carry their defaults; the
serialized (camelCase) name of each field is kept in the field metadata.
Keys that the schema does not know about are preserved in ``extra`` so data
written by another version of the application is never dropped.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Union


def _field(key: str, default: Any) -> Any:
    return field(default=default, metadata={"key": key})


def _section(key: str, factory: type) -> Any:
    return field(default_factory=factory, metadata={"key": key})


class Section:
    """Shared behaviour of configuration sections."""

    extra: Dict[str, Any]

    @classmethod
    def wire_names(cls) -> Dict[str, str]:
        return {f.metadata["key"]: f.name for f in fields(cls) if "key" in f.metadata}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Section":
        return cls().updated(data or {})

    def updated(self, data: Mapping[str, Any]) -> "Section":
        """Return a copy with the fields present in *data* overridden.

        Falsy values override; ``None`` is treated as an absent field.
        """

        names = self.wire_names()
        known: Dict[str, Any] = {}
        extra = copy.deepcopy(self.extra)
        for key, value in data.items():
            if value is None:
                continue
            if key in names:
                known[names[key]] = copy.deepcopy(value)
            else:
                extra[key] = copy.deepcopy(value)
        return replace(self, extra=extra, **known)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {key: getattr(self, name) for key, name in self.wire_names().items()}
        result.update(copy.deepcopy(self.extra))
        return result


@dataclass
class ElevenLabsSettings(Section):
    api_key: str = _field("apiKey", "")
    agent_id: str = _field("agentId", "")
    voice_id: str = _field("voiceId", "")
    language: str = _field("language", "")
    system_prompt: str = _field("systemPrompt", "")
    greeting: str = _field("greeting", "")
    speed: float = _field("speed", 1.0)
    stability: float = _field("stability", 0.5)
    similarity_boost: float = _field("similarityBoost", 0.75)
    latency: int = _field("latency", 3)
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TwilioSettings(Section):
    account_sid: str = _field("accountSid", "")
    auth_token: str = _field("authToken", "")
    from_number: str = _field("fromNumber", "")
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentSettings(Section):
    card_number: str = _field("cardNumber", "")
    cvv: str = _field("cvv", "")
    expiry: str = _field("expiry", "")
    name: str = _field("name", "")
    address: str = _field("address", "")
    city: str = _field("city", "")
    state: str = _field("state", "")
    postal_code: str = _field("postalCode", "")
    country: str = _field("country", "")
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CalendarSettings(Section):
    enabled: bool = _field("enabled", False)
    calendar_id: str = _field("calendarId", "")
    timezone: str = _field("timezone", "")
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DriveSettings(Section):
    enabled: bool = _field("enabled", False)
    folder_id: str = _field("folderId", "")
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UISettings(Section):
    theme: str = _field("theme", "dark")
    extra: Dict[str, Any] = field(default_factory=dict)


# Fields whose values are secrets; masked by the CLI unless --reveal is given.
SECRET_FIELDS = {
    "elevenLabs": {"apiKey"},
    "twilio": {"authToken"},
    "payment": {"cardNumber", "cvv", "expiry"},
}


@dataclass
class Configuration:
    eleven_labs: ElevenLabsSettings = _section("elevenLabs", ElevenLabsSettings)
    twilio: TwilioSettings = _section("twilio", TwilioSettings)
    payment: PaymentSettings = _section("payment", PaymentSettings)
    calendar: CalendarSettings = _section("calendar", CalendarSettings)
    drive: DriveSettings = _section("drive", DriveSettings)
    ui: UISettings = _section("ui", UISettings)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def section_names(cls) -> Dict[str, str]:
        return {f.metadata["key"]: f.name for f in fields(cls) if "key" in f.metadata}

    def section(self, key: str) -> Section:
        names = self.section_names()
        if key not in names:
            raise KeyError(key)
        return getattr(self, names[key])

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Configuration":
        return merge(defaults(), data)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {key: getattr(self, name).to_dict() for key, name in self.section_names().items()}
        result.update(copy.deepcopy(self.extra))
        return result


def defaults() -> Configuration:
    return Configuration()


def merge(
    base: Configuration,
    partial: Union[Configuration, Mapping[str, Any], None],
) -> Configuration:
    """Merge *partial* over *base* section by section.

    Sections missing from *partial* (or not given as mappings) are taken from
    *base* unchanged. Inside a section each field present in *partial*
    overrides the base value. Neither argument is modified.
    """

    result = copy.deepcopy(base)
    if partial is None:
        return result
    if isinstance(partial, Configuration):
        partial = partial.to_dict()

    names = Configuration.section_names()
    changes: Dict[str, Any] = {}
    extra = result.extra
    for key, value in partial.items():
        if key in names:
            if isinstance(value, Mapping):
                changes[names[key]] = getattr(result, names[key]).updated(value)
        elif value is not None:
            extra[key] = copy.deepcopy(value)
    return replace(result, extra=extra, **changes)


__all__ = [
    "CalendarSettings",
    "Configuration",
    "DriveSettings",
    "ElevenLabsSettings",
    "PaymentSettings",
    "SECRET_FIELDS",
    "Section",
    "TwilioSettings",
    "UISettings",
    "defaults",
    "merge",
]
