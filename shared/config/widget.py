from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shared.logging.logger import get_logger

log = get_logger("shared.config.widget")

DEFAULT_WELCOME_COMMANDS = ["!in", "!welcome", "!checkin", "!here"]
DEFAULT_MILESTONES = [10, 50, 100]
CHATTER_MODES = ("letter", "pic")


@dataclass
class ChatSettings:
    max_messages: int = 30
    message_ttl: float = 0.0
    hide_command_like: bool = True
    group_consecutive: bool = True
    third_party_emotes: bool = True
    track_joins: bool = False


@dataclass
class PresenceSettings:
    enabled: bool = True
    max_chatters: int = 8
    timeout_seconds: float = 60.0
    sweep_interval: float = 2.0
    default_mode: str = "letter"


@dataclass
class AlertSettings:
    enabled: bool = True
    enter_seconds: float = 0.7
    hold_seconds: float = 4.0
    exit_seconds: float = 0.7
    milestones: List[int] = field(default_factory=lambda: list(DEFAULT_MILESTONES))
    greet_in_chat: bool = True


@dataclass
class CommandSettings:
    enabled: bool = True
    welcome_commands: List[str] = field(default_factory=lambda: list(DEFAULT_WELCOME_COMMANDS))
    welcome_cooldown_hours: float = 24.0
    dedup_capacity: int = 50
    dedup_window_seconds: float = 60.0


@dataclass
class OverlayApiSettings:
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class StorageSettings:
    store_path: str = "shared/state/widget_store.json"
    state_dir: str = "shared/state"


@dataclass
class WidgetConfig:
    chat: ChatSettings = field(default_factory=ChatSettings)
    presence: PresenceSettings = field(default_factory=PresenceSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)
    commands: CommandSettings = field(default_factory=CommandSettings)
    overlay_api: OverlayApiSettings = field(default_factory=OverlayApiSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)


# ------------------------------------------------------------------
# Coercion helpers (invalid values keep the default, with a warning)
# ------------------------------------------------------------------

def _int(raw: Dict[str, Any], key: str, default: int, *, minimum: int = 0) -> int:
    if key not in raw:
        return default
    value = raw[key]
    if isinstance(value, bool):
        log.warning(f"{key} must be an integer; using {default}")
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        log.warning(f"{key} must be an integer; using {default}")
        return default
    if parsed < minimum:
        log.warning(f"{key} must be >= {minimum}; using {default}")
        return default
    return parsed


def _float(raw: Dict[str, Any], key: str, default: float, *, minimum: float = 0.0) -> float:
    if key not in raw:
        return default
    value = raw[key]
    if isinstance(value, bool):
        log.warning(f"{key} must be a number; using {default}")
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        log.warning(f"{key} must be a number; using {default}")
        return default
    if parsed < minimum:
        log.warning(f"{key} must be >= {minimum}; using {default}")
        return default
    return parsed


def _bool(raw: Dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if isinstance(value, bool):
        return value
    log.warning(f"{key} must be boolean; using {default}")
    return default


def _str(raw: Dict[str, Any], key: str, default: str) -> str:
    value = raw.get(key, default)
    if isinstance(value, str) and value.strip():
        return value.strip()
    log.warning(f"{key} must be a non-empty string; using {default}")
    return default


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        log.warning(f"'{name}' section must be an object; using defaults")
        return {}
    return value


# ------------------------------------------------------------------
# Section loaders
# ------------------------------------------------------------------

def _load_chat(raw: Dict[str, Any]) -> ChatSettings:
    d = ChatSettings()
    return ChatSettings(
        max_messages=_int(raw, "max_messages", d.max_messages, minimum=1),
        message_ttl=_float(raw, "message_ttl", d.message_ttl),
        hide_command_like=_bool(raw, "hide_command_like", d.hide_command_like),
        group_consecutive=_bool(raw, "group_consecutive", d.group_consecutive),
        third_party_emotes=_bool(raw, "third_party_emotes", d.third_party_emotes),
        track_joins=_bool(raw, "track_joins", d.track_joins),
    )


def _load_presence(raw: Dict[str, Any]) -> PresenceSettings:
    d = PresenceSettings()
    mode = _str(raw, "default_mode", d.default_mode).lower()
    if mode not in CHATTER_MODES:
        log.warning(f"presence.default_mode must be one of {CHATTER_MODES}; using {d.default_mode}")
        mode = d.default_mode
    return PresenceSettings(
        enabled=_bool(raw, "enabled", d.enabled),
        max_chatters=_int(raw, "max_chatters", d.max_chatters, minimum=1),
        timeout_seconds=_float(raw, "timeout_seconds", d.timeout_seconds, minimum=1.0),
        sweep_interval=_float(raw, "sweep_interval", d.sweep_interval, minimum=0.1),
        default_mode=mode,
    )


def _load_alerts(raw: Dict[str, Any]) -> AlertSettings:
    d = AlertSettings()
    milestones = raw.get("milestones", d.milestones)
    if not isinstance(milestones, list) or not all(
        isinstance(m, int) and not isinstance(m, bool) and m > 0 for m in milestones
    ):
        log.warning("alerts.milestones must be a list of positive integers; using defaults")
        milestones = d.milestones
    return AlertSettings(
        enabled=_bool(raw, "enabled", d.enabled),
        enter_seconds=_float(raw, "enter_seconds", d.enter_seconds),
        hold_seconds=_float(raw, "hold_seconds", d.hold_seconds),
        exit_seconds=_float(raw, "exit_seconds", d.exit_seconds),
        milestones=sorted(set(milestones)),
        greet_in_chat=_bool(raw, "greet_in_chat", d.greet_in_chat),
    )


def _load_commands(raw: Dict[str, Any]) -> CommandSettings:
    d = CommandSettings()
    welcome = raw.get("welcome_commands", d.welcome_commands)
    if not isinstance(welcome, list) or not all(isinstance(c, str) and c.strip() for c in welcome):
        log.warning("commands.welcome_commands must be a list of strings; using defaults")
        welcome = d.welcome_commands
    return CommandSettings(
        enabled=_bool(raw, "enabled", d.enabled),
        welcome_commands=[c.strip().lower() for c in welcome],
        welcome_cooldown_hours=_float(raw, "welcome_cooldown_hours", d.welcome_cooldown_hours),
        dedup_capacity=_int(raw, "dedup_capacity", d.dedup_capacity, minimum=1),
        dedup_window_seconds=_float(raw, "dedup_window_seconds", d.dedup_window_seconds, minimum=1.0),
    )


def _load_overlay_api(raw: Dict[str, Any]) -> OverlayApiSettings:
    d = OverlayApiSettings()
    port = _int(raw, "port", d.port, minimum=0)
    if port > 65535:
        log.warning(f"overlay_api.port out of range; using {d.port}")
        port = d.port
    return OverlayApiSettings(
        enabled=_bool(raw, "enabled", d.enabled),
        host=_str(raw, "host", d.host),
        port=port,
    )


def _load_storage(raw: Dict[str, Any]) -> StorageSettings:
    d = StorageSettings()
    return StorageSettings(
        store_path=_str(raw, "store_path", d.store_path),
        state_dir=_str(raw, "state_dir", d.state_dir),
    )


def build_widget_config(raw: Optional[Dict[str, Any]]) -> WidgetConfig:
    """Build a WidgetConfig from a decoded widget.json document."""
    if not isinstance(raw, dict):
        return WidgetConfig()

    return WidgetConfig(
        chat=_load_chat(_section(raw, "chat")),
        presence=_load_presence(_section(raw, "presence")),
        alerts=_load_alerts(_section(raw, "alerts")),
        commands=_load_commands(_section(raw, "commands")),
        overlay_api=_load_overlay_api(_section(raw, "overlay_api")),
        storage=_load_storage(_section(raw, "storage")),
    )


__all__ = [
    "AlertSettings",
    "CHATTER_MODES",
    "ChatSettings",
    "CommandSettings",
    "OverlayApiSettings",
    "PresenceSettings",
    "StorageSettings",
    "WidgetConfig",
    "build_widget_config",
]
