import json

from core.config_loader import ConfigLoader
from shared.config.widget import WidgetConfig, build_widget_config


def write_config(tmp_path, payload):
    path = tmp_path / "widget.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_shipped_config_is_valid() -> None:
    loader = ConfigLoader()

    raw = loader.load_raw()

    assert raw
    assert loader.validation_errors(raw) == []
    assert loader.load() == build_widget_config(raw)


def test_missing_file_yields_defaults(tmp_path) -> None:
    config = ConfigLoader(config_path=tmp_path / "absent.json").load()

    assert config == WidgetConfig()
    assert config.chat.max_messages == 30
    assert config.alerts.hold_seconds == 4.0


def test_partial_config_overrides_only_given_keys(tmp_path) -> None:
    path = write_config(tmp_path, {"chat": {"max_messages": 12}, "presence": {"default_mode": "pic"}})

    config = ConfigLoader(config_path=path).load()

    assert config.chat.max_messages == 12
    assert config.chat.hide_command_like is True
    assert config.presence.default_mode == "pic"
    assert config.presence.max_chatters == 8


def test_schema_violations_are_reported(tmp_path) -> None:
    loader = ConfigLoader(config_path=tmp_path / "unused.json")

    errors = loader.validation_errors(
        {"chat": {"max_messages": 0}, "presence": {"default_mode": "video"}, "extra": 1}
    )

    assert any(e.startswith("chat/max_messages") for e in errors)
    assert any(e.startswith("presence/default_mode") for e in errors)
    assert any(e.startswith("<root>") for e in errors)


def test_invalid_values_keep_defaults(tmp_path) -> None:
    path = write_config(
        tmp_path,
        {
            "chat": {"max_messages": "lots", "hide_command_like": "yes"},
            "alerts": {"milestones": [10, -1]},
            "commands": {"welcome_commands": ["!Hi", " !Yo "]},
            "overlay_api": {"port": 70000},
        },
    )

    config = ConfigLoader(config_path=path).load()

    assert config.chat.max_messages == 30
    assert config.chat.hide_command_like is True
    assert config.alerts.milestones == [10, 50, 100]
    assert config.commands.welcome_commands == ["!hi", "!yo"]
    assert config.overlay_api.port == 8765


def test_non_object_root_is_ignored(tmp_path) -> None:
    path = tmp_path / "widget.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert ConfigLoader(config_path=path).load() == WidgetConfig()
