"""
Widget configuration loader.

Reads shared/config/widget.json and validates it against
schemas/widget.schema.json. Failures are treated as warnings so the widget
can always boot with defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft7Validator

from shared.config.widget import WidgetConfig, build_widget_config
from shared.logging.logger import get_logger

log = get_logger("core.config_loader")

ROOT = Path(__file__).resolve().parents[1]


class ConfigLoader:
    """
    Files:
      - shared/config/widget.json (optional; every key has a default)

    Validation:
      - schemas/widget.schema.json when present; violations are logged
        and never abort startup
    """

    CONFIG_PATH = ROOT / "shared" / "config" / "widget.json"
    SCHEMA_PATH = ROOT / "schemas" / "widget.schema.json"

    def __init__(
        self,
        config_path: Path | str | None = None,
        schema_path: Path | str | None = None,
    ) -> None:
        self._config_path = Path(config_path) if config_path else self.CONFIG_PATH
        self._schema_path = Path(schema_path) if schema_path else self.SCHEMA_PATH

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _load_json(self, path: Path, name: str) -> Dict[str, Any]:
        if not path.exists():
            log.warning(f"{name} config not found at {path}; using defaults")
            return {}

        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
                if isinstance(data, dict):
                    return data
                log.warning(f"{name} config root is not an object; ignoring")
        except Exception as e:
            log.warning(f"Failed to load {name} config ({e}); using defaults")

        return {}

    def validation_errors(self, payload: Dict[str, Any]) -> List[str]:
        if not self._schema_path.exists():
            log.debug(f"Schema not found at {self._schema_path}; skipping")
            return []

        try:
            schema = json.loads(self._schema_path.read_text(encoding="utf-8"))
        except Exception as e:
            log.warning(f"Failed to load widget schema ({e}); skipping validation")
            return []

        validator = Draft7Validator(schema)
        errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.path))

        messages = []
        for err in errors:
            loc = "/".join(str(p) for p in err.path) or "<root>"
            messages.append(f"{loc}: {err.message}")
        return messages

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load_raw(self) -> Dict[str, Any]:
        return self._load_json(self._config_path, "widget")

    def load(self) -> WidgetConfig:
        raw = self.load_raw()
        if raw:
            for message in self.validation_errors(raw):
                log.warning(f"widget config validation warning at {message}")

        config = build_widget_config(raw)
        log.info(
            f"Widget config loaded (max_messages={config.chat.max_messages}, "
            f"max_chatters={config.presence.max_chatters}, "
            f"alerts={'on' if config.alerts.enabled else 'off'})"
        )
        return config


__all__ = ["ConfigLoader"]
