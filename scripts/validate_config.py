"""
======================================================================
 StreamFeed Overlay Runtime - Version v0.3.0-alpha (Build 2026.10)
======================================================================
"""

from __future__ import annotations

"""
Configuration validation script.

Validates shared/config/widget.json (or the file given on the command
line) against schemas/widget.schema.json.

Design rules:
- No side effects on import
- No runtime startup
- Validation only (no mutation)
"""

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core.config_loader import ConfigLoader  # noqa: E402


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------

def _error(msg: str):
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


# ------------------------------------------------------------
# Validators
# ------------------------------------------------------------

def validate_widget_config(config_path: Path | None = None) -> bool:
    """
    Validate the widget config.

    A missing file is allowed (every key has a default). Invalid JSON and
    schema violations are rejected.
    """
    loader = ConfigLoader(config_path=config_path)
    path = config_path or ConfigLoader.CONFIG_PATH

    if not Path(path).exists():
        print(f"{path} not found; defaults will be used.")
        return True

    raw = loader.load_raw()
    if not raw:
        _error(f"{Path(path).name}: empty or invalid JSON object")
        return False

    errors = loader.validation_errors(raw)
    for message in errors:
        _error(f"{Path(path).name}: {message}")
    return not errors


# ------------------------------------------------------------
# Entry point
# ------------------------------------------------------------

def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    config_path = Path(argv[0]) if argv else None

    if not validate_widget_config(config_path):
        print("Configuration validation failed.", file=sys.stderr)
        return 1

    print("Configuration validation passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
