"""
State snapshot publisher.

Atomic JSON writes of runtime snapshots under shared/state/, with optional
mirroring into a second root (e.g. a directory served next to the overlay
page) configured through STREAMFEED_STATE_PUBLISH_ROOT.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from shared.logging.logger import get_logger

log = get_logger("shared.state_publisher")


class SnapshotPublisher:
    DEFAULT_BASE_DIR = Path("shared/state")
    ENV_KEY = "STREAMFEED_STATE_PUBLISH_ROOT"

    def __init__(
        self,
        base_dir: Path | str | None = None,
        publish_root: Path | str | None = None,
    ):
        self._base_dir = Path(base_dir) if base_dir else self.DEFAULT_BASE_DIR

        root = publish_root or os.getenv(self.ENV_KEY)
        self._publish_root = Path(root) if root else None
        if self._publish_root:
            log.info(f"State publish root: {self._publish_root / 'shared' / 'state'}")

    # ------------------------------------------------------------------
    # Atomic writer
    # ------------------------------------------------------------------

    @staticmethod
    def write_atomic(path: Path, payload: Any) -> None:
        serialized = json.dumps(payload, indent=2, ensure_ascii=False)
        path.parent.mkdir(parents=True, exist_ok=True)

        with tempfile.NamedTemporaryFile(
            "w", dir=path.parent, delete=False, encoding="utf-8"
        ) as tmp:
            tmp.write(serialized)
            tmp.flush()
            os.fsync(tmp.fileno())
            temp_path = Path(tmp.name)

        temp_path.replace(path)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def publish_root(self) -> Optional[Path]:
        return self._publish_root

    def publish(self, relative_path: Path | str, payload: Any) -> bool:
        """
        Write payload to <base_dir>/<relative_path> and, when configured,
        mirror it to <publish_root>/shared/state/<relative_path>.
        """
        rel = Path(relative_path)

        try:
            self.write_atomic(self._base_dir / rel, payload)
        except Exception as e:
            log.error(f"Failed to write state snapshot {rel}: {e}")
            return False

        if self._publish_root:
            mirror = self._publish_root / "shared" / "state" / rel
            try:
                self.write_atomic(mirror, payload)
            except Exception as e:
                log.warning(f"Failed to mirror snapshot {rel}: {e}")

        return True


__all__ = ["SnapshotPublisher"]
