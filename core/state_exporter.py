"""
Runtime status exporter.

Tracks per-subsystem status (active / degraded / disabled), feed counters and
a bounded error log for one widget session, and writes
`shared/state/runtime_snapshot.json` via SnapshotPublisher.

The status object is the only user-visible failure channel: components record
problems here instead of raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from runtime import version as runtime_version

from shared.logging.logger import get_logger
from shared.storage.state_publisher import SnapshotPublisher

log = get_logger("core.state_exporter")

STATUS_ACTIVE = "active"
STATUS_DEGRADED = "degraded"
STATUS_DISABLED = "disabled"

SUBSYSTEMS = ("chat", "presence", "alerts", "badges", "emotes", "commands", "send")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _default_counters() -> Dict[str, int]:
    return {
        "events": 0,
        "messages": 0,
        "duplicates": 0,
        "self_dropped": 0,
        "commands": 0,
        "presence_updates": 0,
        "malformed": 0,
        "alerts_queued": 0,
        "alerts_failed": 0,
        "actions": 0,
        "actions_failed": 0,
        "send_failures": 0,
    }


@dataclass
class SubsystemStatus:
    status: str = STATUS_ACTIVE
    reason: Optional[str] = None
    last_error: Optional[str] = None
    last_error_ts: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class RuntimeStatus:
    """
    In-memory status tracker for one widget session.

    Tolerates unknown subsystem and counter names and never raises.
    """

    session_id: str = "default"
    error_limit: int = 50
    started_at: str = field(default_factory=_utc_now_iso)
    subsystems: Dict[str, SubsystemStatus] = field(
        default_factory=lambda: {name: SubsystemStatus() for name in SUBSYSTEMS}
    )
    counters: Dict[str, int] = field(default_factory=_default_counters)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    # ------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------

    def increment(self, counter: str, amount: int = 1) -> int:
        self.counters[counter] = self.counters.get(counter, 0) + amount
        return self.counters[counter]

    def count(self, counter: str) -> int:
        return self.counters.get(counter, 0)

    # ------------------------------------------------------------
    # Subsystem status
    # ------------------------------------------------------------

    def _subsystem(self, name: str) -> SubsystemStatus:
        if name not in self.subsystems:
            self.subsystems[name] = SubsystemStatus()
        return self.subsystems[name]

    def status_of(self, name: str) -> str:
        return self._subsystem(name).status

    def mark_active(self, name: str) -> None:
        current = self._subsystem(name)
        if current.status != STATUS_ACTIVE:
            log.info(f"[{self.session_id}] {name} -> {STATUS_ACTIVE}")
        current.status = STATUS_ACTIVE
        current.reason = None
        current.updated_at = _utc_now_iso()

    def mark_degraded(self, name: str, reason: str) -> None:
        self._set(name, STATUS_DEGRADED, reason)

    def mark_disabled(self, name: str, reason: str) -> None:
        self._set(name, STATUS_DISABLED, reason)

    def _set(self, name: str, status: str, reason: str) -> None:
        current = self._subsystem(name)
        if current.status != status:
            log.warning(f"[{self.session_id}] {name} -> {status}: {reason}")
        current.status = status
        current.reason = reason
        current.updated_at = _utc_now_iso()

    def record_error(self, subsystem: str, message: str, *, kind: Optional[str] = None) -> None:
        now = _utc_now_iso()
        current = self._subsystem(subsystem)
        current.last_error = message
        current.last_error_ts = now

        self.errors.append(
            {"ts": now, "subsystem": subsystem, "kind": kind or "error", "message": message}
        )
        if len(self.errors) > self.error_limit:
            del self.errors[: len(self.errors) - self.error_limit]

    @property
    def healthy(self) -> bool:
        return all(s.status == STATUS_ACTIVE for s in self.subsystems.values())

    # ------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            "schema_version": "v1",
            "generated_at": _utc_now_iso(),
            "project": runtime_version.PROJECT,
            "version": runtime_version.VERSION,
            "session_id": self.session_id,
            "started_at": self.started_at,
            "healthy": self.healthy,
            "subsystems": {
                name: {
                    "status": s.status,
                    "reason": s.reason,
                    "last_error": s.last_error,
                    "last_error_ts": s.last_error_ts,
                    "updated_at": s.updated_at,
                }
                for name, s in sorted(self.subsystems.items())
            },
            "counters": dict(self.counters),
            "errors": list(self.errors),
        }


class RuntimeSnapshotExporter:
    """Writes runtime_snapshot.json using SnapshotPublisher."""

    DEFAULT_RELATIVE_PATH = "runtime_snapshot.json"

    def __init__(
        self,
        *,
        status: RuntimeStatus,
        base_dir: str = "shared/state",
        publish_root: Optional[str] = None,
    ) -> None:
        self._status = status
        self._publisher = SnapshotPublisher(base_dir=base_dir, publish_root=publish_root)

    @property
    def status(self) -> RuntimeStatus:
        return self._status

    def publish(self) -> Dict[str, Any]:
        payload = self._status.snapshot()
        if not self._publisher.publish(self.DEFAULT_RELATIVE_PATH, payload):
            log.warning("Runtime snapshot was not written")
        return payload


__all__ = [
    "RuntimeSnapshotExporter",
    "RuntimeStatus",
    "STATUS_ACTIVE",
    "STATUS_DEGRADED",
    "STATUS_DISABLED",
    "SubsystemStatus",
]
