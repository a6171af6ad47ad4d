from __future__ import annotations

import inspect
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from core.state_exporter import RuntimeStatus
from shared.feed.errors import CapabilityUnsupported, TransientFetchFailure
from shared.logging.logger import get_logger

log = get_logger("commands.actions")

SEND_CHAT_MESSAGE = "send_chat_message"

Sender = Callable[[str, str], Awaitable[None]]
LocalHandler = Callable[[Dict[str, Any]], Any]

# Follow-up actions produced by local handlers are executed too, up to this depth
_MAX_CHAIN_DEPTH = 3


def send_chat_action(text: str, *, channel: str = "", platform: str = "twitch") -> Dict[str, Any]:
    return {
        "action_type": SEND_CHAT_MESSAGE,
        "platform": platform,
        "payload": {"text": text, "channel": channel},
    }


class ActionExecutor:
    """
    Action execution layer for the widget session.

    Accepts action descriptors from commands and feed services and routes
    them either to platform senders (outbound chat) or to local handlers
    registered by the session (reset visits, refresh overlay, ...).
    Execution is best-effort and never raises to callers; failures are
    recorded in the runtime status instead. Sends are never retried.
    """

    def __init__(
        self,
        *,
        status: RuntimeStatus,
        session_id: str = "default",
        default_channel: str = "",
    ) -> None:
        self.session_id = session_id
        self.default_channel = default_channel
        self._status = status
        self._senders: Dict[str, Sender] = {}
        self._local: Dict[str, LocalHandler] = {}

    # ------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------

    def register_platform_sender(self, platform: str, sender: Sender) -> None:
        if not platform or not sender:
            return
        self._senders[platform] = sender
        log.debug(f"[{self.session_id}] Registered action sender for platform={platform}")

    def unregister_platform_sender(self, platform: str) -> None:
        self._senders.pop(platform, None)

    def register_local_action(self, action_type: str, handler: LocalHandler) -> None:
        self._local[action_type] = handler
        log.debug(f"[{self.session_id}] Registered local action: {action_type}")

    # ------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------

    async def execute(
        self,
        actions: List[Dict[str, Any]],
        *,
        default_platform: Optional[str] = "twitch",
        _depth: int = 0,
    ) -> List[Dict[str, Any]]:
        results: List[Dict[str, Any]] = []
        for action in actions:
            descriptor = self._normalize_descriptor(action, default_platform)
            if not descriptor:
                continue

            self._status.increment("actions")
            try:
                log.debug(f"[{self.session_id}] Executing action descriptor: {descriptor}")
                follow_up = await self._dispatch(descriptor)
                results.append({"action": descriptor, "status": "success"})
            except Exception as e:
                self._record_failure(descriptor, e)
                results.append({"action": descriptor, "status": "failed", "error": str(e)})
                continue

            if follow_up:
                if _depth >= _MAX_CHAIN_DEPTH:
                    log.warning(f"[{self.session_id}] Dropping follow-up actions beyond depth {_depth}")
                    continue
                results.extend(
                    await self.execute(follow_up, default_platform=default_platform, _depth=_depth + 1)
                )
        return results

    # ------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------

    def _record_failure(self, descriptor: Dict[str, Any], error: Exception) -> None:
        action_type = descriptor.get("action_type")
        err = str(error)
        log.warning(
            f"[{self.session_id}] Action execution failed "
            f"(platform={descriptor.get('platform')}, type={action_type}): {err}"
        )
        self._status.increment("actions_failed")

        if action_type == SEND_CHAT_MESSAGE:
            self._status.increment("send_failures")
            if isinstance(error, CapabilityUnsupported):
                self._status.mark_disabled("send", err)
            else:
                self._status.mark_degraded("send", err)
            self._status.record_error("send", err, kind=type(error).__name__)
        else:
            self._status.record_error("commands", err, kind=type(error).__name__)

    def _normalize_descriptor(
        self, action: Dict[str, Any], default_platform: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        if not isinstance(action, dict):
            return None

        action_type = action.get("action_type") or action.get("type")
        if not action_type:
            return None

        return {
            "action_type": action_type,
            "platform": action.get("platform") or default_platform,
            "payload": action.get("payload") or {},
            "trigger_id": action.get("trigger_id") or "unknown",
            "created_at": action.get("created_at") or datetime.now(timezone.utc).isoformat(),
        }

    async def _dispatch(self, descriptor: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
        action_type = descriptor["action_type"]

        if action_type == SEND_CHAT_MESSAGE:
            await self._send_chat_message(descriptor.get("platform"), descriptor)
            return None

        handler = self._local.get(action_type)
        if handler is None:
            raise RuntimeError(f"Unsupported action_type: {action_type}")

        result = handler(descriptor.get("payload") or {})
        if inspect.isawaitable(result):
            result = await result
        return result if isinstance(result, list) else None

    async def _send_chat_message(self, platform: Optional[str], descriptor: Dict[str, Any]) -> None:
        if not platform:
            raise RuntimeError("send_chat_message requires a platform")

        sender = self._senders.get(platform)
        if not sender:
            raise CapabilityUnsupported("send", f"no sender registered for platform={platform}")

        payload = descriptor.get("payload") or {}
        text = (payload.get("text") or "").strip()
        if not text:
            raise RuntimeError("send_chat_message payload.text is required")

        channel = payload.get("channel") or self.default_channel
        try:
            await sender(channel, text)
        except Exception as e:
            raise TransientFetchFailure(f"{platform}.send", str(e)) from e

        if self._status.status_of("send") != "active":
            self._status.mark_active("send")


__all__ = ["ActionExecutor", "SEND_CHAT_MESSAGE", "send_chat_action"]
