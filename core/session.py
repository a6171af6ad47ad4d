"""
Widget session.

One WidgetSession owns every piece of mutable feed state for one overlay:
persisted store, runtime status, timers, badge and emote catalogs, the chat
and presence windows, the alert queue and the event router. Components get
what they need by reference; nothing here is module-global.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from core.context import WidgetContext
from core.state_exporter import RuntimeSnapshotExporter, RuntimeStatus
from core.timers import LoopTimers, Timers
from services.alerts.queue import AlertQueue, AlertTimings
from services.alerts.visits import VisitTracker
from services.commands.actions import ActionExecutor, Sender, send_chat_action
from services.commands.builtin import (
    REFRESH_OVERLAY,
    RESET_VISITS,
    SET_CHATTER_MODE,
    WELCOME_VISIT,
    builtin_commands,
)
from services.commands.registry import CommandRegistry
from services.emotes.third_party import ThirdPartyEmoteCatalog
from services.feed.chat_feed import ChatFeed
from services.feed.router import EventRouter
from services.presence.tracker import PresenceTracker
from services.twitch.api.badges import HelixBadgeClient
from shared.config.widget import WidgetConfig
from shared.feed.badges import BadgeCatalogCache
from shared.feed.errors import CapabilityUnsupported
from shared.feed.events import FeedEvent
from shared.feed.models import DEFAULT_COLOR, Alert
from shared.feed.surface import SnapshotSurface
from shared.logging.logger import get_logger
from shared.storage.kv_store import KeyValueStore

log = get_logger("core.session")


class WidgetSession:
    def __init__(
        self,
        *,
        config: Optional[WidgetConfig] = None,
        context: Optional[WidgetContext] = None,
        timers: Optional[Timers] = None,
        store: Optional[KeyValueStore] = None,
        surface: Optional[SnapshotSurface] = None,
        badge_client: Optional[HelixBadgeClient] = None,
        emote_catalog: Optional[ThirdPartyEmoteCatalog] = None,
        state_dir: Optional[str] = None,
    ):
        self.config = config or WidgetConfig()
        self.context = context
        self.session_id = context.session_id if context else "local"
        self.channel = context.channel if context else ""

        self.timers = timers or LoopTimers()
        self.store = store or KeyValueStore(self.config.storage.store_path)
        self.surface = surface or SnapshotSurface()
        self.status = RuntimeStatus(session_id=self.session_id)
        self.exporter = RuntimeSnapshotExporter(
            status=self.status,
            base_dir=state_dir or self.config.storage.state_dir,
        )

        # ------------------------------------------------------------
        # Catalogs
        # ------------------------------------------------------------
        self.badges = BadgeCatalogCache()
        self.badge_client = badge_client or HelixBadgeClient(
            client_id=context.client_id if context else None,
            token=context.oauth_token if context else None,
        )
        self.emote_catalog = emote_catalog or ThirdPartyEmoteCatalog()

        # ------------------------------------------------------------
        # Feed components
        # ------------------------------------------------------------
        alerts_cfg = self.config.alerts
        self.alerts: Optional[AlertQueue] = None
        if alerts_cfg.enabled:
            self.alerts = AlertQueue(
                timers=self.timers,
                surface=self.surface,
                timings=AlertTimings(
                    enter=alerts_cfg.enter_seconds,
                    hold=alerts_cfg.hold_seconds,
                    exit=alerts_cfg.exit_seconds,
                ),
                on_failure=self._on_alert_failure,
            )
        else:
            self.status.mark_disabled("alerts", "disabled in config")

        self.chat_feed = ChatFeed(
            settings=self.config.chat,
            timers=self.timers,
            badges=self.badges,
            surface=self.surface,
            emote_catalog=self.emote_catalog,
        )

        self.presence: Optional[PresenceTracker] = None
        if self.config.presence.enabled:
            self.presence = PresenceTracker(
                settings=self.config.presence,
                timers=self.timers,
                store=self.store,
                surface=self.surface,
            )
        else:
            self.status.mark_disabled("presence", "disabled in config")

        self.visits = VisitTracker(
            timers=self.timers,
            store=self.store,
            queue=self.alerts,
            milestones=alerts_cfg.milestones,
            welcome_cooldown_hours=self.config.commands.welcome_cooldown_hours,
        )

        # ------------------------------------------------------------
        # Commands
        # ------------------------------------------------------------
        self.commands = CommandRegistry(timers=self.timers, session_id=self.session_id)
        if self.config.commands.enabled:
            for command in builtin_commands(self.config.commands.welcome_commands):
                self.commands.register(command)
        else:
            self.status.mark_disabled("commands", "disabled in config")

        self.executor = ActionExecutor(
            status=self.status,
            session_id=self.session_id,
            default_channel=self.channel,
        )
        self.executor.register_local_action(WELCOME_VISIT, self._action_welcome)
        self.executor.register_local_action(RESET_VISITS, self._action_reset)
        self.executor.register_local_action(REFRESH_OVERLAY, self._action_refresh)
        self.executor.register_local_action(SET_CHATTER_MODE, self._action_chatter_mode)

        self.router = EventRouter(
            timers=self.timers,
            status=self.status,
            chat_feed=self.chat_feed,
            commands=self.commands,
            executor=self.executor,
            command_settings=self.config.commands,
            presence=self.presence,
            visits=self.visits,
            channel=self.channel,
            greet_in_chat=alerts_cfg.greet_in_chat,
        )

        self._started = False

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    async def start(self, *, fetch_catalogs: bool = True) -> None:
        if self._started:
            return
        self._started = True
        log.info(f"[{self.session_id}] Widget session starting")

        if self.presence is not None:
            self.presence.load()
        self.visits.load()

        if fetch_catalogs:
            await self.load_catalogs()

        if self.presence is not None:
            self.presence.start()

        self.publish_status()

    async def load_catalogs(self) -> None:
        channel_id = self.context.channel_id if self.context else None

        try:
            errors = await self.badge_client.populate(self.badges, broadcaster_id=channel_id)
        except CapabilityUnsupported as e:
            self.status.mark_disabled("badges", f"{e}; using legacy badge urls")
            self.status.record_error("badges", str(e), kind="CapabilityUnsupported")
        else:
            if errors:
                self.status.mark_degraded("badges", "; ".join(errors))
                for err in errors:
                    self.status.record_error("badges", err, kind="TransientFetchFailure")
            else:
                self.status.mark_active("badges")

        if not self.config.chat.third_party_emotes:
            self.status.mark_disabled("emotes", "third-party emotes disabled in config")
            return

        errors = await self.emote_catalog.load(channel_id)
        if errors:
            self.status.mark_degraded("emotes", f"{len(errors)} provider(s) unavailable")
            for err in errors:
                self.status.record_error("emotes", err, kind="TransientFetchFailure")
        else:
            self.status.mark_active("emotes")

    async def shutdown(self) -> None:
        if not self._started:
            return
        self._started = False

        if self.presence is not None:
            self.presence.stop()
            self.presence.persist()
        self.visits.save()
        if self.alerts is not None:
            self.alerts.clear()
        self.router.command_window.clear()
        self.publish_status()
        log.info(f"[{self.session_id}] Widget session stopped")

    # ------------------------------------------------------------
    # Inbound / outbound
    # ------------------------------------------------------------

    async def on_event(self, payload: Any) -> Optional[FeedEvent]:
        return await self.router.on_event(payload)

    def attach_sender(self, sender: Sender, *, platform: str = "twitch") -> None:
        self.executor.register_platform_sender(platform, sender)
        self.status.mark_active("send")

    def detach_sender(self, *, platform: str = "twitch") -> None:
        self.executor.unregister_platform_sender(platform)
        self.status.mark_disabled("send", "chat connection closed")

    # ------------------------------------------------------------
    # Operator controls
    # ------------------------------------------------------------

    def clear_chat(self) -> None:
        self.chat_feed.clear()

    def refresh(self) -> None:
        self.chat_feed.clear()
        if self.presence is not None:
            self.presence.clear()
        if self.alerts is not None:
            self.alerts.clear()
        self.router.command_window.clear()
        log.info(f"[{self.session_id}] Overlay refreshed")

    def test_alert(self, display_name: str = "TestViewer", visit_count: int = 1) -> bool:
        if self.alerts is None:
            return False
        count = max(1, int(visit_count))
        self.alerts.enqueue(
            Alert(
                subject_id=f"test:{display_name.lower()}",
                display_name=display_name,
                color=DEFAULT_COLOR,
                visit_count=count,
                created_time=self.timers.now(),
                milestone=count if count in self.config.alerts.milestones else None,
            )
        )
        return True

    def publish_status(self) -> Dict[str, Any]:
        return self.exporter.publish()

    def snapshot(self) -> Dict[str, Any]:
        return self.surface.snapshot()

    # ------------------------------------------------------------
    # Local actions
    # ------------------------------------------------------------

    def _action_welcome(self, payload: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
        username = payload.get("username")
        if not username:
            return None
        reply = self.visits.welcome(
            user_id=str(payload.get("user_id") or username),
            username=username,
            display_name=payload.get("display_name") or username,
            color=payload.get("color") or DEFAULT_COLOR,
        )
        if reply is None:
            return None
        self.status.increment("alerts_queued")
        return [send_chat_action(reply, channel=payload.get("channel") or self.channel)]

    def _action_reset(self, payload: Dict[str, Any]) -> None:
        log.info(f"[{self.session_id}] Reset requested by {payload.get('requested_by')}")
        self.visits.reset()
        if self.presence is not None:
            self.presence.clear()

    def _action_refresh(self, payload: Dict[str, Any]) -> None:
        log.info(f"[{self.session_id}] Refresh requested by {payload.get('requested_by')}")
        self.refresh()

    def _action_chatter_mode(self, payload: Dict[str, Any]) -> None:
        if self.presence is None:
            raise CapabilityUnsupported("presence", "presence tracking is disabled")
        self.presence.set_mode(str(payload.get("mode") or ""))

    def _on_alert_failure(self, alert: Alert, error: Exception) -> None:
        self.status.increment("alerts_failed")
        if isinstance(error, CapabilityUnsupported):
            self.status.mark_disabled("alerts", str(error))
        else:
            self.status.mark_degraded("alerts", str(error))
        self.status.record_error("alerts", str(error), kind=type(error).__name__)


__all__ = ["WidgetSession"]
