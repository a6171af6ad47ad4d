from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from core.timers import Timers
from services.commands.base import Command, CommandContext
from shared.feed.events import ModerationCommand
from shared.logging.logger import get_logger

log = get_logger("commands.registry")


class CommandRegistry:
    """
    Holds chat commands for one widget session.

    Responsibilities:
    - Map case-insensitive literal triggers to commands
    - Enforce enabled flag, permissions and per-user cooldowns
    - Emit action descriptors (no execution)
    """

    def __init__(self, *, timers: Timers, session_id: str = "default"):
        self.session_id = session_id
        self._timers = timers
        self._commands: Dict[str, Command] = {}
        self._cooldowns: Dict[Tuple[str, str], float] = {}

    # ------------------------------------------------------------

    def register(self, command: Command) -> None:
        log.debug(
            f"[{self.session_id}] Registering command {command.command_id}: "
            f"{', '.join(command.triggers)}"
        )
        for trigger in command.triggers:
            existing = self._commands.get(trigger)
            if existing and existing is not command:
                log.warning(
                    f"[{self.session_id}] Trigger {trigger} moved from "
                    f"{existing.command_id} to {command.command_id}"
                )
            self._commands[trigger] = command

    def unregister(self, trigger: str) -> None:
        self._commands.pop(trigger.lower(), None)

    def get(self, trigger: str) -> Optional[Command]:
        return self._commands.get(trigger.lower())

    def set_enabled(self, trigger: str, enabled: bool) -> None:
        command = self.get(trigger)
        if command:
            command.enabled = enabled

    @property
    def triggers(self) -> FrozenSet[str]:
        return frozenset(self._commands.keys())

    def clear_cooldowns(self) -> None:
        self._cooldowns.clear()

    # ------------------------------------------------------------

    def process(self, event: ModerationCommand, *, channel: str = "") -> List[Dict[str, Any]]:
        """
        Evaluate one recognized command and return its actions.
        """
        command = self._commands.get(event.trigger)
        if command is None or not command.enabled:
            return []

        ctx = CommandContext(
            trigger=event.trigger,
            args=list(event.args),
            message=event.message,
            channel=channel,
        )

        if not command.permitted(ctx):
            log.warning(
                f"[{self.session_id}] {ctx.display_name} is not allowed to use {event.trigger}"
            )
            return []

        if command.cooldown > 0:
            key = (command.command_id, event.message.author_id)
            now = self._timers.now()
            last_used = self._cooldowns.get(key)
            if last_used is not None and now - last_used < command.cooldown:
                remaining = command.cooldown - (now - last_used)
                log.debug(
                    f"[{self.session_id}] {event.trigger} on cooldown for "
                    f"{ctx.display_name} ({remaining:.0f}s remaining)"
                )
                return []
            self._cooldowns[key] = now

        try:
            actions = command.build_actions(ctx) or []
        except Exception as e:
            log.warning(
                f"[{self.session_id}] Command '{command.command_id}' error ignored: {e}"
            )
            return []

        for action in actions:
            action.setdefault("trigger_id", command.command_id)
        log.debug(f"[{self.session_id}] {event.trigger} by {ctx.display_name} -> {len(actions)} action(s)")
        return actions
