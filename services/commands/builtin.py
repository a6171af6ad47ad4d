"""Built-in widget commands."""

from typing import Any, Dict, List, Sequence

from services.commands.base import Command, CommandContext
from shared.config.widget import CHATTER_MODES

WELCOME_VISIT = "welcome_visit"
RESET_VISITS = "reset_visits"
REFRESH_OVERLAY = "refresh_overlay"
SET_CHATTER_MODE = "set_chatter_mode"


class WelcomeCommand(Command):
    """Viewer check-in (!in, !welcome, ...). Cooldown lives with the visit counter."""

    def __init__(self, triggers: Sequence[str]):
        super().__init__(
            command_id="welcome",
            triggers=triggers,
            description="Manually trigger a welcome message",
        )

    def build_actions(self, ctx: CommandContext) -> List[Dict[str, Any]]:
        message = ctx.message
        return [
            {
                "action_type": WELCOME_VISIT,
                "payload": {
                    "user_id": message.author_id,
                    "username": message.username,
                    "display_name": message.display_name,
                    "color": message.color,
                    "channel": ctx.channel,
                },
            }
        ]


class ResetCommand(Command):
    def __init__(self):
        super().__init__(
            command_id="reset",
            triggers=["!reset"],
            mod_only=True,
            description="Reset visit states and the presence list",
        )

    def build_actions(self, ctx: CommandContext) -> List[Dict[str, Any]]:
        return [
            {"action_type": RESET_VISITS, "payload": {"requested_by": ctx.username}},
            ctx.reply("All user states have been reset!"),
        ]


class RefreshCommand(Command):
    def __init__(self):
        super().__init__(
            command_id="refresh",
            triggers=["!refresh"],
            mod_only=True,
            description="Reset the overlay (chat, chatters, alerts)",
        )

    def build_actions(self, ctx: CommandContext) -> List[Dict[str, Any]]:
        return [{"action_type": REFRESH_OVERLAY, "payload": {"requested_by": ctx.username}}]


class ChatterModeCommand(Command):
    """!chatterpic / !chatterletter switch how presence chatters are drawn."""

    def __init__(self):
        super().__init__(
            command_id="chatter_mode",
            triggers=[f"!chatter{mode}" for mode in CHATTER_MODES],
            mod_only=True,
            description="Switch the chatter display mode",
        )

    def build_actions(self, ctx: CommandContext) -> List[Dict[str, Any]]:
        mode = ctx.trigger[len("!chatter"):]
        if mode not in CHATTER_MODES:
            return []
        return [{"action_type": SET_CHATTER_MODE, "payload": {"mode": mode}}]


def builtin_commands(welcome_triggers: Sequence[str]) -> List[Command]:
    commands: List[Command] = [ResetCommand(), RefreshCommand(), ChatterModeCommand()]
    if welcome_triggers:
        commands.insert(0, WelcomeCommand(welcome_triggers))
    return commands


__all__ = [
    "ChatterModeCommand",
    "REFRESH_OVERLAY",
    "RESET_VISITS",
    "RefreshCommand",
    "ResetCommand",
    "SET_CHATTER_MODE",
    "WELCOME_VISIT",
    "WelcomeCommand",
    "builtin_commands",
]
